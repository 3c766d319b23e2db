"""
分類付きリトライ（指数バックオフ）。
- 100 ページ超えの 403 はハードリミット: リトライせず即送出
- 上流ごとのレート制限ステータス: バックオフしてリトライ
- それ以外: 初回で送出
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import requests

from sellerwatch.discogs import errors

logger = logging.getLogger(__name__)

T = TypeVar("T")

HARD_LIMIT = "hard_limit"
RATE_LIMITED = "rate_limited"
NON_RETRYABLE = "non_retryable"


@dataclass(frozen=True)
class RetryPolicy:
    name: str
    max_attempts: int
    initial_delay_sec: float
    max_delay_sec: float
    retry_statuses: frozenset[int]

    def with_overrides(self, cfg: Optional[dict]) -> RetryPolicy:
        """config.yaml の retry.<name> で定数を上書き。"""
        if not cfg:
            return self
        return RetryPolicy(
            name=self.name,
            max_attempts=int(cfg.get("max_attempts", self.max_attempts)),
            initial_delay_sec=float(cfg.get("initial_delay_sec", self.initial_delay_sec)),
            max_delay_sec=float(cfg.get("max_delay_sec", self.max_delay_sec)),
            retry_statuses=self.retry_statuses,
        )


DISCOGS_POLICY = RetryPolicy(
    name="discogs",
    max_attempts=3,
    initial_delay_sec=5.0,
    max_delay_sec=60.0,
    retry_statuses=frozenset({403, 429}),
)

# カバーアート等のメタデータ系上流
ART_POLICY = RetryPolicy(
    name="art",
    max_attempts=3,
    initial_delay_sec=2.0,
    max_delay_sec=30.0,
    retry_statuses=frozenset({429, 503}),
)


def _status_and_message(error: BaseException) -> tuple[Optional[int], str]:
    if isinstance(error, errors.DiscogsHTTPError):
        return error.status, error.message
    if isinstance(error, requests.HTTPError) and error.response is not None:
        return error.response.status_code, errors._response_message(error.response)
    return None, ""


def classify(error: BaseException, policy: RetryPolicy) -> str:
    if isinstance(error, errors.PaginationLimitError):
        return HARD_LIMIT
    status, message = _status_and_message(error)
    if errors.is_pagination_limit(status, message):
        return HARD_LIMIT
    if status is not None and status in policy.retry_statuses:
        return RATE_LIMITED
    return NON_RETRYABLE


class RetryExecutor:
    """非同期オペレーションを最大 max_attempts 回まで実行する。"""

    def __init__(
        self,
        policy: RetryPolicy = DISCOGS_POLICY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.policy = policy
        self._sleep = sleep

    async def run(self, operation: Callable[[], Awaitable[T]], context: str = "") -> T:
        delay = self.policy.initial_delay_sec
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as e:
                kind = classify(e, self.policy)
                if kind != RATE_LIMITED or attempt >= self.policy.max_attempts:
                    raise
                logger.warning(
                    "Rate limit hit for %s (attempt %d/%d), retrying in %.0fs...",
                    context or self.policy.name,
                    attempt,
                    self.policy.max_attempts,
                    delay,
                )
                await self._sleep(delay)
                delay = min(delay * 2, self.policy.max_delay_sec)
                attempt += 1


def executor_from_config(config: dict, policy: RetryPolicy = DISCOGS_POLICY) -> RetryExecutor:
    retry_cfg = config.get("retry", {}).get(policy.name)
    return RetryExecutor(policy.with_overrides(retry_cfg))
