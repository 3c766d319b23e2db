"""
トークンバケット方式のレートリミッタ。
プロセスで 1 インスタンスだけ作り、API を呼ぶ全コンポーネントに渡す。
"""
from __future__ import annotations

import asyncio
import math
import time
from typing import Awaitable, Callable


class RateLimiter:
    """
    capacity 回までは即時通過、それ以降は refill_per_sec 回/秒に平準化する。
    補充はタイマーではなく acquire() のたびに経過時間から計算する。
    呼び出しを拒否することはなく、トークンが貯まるまで待たせるだけ。
    """

    def __init__(
        self,
        capacity: int = 5,
        refill_per_sec: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if capacity < 1 or refill_per_sec <= 0:
            raise ValueError("capacity >= 1 and refill_per_sec > 0 required")
        self.capacity = capacity
        self.refill_per_ms = refill_per_sec / 1000
        self._clock = clock
        self._sleep = sleep
        self.tokens = float(capacity)
        self._last_refill_ms = self._now_ms()

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def _refill(self) -> None:
        now = self._now_ms()
        elapsed = now - self._last_refill_ms
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_per_ms)
        self._last_refill_ms = now

    async def acquire(self) -> None:
        self._refill()
        if self.tokens >= 1:
            self.tokens -= 1
            return
        wait_ms = math.ceil((1 - self.tokens) / self.refill_per_ms)
        await self._sleep(wait_ms / 1000)
        self._refill()
        self.tokens -= 1

    @classmethod
    def from_config(cls, config: dict) -> RateLimiter:
        cfg = config.get("rate_limit", {})
        return cls(
            capacity=int(cfg.get("capacity", 5)),
            refill_per_sec=float(cfg.get("refill_per_sec", 1.0)),
        )
