"""Discogs API 呼び出しのエラー分類。"""
from __future__ import annotations

from typing import Any, Optional

import requests

PAGINATION_LIMIT_MESSAGE = "pagination above 100 disabled"


class DiscogsError(Exception):
    """Discogs 関連エラーの基底。"""


class NotAuthenticatedError(DiscogsError):
    """トークン未設定。"""


class CorruptTokenError(DiscogsError):
    """OAuth トークンの JSON が壊れている。"""


class DiscogsHTTPError(DiscogsError):
    """2xx 以外のレスポンス。"""

    def __init__(self, status: int, message: str = "", context: str = "") -> None:
        self.status = status
        self.message = message
        self.context = context
        text = f"HTTP {status}"
        if message:
            text += f": {message}"
        if context:
            text += f" ({context})"
        super().__init__(text)


class RateLimitedError(DiscogsHTTPError):
    """403/429。バックオフ付きでリトライする。"""


class PaginationLimitError(DiscogsHTTPError):
    """他人の在庫で 100 ページを超えた。リトライ不可、逆順取得で回避する。"""


class SellerError(ValueError):
    """セラー管理の拒否（重複・存在しない・ユーザー名不正）。"""


def is_pagination_limit(status: Optional[int], message: str) -> bool:
    return status == 403 and PAGINATION_LIMIT_MESSAGE in (message or "").lower()


def _response_message(response: Any) -> str:
    try:
        data = response.json()
    except ValueError:
        return (getattr(response, "text", "") or "")[:200]
    if isinstance(data, dict):
        return str(data.get("message") or "")
    return ""


def from_http_error(error: requests.HTTPError, context: str = "") -> DiscogsHTTPError:
    """requests.HTTPError を分類済みの例外に変換。"""
    response = error.response
    status = response.status_code if response is not None else 0
    message = _response_message(response) if response is not None else str(error)
    if is_pagination_limit(status, message):
        return PaginationLimitError(status, message, context)
    if status in (403, 429):
        return RateLimitedError(status, message, context)
    return DiscogsHTTPError(status, message, context)
