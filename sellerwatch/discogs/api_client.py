"""Discogs API の共通クライアント設定。"""
from __future__ import annotations

import os

BASE_URL = "https://api.discogs.com"
DEFAULT_USER_AGENT = "SellerWatch/1.0"
PER_PAGE = 100


def get_user_agent() -> str:
    """User-Agent。Discogs は UA 無しのリクエストを弾くため必須。"""
    return os.getenv("DISCOGS_USER_AGENT", DEFAULT_USER_AGENT)


def build_headers(user_agent: str | None = None) -> dict[str, str]:
    """API リクエスト用の共通ヘッダ。認証ヘッダは auth.build_auth で別途付与。"""
    return {
        "User-Agent": user_agent or get_user_agent(),
        "Accept": "application/vnd.discogs.v2.discogs+json",
    }
