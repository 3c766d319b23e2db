"""
Discogs 認証。トークン自体は外部の認証サービスが供給する。
- 個人アクセストークン: "Discogs token=..." をそのまま Authorization ヘッダに
- OAuth: {"key", "secret"} の JSON から OAuth1（HMAC-SHA1）署名を作る
"""
from __future__ import annotations

import json
import os
from typing import Any, Optional, Protocol

from dotenv import load_dotenv
from requests_oauthlib import OAuth1

from sellerwatch.discogs.errors import CorruptTokenError, NotAuthenticatedError

load_dotenv()

PERSONAL_TOKEN_PREFIX = "Discogs token="


class AuthService(Protocol):
    async def get_discogs_token(self) -> Optional[str]:
        ...


class EnvAuthService:
    """環境変数（.env）からトークンを供給する。"""

    async def get_discogs_token(self) -> Optional[str]:
        personal = (os.getenv("DISCOGS_TOKEN") or "").strip()
        if personal:
            if personal.startswith(PERSONAL_TOKEN_PREFIX):
                return personal
            return f"{PERSONAL_TOKEN_PREFIX}{personal}"
        key = (os.getenv("DISCOGS_OAUTH_TOKEN") or "").strip()
        secret = (os.getenv("DISCOGS_OAUTH_TOKEN_SECRET") or "").strip()
        if key and secret:
            return json.dumps({"key": key, "secret": secret})
        return None


def _consumer_credentials() -> tuple[str, str]:
    return os.getenv("DISCOGS_CONSUMER_KEY", ""), os.getenv("DISCOGS_CONSUMER_SECRET", "")


def build_auth(
    token: Optional[str],
    consumer_key: Optional[str] = None,
    consumer_secret: Optional[str] = None,
) -> tuple[dict[str, str], Any]:
    """(追加ヘッダ, requests の auth) を返す。"""
    if not token:
        raise NotAuthenticatedError("No Discogs token available. Please authenticate first.")
    if token.startswith(PERSONAL_TOKEN_PREFIX):
        return {"Authorization": token}, None
    try:
        parsed = json.loads(token)
        key, secret = parsed["key"], parsed["secret"]
    except (ValueError, TypeError, KeyError) as e:
        raise CorruptTokenError(f"Corrupted Discogs OAuth token: {e}") from e
    if consumer_key is None or consumer_secret is None:
        consumer_key, consumer_secret = _consumer_credentials()
    signer = OAuth1(
        consumer_key,
        client_secret=consumer_secret,
        resource_owner_key=key,
        resource_owner_secret=secret,
        signature_method="HMAC-SHA1",
    )
    return {}, signer
