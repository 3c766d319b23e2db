"""HTTP クライアント：タイムアウト付き GET。リトライは呼び出し側（RetryExecutor）で行う。"""
import os
from typing import Any, Optional

import requests


def get_timeout_sec() -> int:
    return int(os.getenv("HTTP_TIMEOUT_SEC", "10"))


def get_json(
    url: str,
    params: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
    auth: Any = None,
    timeout_sec: Optional[int] = None,
    session: Optional[requests.Session] = None,
) -> dict[str, Any]:
    """GET で JSON を取得。2xx 以外は requests.HTTPError を送出。"""
    timeout_sec = timeout_sec or get_timeout_sec()
    use_session = session or requests
    r = use_session.get(
        url,
        params=params,
        headers=headers or {},
        auth=auth,
        timeout=timeout_sec,
    )
    r.raise_for_status()
    return r.json() if r.content else {}
