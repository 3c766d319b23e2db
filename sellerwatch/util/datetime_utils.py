"""日時ユーティリティ。永続データの時刻はすべてエポックミリ秒。"""
from __future__ import annotations

import time
from datetime import datetime, timezone

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS


def now_ms() -> int:
    """現在時刻（エポックミリ秒）。"""
    return int(time.time() * 1000)


def run_id() -> str:
    """スキャン実行ID（UTC タイムスタンプ）。"""
    return datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")


def ms_to_iso(ms: int | None) -> str:
    """エポックミリ秒を UTC の ISO 形式文字列に。None は空文字。"""
    if not ms:
        return ""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()
