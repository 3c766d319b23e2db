"""
セラーごとのスキャン種別の決定。
フル: lastScanned から scan_frequency_days 以上 or force_fresh
クイック: lastQuickCheck から quick_check_frequency_hours 以上
それ以外: 今回はスキップ
"""
from __future__ import annotations

from typing import Optional

from sellerwatch.job.params import ScanParams
from sellerwatch.store.models import MonitoredSeller
from sellerwatch.util.datetime_utils import DAY_MS, HOUR_MS

SCAN_FULL = "full"
SCAN_QUICK = "quick"


def decide_scan_mode(
    seller: MonitoredSeller,
    params: ScanParams,
    force_fresh: bool,
    now: int,
) -> Optional[str]:
    """SCAN_FULL / SCAN_QUICK / None（スキップ）。"""
    if force_fresh:
        return SCAN_FULL
    since_full = now - (seller.last_scanned or 0)
    if since_full >= params.scan_frequency_days * DAY_MS:
        return SCAN_FULL
    since_quick = now - (seller.last_quick_check or 0)
    if since_quick >= params.quick_check_frequency_hours * HOUR_MS:
        return SCAN_QUICK
    return None
