"""スキャン実行パラメータ。"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sellerwatch.store.models import SellerMonitoringSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanParams:
    """1回のスキャン実行のパラメータ（ユーザー設定 + config の monitor 節）。"""

    scan_frequency_days: float
    quick_check_frequency_hours: float
    vinyl_formats_only: bool
    inventory_cache_hours: float
    stale_match_prune_days: int
    max_verify_per_scan: int
    partial_progress_max_age_hours: float

    @classmethod
    def from_settings(cls, settings: SellerMonitoringSettings, config: dict[str, Any]) -> ScanParams:
        monitor_cfg = config.get("monitor", {})
        max_verify = int(monitor_cfg.get("max_verify_per_scan", 5))
        if max_verify < 0:
            logger.warning("max_verify_per_scan=%d は負の値です。0 に補正しました。", max_verify)
            max_verify = 0
        return cls(
            scan_frequency_days=float(settings.scan_frequency_days),
            quick_check_frequency_hours=float(settings.quick_check_frequency_hours),
            vinyl_formats_only=bool(settings.vinyl_formats_only),
            inventory_cache_hours=float(monitor_cfg.get("inventory_cache_hours", 6)),
            stale_match_prune_days=int(monitor_cfg.get("stale_match_prune_days", 30)),
            max_verify_per_scan=max_verify,
            partial_progress_max_age_hours=float(monitor_cfg.get("partial_progress_max_age_hours", 24)),
        )
