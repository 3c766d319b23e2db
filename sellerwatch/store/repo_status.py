"""スキャン状態と監視設定の読み書き。"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Optional

from sellerwatch.store.file_storage import SCAN_STATUS_FILE, SETTINGS_FILE, FileStorage
from sellerwatch.store.models import SellerMonitoringSettings, SellerScanStatus

logger = logging.getLogger(__name__)

SETTINGS_SCHEMA_VERSION = 1


def get_scan_status(storage: FileStorage) -> SellerScanStatus:
    data = storage.read_json(SCAN_STATUS_FILE)
    if data:
        return SellerScanStatus.from_dict(data)
    return SellerScanStatus()


def set_scan_status(storage: FileStorage, status: SellerScanStatus) -> SellerScanStatus:
    storage.write_json(SCAN_STATUS_FILE, status.to_dict())
    return status


def update_scan_status(storage: FileStorage, **changes: Any) -> SellerScanStatus:
    """現在の状態に changes を上書きしたものでまるごと置き換える。"""
    updated = dataclasses.replace(get_scan_status(storage), **changes)
    return set_scan_status(storage, updated)


def default_settings(monitor_cfg: Optional[dict[str, Any]] = None) -> SellerMonitoringSettings:
    cfg = monitor_cfg or {}
    return SellerMonitoringSettings(
        scan_frequency_days=cfg.get("scan_frequency_days", 7),
        quick_check_frequency_hours=cfg.get("quick_check_frequency_hours", 24),
        notify_on_new_match=bool(cfg.get("notify_on_new_match", True)),
        vinyl_formats_only=bool(cfg.get("vinyl_formats_only", True)),
    )


def get_settings(storage: FileStorage, monitor_cfg: Optional[dict[str, Any]] = None) -> SellerMonitoringSettings:
    data = storage.read_json(SETTINGS_FILE)
    if data and data.get("schemaVersion") == SETTINGS_SCHEMA_VERSION:
        return SellerMonitoringSettings.from_dict(data)
    logger.debug("No settings file found, using defaults")
    return default_settings(monitor_cfg)


def save_settings(
    storage: FileStorage,
    monitor_cfg: Optional[dict[str, Any]] = None,
    **changes: Any,
) -> SellerMonitoringSettings:
    current = get_settings(storage, monitor_cfg)
    updated = dataclasses.replace(current, **changes, schema_version=SETTINGS_SCHEMA_VERSION)
    storage.write_json(SETTINGS_FILE, updated.to_dict())
    logger.info("Seller monitoring settings saved")
    return updated
