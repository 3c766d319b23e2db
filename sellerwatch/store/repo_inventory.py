"""セラー在庫キャッシュと、中断スキャンの途中経過ファイル。"""
from __future__ import annotations

import logging
from typing import Optional

from sellerwatch.store.file_storage import FileStorage, inventory_cache_path, partial_progress_path
from sellerwatch.store.models import PartialScanProgress, SellerInventoryCache
from sellerwatch.util.datetime_utils import HOUR_MS, now_ms

logger = logging.getLogger(__name__)


def get_cached_inventory(storage: FileStorage, username: str, max_age_hours: float) -> Optional[SellerInventoryCache]:
    """max_age_hours 以内に取得した在庫キャッシュ。古ければ None。"""
    data = storage.read_json(inventory_cache_path(username))
    if not data:
        return None
    try:
        cache = SellerInventoryCache.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Broken inventory cache for %s, ignoring: %s", username, e)
        return None
    if now_ms() - cache.fetched_at < max_age_hours * HOUR_MS:
        logger.debug("Using cached inventory for %s", username)
        return cache
    return None


def save_inventory_cache(storage: FileStorage, cache: SellerInventoryCache) -> None:
    storage.write_json(inventory_cache_path(cache.username), cache.to_dict())


def delete_inventory_cache(storage: FileStorage, username: str) -> None:
    storage.delete(inventory_cache_path(username))


def get_partial_progress(storage: FileStorage, username: str, max_age_hours: float = 24) -> Optional[PartialScanProgress]:
    """途中経過。max_age_hours 以上古いものは削除して None。"""
    data = storage.read_json(partial_progress_path(username))
    if not data:
        return None
    try:
        progress = PartialScanProgress.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        logger.debug("Error reading partial progress for %s: %s", username, e)
        clear_partial_progress(storage, username)
        return None
    if now_ms() - progress.saved_at < max_age_hours * HOUR_MS:
        return progress
    logger.debug("Clearing stale partial progress for %s", username)
    clear_partial_progress(storage, username)
    return None


def save_partial_progress(storage: FileStorage, username: str, progress: PartialScanProgress) -> None:
    storage.write_json(partial_progress_path(username), progress.to_dict())


def clear_partial_progress(storage: FileStorage, username: str) -> None:
    storage.delete(partial_progress_path(username))
