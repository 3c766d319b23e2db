"""
ストアリポジトリの集約エントリポイント。
sellers / matches / inventory-cache / scan-status / settings の CRUD を一元提供。
"""
from __future__ import annotations

from sellerwatch.store.repo_inventory import (
    clear_partial_progress,
    delete_inventory_cache,
    get_cached_inventory,
    get_partial_progress,
    save_inventory_cache,
    save_partial_progress,
)
from sellerwatch.store.repo_matches import (
    count_active_matches,
    delete_seller_matches,
    find_match,
    get_matches_by_seller,
    get_matches_store,
    remove_stale_matches,
    replace_seller_matches,
    save_matches_store,
)
from sellerwatch.store.repo_sellers import find_seller, get_sellers, save_sellers, upsert_seller
from sellerwatch.store.repo_status import (
    get_scan_status,
    get_settings,
    save_settings,
    set_scan_status,
    update_scan_status,
)

__all__ = [
    "clear_partial_progress",
    "count_active_matches",
    "delete_inventory_cache",
    "delete_seller_matches",
    "find_match",
    "find_seller",
    "get_cached_inventory",
    "get_matches_by_seller",
    "get_matches_store",
    "get_partial_progress",
    "get_scan_status",
    "get_sellers",
    "get_settings",
    "remove_stale_matches",
    "replace_seller_matches",
    "save_inventory_cache",
    "save_matches_store",
    "save_partial_progress",
    "save_sellers",
    "save_settings",
    "set_scan_status",
    "update_scan_status",
    "upsert_seller",
]
