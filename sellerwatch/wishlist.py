"""照合対象となるウィッシュリストのマスターID集合。"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol

from sellerwatch.store.file_storage import WISHLIST_FILE, FileStorage

logger = logging.getLogger(__name__)


class WishlistService(Protocol):
    async def get_wishlist_master_ids(self) -> set[int]:
        ...


def _master_ids(entries: Any) -> set[int]:
    ids: set[int] = set()
    if not isinstance(entries, list):
        return ids
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        master_id = entry.get("masterId")
        try:
            if master_id:
                ids.add(int(master_id))
        except (TypeError, ValueError):
            logger.debug("Ignoring wishlist entry with bad masterId: %r", master_id)
    return ids


class FileWishlistService:
    """
    wishlist/masters.json を読む。
    {"wishlist": [{"masterId": 123, ...}], "localWantList": [{"masterId": 456, ...}]}
    Discogs のウィッシュリストとローカルの欲しいものリストの和集合。masterId の無い項目は無視。
    """

    def __init__(self, storage: FileStorage) -> None:
        self.storage = storage

    async def get_wishlist_master_ids(self) -> set[int]:
        data = self.storage.read_json(WISHLIST_FILE)
        if not isinstance(data, dict):
            logger.warning("No wishlist found at %s, nothing to match", WISHLIST_FILE)
            return set()
        ids = _master_ids(data.get("wishlist")) | _master_ids(data.get("localWantList"))
        logger.debug("Loaded %d wishlist master ids", len(ids))
        return ids


class StaticWishlistService:
    def __init__(self, master_ids: Iterable[int]) -> None:
        self.master_ids = set(master_ids)

    async def get_wishlist_master_ids(self) -> set[int]:
        return set(self.master_ids)
