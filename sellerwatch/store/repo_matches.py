"""マッチの CRUD。matches.json をまるごと読み書きする。"""
from __future__ import annotations

import logging
from typing import Optional

from sellerwatch.store.file_storage import MATCHES_FILE, FileStorage
from sellerwatch.store.models import (
    STATUS_SOLD,
    SellerMatch,
    SellerMatchesStore,
    same_seller,
)
from sellerwatch.util.datetime_utils import DAY_MS, now_ms

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def get_matches_store(storage: FileStorage) -> SellerMatchesStore:
    data = storage.read_json(MATCHES_FILE)
    if data and data.get("schemaVersion") == SCHEMA_VERSION:
        return SellerMatchesStore.from_dict(data)
    return SellerMatchesStore(last_updated=now_ms(), matches=[])


def save_matches_store(storage: FileStorage, store: SellerMatchesStore) -> None:
    store.last_updated = now_ms()
    storage.write_json(MATCHES_FILE, store.to_dict())


def get_matches_by_seller(storage: FileStorage, username: str) -> list[SellerMatch]:
    return [m for m in get_matches_store(storage).matches if same_seller(m.seller_id, username)]


def find_match(store: SellerMatchesStore, match_id: str) -> Optional[SellerMatch]:
    for m in store.matches:
        if m.id == match_id:
            return m
    return None


def count_active_matches(matches: list[SellerMatch], username: str) -> int:
    """sold 以外の件数（セラーの matchCount）。"""
    return sum(1 for m in matches if same_seller(m.seller_id, username) and m.status != STATUS_SOLD)


def replace_seller_matches(storage: FileStorage, username: str, seller_matches: list[SellerMatch]) -> list[SellerMatch]:
    """対象セラーのマッチを丸ごと差し替えて保存。保存後の全マッチを返す。"""
    store = get_matches_store(storage)
    store.matches = [m for m in store.matches if not same_seller(m.seller_id, username)] + list(seller_matches)
    save_matches_store(storage, store)
    return store.matches


def delete_seller_matches(storage: FileStorage, username: str) -> int:
    store = get_matches_store(storage)
    before = len(store.matches)
    store.matches = [m for m in store.matches if not same_seller(m.seller_id, username)]
    save_matches_store(storage, store)
    return before - len(store.matches)


def remove_stale_matches(storage: FileStorage, prune_days: int = 30) -> int:
    """sold で dateFound が prune_days より古いものを削除。active / seen は残す。"""
    store = get_matches_store(storage)
    cutoff = now_ms() - prune_days * DAY_MS
    before = len(store.matches)
    store.matches = [m for m in store.matches if m.status != STATUS_SOLD or m.date_found > cutoff]
    removed = before - len(store.matches)
    if removed > 0:
        save_matches_store(storage, store)
        logger.info("Pruned %d stale matches", removed)
    return removed
