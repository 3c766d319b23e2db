"""監視セラー一覧の CRUD。"""
from __future__ import annotations

import logging
from typing import Optional

from sellerwatch.store.file_storage import SELLERS_FILE, FileStorage
from sellerwatch.store.models import MonitoredSeller, same_seller

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def get_sellers(storage: FileStorage) -> list[MonitoredSeller]:
    store = storage.read_json(SELLERS_FILE)
    if not store or store.get("schemaVersion") != SCHEMA_VERSION:
        return []
    return [MonitoredSeller.from_dict(s) for s in store.get("sellers") or []]


def save_sellers(storage: FileStorage, sellers: list[MonitoredSeller]) -> None:
    storage.write_json(
        SELLERS_FILE,
        {"schemaVersion": SCHEMA_VERSION, "sellers": [s.to_dict() for s in sellers]},
    )


def find_seller(sellers: list[MonitoredSeller], username: str) -> Optional[MonitoredSeller]:
    for s in sellers:
        if same_seller(s.username, username):
            return s
    return None


def upsert_seller(storage: FileStorage, seller: MonitoredSeller) -> bool:
    """
    1 セラー分だけ差し替え（読み込み〜書き込みの間に await を挟まないこと）。
    スキャン中に削除されたセラーは復活させず False を返す。
    """
    sellers = get_sellers(storage)
    replaced = False
    for i, s in enumerate(sellers):
        if same_seller(s.username, seller.username):
            sellers[i] = seller
            replaced = True
            break
    if not replaced:
        logger.warning("Seller %s no longer monitored, scan result not saved", seller.username)
        return False
    save_sellers(storage, sellers)
    return True
