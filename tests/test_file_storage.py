"""FileStorage と store リポジトリの読み書きテスト。"""
from sellerwatch.store import repo
from sellerwatch.store.file_storage import (
    SELLERS_FILE,
    cache_key,
    inventory_cache_path,
    partial_progress_path,
)
from sellerwatch.store.models import MonitoredSeller, PartialScanProgress, SellerInventoryCache
from sellerwatch.util.datetime_utils import HOUR_MS, now_ms


def test_read_missing_returns_none(storage):
    assert storage.read_json("nope/none.json") is None


def test_write_then_read_creates_directories(storage):
    storage.write_json("a/b/c.json", {"x": [1, 2], "名前": "レコード"})
    assert storage.read_json("a/b/c.json") == {"x": [1, 2], "名前": "レコード"}
    assert storage.list_files("a/b") == ["c.json"]


def test_corrupt_json_is_treated_as_empty(storage):
    path = storage.data_dir / SELLERS_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("[broken", encoding="utf-8")
    assert storage.read_json(SELLERS_FILE) is None
    assert repo.get_sellers(storage) == []


def test_delete_missing_file_is_noop(storage):
    storage.delete("sellers/none.json")
    assert not storage.exists("sellers/none.json")


def test_cache_key_sanitizes_username():
    assert cache_key("Vinyl.Shop/Berlin") == "vinyl_shop_berlin"
    assert inventory_cache_path("VinylShop") == "sellers/inventory-cache/vinylshop.json"
    assert partial_progress_path("VinylShop") == "sellers/inventory-cache/vinylshop-partial.json"


def test_sellers_roundtrip_and_upsert(storage):
    repo.save_sellers(storage, [MonitoredSeller("VinylShop", "Vinyl Shop", added_at=1)])
    stored = repo.get_sellers(storage)
    assert stored[0].display_name == "Vinyl Shop"
    assert stored[0].last_scanned is None

    assert repo.upsert_seller(storage, MonitoredSeller("vinylshop", "Vinyl Shop", added_at=1, match_count=4))
    assert repo.get_sellers(storage)[0].match_count == 4

    # 監視から外れたセラーは追加しない
    assert repo.upsert_seller(storage, MonitoredSeller("ghost", "ghost", added_at=1)) is False
    assert [s.username for s in repo.get_sellers(storage)] == ["vinylshop"]


def test_sellers_with_unknown_schema_are_ignored(storage):
    storage.write_json(SELLERS_FILE, {"schemaVersion": 99, "sellers": [{"username": "x"}]})
    assert repo.get_sellers(storage) == []


def test_inventory_cache_expires(storage, make_item):
    repo.save_inventory_cache(
        storage,
        SellerInventoryCache("vinylshop", fetched_at=now_ms() - 7 * HOUR_MS, total_items=1, items=[make_item(1)]),
    )
    assert repo.get_cached_inventory(storage, "vinylshop", 6) is None
    cached = repo.get_cached_inventory(storage, "VinylShop", 8)
    assert [i.listing_id for i in cached.items] == [1]


def test_stale_partial_progress_is_deleted(storage, make_item):
    repo.save_partial_progress(
        storage,
        "vinylshop",
        PartialScanProgress(
            items=[make_item(1)], last_completed_page=1, total_pages=2, total_items=150, saved_at=now_ms() - 25 * HOUR_MS
        ),
    )
    assert repo.get_partial_progress(storage, "vinylshop", 24) is None
    assert not storage.exists(partial_progress_path("vinylshop"))


def test_scan_status_update_merges_fields(storage):
    repo.update_scan_status(storage, status="scanning", total_sellers=3)
    status = repo.update_scan_status(storage, sellers_scanned=1)
    assert (status.status, status.total_sellers, status.sellers_scanned) == ("scanning", 3, 1)
    assert repo.get_scan_status(storage).sellers_scanned == 1
