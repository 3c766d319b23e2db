"""release_cache（release -> master の永続キャッシュ）のユニットテスト。"""
import asyncio

from sellerwatch.match.release_cache import CURRENT_SCHEMA_VERSION, ReleaseMasterCache, migrate
from sellerwatch.store.file_storage import RELEASE_CACHE_FILE
from sellerwatch.util.datetime_utils import DAY_MS, now_ms


def test_migrate_v1_array_entries():
    data = {
        "releaseToMaster": {"11": 1, "12": 1},
        "masterToReleases": {"1": [11, 12]},
        "lastUpdated": 1700000000000,
    }
    migrated = migrate(data)
    assert migrated["schemaVersion"] == CURRENT_SCHEMA_VERSION
    assert migrated["masterToReleases"]["1"] == {"releases": [11, 12], "fetchedAt": 1700000000000}


def test_load_migrates_old_file(storage):
    storage.write_json(
        RELEASE_CACHE_FILE,
        {"releaseToMaster": {"11": 1}, "masterToReleases": {"1": [11]}, "lastUpdated": 1700000000000},
    )
    cache = ReleaseMasterCache(storage)
    assert cache.get(11) == 1
    assert cache.master_to_releases[1].fetched_at == 1700000000000
    assert cache.master_to_releases[1].releases == [11]


def test_corrupt_file_is_cold_start(storage):
    path = storage.data_dir / RELEASE_CACHE_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("{not json", encoding="utf-8")
    cache = ReleaseMasterCache(storage)
    assert cache.get(11) is None
    assert cache.stats().total_releases == 0


def test_add_records_both_directions_and_timestamp_only_when_asked(storage):
    cache = ReleaseMasterCache(storage)
    cache.add(11, 1)
    first = cache.master_to_releases[1].fetched_at
    assert first == 0
    cache.master_to_releases[1].fetched_at = 5
    cache.add(12, 1)
    assert cache.master_to_releases[1].fetched_at == 5
    cache.add(13, 1, update_timestamp=True)
    assert cache.master_to_releases[1].fetched_at >= first
    assert cache.master_to_releases[1].releases == [11, 12, 13]
    assert cache.get(13) == 1


def test_refresh_then_complete(storage, fake_client, retry):
    fake_client.master_versions = {1: [11, 12], 2: list(range(200, 350))}
    cache = ReleaseMasterCache(storage, fake_client, retry)
    assert cache.is_complete({1, 2}) is False

    result = asyncio.run(cache.refresh({1, 2}))
    assert result.masters_processed == 2
    assert result.releases_added == 152
    assert cache.is_complete({1, 2}) is True
    assert cache.get(349) == 2
    # 150 件 → 2 ページ
    assert [c[2] for c in fake_client.calls_of("versions") if c[1] == 2] == [1, 2]

    reloaded = ReleaseMasterCache(storage)
    assert reloaded.get(12) == 1
    assert reloaded.is_complete({1, 2}) is True


def test_refresh_skips_fresh_and_refetches_stale(storage, fake_client, retry):
    fake_client.master_versions = {1: [11], 2: [21]}
    cache = ReleaseMasterCache(storage, fake_client, retry)
    cache.add(11, 1, update_timestamp=True)
    cache.add(21, 2)
    cache.master_to_releases[2].fetched_at = now_ms() - 31 * DAY_MS
    assert cache.is_complete({1, 2}) is False

    result = asyncio.run(cache.refresh([1, 2]))
    assert result.masters_processed == 1
    assert result.stale_refreshed == 1
    assert [c[1] for c in fake_client.calls_of("versions")] == [2]
    assert cache.is_complete({1, 2}) is True


def test_empty_master_entry_is_not_complete(storage):
    cache = ReleaseMasterCache(storage)
    cache.add(11, 1, update_timestamp=True)
    cache.master_to_releases[1].releases = []
    assert cache.is_complete({1}) is False


def test_update_for_masters_only_fetches_missing(storage, fake_client, retry):
    fake_client.master_versions = {1: [11], 2: [21, 22]}
    cache = ReleaseMasterCache(storage, fake_client, retry)
    cache.add(11, 1, update_timestamp=True)
    result = asyncio.run(cache.update_for_masters([1, 2]))
    assert result.masters_processed == 1
    assert result.releases_added == 2
    assert [c[1] for c in fake_client.calls_of("versions")] == [2]


def test_stats_counts_stale_masters(storage):
    cache = ReleaseMasterCache(storage)
    cache.add(11, 1, update_timestamp=True)
    cache.add(21, 2)
    cache.master_to_releases[2].fetched_at = now_ms() - 40 * DAY_MS
    stats = cache.stats()
    assert stats.total_releases == 2
    assert stats.total_masters == 2
    assert stats.stale_masters == 1


def test_refresh_persists_every_ten_masters(storage, fake_client, retry):
    fake_client.master_versions = {m: [m * 100] for m in range(1, 12)}
    cache = ReleaseMasterCache(storage, fake_client, retry)
    snapshots = {}
    original = fake_client.get_master_versions

    # 11 件目を取りに行く時点のファイル内容を記録する
    async def get_master_versions(master_id, page):
        if master_id == 11:
            snapshots[master_id] = storage.read_json(RELEASE_CACHE_FILE)
        return await original(master_id, page)

    fake_client.get_master_versions = get_master_versions
    asyncio.run(cache.refresh(range(1, 12)))

    saved = snapshots[11]
    assert saved is not None
    assert len(saved["masterToReleases"]) == 10
    assert "1100" not in saved["releaseToMaster"]
    assert ReleaseMasterCache(storage).get(1100) == 11
