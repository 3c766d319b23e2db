"""
release_id -> master_id の永続キャッシュ。
ウィッシュリストの全マスターについて新しいエントリが揃っていれば（is_complete）、
キャッシュに無いリリースは「ウィッシュリスト外」と断定でき、API を呼ばずに済む。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from sellerwatch.discogs.retry import RetryExecutor
from sellerwatch.store.file_storage import RELEASE_CACHE_FILE, FileStorage
from sellerwatch.util.datetime_utils import DAY_MS, now_ms

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 2
MASTER_REFRESH_DAYS = 30
SAVE_EVERY_MASTERS = 10


def _migrate_1_to_2(data: dict[str, Any]) -> dict[str, Any]:
    """v1 は masterToReleases が配列のみ。lastUpdated をおおよその取得時刻として付与する。"""
    fetched_at = int(data.get("lastUpdated") or now_ms())
    migrated: dict[str, Any] = {}
    for master_id, releases in (data.get("masterToReleases") or {}).items():
        if isinstance(releases, list):
            migrated[master_id] = {"releases": releases, "fetchedAt": fetched_at}
        else:
            migrated[master_id] = releases
    data["masterToReleases"] = migrated
    logger.info("Migrated %d masters to release cache schema v2", len(migrated))
    return data


# (from, to) -> 変換関数。読み込み時に一度だけ順に適用する
MIGRATIONS: dict[tuple[int, int], Callable[[dict[str, Any]], dict[str, Any]]] = {
    (1, 2): _migrate_1_to_2,
}


def migrate(data: dict[str, Any]) -> dict[str, Any]:
    version = int(data.get("schemaVersion") or 1)
    while version < CURRENT_SCHEMA_VERSION:
        step = MIGRATIONS.get((version, version + 1))
        if step is None:
            raise ValueError(f"No release cache migration from v{version}")
        data = step(data)
        version += 1
        data["schemaVersion"] = version
    return data


@dataclass
class MasterEntry:
    releases: list[int]
    fetched_at: int


@dataclass
class RefreshResult:
    masters_processed: int = 0
    releases_added: int = 0
    stale_refreshed: int = 0


@dataclass
class CacheStats:
    total_releases: int
    total_masters: int
    last_updated: int
    stale_masters: int


class ReleaseMasterCache:
    """遅延ロードされるプロセス内シングルトン（サービスが 1 つだけ生成する）。"""

    def __init__(
        self,
        storage: FileStorage,
        client: Any = None,
        retry: Optional[RetryExecutor] = None,
        refresh_days: int = MASTER_REFRESH_DAYS,
    ) -> None:
        self.storage = storage
        self.client = client
        self.retry = retry or RetryExecutor()
        self.refresh_days = refresh_days
        self.release_to_master: dict[int, int] = {}
        self.master_to_releases: dict[int, MasterEntry] = {}
        self.last_updated = 0
        self._loaded = False

    # --- 永続化 ---

    def load(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        data = self.storage.read_json(RELEASE_CACHE_FILE)
        if not isinstance(data, dict):
            self.last_updated = now_ms()
            return
        try:
            data = migrate(data)
            self.release_to_master = {
                int(r): int(m) for r, m in (data.get("releaseToMaster") or {}).items()
            }
            self.master_to_releases = {
                int(m): MasterEntry(
                    releases=[int(r) for r in (e.get("releases") or [])],
                    fetched_at=int(e.get("fetchedAt") or 0),
                )
                for m, e in (data.get("masterToReleases") or {}).items()
            }
            self.last_updated = int(data.get("lastUpdated") or now_ms())
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("Release cache unreadable, starting empty: %s", e)
            self.release_to_master = {}
            self.master_to_releases = {}
            self.last_updated = now_ms()
            return
        logger.debug(
            "Loaded release cache: %d releases, %d masters",
            len(self.release_to_master),
            len(self.master_to_releases),
        )

    def save(self) -> None:
        self.load()
        self.last_updated = now_ms()
        self.storage.write_json(
            RELEASE_CACHE_FILE,
            {
                "releaseToMaster": {str(r): m for r, m in self.release_to_master.items()},
                "masterToReleases": {
                    str(m): {"releases": e.releases, "fetchedAt": e.fetched_at}
                    for m, e in self.master_to_releases.items()
                },
                "lastUpdated": self.last_updated,
                "schemaVersion": CURRENT_SCHEMA_VERSION,
            },
        )
        logger.debug("Saved release cache: %d releases", len(self.release_to_master))

    # --- 参照・追加 ---

    def get(self, release_id: int) -> Optional[int]:
        self.load()
        return self.release_to_master.get(release_id)

    def add(self, release_id: int, master_id: int, update_timestamp: bool = False) -> None:
        """
        両方向に記録。fetchedAt は update_timestamp=True（マスターを取り直した最初のリリース）の時だけ更新。
        照合中に API で知っただけのリリースは fetchedAt=0 の古いエントリとして作る（is_complete を満たさない）。
        """
        self.load()
        self.release_to_master[release_id] = master_id
        entry = self.master_to_releases.get(master_id)
        if entry is None:
            entry = MasterEntry(releases=[], fetched_at=0)
            self.master_to_releases[master_id] = entry
        if release_id not in entry.releases:
            entry.releases.append(release_id)
        if update_timestamp:
            entry.fetched_at = now_ms()

    def _stale_threshold(self) -> int:
        return now_ms() - self.refresh_days * DAY_MS

    def is_complete(self, wishlist_master_ids: Iterable[int]) -> bool:
        """全ウィッシュリストマスターに空でない・古くないエントリがあるか。"""
        self.load()
        threshold = self._stale_threshold()
        for master_id in wishlist_master_ids:
            entry = self.master_to_releases.get(master_id)
            if entry is None or not entry.releases or entry.fetched_at < threshold:
                return False
        return True

    # --- API からの取得 ---

    async def fetch_releases_for_master(self, master_id: int) -> list[int]:
        """マスターの全バージョンを取得してキャッシュに追加。失敗時はそれまでの分を返す。"""
        release_ids: list[int] = []
        page = 1
        is_first = True
        try:
            while True:
                resp = await self.retry.run(
                    lambda: self.client.get_master_versions(master_id, page),
                    f"fetch versions for master {master_id} page {page}",
                )
                for release_id in resp.release_ids:
                    release_ids.append(release_id)
                    self.add(release_id, master_id, update_timestamp=is_first)
                    is_first = False
                if page >= resp.pagination.pages:
                    break
                page += 1
            logger.debug("Fetched %d releases for master %s", len(release_ids), master_id)
        except Exception as e:
            logger.warning("Failed to fetch releases for master %s: %s", master_id, e)
        return release_ids

    async def refresh(self, wishlist_master_ids: Iterable[int]) -> RefreshResult:
        """
        ウィッシュリストのマスターごとに、キャッシュが無いか refresh_days 以上古ければ取り直す。
        クラッシュ時の損失を抑えるため 10 マスターごとに保存。
        """
        self.load()
        master_ids = list(wishlist_master_ids)
        now = now_ms()
        threshold = self._stale_threshold()
        result = RefreshResult()
        start_count = len(self.release_to_master)
        logger.info("Refreshing release cache for %d wishlist masters...", len(master_ids))

        for master_id in master_ids:
            entry = self.master_to_releases.get(master_id)
            existing = len(entry.releases) if entry else 0
            fetched_at = entry.fetched_at if entry else 0
            is_stale = fetched_at < threshold
            if existing > 0 and not is_stale:
                logger.debug(
                    "Skipping master %s - have %d releases, fetched %d days ago",
                    master_id,
                    existing,
                    round((now - fetched_at) / DAY_MS),
                )
                continue
            if existing > 0:
                result.stale_refreshed += 1
            await self.fetch_releases_for_master(master_id)
            result.masters_processed += 1
            if result.masters_processed % SAVE_EVERY_MASTERS == 0:
                self.save()
                logger.info(
                    "Cache refresh progress: %d masters processed (%d stale refreshed)",
                    result.masters_processed,
                    result.stale_refreshed,
                )

        self.save()
        result.releases_added = len(self.release_to_master) - start_count
        logger.info(
            "Release cache refresh complete: %d masters processed, %d stale refreshed, %d new releases added",
            result.masters_processed,
            result.stale_refreshed,
            result.releases_added,
        )
        return result

    async def update_for_masters(self, master_ids: Iterable[int]) -> RefreshResult:
        """ウィッシュリスト同期後に、まだリリースが無い新規マスターだけ取得する。5 件ごとに保存。"""
        self.load()
        result = RefreshResult()
        start_count = len(self.release_to_master)
        for master_id in master_ids:
            entry = self.master_to_releases.get(master_id)
            if entry and entry.releases:
                continue
            await self.fetch_releases_for_master(master_id)
            result.masters_processed += 1
            if result.masters_processed % 5 == 0:
                self.save()
        if result.masters_processed:
            self.save()
        result.releases_added = len(self.release_to_master) - start_count
        logger.info(
            "Cache update for new wishlist masters complete: %d masters, %d releases added",
            result.masters_processed,
            result.releases_added,
        )
        return result

    def stats(self) -> CacheStats:
        self.load()
        threshold = self._stale_threshold()
        return CacheStats(
            total_releases=len(self.release_to_master),
            total_masters=len(self.master_to_releases),
            last_updated=self.last_updated,
            stale_masters=sum(1 for e in self.master_to_releases.values() if e.fetched_at < threshold),
        )
