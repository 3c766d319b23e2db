"""
セラー監視サービス（CLI / ルート層から呼ぶ集約エントリポイント）。
セラー・マッチの管理、リリースキャッシュの保守、スキャンの開始と状態取得を提供。
"""
from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import requests

from sellerwatch.config import load_config
from sellerwatch.discogs.auth import AuthService, EnvAuthService
from sellerwatch.discogs.client import DiscogsClient
from sellerwatch.discogs.errors import DiscogsError, DiscogsHTTPError, SellerError
from sellerwatch.discogs.models import UserProfile
from sellerwatch.discogs.rate_limit import RateLimiter
from sellerwatch.discogs.retry import RetryExecutor, executor_from_config
from sellerwatch.job.runner import ScanOrchestrator
from sellerwatch.job.verification import ListingVerification, verify_listing_status
from sellerwatch.match.matcher import MatchingEngine
from sellerwatch.match.release_cache import CacheStats, RefreshResult, ReleaseMasterCache
from sellerwatch.store import repo
from sellerwatch.store.file_storage import FileStorage
from sellerwatch.store.models import (
    CONFIDENCE_UNVERIFIED,
    CONFIDENCE_VERIFIED,
    SCAN_IDLE,
    SCAN_MATCHING,
    SCAN_SCANNING,
    STATUS_ACTIVE,
    STATUS_SEEN,
    STATUS_SOLD,
    MonitoredSeller,
    SellerMatch,
    SellerMonitoringSettings,
    SellerScanStatus,
)
from sellerwatch.util.datetime_utils import HOUR_MS, now_ms
from sellerwatch.wishlist import FileWishlistService, WishlistService

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


@dataclass
class SellerValidation:
    valid: bool
    error: Optional[str] = None
    info: Optional[UserProfile] = None


@dataclass
class MatchVerificationResult:
    updated: bool
    status: str  # active / seen / sold / not_found
    error: Optional[str] = None


@dataclass
class CacheInfo:
    last_updated: int
    oldest_scan_age: int
    next_scan_due: int


@dataclass
class MatchesWithCacheInfo:
    matches: list[SellerMatch]
    cache_info: CacheInfo


class SellerMonitoringService:
    def __init__(
        self,
        config: Optional[dict[str, Any]] = None,
        storage: Optional[FileStorage] = None,
        client: Any = None,
        wishlist: Optional[WishlistService] = None,
        auth_service: Optional[AuthService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        retry: Optional[RetryExecutor] = None,
    ) -> None:
        self.config = config if config is not None else load_config()
        self.monitor_cfg = self.config.get("monitor", {})
        self.storage = storage or FileStorage(self.config.get("storage", {}).get("data_dir"))
        self.retry = retry or executor_from_config(self.config)
        # プロセスで 1 つのバケットを全リクエストで共有する
        self.rate_limiter = rate_limiter or RateLimiter.from_config(self.config)
        self.client = client or DiscogsClient(self.rate_limiter, auth_service or EnvAuthService(), self.config)
        self.wishlist = wishlist or FileWishlistService(self.storage)
        self.release_cache = ReleaseMasterCache(
            self.storage,
            self.client,
            self.retry,
            refresh_days=int(self.monitor_cfg.get("master_release_refresh_days", 30)),
        )
        self.engine = MatchingEngine(self.client, self.release_cache, self.retry)
        self.orchestrator = ScanOrchestrator(
            self.storage,
            self.client,
            self.engine,
            self.wishlist,
            self.config,
            retry=self.retry,
        )
        self._initialized = False

    def initialize(self) -> None:
        """前回プロセスがスキャン中に落ちた場合、scanning / matching のまま残った状態を idle に戻す。"""
        if self._initialized:
            return
        self._initialized = True
        status = repo.get_scan_status(self.storage)
        if status.status in (SCAN_SCANNING, SCAN_MATCHING) and not self.orchestrator.scan_in_progress:
            logger.info("Resetting stale scan status from '%s' to 'idle' (restart detected)", status.status)
            repo.set_scan_status(
                self.storage,
                SellerScanStatus(status=SCAN_IDLE, last_scan_timestamp=status.last_scan_timestamp),
            )

    # --- 設定 ---

    def get_settings(self) -> SellerMonitoringSettings:
        return repo.get_settings(self.storage, self.monitor_cfg)

    def save_settings(self, **changes: Any) -> SellerMonitoringSettings:
        return repo.save_settings(self.storage, self.monitor_cfg, **changes)

    # --- セラー管理 ---

    def get_sellers(self) -> list[MonitoredSeller]:
        return repo.get_sellers(self.storage)

    async def validate_seller_exists(self, username: str) -> SellerValidation:
        try:
            profile = await self.client.get_user(username)
        except DiscogsHTTPError as e:
            if e.status == 404:
                return SellerValidation(valid=False, error="User not found on Discogs")
            return SellerValidation(valid=False, error=str(e))
        except (DiscogsError, requests.RequestException) as e:
            return SellerValidation(valid=False, error=str(e) or type(e).__name__)
        return SellerValidation(valid=True, info=profile)

    async def add_seller(self, username: str, display_name: Optional[str] = None) -> MonitoredSeller:
        username = (username or "").strip()
        if not USERNAME_RE.match(username):
            raise SellerError("Invalid username")
        if repo.find_seller(repo.get_sellers(self.storage), username):
            raise SellerError("Already monitoring this seller")

        validation = await self.validate_seller_exists(username)
        if not validation.valid or not validation.info:
            raise SellerError(validation.error or "Invalid seller")

        canonical = validation.info.username or username
        # 検証の await 中に追加された可能性があるので読み直す
        sellers = repo.get_sellers(self.storage)
        if repo.find_seller(sellers, canonical):
            raise SellerError("Already monitoring this seller")
        seller = MonitoredSeller(
            username=canonical,
            display_name=display_name or canonical,
            added_at=now_ms(),
            inventory_size=validation.info.inventory_count,
            match_count=0,
        )
        sellers.append(seller)
        repo.save_sellers(self.storage, sellers)
        logger.info("Added seller: %s", seller.username)
        return seller

    def remove_seller(self, username: str) -> bool:
        sellers = repo.get_sellers(self.storage)
        removed = repo.find_seller(sellers, username)
        if removed is None:
            return False
        repo.save_sellers(self.storage, [s for s in sellers if s is not removed])
        repo.delete_inventory_cache(self.storage, removed.username)
        repo.clear_partial_progress(self.storage, removed.username)
        deleted = repo.delete_seller_matches(self.storage, removed.username)
        logger.info("Removed seller: %s (%d matches deleted)", removed.username, deleted)
        return True

    # --- マッチ ---

    def get_all_matches(self) -> list[SellerMatch]:
        return repo.get_matches_store(self.storage).matches

    def get_matches_by_seller(self, username: str) -> list[SellerMatch]:
        return repo.get_matches_by_seller(self.storage, username)

    def _update_match(self, match_id: str, **changes: Any) -> bool:
        store = repo.get_matches_store(self.storage)
        for i, m in enumerate(store.matches):
            if m.id == match_id:
                store.matches[i] = dataclasses.replace(m, **changes)
                repo.save_matches_store(self.storage, store)
                return True
        return False

    def mark_match_as_seen(self, match_id: str) -> bool:
        ok = self._update_match(match_id, status=STATUS_SEEN)
        if ok:
            logger.debug("Marked match %s as seen", match_id)
        return ok

    def mark_match_as_notified(self, match_id: str) -> bool:
        ok = self._update_match(match_id, notified=True)
        if ok:
            logger.debug("Marked match %s as notified", match_id)
        return ok

    async def verify_listing_status(self, listing_id: int) -> ListingVerification:
        return await verify_listing_status(self.client, self.retry, listing_id)

    async def verify_and_update_match(self, match_id: str) -> MatchVerificationResult:
        """1 件のマッチを出品 API で確認して状態を更新（手動の「再確認」）。"""
        match = repo.find_match(repo.get_matches_store(self.storage), match_id)
        if match is None:
            logger.warning("Match %s not found", match_id)
            return MatchVerificationResult(updated=False, status="not_found", error="Match not found")

        result = await self.verify_listing_status(match.listing_id)
        now = now_ms()

        # await の後で読み直してから書く
        store = repo.get_matches_store(self.storage)
        current = repo.find_match(store, match_id)
        if current is None:
            return MatchVerificationResult(updated=False, status="not_found", error="Match not found")
        if result.error:
            updated = dataclasses.replace(current, status_confidence=CONFIDENCE_UNVERIFIED, last_verified_at=now)
        elif result.available:
            if current.status == STATUS_SOLD:
                logger.info("Match %s was marked as sold but is still available - reactivated", match_id)
                updated = dataclasses.replace(current, status=STATUS_ACTIVE, status_changed_at=now)
            else:
                updated = current
            updated = dataclasses.replace(updated, status_confidence=CONFIDENCE_VERIFIED, last_verified_at=now)
        else:
            if current.status != STATUS_SOLD:
                updated = dataclasses.replace(current, status=STATUS_SOLD, status_changed_at=now)
            else:
                updated = current
            updated = dataclasses.replace(updated, status_confidence=CONFIDENCE_VERIFIED, last_verified_at=now)

        store.matches = [updated if m.id == match_id else m for m in store.matches]
        repo.save_matches_store(self.storage, store)

        changed = updated.status != current.status
        if changed:
            sellers = repo.get_sellers(self.storage)
            seller = repo.find_seller(sellers, updated.seller_id)
            if seller:
                seller.match_count = repo.count_active_matches(store.matches, seller.username)
                repo.save_sellers(self.storage, sellers)
                logger.info("Updated %s matchCount to %d", seller.display_name, seller.match_count)
        return MatchVerificationResult(updated=changed, status=updated.status, error=result.error)

    def get_all_matches_with_cache_info(self) -> MatchesWithCacheInfo:
        store = repo.get_matches_store(self.storage)
        now = now_ms()
        oldest = now
        for seller in repo.get_sellers(self.storage):
            scanned = seller.last_scanned or 0
            if 0 < scanned < oldest:
                oldest = scanned
        oldest_age = now - oldest
        cache_max_age = int(float(self.monitor_cfg.get("inventory_cache_hours", 6)) * HOUR_MS)
        return MatchesWithCacheInfo(
            matches=store.matches,
            cache_info=CacheInfo(
                last_updated=store.last_updated,
                oldest_scan_age=oldest_age,
                next_scan_due=max(0, cache_max_age - oldest_age),
            ),
        )

    def remove_stale_matches(self) -> int:
        return repo.remove_stale_matches(self.storage, int(self.monitor_cfg.get("stale_match_prune_days", 30)))

    # --- リリースキャッシュ ---

    async def refresh_release_cache(self) -> RefreshResult:
        master_ids = await self.wishlist.get_wishlist_master_ids()
        if not master_ids:
            logger.info("No wishlist masters to cache releases for")
            return RefreshResult()
        return await self.release_cache.refresh(master_ids)

    async def update_cache_for_masters(self, master_ids: Iterable[int]) -> RefreshResult:
        return await self.release_cache.update_for_masters(master_ids)

    def get_release_cache_stats(self) -> CacheStats:
        return self.release_cache.stats()

    # --- スキャン ---

    async def start_scan(self, force_fresh: bool = False) -> SellerScanStatus:
        self.initialize()
        return await self.orchestrator.start_scan(force_fresh)

    def get_scan_status(self) -> SellerScanStatus:
        return repo.get_scan_status(self.storage)

    def is_scan_in_progress(self) -> bool:
        return self.orchestrator.scan_in_progress

    async def wait_for_scan(self) -> SellerScanStatus:
        await self.orchestrator.wait()
        return self.get_scan_status()

