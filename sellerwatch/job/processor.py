"""
1 セラー分の処理: 在庫取得 → ウィッシュリスト照合 → sold 判定 → マッチのマージ。
マッチ一覧は読み取り専用のスナップショットとして扱い、新しいリストを組み立てて返す
（保存はランナーがセラーごとにまとめて行う）。
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

from sellerwatch.discogs.retry import RetryExecutor
from sellerwatch.job.params import ScanParams
from sellerwatch.job.scanner import InventoryScanner
from sellerwatch.job.seller_selector import SCAN_FULL
from sellerwatch.job.verification import ListingVerification, verify_listing_status
from sellerwatch.match.matcher import MatchingEngine
from sellerwatch.store import repo
from sellerwatch.store.file_storage import FileStorage
from sellerwatch.store.models import (
    CONFIDENCE_UNVERIFIED,
    CONFIDENCE_VERIFIED,
    SCAN_MATCHING,
    SCAN_SCANNING,
    STATUS_ACTIVE,
    STATUS_SOLD,
    MatchingProgress,
    MonitoredSeller,
    SellerInventoryCache,
    SellerInventoryItem,
    SellerMatch,
    same_seller,
)
from sellerwatch.util.datetime_utils import now_ms

logger = logging.getLogger(__name__)

VerifyFn = Callable[[int], Awaitable[ListingVerification]]


@dataclass
class InventorySnapshot:
    items: list[SellerInventoryItem]
    total_items: int
    is_complete: bool
    source: str  # api / cache / partial / cache+api


@dataclass
class SellerScanResult:
    seller: MonitoredSeller
    matches: list[SellerMatch]  # このセラーのマッチ全件（差し替え用）
    new_matches: int
    updated_matches: int
    fetch_complete: bool


async def apply_sold_policy(
    candidates: list[SellerMatch],
    verify: VerifyFn,
    max_verify: int,
    now: int,
) -> list[SellerMatch]:
    """
    在庫から消えたマッチ（sold 候補）を判定。先頭 max_verify 件だけ出品を直接確認する。
    - まだ販売中 → status はそのまま、verified
    - 販売終了を確認 → sold / verified
    - 確認エラー or 予算超過 → sold / unverified
    """
    result: list[SellerMatch] = []
    verified_count = 0
    for match in candidates:
        confidence = CONFIDENCE_UNVERIFIED
        if verified_count < max_verify:
            verification = await verify(match.listing_id)
            verified_count += 1
            if verification.available:
                logger.info(
                    "Listing %s not found in inventory but still available on Discogs - keeping as %s",
                    match.listing_id,
                    match.status,
                )
                result.append(
                    dataclasses.replace(match, status_confidence=CONFIDENCE_VERIFIED, last_verified_at=now)
                )
                continue
            if not verification.error:
                confidence = CONFIDENCE_VERIFIED
        result.append(
            dataclasses.replace(
                match,
                status=STATUS_SOLD,
                status_changed_at=now,
                status_confidence=confidence,
                last_verified_at=now if confidence == CONFIDENCE_VERIFIED else None,
            )
        )
        logger.debug("Marked match %s as sold (%s)", match.id, confidence)
    return result


def _reactivate(match: SellerMatch, now: int) -> SellerMatch:
    """sold 扱いだった出品が在庫に再出現した。"""
    if match.status != STATUS_SOLD:
        return match
    logger.info("Listing %s re-found in inventory, reactivating sold match", match.listing_id)
    return dataclasses.replace(
        match,
        status=STATUS_ACTIVE,
        status_changed_at=now,
        status_confidence=CONFIDENCE_VERIFIED,
        last_verified_at=now,
    )


def merge_additive(previous: list[SellerMatch], found: list[SellerMatch]) -> list[SellerMatch]:
    """クイックチェック / 不完全なフルスキャン: 追加と価格等の更新のみ。何も消さない。"""
    found_by_listing = {m.listing_id: m for m in found}
    merged: list[SellerMatch] = []
    for m in previous:
        merged.append(found_by_listing.pop(m.listing_id, m))
    merged.extend(found_by_listing.values())
    return merged


def merge_full(
    previous: list[SellerMatch],
    found: list[SellerMatch],
    judged: list[SellerMatch],
    inventory_ids: set[int],
) -> list[SellerMatch]:
    """
    完全なフルスキャン: 今回見つかったマッチ + sold 判定済みの候補 + 既存の sold。
    在庫に残っているがもう照合しない出品（ウィッシュリストから外れた等）のマッチは落とす。
    再出現した sold の重複も落とす。
    """
    found_ids = {m.listing_id for m in found}
    judged_ids = {m.listing_id for m in judged}
    kept_sold = [
        m
        for m in previous
        if m.status == STATUS_SOLD
        and m.listing_id not in found_ids
        and m.listing_id not in judged_ids
        and m.listing_id not in inventory_ids
    ]
    return list(found) + list(judged) + kept_sold


def carry_concurrent_changes(
    scanned: list[SellerMatch],
    before: list[SellerMatch],
    stored: list[SellerMatch],
) -> list[SellerMatch]:
    """
    スキャン中（await の間）にユーザーが付けた status / notified を結果に反映する。
    before はスキャン開始時のスナップショット、stored は保存直前に読み直したもの。
    スキャン自身が status を変えたマッチ（sold 判定・再出現）はスキャン結果を優先する。
    """
    before_by_id = {m.id: m for m in before}
    stored_by_id = {m.id: m for m in stored}
    result: list[SellerMatch] = []
    for match in scanned:
        current = stored_by_id.get(match.id)
        if current is None:
            result.append(match)
            continue
        status = match.status
        original = before_by_id.get(match.id)
        if original is not None and original.status == match.status:
            status = current.status
        if status != match.status or current.notified != match.notified:
            match = dataclasses.replace(match, status=status, notified=current.notified)
        result.append(match)
    return result


class SellerProcessor:
    def __init__(
        self,
        client: Any,
        storage: FileStorage,
        engine: MatchingEngine,
        params: ScanParams,
        retry: Optional[RetryExecutor] = None,
        update_status: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.client = client
        self.storage = storage
        self.engine = engine
        self.params = params
        self.retry = retry or RetryExecutor()
        self.update_status = update_status or (lambda **changes: None)
        self.scanner = InventoryScanner(
            client,
            storage,
            self.retry,
            partial_max_age_hours=params.partial_progress_max_age_hours,
            page_callback=lambda page, total: self.update_status(current_page=page, total_pages=total),
        )

    async def verify(self, listing_id: int) -> ListingVerification:
        return await verify_listing_status(self.client, self.retry, listing_id)

    # --- 在庫取得 ---

    async def acquire_inventory(self, seller: MonitoredSeller, mode: str, force_fresh: bool) -> InventorySnapshot:
        username = seller.username
        cache = None
        if not force_fresh:
            cache = repo.get_cached_inventory(self.storage, username, self.params.inventory_cache_hours)
            if cache and not cache.items:
                cache = None
        partial = None
        if not force_fresh and cache is None:
            partial = repo.get_partial_progress(self.storage, username, self.params.partial_progress_max_age_hours)
            if partial and not partial.items:
                partial = None
        logger.info(
            "Cache check for %s: force_fresh=%s, fresh_cache=%s, partial=%s, mode=%s",
            username,
            force_fresh,
            bool(cache),
            len(partial.items) if partial else 0,
            mode,
        )

        if mode != SCAN_FULL:
            if cache:
                logger.debug("Using cached inventory for quick scan of %s", username)
                return InventorySnapshot(cache.items, cache.total_items, True, "cache")
            if partial:
                logger.debug("Using partial cache for quick scan of %s (%d items)", username, len(partial.items))
                return InventorySnapshot(partial.items, partial.total_items, False, "partial")
            result = await self.scanner.fetch_inventory(username, pages_limit=1)
            return InventorySnapshot(result.items, result.total_items, result.is_complete, "api")

        if cache:
            return await self._refresh_from_cache(username, cache)

        # 途中経過ファイルがあればスキャナー側で続きから再開する
        result = await self.scanner.fetch_inventory(username)
        return InventorySnapshot(result.items, result.total_items, result.is_complete, "api")

    async def _refresh_from_cache(self, username: str, cache: SellerInventoryCache) -> InventorySnapshot:
        """
        完全なキャッシュがある時のフルスキャン。新着順に 1 ページずつ取得し、
        キャッシュ済みの出品を含むページに当たったら止めて、新着分をキャッシュの先頭に足す。
        """
        logger.info("Checking for new items in %s (have full cache with %d items)", username, len(cache.items))
        cached_ids = {i.listing_id for i in cache.items}
        new_items: list[SellerInventoryItem] = []
        total_items = cache.total_items
        page = 1
        while True:
            self.update_status(current_page=page)
            resp = await self.scanner.fetch_page(username, page)
            total_items = resp.pagination.items
            if not resp.items:
                break
            fresh = [i for i in resp.items if i.listing_id not in cached_ids]
            new_items.extend(fresh)
            if len(fresh) < len(resp.items):
                logger.info("Page %d: %d new, %d existing - stopping", page, len(fresh), len(resp.items) - len(fresh))
                break
            logger.info("Page %d: all %d items are new, continuing...", page, len(resp.items))
            if page >= resp.pagination.pages:
                break
            page += 1

        if not new_items:
            logger.debug("No new items found, using full cached inventory for %s", username)
            return InventorySnapshot(cache.items, cache.total_items, True, "cache")

        logger.info("Found %d new items across %d page(s), merging with full cache", len(new_items), page)
        new_ids = {i.listing_id for i in new_items}
        items = new_items + [i for i in cache.items if i.listing_id not in new_ids]
        return InventorySnapshot(items, total_items, True, "cache+api")

    # --- 1 セラー分 ---

    async def process_seller(
        self,
        seller: MonitoredSeller,
        mode: str,
        wishlist_master_ids: Iterable[int],
        existing_matches: list[SellerMatch],
        force_fresh: bool = False,
    ) -> SellerScanResult:
        username = seller.username
        full_scan = mode == SCAN_FULL
        logger.info("Scanning %s (%s%s)", username, mode, ", force fresh" if force_fresh else "")
        self.update_status(
            status=SCAN_SCANNING,
            current_seller=seller.display_name or username,
            current_page=None,
            total_pages=None,
            matching_progress=None,
        )

        snapshot = await self.acquire_inventory(seller, mode, force_fresh)

        previous = [m for m in existing_matches if same_seller(m.seller_id, username)]
        self.update_status(status=SCAN_MATCHING, matching_progress=MatchingProgress(total_items=len(snapshot.items)))
        found = await self.engine.match(
            snapshot.items,
            username,
            previous,
            wishlist_master_ids=wishlist_master_ids,
            vinyl_formats_only=self.params.vinyl_formats_only,
            progress_callback=lambda p: self.update_status(matching_progress=p),
        )

        now = now_ms()
        found = [_reactivate(m, now) for m in found]
        previous_ids = {m.id for m in previous}
        new_count = sum(1 for m in found if m.id not in previous_ids)
        updated_count = len(found) - new_count

        updated_seller = dataclasses.replace(seller, inventory_size=snapshot.total_items)
        if full_scan and snapshot.is_complete:
            inventory_ids = {i.listing_id for i in snapshot.items}
            candidates = [
                m for m in previous if m.status != STATUS_SOLD and m.listing_id not in inventory_ids
            ]
            if candidates:
                logger.info("%d matches for %s missing from inventory, checking sold status", len(candidates), username)
            judged = await apply_sold_policy(candidates, self.verify, self.params.max_verify_per_scan, now)
            merged = merge_full(previous, found, judged, inventory_ids)
            updated_seller.last_scanned = now
        else:
            if full_scan:
                logger.info(
                    "Full scan for %s incomplete (%d items), skipping sold detection until it resumes",
                    username,
                    len(snapshot.items),
                )
            else:
                updated_seller.last_quick_check = now
            merged = merge_additive(previous, found)

        updated_seller.match_count = repo.count_active_matches(merged, username)

        if full_scan and snapshot.is_complete:
            repo.save_inventory_cache(
                self.storage,
                SellerInventoryCache(
                    username=username,
                    fetched_at=now,
                    total_items=snapshot.total_items,
                    items=snapshot.items,
                ),
            )
        elif full_scan:
            logger.info(
                "Skipping cache save for %s - fetch was incomplete (%d items). Partial progress preserved for resume.",
                username,
                len(snapshot.items),
            )

        logger.info(
            "Found %d new, %d existing matches for %s (inventory from %s)",
            new_count,
            updated_count,
            username,
            snapshot.source,
        )
        return SellerScanResult(
            seller=updated_seller,
            matches=merged,
            new_matches=new_count,
            updated_matches=updated_count,
            fetch_complete=snapshot.is_complete,
        )
