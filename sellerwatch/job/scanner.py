"""
セラー在庫の取得（ページ順・新着順）。
- フルスキャンは 1 ページごとに途中経過を保存し、次回は続きから再開
- 他人の在庫は 100 ページまでしか辿れないため、超えた分は昇順（古い順）の先頭から取り直す
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sellerwatch.discogs.api_client import PER_PAGE
from sellerwatch.discogs.client import SORT_ASC, SORT_DESC
from sellerwatch.discogs.errors import PaginationLimitError
from sellerwatch.discogs.models import InventoryPage
from sellerwatch.discogs.retry import RetryExecutor
from sellerwatch.store import repo
from sellerwatch.store.file_storage import FileStorage
from sellerwatch.store.models import PartialScanProgress, SellerInventoryItem
from sellerwatch.util.datetime_utils import now_ms

logger = logging.getLogger(__name__)

# 降順 100 ページ + 昇順 100 ページが API で辿れる上限
MAX_REVERSE_PAGES = 100


@dataclass
class FetchResult:
    items: list[SellerInventoryItem]
    total_items: int
    is_complete: bool


class InventoryScanner:
    def __init__(
        self,
        client: Any,
        storage: FileStorage,
        retry: Optional[RetryExecutor] = None,
        partial_max_age_hours: float = 24,
        page_callback: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        self.client = client
        self.storage = storage
        self.retry = retry or RetryExecutor()
        self.partial_max_age_hours = partial_max_age_hours
        # (current_page, total_pages) をスキャン状態に流すためのフック
        self.page_callback = page_callback

    async def fetch_page(self, username: str, page: int, sort_order: str = SORT_DESC) -> InventoryPage:
        return await self.retry.run(
            lambda: self.client.get_inventory_page(username, page, sort_order),
            f"inventory page {page} ({sort_order}) for {username}",
        )

    async def fetch_inventory(self, username: str, pages_limit: Optional[int] = None) -> FetchResult:
        """
        在庫を取得。pages_limit 指定時（クイックチェック）は途中経過の保存・再開をしない。
        フルスキャンが途中で失敗した場合、1 件以上あれば is_complete=False で返し、途中経過ファイルは残す。
        """
        full_scan = not pages_limit
        items: list[SellerInventoryItem] = []
        seen_ids: set[int] = set()
        page = 1
        total_pages = 1
        total_items = 0

        if full_scan:
            partial = repo.get_partial_progress(self.storage, username, self.partial_max_age_hours)
            if partial:
                for item in partial.items:
                    if item.listing_id not in seen_ids:
                        seen_ids.add(item.listing_id)
                        items.append(item)
                page = partial.last_completed_page + 1
                total_pages = partial.total_pages
                total_items = partial.total_items
                logger.info(
                    "Resuming scan for %s from page %d/%d (%d items already fetched)",
                    username, page, total_pages, len(items),
                )

        while page <= total_pages and (full_scan or page <= pages_limit):
            logger.debug("Fetching inventory page %d/%d for %s", page, total_pages, username)
            if self.page_callback:
                self.page_callback(page, total_pages)
            try:
                resp = await self.fetch_page(username, page, SORT_DESC)
            except PaginationLimitError:
                if not items:
                    raise
                await self._fetch_beyond_page_limit(username, items, seen_ids, total_items, total_pages)
                if full_scan:
                    repo.clear_partial_progress(self.storage, username)
                return FetchResult(items=items, total_items=total_items, is_complete=True)
            except Exception as e:
                if items and full_scan:
                    logger.warning(
                        "Partial scan for %s: got %d items from %d/%d pages, will resume from page %d next time (%s)",
                        username, len(items), page - 1, total_pages, page, e,
                    )
                    return FetchResult(items=items, total_items=total_items, is_complete=False)
                raise

            total_pages = resp.pagination.pages
            total_items = resp.pagination.items
            for item in resp.items:
                if item.listing_id not in seen_ids:
                    seen_ids.add(item.listing_id)
                    items.append(item)

            if full_scan and page < total_pages:
                repo.save_partial_progress(
                    self.storage,
                    username,
                    PartialScanProgress(
                        items=list(items),
                        last_completed_page=page,
                        total_pages=total_pages,
                        total_items=total_items,
                        saved_at=now_ms(),
                    ),
                )
            page += 1

        if full_scan:
            repo.clear_partial_progress(self.storage, username)
        logger.debug("Fetched %d inventory items for %s", len(items), username)
        return FetchResult(items=items, total_items=total_items, is_complete=True)

    async def _fetch_beyond_page_limit(
        self,
        username: str,
        items: list[SellerInventoryItem],
        seen_ids: set[int],
        total_items: int,
        total_pages: int,
    ) -> None:
        """降順で 100 ページ目以降にあたる最古の出品を、昇順の先頭ページから取得して items に追記。"""
        missing_items = total_items - len(items)
        missing_pages = math.ceil(missing_items / PER_PAGE)
        if missing_pages > MAX_REVERSE_PAGES:
            logger.warning(
                "Seller %s has %d items (%d pages) - exceeds 200 page combined limit. Missing %d items.",
                username, total_items, total_pages, missing_items,
            )
            return
        if missing_pages <= 0:
            return
        logger.info(
            "Discogs API 100-page limit reached for %s. Fetching %d remaining items (%d pages) using reverse sort order...",
            username, missing_items, missing_pages,
        )
        fetched = 0
        added = 0
        for page in range(1, missing_pages + 1):
            logger.debug("Fetching reverse inventory page %d/%d for %s", page, missing_pages, username)
            try:
                resp = await self.fetch_page(username, page, SORT_ASC)
            except Exception as e:
                logger.error("Error fetching reverse page %d for %s: %s", page, username, e)
                break
            for item in resp.items:
                fetched += 1
                if item.listing_id not in seen_ids:
                    seen_ids.add(item.listing_id)
                    items.append(item)
                    added += 1
        logger.info(
            "Fetched %d items from reverse sort, %d unique. Total: %d/%d",
            fetched, added, len(items), total_items,
        )
