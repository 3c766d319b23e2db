"""
在庫アイテムとウィッシュリスト（マスターID集合）の照合。
在庫 API は master_id を返さないため、release_id -> master_id を
永続キャッシュ → (キャッシュ完全なら打ち切り) → スキャン内キャッシュ → API の順で解決する。
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import requests

from sellerwatch.discogs.errors import DiscogsError
from sellerwatch.discogs.retry import RetryExecutor
from sellerwatch.match.release_cache import ReleaseMasterCache
from sellerwatch.store.models import (
    STATUS_ACTIVE,
    MatchingProgress,
    SellerInventoryItem,
    SellerMatch,
    same_seller,
)
from sellerwatch.util.datetime_utils import now_ms

logger = logging.getLogger(__name__)

PROGRESS_EVERY_ITEMS = 50

VINYL_FORMATS = (
    "vinyl",
    "lp",
    '12"',
    '10"',
    '7"',
    "12''",
    "10''",
    "7''",
    "12”",
    "10”",
    "7”",
    "12″",
    "10″",
    "7″",
)


def is_vinyl_format(formats: list[str]) -> bool:
    text = " ".join(formats).lower()
    return any(marker in text for marker in VINYL_FORMATS)


@dataclass
class MatchStats:
    cache_hits: int = 0
    api_calls: int = 0
    skipped_formats: int = 0
    skipped_existing: int = 0
    skipped_not_in_cache: int = 0


class MatchingEngine:
    def __init__(
        self,
        client: Any,
        release_cache: ReleaseMasterCache,
        retry: Optional[RetryExecutor] = None,
    ) -> None:
        self.client = client
        self.release_cache = release_cache
        self.retry = retry or RetryExecutor()
        self.last_stats = MatchStats()

    async def lookup_master_id(self, release_id: int) -> Optional[int]:
        """API で master_id を引く。見つからない・エラーは None。"""
        try:
            release = await self.retry.run(
                lambda: self.client.get_release(release_id),
                f"release {release_id}",
            )
        except (DiscogsError, requests.RequestException) as e:
            logger.debug("Failed to lookup master_id for release %s: %s", release_id, e)
            return None
        return release.master_id

    async def match(
        self,
        items: list[SellerInventoryItem],
        seller_id: str,
        existing_matches: list[SellerMatch],
        *,
        wishlist_master_ids: Iterable[int],
        vinyl_formats_only: bool = True,
        progress_callback: Optional[Callable[[MatchingProgress], None]] = None,
    ) -> list[SellerMatch]:
        """
        在庫をウィッシュリストと照合してマッチを返す。
        既存マッチ（同じ listingId）は id / status / notified を引き継ぎ、価格・通貨・状態のみ更新する。
        """
        wishlist = set(wishlist_master_ids)
        existing_by_listing = {
            m.listing_id: m for m in existing_matches if same_seller(m.seller_id, seller_id)
        }
        cache_complete = self.release_cache.is_complete(wishlist)
        if cache_complete:
            logger.info("Release cache is complete - skipping API calls for releases not in cache")

        stats = MatchStats()
        session_cache: dict[int, Optional[int]] = {}
        matches: list[SellerMatch] = []
        total = len(items)

        def _report(processed: int) -> None:
            if progress_callback:
                progress_callback(
                    MatchingProgress(
                        items_processed=processed,
                        total_items=total,
                        cache_hits=stats.cache_hits,
                        api_calls=stats.api_calls,
                    )
                )

        _report(0)
        for processed, item in enumerate(items, start=1):
            if processed % PROGRESS_EVERY_ITEMS == 0:
                _report(processed)

            if vinyl_formats_only and not is_vinyl_format(item.format):
                stats.skipped_formats += 1
                continue

            existing = existing_by_listing.get(item.listing_id)
            if existing:
                # status は戻さない（seen を active にしない）
                matches.append(
                    dataclasses.replace(
                        existing,
                        price=item.price,
                        currency=item.currency,
                        condition=item.condition,
                    )
                )
                stats.skipped_existing += 1
                continue

            master_id = self.release_cache.get(item.release_id)
            if master_id is not None:
                stats.cache_hits += 1
            elif cache_complete:
                stats.skipped_not_in_cache += 1
                continue
            elif item.release_id in session_cache:
                master_id = session_cache[item.release_id]
            else:
                master_id = await self.lookup_master_id(item.release_id)
                session_cache[item.release_id] = master_id
                stats.api_calls += 1
                if master_id is not None:
                    self.release_cache.add(item.release_id, master_id)
                if stats.api_calls % 100 == 0:
                    logger.info(
                        "Master ID lookup progress: %d API calls, %d cache hits",
                        stats.api_calls,
                        stats.cache_hits,
                    )

            if not master_id or master_id not in wishlist:
                continue

            matches.append(
                SellerMatch(
                    id=str(item.listing_id),
                    seller_id=seller_id,
                    release_id=item.release_id,
                    master_id=master_id,
                    artist=item.artist,
                    title=item.title,
                    format=list(item.format),
                    condition=item.condition,
                    price=item.price,
                    currency=item.currency,
                    listing_url=item.listing_url,
                    listing_id=item.listing_id,
                    date_found=now_ms(),
                    notified=False,
                    status=STATUS_ACTIVE,
                    cover_image=item.cover_image,
                )
            )

        if stats.api_calls > 0:
            self.release_cache.save()
        _report(total)
        self.last_stats = stats

        logger.info(
            "Matching complete for %s: %d items processed, %d non-vinyl skipped, %d existing matches, "
            "%d cache hits, %d skipped (not in cache), %d API calls, %d matches found",
            seller_id,
            total,
            stats.skipped_formats,
            stats.skipped_existing,
            stats.cache_hits,
            stats.skipped_not_in_cache,
            stats.api_calls,
            len(matches),
        )
        return matches
