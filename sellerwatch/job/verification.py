"""出品の販売状況を 1 件ずつ確認する（sold 判定の誤検知防止用）。"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

from sellerwatch.discogs.errors import DiscogsError, DiscogsHTTPError
from sellerwatch.discogs.retry import RetryExecutor

logger = logging.getLogger(__name__)


@dataclass
class ListingVerification:
    available: bool
    error: Optional[str] = None


async def verify_listing_status(client: Any, retry: RetryExecutor, listing_id: int) -> ListingVerification:
    """
    200 かつ販売中 → available。200 でも販売中でなければ unavailable。
    404 → unavailable（削除済み・売却済み）。それ以外の失敗は unavailable + error。
    """
    try:
        listing = await retry.run(lambda: client.get_listing(listing_id), f"listing {listing_id}")
    except DiscogsHTTPError as e:
        if e.status == 404:
            return ListingVerification(available=False)
        logger.error("Error verifying listing %s: %s", listing_id, e)
        return ListingVerification(available=False, error=str(e))
    except (DiscogsError, requests.RequestException) as e:
        logger.error("Error verifying listing %s: %s", listing_id, e)
        return ListingVerification(available=False, error=str(e))
    return ListingVerification(available=listing.is_available())
