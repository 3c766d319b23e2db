"""
Discogs REST クライアント（非同期）。
全リクエストは共有 RateLimiter を通過してから送る。requests はブロッキングなのでワーカースレッドで実行。
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

import requests

from sellerwatch.discogs import api_client, auth, errors, models
from sellerwatch.discogs.rate_limit import RateLimiter
from sellerwatch.util import http

logger = logging.getLogger(__name__)

SORT_DESC = "desc"
SORT_ASC = "asc"


class DiscogsClient:
    def __init__(
        self,
        rate_limiter: RateLimiter,
        auth_service: auth.AuthService,
        config: Optional[dict[str, Any]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        cfg = (config or {}).get("discogs", {})
        self.base_url = (cfg.get("base_url") or api_client.BASE_URL).rstrip("/")
        self.user_agent = cfg.get("user_agent") or api_client.get_user_agent()
        self.timeout_sec = int(cfg.get("timeout_sec") or http.get_timeout_sec())
        self.rate_limiter = rate_limiter
        self.auth_service = auth_service
        self.session = session or requests.Session()

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None, context: str = "") -> dict[str, Any]:
        token = await self.auth_service.get_discogs_token()
        extra_headers, signer = auth.build_auth(token)
        headers = api_client.build_headers(self.user_agent)
        headers.update(extra_headers)
        await self.rate_limiter.acquire()
        try:
            return await asyncio.to_thread(
                http.get_json,
                f"{self.base_url}{path}",
                params=params,
                headers=headers,
                auth=signer,
                timeout_sec=self.timeout_sec,
                session=self.session,
            )
        except requests.HTTPError as e:
            raise errors.from_http_error(e, context or path) from e

    async def get_user(self, username: str) -> models.UserProfile:
        data = await self._get(f"/users/{quote(username)}", context=f"user {username}")
        return models.UserProfile.from_api(data)

    async def get_inventory_page(
        self, username: str, page: int, sort_order: str = SORT_DESC
    ) -> models.InventoryPage:
        """GET /users/{username}/inventory を 1 ページ分。listed の降順（新着順）が既定。"""
        data = await self._get(
            f"/users/{quote(username)}/inventory",
            params={
                "page": page,
                "per_page": api_client.PER_PAGE,
                "sort": "listed",
                "sort_order": sort_order,
            },
            context=f"inventory page {page} ({sort_order}) for {username}",
        )
        return models.InventoryPage.from_api(data)

    async def get_listing(self, listing_id: int) -> models.MarketplaceListing:
        data = await self._get(f"/marketplace/listings/{listing_id}", context=f"listing {listing_id}")
        return models.MarketplaceListing.from_api(data)

    async def get_master_versions(self, master_id: int, page: int) -> models.MasterVersionsPage:
        data = await self._get(
            f"/masters/{master_id}/versions",
            params={"page": page, "per_page": api_client.PER_PAGE},
            context=f"versions for master {master_id} page {page}",
        )
        return models.MasterVersionsPage.from_api(data)

    async def get_release(self, release_id: int) -> models.ReleaseInfo:
        data = await self._get(f"/releases/{release_id}", context=f"release {release_id}")
        return models.ReleaseInfo.from_api(data)
