"""テスト共通フィクスチャ: tmp_path 上の FileStorage と、Discogs API の偽クライアント。"""
from __future__ import annotations

import math
from typing import Optional

import pytest

from sellerwatch.discogs.errors import DiscogsHTTPError, PaginationLimitError
from sellerwatch.discogs.models import (
    InventoryPage,
    MarketplaceListing,
    MasterVersionsPage,
    Pagination,
    ReleaseInfo,
    UserProfile,
)
from sellerwatch.discogs.retry import DISCOGS_POLICY, RetryExecutor
from sellerwatch.store.file_storage import FileStorage
from sellerwatch.store.models import SellerInventoryItem

PER_PAGE = 100


def _item(listing_id: int, release_id: Optional[int] = None, fmt: str = "Vinyl, LP, Album") -> SellerInventoryItem:
    return SellerInventoryItem(
        listing_id=listing_id,
        release_id=release_id if release_id is not None else listing_id + 100000,
        artist=f"Artist {listing_id}",
        title=f"Title {listing_id}",
        format=[f for f in fmt.split(", ") if f],
        condition="Very Good Plus (VG+)/Very Good (VG)",
        price=12.5,
        currency="EUR",
        listing_url=f"https://www.discogs.com/sell/item/{listing_id}",
    )


class FakeDiscogsClient:
    """
    DiscogsClient と同じメソッドを持つ偽物。
    inventories[username] は新着順（desc）の在庫。page_limit を超える desc ページは 100 ページ制限エラー。
    """

    def __init__(self) -> None:
        self.inventories: dict[str, list[SellerInventoryItem]] = {}
        self.release_masters: dict[int, Optional[int]] = {}
        self.master_versions: dict[int, list[int]] = {}
        self.listing_status: dict[int, str] = {}
        self.users: dict[str, int] = {}
        self.page_errors: dict[tuple[int, str], Exception] = {}
        self.release_errors: dict[int, Exception] = {}
        self.listing_errors: dict[int, Exception] = {}
        self.page_limit: Optional[int] = None
        self.calls: list[tuple] = []

    def calls_of(self, kind: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == kind]

    async def get_user(self, username: str) -> UserProfile:
        self.calls.append(("user", username))
        for name, count in self.users.items():
            if name.lower() == username.lower():
                return UserProfile(username=name, id=1, inventory_count=count)
        raise DiscogsHTTPError(404, "User does not exist or may have been deleted.", f"user {username}")

    async def get_inventory_page(self, username: str, page: int, sort_order: str = "desc") -> InventoryPage:
        self.calls.append(("inventory", username, page, sort_order))
        err = self.page_errors.get((page, sort_order))
        if err is not None:
            raise err
        if self.page_limit and sort_order == "desc" and page > self.page_limit:
            raise PaginationLimitError(403, "Pagination above 100 disabled", username)
        items = self.inventories.get(username.lower(), [])
        ordered = items if sort_order == "desc" else list(reversed(items))
        chunk = ordered[(page - 1) * PER_PAGE: page * PER_PAGE]
        pages = max(1, math.ceil(len(items) / PER_PAGE))
        return InventoryPage(
            pagination=Pagination(page=page, pages=pages, items=len(items), per_page=PER_PAGE),
            items=list(chunk),
        )

    async def get_listing(self, listing_id: int) -> MarketplaceListing:
        self.calls.append(("listing", listing_id))
        err = self.listing_errors.get(listing_id)
        if err is not None:
            raise err
        status = self.listing_status.get(listing_id)
        if status is None:
            raise DiscogsHTTPError(404, "Listing not found", f"listing {listing_id}")
        return MarketplaceListing(id=listing_id, status=status)

    async def get_master_versions(self, master_id: int, page: int) -> MasterVersionsPage:
        self.calls.append(("versions", master_id, page))
        releases = self.master_versions.get(master_id, [])
        chunk = releases[(page - 1) * PER_PAGE: page * PER_PAGE]
        pages = max(1, math.ceil(len(releases) / PER_PAGE))
        return MasterVersionsPage(
            pagination=Pagination(page=page, pages=pages, items=len(releases), per_page=PER_PAGE),
            release_ids=list(chunk),
        )

    async def get_release(self, release_id: int) -> ReleaseInfo:
        self.calls.append(("release", release_id))
        err = self.release_errors.get(release_id)
        if err is not None:
            raise err
        if release_id not in self.release_masters:
            raise DiscogsHTTPError(404, "Release not found", f"release {release_id}")
        return ReleaseInfo(id=release_id, master_id=self.release_masters[release_id])


@pytest.fixture
def storage(tmp_path) -> FileStorage:
    return FileStorage(str(tmp_path / "data"))


@pytest.fixture
def fake_client() -> FakeDiscogsClient:
    return FakeDiscogsClient()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def retry(sleeps) -> RetryExecutor:
    """待ち時間を記録するだけで実際には眠らない RetryExecutor。"""

    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return RetryExecutor(DISCOGS_POLICY, sleep=_sleep)


@pytest.fixture
def make_item():
    return _item
