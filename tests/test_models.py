"""API レスポンス / ストア用モデルの変換テスト。"""
import pytest

from sellerwatch.discogs.models import (
    MarketplaceListing,
    Pagination,
    ReleaseInfo,
    listing_to_item,
    parse_format,
    parse_price,
)
from sellerwatch.store.models import SellerMatch, SellerScanStatus


@pytest.mark.parametrize(
    "value, expected",
    [
        (12.5, 12.5),
        (7, 7.0),
        ("19.99", 19.99),
        (" 3 ", 3.0),
        ("12.50 EUR", 12.5),
        ("1,234.50", 1234.5),
        (".5", 0.5),
        ("n/a", 0.0),
        ("nan", 0.0),
        ("inf", 0.0),
        (float("nan"), 0.0),
        (float("inf"), 0.0),
        (None, 0.0),
        (True, 0.0),
    ],
)
def test_parse_price(value, expected):
    assert parse_price(value) == expected


def test_parse_format():
    assert parse_format('12", EP, 45 RPM') == ['12"', "EP", "45 RPM"]
    assert parse_format(["Vinyl", "", 3, "LP"]) == ["Vinyl", "LP"]
    assert parse_format(None) == []
    assert parse_format({"name": "Vinyl"}) == []


def test_listing_to_item_defaults():
    item = listing_to_item({"id": "42", "release": {"id": 501}, "price": "15.00"})
    assert item.listing_id == 42
    assert item.artist == "Unknown Artist"
    assert item.title == "Unknown Title"
    assert item.condition == "?/?"
    assert item.price == 15.0
    assert item.currency == "USD"
    assert item.listing_url == "https://www.discogs.com/sell/item/42"
    assert item.format == []


def test_listing_without_release_id_is_dropped():
    assert listing_to_item({"id": 42, "release": {"title": "x"}}) is None
    assert listing_to_item({"release": {"id": 501}}) is None


def test_pagination_defaults():
    p = Pagination.from_api(None)
    assert (p.page, p.pages, p.items, p.per_page) == (1, 1, 0, 100)
    assert Pagination.from_api({"pages": 0}).pages == 1


def test_release_without_master():
    assert ReleaseInfo.from_api({"id": 5, "master_id": 0}).master_id is None
    assert ReleaseInfo.from_api({"id": 5}).master_id is None
    assert ReleaseInfo.from_api({"id": 5, "master_id": 9}).master_id == 9


def test_listing_availability():
    assert MarketplaceListing.from_api({"id": 1, "status": "For Sale"}).is_available()
    assert MarketplaceListing.from_api({"id": 1}).is_available()
    assert not MarketplaceListing.from_api({"id": 1, "status": "Sold"}).is_available()
    assert not MarketplaceListing.from_api({"id": 1, "status": "Draft"}).is_available()


def test_match_json_uses_camel_case_and_skips_none():
    m = SellerMatch(
        id="42",
        seller_id="vinylshop",
        release_id=501,
        artist="Can",
        title="Tago Mago",
        format=["LP"],
        condition="VG/VG",
        price=10.0,
        currency="EUR",
        listing_url="https://www.discogs.com/sell/item/42",
        listing_id=42,
        date_found=1700000000000,
    )
    d = m.to_dict()
    assert d["sellerId"] == "vinylshop"
    assert d["listingId"] == 42
    assert "statusConfidence" not in d
    assert SellerMatch.from_dict(d) == m


def test_match_from_dict_without_id_uses_listing_id():
    m = SellerMatch.from_dict({"sellerId": "s", "releaseId": 1, "listingId": 77})
    assert m.id == "77"
    assert m.status == "active"
    assert m.notified is False


def test_scan_status_from_empty_dict():
    s = SellerScanStatus.from_dict({})
    assert s.status == "idle"
    assert s.matching_progress is None
    assert s.last_scan_timestamp is None
