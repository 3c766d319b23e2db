"""ストア用データモデル。JSON 上のキーは camelCase、時刻はエポックミリ秒。"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

STATUS_ACTIVE = "active"
STATUS_SEEN = "seen"
STATUS_SOLD = "sold"

CONFIDENCE_VERIFIED = "verified"
CONFIDENCE_UNVERIFIED = "unverified"

SCAN_IDLE = "idle"
SCAN_SCANNING = "scanning"
SCAN_MATCHING = "matching"
SCAN_COMPLETED = "completed"
SCAN_ERROR = "error"


def _compact(d: dict[str, Any]) -> dict[str, Any]:
    """None の項目を落とす（JSON に undefined 相当を書かない）。"""
    return {k: v for k, v in d.items() if v is not None}


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def same_seller(a: str, b: str) -> bool:
    return (a or "").lower() == (b or "").lower()


@dataclass
class MonitoredSeller:
    username: str
    display_name: str
    added_at: int
    last_scanned: Optional[int] = None
    last_quick_check: Optional[int] = None
    inventory_size: Optional[int] = None
    match_count: Optional[int] = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MonitoredSeller:
        return cls(
            username=d["username"],
            display_name=d.get("displayName") or d["username"],
            added_at=int(d.get("addedAt") or 0),
            last_scanned=_opt_int(d.get("lastScanned")),
            last_quick_check=_opt_int(d.get("lastQuickCheck")),
            inventory_size=_opt_int(d.get("inventorySize")),
            match_count=_opt_int(d.get("matchCount")),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "username": self.username,
            "displayName": self.display_name,
            "addedAt": self.added_at,
            "lastScanned": self.last_scanned,
            "lastQuickCheck": self.last_quick_check,
            "inventorySize": self.inventory_size,
            "matchCount": self.match_count,
        })


@dataclass
class SellerInventoryItem:
    listing_id: int
    release_id: int
    artist: str
    title: str
    format: list[str]
    condition: str
    price: float
    currency: str
    listing_url: str
    master_id: Optional[int] = None
    cover_image: Optional[str] = None
    listed_at: Optional[str] = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SellerInventoryItem:
        return cls(
            listing_id=int(d["listingId"]),
            release_id=int(d["releaseId"]),
            artist=d.get("artist") or "Unknown Artist",
            title=d.get("title") or "Unknown Title",
            format=list(d.get("format") or []),
            condition=d.get("condition") or "?/?",
            price=float(d.get("price") or 0),
            currency=d.get("currency") or "USD",
            listing_url=d.get("listingUrl") or "",
            master_id=_opt_int(d.get("masterId")),
            cover_image=d.get("coverImage"),
            listed_at=d.get("listedAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "listingId": self.listing_id,
            "releaseId": self.release_id,
            "masterId": self.master_id,
            "artist": self.artist,
            "title": self.title,
            "format": self.format,
            "condition": self.condition,
            "price": self.price,
            "currency": self.currency,
            "listingUrl": self.listing_url,
            "coverImage": self.cover_image,
            "listedAt": self.listed_at,
        })


@dataclass
class SellerInventoryCache:
    username: str
    fetched_at: int
    total_items: int
    items: list[SellerInventoryItem]
    quick_check_at: Optional[int] = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SellerInventoryCache:
        return cls(
            username=d["username"],
            fetched_at=int(d.get("fetchedAt") or 0),
            total_items=int(d.get("totalItems") or 0),
            items=[SellerInventoryItem.from_dict(x) for x in (d.get("items") or [])],
            quick_check_at=_opt_int(d.get("quickCheckAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "username": self.username,
            "fetchedAt": self.fetched_at,
            "quickCheckAt": self.quick_check_at,
            "totalItems": self.total_items,
            "items": [i.to_dict() for i in self.items],
        })


@dataclass
class PartialScanProgress:
    """中断したフルスキャンの途中経過。次回は last_completed_page + 1 から再開。"""

    items: list[SellerInventoryItem]
    last_completed_page: int
    total_pages: int
    total_items: int
    saved_at: int

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> PartialScanProgress:
        return cls(
            items=[SellerInventoryItem.from_dict(x) for x in (d.get("items") or [])],
            last_completed_page=int(d.get("lastCompletedPage") or 0),
            total_pages=int(d.get("totalPages") or 1),
            total_items=int(d.get("totalItems") or 0),
            saved_at=int(d.get("savedAt") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [i.to_dict() for i in self.items],
            "lastCompletedPage": self.last_completed_page,
            "totalPages": self.total_pages,
            "totalItems": self.total_items,
            "savedAt": self.saved_at,
        }


@dataclass
class SellerMatch:
    id: str
    seller_id: str
    release_id: int
    artist: str
    title: str
    format: list[str]
    condition: str
    price: float
    currency: str
    listing_url: str
    listing_id: int
    date_found: int
    notified: bool = False
    status: str = STATUS_ACTIVE  # active / seen / sold
    master_id: Optional[int] = None
    status_changed_at: Optional[int] = None
    status_confidence: Optional[str] = None  # verified / unverified
    last_verified_at: Optional[int] = None
    cover_image: Optional[str] = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SellerMatch:
        return cls(
            id=str(d.get("id") or d["listingId"]),
            seller_id=d["sellerId"],
            release_id=int(d["releaseId"]),
            artist=d.get("artist") or "Unknown Artist",
            title=d.get("title") or "Unknown Title",
            format=list(d.get("format") or []),
            condition=d.get("condition") or "?/?",
            price=float(d.get("price") or 0),
            currency=d.get("currency") or "USD",
            listing_url=d.get("listingUrl") or "",
            listing_id=int(d["listingId"]),
            date_found=int(d.get("dateFound") or 0),
            notified=bool(d.get("notified", False)),
            status=d.get("status") or STATUS_ACTIVE,
            master_id=_opt_int(d.get("masterId")),
            status_changed_at=_opt_int(d.get("statusChangedAt")),
            status_confidence=d.get("statusConfidence"),
            last_verified_at=_opt_int(d.get("lastVerifiedAt")),
            cover_image=d.get("coverImage"),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "id": self.id,
            "sellerId": self.seller_id,
            "releaseId": self.release_id,
            "masterId": self.master_id,
            "artist": self.artist,
            "title": self.title,
            "format": self.format,
            "condition": self.condition,
            "price": self.price,
            "currency": self.currency,
            "listingUrl": self.listing_url,
            "listingId": self.listing_id,
            "dateFound": self.date_found,
            "notified": self.notified,
            "status": self.status,
            "statusChangedAt": self.status_changed_at,
            "statusConfidence": self.status_confidence,
            "lastVerifiedAt": self.last_verified_at,
            "coverImage": self.cover_image,
        })


@dataclass
class SellerMatchesStore:
    last_updated: int
    matches: list[SellerMatch] = field(default_factory=list)
    schema_version: int = 1

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SellerMatchesStore:
        return cls(
            last_updated=int(d.get("lastUpdated") or 0),
            matches=[SellerMatch.from_dict(x) for x in (d.get("matches") or [])],
            schema_version=int(d.get("schemaVersion") or 1),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "lastUpdated": self.last_updated,
            "matches": [m.to_dict() for m in self.matches],
        }


@dataclass
class MatchingProgress:
    items_processed: int = 0
    total_items: int = 0
    cache_hits: int = 0
    api_calls: int = 0

    @classmethod
    def from_dict(cls, d: Optional[dict[str, Any]]) -> Optional[MatchingProgress]:
        if not d:
            return None
        return cls(
            items_processed=int(d.get("itemsProcessed") or 0),
            total_items=int(d.get("totalItems") or 0),
            cache_hits=int(d.get("cacheHits") or 0),
            api_calls=int(d.get("apiCalls") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemsProcessed": self.items_processed,
            "totalItems": self.total_items,
            "cacheHits": self.cache_hits,
            "apiCalls": self.api_calls,
        }


@dataclass
class SellerScanStatus:
    status: str = SCAN_IDLE  # idle / scanning / matching / completed / error
    progress: int = 0
    sellers_scanned: int = 0
    total_sellers: int = 0
    new_matches: int = 0
    current_seller: Optional[str] = None
    current_page: Optional[int] = None
    total_pages: Optional[int] = None
    matching_progress: Optional[MatchingProgress] = None
    last_scan_timestamp: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SellerScanStatus:
        return cls(
            status=d.get("status") or SCAN_IDLE,
            progress=int(d.get("progress") or 0),
            sellers_scanned=int(d.get("sellersScanned") or 0),
            total_sellers=int(d.get("totalSellers") or 0),
            new_matches=int(d.get("newMatches") or 0),
            current_seller=d.get("currentSeller"),
            current_page=_opt_int(d.get("currentPage")),
            total_pages=_opt_int(d.get("totalPages")),
            matching_progress=MatchingProgress.from_dict(d.get("matchingProgress")),
            last_scan_timestamp=_opt_int(d.get("lastScanTimestamp")),
            error=d.get("error"),
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "status": self.status,
            "progress": self.progress,
            "sellersScanned": self.sellers_scanned,
            "totalSellers": self.total_sellers,
            "newMatches": self.new_matches,
            "currentSeller": self.current_seller,
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
            "matchingProgress": self.matching_progress.to_dict() if self.matching_progress else None,
            "lastScanTimestamp": self.last_scan_timestamp,
            "error": self.error,
        })


@dataclass
class SellerMonitoringSettings:
    scan_frequency_days: float = 7
    quick_check_frequency_hours: float = 24
    notify_on_new_match: bool = True
    vinyl_formats_only: bool = True
    schema_version: int = 1

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SellerMonitoringSettings:
        return cls(
            scan_frequency_days=d.get("scanFrequencyDays", 7),
            quick_check_frequency_hours=d.get("quickCheckFrequencyHours", 24),
            notify_on_new_match=bool(d.get("notifyOnNewMatch", True)),
            vinyl_formats_only=bool(d.get("vinylFormatsOnly", True)),
            schema_version=int(d.get("schemaVersion") or 1),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "scanFrequencyDays": self.scan_frequency_days,
            "quickCheckFrequencyHours": self.quick_check_frequency_hours,
            "notifyOnNewMatch": self.notify_on_new_match,
            "vinylFormatsOnly": self.vinyl_formats_only,
        }
