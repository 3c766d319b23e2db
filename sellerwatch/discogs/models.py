"""Discogs API のレスポンス用モデル（簡易 dataclass）。上流 JSON の欠損はここで既定値に寄せる。"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Optional

from sellerwatch.store.models import SellerInventoryItem

LISTING_URL_FMT = "https://www.discogs.com/sell/item/{}"


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# 先頭の数値部分（桁区切りのカンマ可）。"12.50 EUR" や "1,234.50" を想定
_PRICE_RE = re.compile(r"\s*([+-]?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d*)?|[+-]?\.\d+)")


def parse_price(value: Any) -> float:
    """数値または文字列の価格を float に。解釈できない値や nan / inf は 0。"""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        price = float(value)
    else:
        m = _PRICE_RE.match(str(value)) if value is not None else None
        if m is None:
            return 0.0
        price = float(m.group(1).replace(",", ""))
    return price if math.isfinite(price) else 0.0


def parse_format(value: Any) -> list[str]:
    """'12", EP' のような文字列を ", " で分割。無い・解釈不能なら空リスト。"""
    if isinstance(value, str):
        return [f.strip() for f in value.split(", ") if f.strip()]
    if isinstance(value, list):
        return [str(f).strip() for f in value if isinstance(f, str) and f.strip()]
    return []


@dataclass
class Pagination:
    page: int
    pages: int
    items: int
    per_page: int

    @classmethod
    def from_api(cls, d: Optional[dict[str, Any]]) -> Pagination:
        d = d or {}
        return cls(
            page=_to_int(d.get("page"), 1),
            pages=max(_to_int(d.get("pages"), 1), 1),
            items=_to_int(d.get("items"), 0),
            per_page=_to_int(d.get("per_page"), 100),
        )


@dataclass
class UserProfile:
    username: str
    id: int
    inventory_count: int

    @classmethod
    def from_api(cls, d: dict[str, Any]) -> UserProfile:
        return cls(
            username=d.get("username") or "",
            id=_to_int(d.get("id")),
            inventory_count=_to_int(d.get("seller_num_for_sale"), 0),
        )


def listing_to_item(d: dict[str, Any]) -> Optional[SellerInventoryItem]:
    """
    在庫 API の listing を SellerInventoryItem に変換。release.id の無いものは None。
    在庫 API は master_id を返さないため master_id は常に None。
    """
    release = d.get("release") or {}
    release_id = _to_int(release.get("id"), 0)
    listing_id = _to_int(d.get("id"), 0)
    if not release_id or not listing_id:
        return None
    price = d.get("price") or {}
    if not isinstance(price, dict):
        price = {"value": price}
    return SellerInventoryItem(
        listing_id=listing_id,
        release_id=release_id,
        artist=release.get("artist") or "Unknown Artist",
        title=release.get("title") or "Unknown Title",
        format=parse_format(release.get("format")),
        condition=f"{d.get('condition') or '?'}/{d.get('sleeve_condition') or '?'}",
        price=parse_price(price.get("value")),
        currency=price.get("currency") or "USD",
        listing_url=d.get("uri") or LISTING_URL_FMT.format(listing_id),
        master_id=None,
        cover_image=release.get("thumbnail") or None,
        listed_at=d.get("posted"),
    )


@dataclass
class InventoryPage:
    pagination: Pagination
    items: list[SellerInventoryItem]

    @classmethod
    def from_api(cls, d: dict[str, Any]) -> InventoryPage:
        items = []
        for listing in d.get("listings") or []:
            if not isinstance(listing, dict):
                continue
            item = listing_to_item(listing)
            if item:
                items.append(item)
        return cls(pagination=Pagination.from_api(d.get("pagination")), items=items)


@dataclass
class MasterVersionsPage:
    pagination: Pagination
    release_ids: list[int]

    @classmethod
    def from_api(cls, d: dict[str, Any]) -> MasterVersionsPage:
        ids = [_to_int(v.get("id")) for v in (d.get("versions") or []) if isinstance(v, dict)]
        return cls(
            pagination=Pagination.from_api(d.get("pagination")),
            release_ids=[i for i in ids if i],
        )


@dataclass
class ReleaseInfo:
    id: int
    master_id: Optional[int]

    @classmethod
    def from_api(cls, d: dict[str, Any]) -> ReleaseInfo:
        master_id = _to_int(d.get("master_id"), 0)
        return cls(id=_to_int(d.get("id")), master_id=master_id or None)


@dataclass
class MarketplaceListing:
    id: int
    status: str

    @classmethod
    def from_api(cls, d: dict[str, Any]) -> MarketplaceListing:
        return cls(id=_to_int(d.get("id")), status=d.get("status") or "")

    def is_available(self) -> bool:
        # status が無いレスポンスは「存在する＝販売中」とみなす
        return not self.status or self.status.lower() == "for sale"
