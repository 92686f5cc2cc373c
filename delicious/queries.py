"""Request-level store queries: pagination policy, tag pages, map and search lookups."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .errors import ValidationError
from .stores import Store, StoreRepository, TagCount
from .users import User


@dataclass
class Page:
    stores: List[Store]
    page: int
    pages: int
    count: int
    requested: int
    notice: Optional[str] = None

    @property
    def moved(self) -> bool:
        return self.page != self.requested

    def to_dict(self) -> dict:
        return {
            "stores": [store.to_dict() for store in self.stores],
            "page": self.page,
            "pages": self.pages,
            "count": self.count,
        }


@dataclass
class TagListing:
    tag: Optional[str]
    stores: List[Store]
    tags: List[TagCount] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "tag": self.tag,
            "stores": [store.to_dict() for store in self.stores],
            "tags": [{"tag": row.tag, "count": row.count} for row in self.tags],
        }


def parse_page(raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 1


class StoreQueries:
    def __init__(self, stores: StoreRepository, page_size: int = 4, max_distance: float = 10000) -> None:
        self.stores = stores
        self.page_size = page_size
        self.max_distance = max_distance

    def page(self, requested: int) -> Page:
        """Fetch one listing page, moving out-of-range requests onto a real page.

        Pages below 1 land on page 1. Pages past the end land on the last page
        and carry a notice saying so. An empty directory still has one (empty)
        page.
        """
        page = max(requested, 1)
        stores, count = self.stores.list_page(page, self.page_size)
        pages = max(math.ceil(count / self.page_size), 1)
        notice = None
        if page > pages:
            notice = (
                f"Hey! You asked for page {requested}. But that page doesn't exist. "
                f"So I put you on page {pages}"
            )
            page = pages
            stores, count = self.stores.list_page(page, self.page_size)
        return Page(stores=stores, page=page, pages=pages, count=count, requested=requested, notice=notice)

    def by_tag(self, tag: Optional[str] = None) -> TagListing:
        tag = (tag or "").strip() or None
        return TagListing(tag=tag, stores=self.stores.list_by_tag(tag), tags=self.stores.tag_counts())

    def near(self, lng: Any, lat: Any, max_distance: Any = None, limit: int = 10) -> List[Store]:
        try:
            coordinates = [float(lng), float(lat)]
        except (TypeError, ValueError):
            raise ValidationError({"coordinates": "lng and lat must be numbers"})
        try:
            distance = float(max_distance) if max_distance not in (None, "") else self.max_distance
        except (TypeError, ValueError):
            raise ValidationError({"maxDistance": "maxDistance must be a number"})
        return self.stores.geo_near(coordinates[0], coordinates[1], max_distance=distance, limit=limit)

    def search(self, query: Optional[str], limit: int = 10) -> List[Store]:
        return self.stores.text_search(query or "", limit=limit)

    def top(self, limit: int = 10) -> List[Store]:
        return self.stores.top_rated(limit=limit)

    def hearted(self, user: User) -> List[Store]:
        return self.stores.find_by_ids(user.hearts)
