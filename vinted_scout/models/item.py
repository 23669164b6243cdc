"""
Listing data models for the Vinted scout.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

SOURCES = ("search", "promoted", "homepage")


@dataclass
class Photo:
    """A listing photo."""

    url: str
    is_main: bool = False
    id: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None

    def validate(self) -> bool:
        if not self.url or not self.url.strip():
            raise ValueError("Photo URL cannot be empty")
        return True


@dataclass
class Item:
    """A normalized marketplace listing."""

    id: int
    title: str
    price_amount: float
    price_currency: str
    url: str
    description: Optional[str] = None
    total_price_amount: Optional[float] = None
    condition: Optional[str] = None
    can_buy: bool = False
    is_reserved: bool = False
    brand: Optional[str] = None
    size_label: Optional[str] = None
    seller_login: Optional[str] = None
    seller_is_business: bool = False
    favourite_count: int = 0
    view_count: int = 0
    added_since: Optional[datetime] = None
    photos: List[Photo] = field(default_factory=list)
    search_score: Optional[float] = None
    source: str = "search"

    @property
    def is_available(self) -> bool:
        """Whether the listing can currently be bought."""
        return self.can_buy and not self.is_reserved

    @property
    def text(self) -> str:
        """Title and description joined, used for keyword matching."""
        return f"{self.title} {self.description or ''}".strip()

    def validate(self) -> bool:
        """Validate the item data."""
        if not isinstance(self.id, int) or self.id <= 0:
            raise ValueError("Item id must be a positive integer")

        if self.title is None:
            raise ValueError("Item title cannot be None")

        if self.price_amount < 0:
            raise ValueError("Price cannot be negative")

        if self.total_price_amount is not None and self.total_price_amount < 0:
            raise ValueError("Total price cannot be negative")

        if self.favourite_count < 0 or self.view_count < 0:
            raise ValueError("Counters cannot be negative")

        if self.source not in SOURCES:
            raise ValueError(f"Item source must be one of: {SOURCES}")

        for photo in self.photos:
            photo.validate()

        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "price": self.price_amount,
            "currency": self.price_currency,
            "total_price": self.total_price_amount,
            "condition": self.condition,
            "can_buy": self.can_buy,
            "is_reserved": self.is_reserved,
            "brand": self.brand,
            "size": self.size_label,
            "seller_login": self.seller_login,
            "seller_is_business": self.seller_is_business,
            "favourite_count": self.favourite_count,
            "view_count": self.view_count,
            "added_since": self.added_since.isoformat() if self.added_since else None,
            "photos": [photo.url for photo in self.photos],
            "url": self.url,
            "search_score": self.search_score,
            "source": self.source,
        }
