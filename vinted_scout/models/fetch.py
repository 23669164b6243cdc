"""
Pagination result models.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .item import Item


class Feed(Enum):
    """Upstream listing feeds sharing the pagination loop."""

    SEARCH = "search"
    PROMOTED = "promoted"
    HOMEPAGE = "homepage"


class StopReason(Enum):
    """Why pagination stopped."""

    EMPTY_PAGE = "empty_page"
    SMALL_RESULT_SET = "small_result_set"
    STALE_FEED = "stale_feed"
    PAGE_CAP = "page_cap"
    NO_MORE_PAGES = "no_more_pages"
    ITEM_LIMIT = "item_limit"
    UPSTREAM_SHAPE = "upstream_shape"


@dataclass
class FetchResult:
    """Items gathered by one pagination run, deduplicated by id."""

    items: List[Item] = field(default_factory=list)
    stop_reason: StopReason = StopReason.NO_MORE_PAGES
    pages_fetched: int = 0
    total_entries: Optional[int] = None

    def validate(self) -> bool:
        ids = [item.id for item in self.items]
        if len(ids) != len(set(ids)):
            raise ValueError("FetchResult items must be unique by id")
        if self.pages_fetched < 0:
            raise ValueError("pages_fetched cannot be negative")
        return True
