"""
Query, keyword and request-filter models.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class Query:
    """A user search, built once per ad hoc search."""

    text: str
    price_from: Optional[float] = None
    price_to: Optional[float] = None
    platform_hint: Optional[str] = None
    min_relevance_score: float = 50

    def validate(self) -> bool:
        """Validate the query."""
        if not self.text or not self.text.strip():
            raise ValueError("Query text cannot be empty")

        if self.price_from is not None and self.price_from < 0:
            raise ValueError("price_from cannot be negative")

        if self.price_to is not None and self.price_to < 0:
            raise ValueError("price_to cannot be negative")

        if (
            self.price_from is not None
            and self.price_to is not None
            and self.price_from > self.price_to
        ):
            raise ValueError("price_from cannot be greater than price_to")

        if not (0 <= self.min_relevance_score <= 100):
            raise ValueError("min_relevance_score must be between 0 and 100")

        return True


@dataclass
class SearchKeywords:
    """Structured keywords extracted from a free-text query.

    ``numeric_tokens`` is a subset of ``title_tokens``. ``all_tokens`` holds every
    term the presence check looks for: canonical platforms, title tokens and
    leftover short words.
    """

    platform_tokens: List[str] = field(default_factory=list)
    title_tokens: List[str] = field(default_factory=list)
    numeric_tokens: List[str] = field(default_factory=list)
    all_tokens: List[str] = field(default_factory=list)

    @property
    def primary_platform(self) -> Optional[str]:
        return self.platform_tokens[0] if self.platform_tokens else None

    @property
    def word_tokens(self) -> List[str]:
        """Title tokens that are not numbers."""
        return [t for t in self.title_tokens if t not in self.numeric_tokens]

    @property
    def is_empty(self) -> bool:
        return not self.all_tokens


@dataclass
class FetchFilters:
    """Per-query or per-alert request filters."""

    search_text: str = ""
    price_from: Optional[float] = None
    price_to: Optional[float] = None
    platform: Optional[str] = None
    status_ids: Optional[str] = None
    order: str = "newest_first"

    def validate(self) -> bool:
        if self.price_from is not None and self.price_from < 0:
            raise ValueError("price_from cannot be negative")
        if self.price_to is not None and self.price_to < 0:
            raise ValueError("price_to cannot be negative")
        if not self.order:
            raise ValueError("order cannot be empty")
        return True
