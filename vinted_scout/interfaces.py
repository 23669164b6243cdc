"""
Protocol interfaces for the Vinted scout.

This module defines the boundaries between the scout's pipeline and its
collaborators (HTTP pagination, persistence, delay configuration) so that
each can be replaced in tests or by another backend.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Protocol

from .models.alert import Alert, AlertMatch
from .models.config import DelayConfig
from .models.fetch import Feed, FetchResult
from .models.query import FetchFilters
from .models.session import Session


class IPaginatedFetcher(Protocol):
    """Protocol for paginated listing fetchers."""

    def fetch_pages(
        self,
        session: Session,
        filters: FetchFilters,
        max_pages: Optional[int] = None,
        per_page: Optional[int] = None,
        feed: Feed = Feed.SEARCH,
        limit: Optional[int] = None,
    ) -> FetchResult:
        """Fetch listings page by page until a stop condition holds."""
        ...


class IDedupChecker(Protocol):
    """Protocol for checking which listings were already surfaced."""

    def missing_ids(self, ids: Iterable[int]) -> List[int]:
        """Return the ids not yet persisted, preserving input order."""
        ...

    def mark_seen(self, ids: Iterable[int]) -> int:
        """Persist ids as seen. Returns the number of newly stored ids."""
        ...


class IAlertStore(Protocol):
    """Protocol for price alert persistence."""

    def list_active_alerts(self) -> List[Alert]:
        """Return every active alert."""
        ...

    def insert_match(self, match: AlertMatch) -> bool:
        """Insert a match unless it already exists. Returns True when inserted."""
        ...

    def record_trigger(self, alert_id: int, new_matches: int, when: datetime) -> None:
        """Increment an alert's trigger count and set its last trigger time."""
        ...

    def get_setting(self, key: str) -> Optional[str]:
        """Return an application setting, or None."""
        ...


class IDelayConfigSource(Protocol):
    """Protocol for inter-page delay configuration providers."""

    def current(self) -> DelayConfig:
        """Return the delay configuration in effect."""
        ...
