"""
Price alert models and alert run reporting.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .item import Item


class AlertState(Enum):
    """Per-alert processing state."""

    IDLE = "idle"
    FETCHING = "fetching"
    MATCHING = "matching"
    PERSISTING = "persisting"


class MatchReason(Enum):
    """Outcome of checking one item against one alert."""

    MATCHED = "matched"
    PRICE = "price"
    UNAVAILABLE = "unavailable"
    PLATFORM = "platform"
    TITLE = "title"


@dataclass
class Alert:
    """A persisted price alert."""

    id: int
    game_title: str
    max_price: float
    platform: Optional[str] = None
    is_active: bool = True
    triggered_count: int = 0
    triggered_at: Optional[datetime] = None

    def validate(self) -> bool:
        """Validate alert data."""
        if not self.game_title or not self.game_title.strip():
            raise ValueError("Alert game title cannot be empty")

        if self.max_price is None or self.max_price <= 0:
            raise ValueError("Alert max price must be positive")

        if self.triggered_count < 0:
            raise ValueError("Triggered count cannot be negative")

        return True


@dataclass(frozen=True)
class AlertMatch:
    """A persisted (alert, item) pair. Unique on ``(alert_id, item_id)``."""

    alert_id: int
    item_id: int
    match_reason: str


@dataclass
class MatchDecision:
    """Result of ``AlertMatcher.match_item``."""

    reason: MatchReason
    detail: str = ""

    @property
    def matched(self) -> bool:
        return self.reason is MatchReason.MATCHED


@dataclass
class AlertRunStats:
    """Counts of skipped items by reason."""

    skipped_unavailable: int = 0
    skipped_price: int = 0
    skipped_platform: int = 0
    skipped_title: int = 0

    def count(self, reason: MatchReason):
        if reason is MatchReason.UNAVAILABLE:
            self.skipped_unavailable += 1
        elif reason is MatchReason.PRICE:
            self.skipped_price += 1
        elif reason is MatchReason.PLATFORM:
            self.skipped_platform += 1
        elif reason is MatchReason.TITLE:
            self.skipped_title += 1

    def merge(self, other: "AlertRunStats"):
        self.skipped_unavailable += other.skipped_unavailable
        self.skipped_price += other.skipped_price
        self.skipped_platform += other.skipped_platform
        self.skipped_title += other.skipped_title

    def to_dict(self) -> Dict[str, int]:
        return {
            "skipped_unavailable": self.skipped_unavailable,
            "skipped_price": self.skipped_price,
            "skipped_platform": self.skipped_platform,
            "skipped_title": self.skipped_title,
        }


@dataclass
class MatchedAlertItem:
    """A newly recorded match, reported to the caller."""

    alert_id: int
    alert_title: str
    match_reason: str
    item: Item


@dataclass
class AlertError:
    """A failure isolated to one alert."""

    alert_id: int
    alert_title: str
    error_type: str
    message: str


@dataclass
class AlertCheckResult:
    """Outcome of checking a single alert."""

    alert: Alert
    items_checked: int = 0
    matching_items: int = 0
    new_matches: List[MatchedAlertItem] = field(default_factory=list)
    stats: AlertRunStats = field(default_factory=AlertRunStats)
    error: Optional[AlertError] = None
    auth_expired: bool = False


@dataclass
class AlertRunSummary:
    """Result of one scheduled alert run."""

    checked_at: datetime
    alerts_checked: int = 0
    items_checked: int = 0
    matches: List[MatchedAlertItem] = field(default_factory=list)
    updated_alert_ids: List[int] = field(default_factory=list)
    stats: AlertRunStats = field(default_factory=AlertRunStats)
    errors: List[AlertError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """False when any alert failed: the run is only partially successful."""
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checked_at": self.checked_at.isoformat(),
            "success": self.success,
            "alerts_checked": self.alerts_checked,
            "items_checked": self.items_checked,
            "matches": [
                {
                    "alert_id": match.alert_id,
                    "alert_title": match.alert_title,
                    "match_reason": match.match_reason,
                    "item": match.item.to_dict(),
                }
                for match in self.matches
            ],
            "updated_alert_ids": list(self.updated_alert_ids),
            "stats": self.stats.to_dict(),
            "errors": [
                {
                    "alert_id": error.alert_id,
                    "alert_title": error.alert_title,
                    "error_type": error.error_type,
                    "message": error.message,
                }
                for error in self.errors
            ],
        }
