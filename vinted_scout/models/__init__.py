"""
Data models for the Vinted scout.

This module contains the data classes used throughout the application for
listings, queries, scoring results, alerts and configuration.
"""

from .alert import (
    Alert,
    AlertCheckResult,
    AlertError,
    AlertMatch,
    AlertRunStats,
    AlertRunSummary,
    AlertState,
    MatchDecision,
    MatchedAlertItem,
    MatchReason,
)
from .config import (
    AlertConfig,
    Configuration,
    DelayConfig,
    FetchConfig,
    LoggingConfig,
    MarketplaceConfig,
    ScoringConfig,
    StorageConfig,
)
from .fetch import Feed, FetchResult, StopReason
from .item import Item, Photo
from .query import FetchFilters, Query, SearchKeywords
from .scoring import ConfidenceTier, FilterOutcome, ScoredItem, SearchOutcome
from .session import Session

__all__ = [
    "Alert",
    "AlertCheckResult",
    "AlertError",
    "AlertMatch",
    "AlertRunStats",
    "AlertRunSummary",
    "AlertState",
    "MatchDecision",
    "MatchedAlertItem",
    "MatchReason",
    "AlertConfig",
    "Configuration",
    "DelayConfig",
    "FetchConfig",
    "LoggingConfig",
    "MarketplaceConfig",
    "ScoringConfig",
    "StorageConfig",
    "Feed",
    "FetchResult",
    "StopReason",
    "Item",
    "Photo",
    "FetchFilters",
    "Query",
    "SearchKeywords",
    "ConfidenceTier",
    "FilterOutcome",
    "ScoredItem",
    "SearchOutcome",
    "Session",
]
