"""
Core components of the Vinted scout.

This module contains the pipeline stages: session building, paginated
fetching, listing normalization, keyword extraction, relevance scoring,
result filtering and alert matching.
"""

from .alert_matcher import AlertMatcher
from .item_normalizer import ItemNormalizer, extract_raw_items
from .keyword_extractor import extract_keywords
from .paginated_fetcher import PaginatedFetcher
from .platform_aliases import find_platforms, normalize_text, resolve_platform
from .relevance_scorer import RelevanceScorer, classify_item
from .result_filter import ResultFilter
from .session_builder import SessionBuilder, build_session

__all__ = [
    "AlertMatcher",
    "ItemNormalizer",
    "extract_raw_items",
    "extract_keywords",
    "PaginatedFetcher",
    "find_platforms",
    "normalize_text",
    "resolve_platform",
    "RelevanceScorer",
    "classify_item",
    "ResultFilter",
    "SessionBuilder",
    "build_session",
]
