"""
Configuration models for the system.
"""

import random
from dataclasses import dataclass, field, replace
from typing import Optional
from urllib.parse import urlparse

# Bounds for request delay overrides coming from the environment or the store.
MIN_DELAY_OVERRIDE_MS = 1000
MAX_DELAY_OVERRIDE_MS = 60000

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class MarketplaceConfig:
    """Marketplace endpoint and browser identity."""

    base_url: str = "https://www.vinted.fr"
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = "fr-FR,fr;q=0.9,en-US;q=0.8,en;q=0.7"

    @property
    def referer(self) -> str:
        return self.base_url.rstrip("/") + "/"

    def validate(self) -> bool:
        parsed_url = urlparse(self.base_url)
        if not parsed_url.scheme or not parsed_url.netloc:
            raise ValueError(f"Invalid marketplace base URL: {self.base_url}")
        if parsed_url.scheme not in ["http", "https"]:
            raise ValueError(f"Marketplace base URL must use HTTP or HTTPS: {self.base_url}")
        if not self.user_agent or not self.user_agent.strip():
            raise ValueError("User agent cannot be empty")
        return True


@dataclass
class FetchConfig:
    """Pagination limits, early-stop thresholds and retry policy."""

    max_pages: int = 3
    per_page: int = 20
    max_per_page: int = 20
    small_result_threshold: int = 20
    max_item_age_days: int = 7
    request_timeout: float = 15.0
    max_attempts: int = 4
    backoff_base: float = 1.0
    backoff_jitter: float = 1.0
    max_backoff: float = 10.0
    homepage_column_count: int = 5
    homepage_version: int = 4

    def validate(self) -> bool:
        """Validate fetch configuration."""
        if not isinstance(self.max_pages, int) or self.max_pages <= 0:
            raise ValueError("max_pages must be a positive integer")

        if not isinstance(self.per_page, int) or self.per_page <= 0:
            raise ValueError("per_page must be a positive integer")

        if self.max_per_page <= 0:
            raise ValueError("max_per_page must be positive")

        if self.small_result_threshold < 0:
            raise ValueError("small_result_threshold cannot be negative")

        if self.max_item_age_days <= 0:
            raise ValueError("max_item_age_days must be positive")

        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")

        if not isinstance(self.max_attempts, int) or self.max_attempts <= 0:
            raise ValueError("max_attempts must be a positive integer")

        if self.backoff_base <= 0 or self.max_backoff < self.backoff_base:
            raise ValueError("backoff_base must be positive and not exceed max_backoff")

        # Waits only grow between attempts while jitter stays below the base
        if not (0 <= self.backoff_jitter <= self.backoff_base):
            raise ValueError("backoff_jitter must be between 0 and backoff_base")

        return True


@dataclass
class DelayConfig:
    """Inter-page delay: ``base_delay_ms`` scaled by a random multiplier, then clamped."""

    base_delay_ms: int = 15000
    min_multiplier: float = 0.8
    max_multiplier: float = 1.6
    min_delay_ms: int = 12000
    max_delay_ms: int = 25000
    ttl_seconds: float = 60.0

    def next_delay(self, rng: Optional[random.Random] = None) -> float:
        """Seconds to wait before the next page request."""
        multiplier = (rng or random).uniform(self.min_multiplier, self.max_multiplier)
        delay_ms = self.base_delay_ms * multiplier
        delay_ms = max(self.min_delay_ms, min(self.max_delay_ms, delay_ms))
        return delay_ms / 1000.0

    def with_base(self, base_delay_ms: int) -> "DelayConfig":
        return replace(self, base_delay_ms=base_delay_ms)

    def validate(self) -> bool:
        """Validate delay configuration."""
        if self.base_delay_ms <= 0:
            raise ValueError("base_delay_ms must be positive")

        if not (0 < self.min_multiplier <= self.max_multiplier):
            raise ValueError("Delay multipliers must satisfy 0 < min <= max")

        if not (0 <= self.min_delay_ms <= self.max_delay_ms):
            raise ValueError("Delay clamp must satisfy 0 <= min <= max")

        if self.ttl_seconds < 0:
            raise ValueError("ttl_seconds cannot be negative")

        return True


@dataclass
class ScoringConfig:
    """Relevance thresholds and ranking fallbacks."""

    min_score: float = 50
    relaxed_floor: float = 10
    relaxed_max_results: int = 30
    fallback_max_results: int = 20
    high_confidence: float = 50
    medium_confidence: float = 25

    def validate(self) -> bool:
        for name in ("min_score", "relaxed_floor", "high_confidence", "medium_confidence"):
            value = getattr(self, name)
            if not (0 <= value <= 100):
                raise ValueError(f"{name} must be between 0 and 100")

        if self.relaxed_floor > self.min_score:
            raise ValueError("relaxed_floor cannot exceed min_score")

        if self.medium_confidence > self.high_confidence:
            raise ValueError("medium_confidence cannot exceed high_confidence")

        if self.relaxed_max_results <= 0 or self.fallback_max_results <= 0:
            raise ValueError("Result caps must be positive")

        return True


@dataclass
class AlertConfig:
    """Alert fetching filters and matching thresholds."""

    per_page: int = 20
    max_pages: int = 1
    status_ids: str = "2,1,6"
    order: str = "newest_first"
    max_concurrent: int = 1
    word_match_ratio: float = 0.7
    min_overlap_words: int = 2
    jaccard_threshold: float = 0.3
    debug_sample_limit: int = 20

    def validate(self) -> bool:
        """Validate alert configuration."""
        if self.per_page <= 0 or self.max_pages <= 0:
            raise ValueError("Alert per_page and max_pages must be positive")

        if not isinstance(self.max_concurrent, int) or self.max_concurrent <= 0:
            raise ValueError("Alert max_concurrent must be a positive integer")

        if self.max_concurrent > 10:
            raise ValueError("Alert max_concurrent cannot exceed 10")

        if not (0 < self.word_match_ratio <= 1):
            raise ValueError("word_match_ratio must be between 0 and 1")

        if not (0 < self.jaccard_threshold <= 1):
            raise ValueError("jaccard_threshold must be between 0 and 1")

        if self.min_overlap_words <= 0:
            raise ValueError("min_overlap_words must be positive")

        return True


@dataclass
class StorageConfig:
    """SQLite location."""

    database_path: str = "data/vinted_scout.db"

    def validate(self) -> bool:
        if not self.database_path or not self.database_path.strip():
            raise ValueError("Database path cannot be empty")
        return True


@dataclass
class LoggingConfig:
    """Log directory and level."""

    log_dir: Optional[str] = "logs"
    level: str = "INFO"

    def validate(self) -> bool:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return True


@dataclass
class Configuration:
    """System configuration."""

    marketplace: MarketplaceConfig = field(default_factory=MarketplaceConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    delay: DelayConfig = field(default_factory=DelayConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> bool:
        """Validate system configuration."""
        self.marketplace.validate()
        self.fetch.validate()
        self.delay.validate()
        self.scoring.validate()
        self.alerts.validate()
        self.storage.validate()
        self.logging.validate()
        return True
