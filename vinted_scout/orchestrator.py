"""
Application orchestrator for the Vinted scout.

This module wires configuration, logging, persistence and the pipeline
components together and exposes the two entry points used by the CLI and
by schedulers: ad hoc searches and alert runs.
"""

import random
import time
from typing import Any, Callable, Dict, Optional, Union

import requests

from .components.alert_matcher import AlertMatcher
from .components.paginated_fetcher import PaginatedFetcher
from .components.relevance_scorer import RelevanceScorer
from .components.result_filter import ResultFilter
from .components.session_builder import SessionBuilder
from .models.alert import AlertRunSummary
from .models.config import Configuration
from .models.fetch import Feed, StopReason
from .models.query import FetchFilters, Query
from .models.scoring import SearchOutcome
from .models.session import Session
from .services.alert_store import AlertStore
from .services.config_manager import ConfigurationManager, DelayConfigLoader
from .utils.error_handling import (
    AuthExpired,
    ErrorCategory,
    ErrorSeverity,
    MissingCredential,
    RateLimited,
    UpstreamUnavailable,
    get_error_tracker,
    with_error_handling,
)
from .utils.logging import get_logger, setup_logging


class ScoutOrchestrator:
    """
    Coordinates the scout's components.

    Components are built by ``initialize()`` from the loaded configuration;
    the HTTP session, sleep function and random generator can be injected
    for tests.
    """

    def __init__(
        self,
        config: Optional[Configuration] = None,
        config_path: Optional[str] = None,
        store: Optional[AlertStore] = None,
        http: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        configure_logging: bool = True,
    ):
        self.config_path = config_path
        self._config = config
        self._store = store
        self._http = http
        self._sleep = sleep
        self._rng = rng
        self._configure_logging = configure_logging

        self.logger = get_logger("orchestrator")
        self.error_tracker = get_error_tracker()

        self.session_builder: Optional[SessionBuilder] = None
        self.delay_loader: Optional[DelayConfigLoader] = None
        self.fetcher: Optional[PaginatedFetcher] = None
        self.result_filter: Optional[ResultFilter] = None
        self.alert_matcher: Optional[AlertMatcher] = None
        self._initialized = False

    @property
    def config(self) -> Configuration:
        if self._config is None:
            raise RuntimeError("Orchestrator is not initialized")
        return self._config

    @property
    def store(self) -> AlertStore:
        if self._store is None:
            raise RuntimeError("Orchestrator is not initialized")
        return self._store

    def _load_configuration(self) -> Configuration:
        if self._config is not None:
            self._config.validate()
            return self._config
        try:
            manager = ConfigurationManager(self.config_path)
        except ValueError:
            if self.config_path:
                raise
            # No config file anywhere: run on defaults
            self.logger.warning("No configuration file found, using defaults")
            return Configuration()
        return manager.load_config()

    @with_error_handling(
        component="orchestrator",
        category=ErrorCategory.CONFIGURATION,
        severity=ErrorSeverity.CRITICAL,
        fallback_value=False,
        suppress_exceptions=True,
    )
    def initialize(self) -> bool:
        """
        Load configuration and build every component.

        Returns:
            True if initialization succeeded, False otherwise.
        """
        self._config = self._load_configuration()
        config = self._config

        if self._configure_logging:
            setup_logging(config.logging.log_dir, config.logging.level)
            self.logger = get_logger("orchestrator")

        if self._store is None:
            self._store = AlertStore(config.storage.database_path)

        self.session_builder = SessionBuilder(config.marketplace)
        self.delay_loader = DelayConfigLoader(config.delay, store=self._store)
        self.fetcher = PaginatedFetcher(
            self.delay_loader,
            fetch_config=config.fetch,
            marketplace=config.marketplace,
            http=self._http,
            sleep=self._sleep,
            rng=self._rng,
            pool_size=max(4, config.alerts.max_concurrent),
        )
        scorer = RelevanceScorer(config.scoring)
        self.result_filter = ResultFilter(scorer, config.scoring)
        self.alert_matcher = AlertMatcher(self.fetcher, self._store, config.alerts)

        self._initialized = True
        self.logger.info(
            "Scout initialized",
            extra={"database": config.storage.database_path,
                   "max_pages": config.fetch.max_pages,
                   "base_delay_ms": config.delay.base_delay_ms},
        )
        return True

    def _require_initialized(self):
        if not self._initialized:
            raise RuntimeError("Call initialize() before using the orchestrator")

    def build_session(self, cookie_string: Optional[str]) -> Session:
        """
        Build a session from a cookie string.

        Raises:
            MissingCredential: When the access token cookie is missing
        """
        self._require_initialized()
        try:
            return self.session_builder.build_session(cookie_string)
        except MissingCredential as e:
            self.error_tracker.record_exception("session.builder", e)
            raise

    def _as_session(self, credentials: Union[Session, str, None]) -> Session:
        if isinstance(credentials, Session):
            return credentials
        return self.build_session(credentials)

    def search(
        self,
        credentials: Union[Session, str, None],
        query: Query,
        max_pages: Optional[int] = None,
        min_score: Optional[float] = None,
        exclude_seen: bool = False,
        remember: bool = False,
    ) -> SearchOutcome:
        """
        Run an ad hoc search.

        Rate limiting, upstream outages and unrecognized payloads produce a
        best-effort outcome with ``error`` set. Credential problems propagate.

        Args:
            credentials: Session or raw cookie string
            query: What to search for
            max_pages: Page cap override
            min_score: Relevance threshold override
            exclude_seen: Drop listings already marked as seen
            remember: Mark returned listings as seen
        """
        self._require_initialized()
        query.validate()
        session = self._as_session(credentials)
        outcome = SearchOutcome(query=query)

        filters = FetchFilters(
            search_text=query.text,
            price_from=query.price_from,
            price_to=query.price_to,
            platform=query.platform_hint,
        )
        try:
            fetched = self.fetcher.fetch_pages(session, filters, max_pages=max_pages, feed=Feed.SEARCH)
        except AuthExpired as e:
            self.error_tracker.record_exception("orchestrator", e, {"query": query.text})
            raise
        except (RateLimited, UpstreamUnavailable) as e:
            self.error_tracker.record_exception("orchestrator", e, {"query": query.text})
            outcome.error = f"{type(e).__name__}: {e}"
            return outcome

        outcome.stop_reason = fetched.stop_reason
        outcome.pages_fetched = fetched.pages_fetched
        if fetched.stop_reason is StopReason.UPSTREAM_SHAPE:
            outcome.error = "UpstreamShapeError: unrecognized response, results are partial"

        items = fetched.items
        outcome.new_item_ids = self.store.missing_ids(item.id for item in items)
        if exclude_seen:
            new_ids = set(outcome.new_item_ids)
            items = [item for item in items if item.id in new_ids]

        filtered = self.result_filter.filter_and_rank(items, query, min_score=min_score)
        outcome.items = filtered.items
        outcome.scored = filtered.scored
        outcome.low_confidence = filtered.low_confidence
        outcome.fallback_used = filtered.fallback_used

        if remember and outcome.items:
            self.store.mark_seen(item.id for item in outcome.items)

        self.logger.info(
            "Search finished",
            extra={"query": query.text, "fetched": len(fetched.items),
                   "returned": len(outcome.items), "stop_reason": fetched.stop_reason.value,
                   "low_confidence": outcome.low_confidence, "error": outcome.error},
        )
        return outcome

    @with_error_handling(
        component="orchestrator",
        category=ErrorCategory.SYSTEM,
        severity=ErrorSeverity.HIGH,
    )
    async def run_alerts(self, credentials: Union[Session, str, None],
                         max_concurrent: Optional[int] = None) -> AlertRunSummary:
        """
        Check every active alert once.

        Raises:
            AuthExpired: When every alert failed because the session was rejected
        """
        self._require_initialized()
        session = self._as_session(credentials)
        max_concurrent = max_concurrent or self.config.alerts.max_concurrent

        if max_concurrent <= 1:
            summary = self.alert_matcher.check_alerts(session)
        else:
            summary = await self.alert_matcher.check_alerts_concurrently(session, max_concurrent)

        if not summary.success:
            self.logger.warning(
                "Alert run partially failed",
                extra={"errors": len(summary.errors), "alerts_checked": summary.alerts_checked},
            )
        return summary

    def get_status(self) -> Dict[str, Any]:
        """Initialization state, current delay and error statistics."""
        status: Dict[str, Any] = {
            "initialized": self._initialized,
            "error_stats": self.error_tracker.get_error_stats(),
        }
        if self.delay_loader is not None:
            status["base_delay_ms"] = self.delay_loader.current().base_delay_ms
        return status

    def shutdown(self):
        if self.fetcher is not None:
            self.fetcher.close()
        self.logger.info("Scout shut down")
