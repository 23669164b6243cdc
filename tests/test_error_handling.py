"""
Tests for error handling utilities.
"""

import random
from datetime import datetime, timedelta

import pytest

from vinted_scout.utils.error_handling import (
    AuthExpired,
    ErrorCategory,
    ErrorSeverity,
    ErrorTracker,
    MissingCredential,
    RateLimited,
    RetryConfig,
    ScoutError,
    UpstreamShapeError,
    UpstreamUnavailable,
    get_error_tracker,
    with_error_handling,
)


class TestScoutErrors:
    @pytest.mark.parametrize(
        "error_cls,category",
        [
            (MissingCredential, ErrorCategory.AUTHENTICATION),
            (AuthExpired, ErrorCategory.AUTHENTICATION),
            (RateLimited, ErrorCategory.RATE_LIMIT),
            (UpstreamShapeError, ErrorCategory.PARSING),
            (UpstreamUnavailable, ErrorCategory.NETWORK),
        ],
    )
    def test_categories(self, error_cls, category):
        assert issubclass(error_cls, ScoutError)
        assert error_cls.category is category

    def test_extra_attributes(self):
        assert AuthExpired("rejected", status_code=401).status_code == 401
        assert RateLimited("slow down", attempts=4).attempts == 4
        assert UpstreamUnavailable().status_code is None


class TestErrorTracker:
    def test_record_error(self):
        tracker = ErrorTracker()

        info = tracker.record_error(
            "fetch.paginator", ErrorCategory.NETWORK, ErrorSeverity.HIGH,
            "connection reset", ValueError("boom"), {"page": 2},
        )

        assert info.exception_type == "ValueError"
        assert info.context == {"page": 2}
        stats = tracker.get_error_stats()
        assert stats["total_errors"] == 1
        assert stats["errors_last_hour"] == 1
        assert stats["error_counts"] == {"fetch.paginator.network.high": 1}
        assert stats["category_breakdown"]["network"] == 1

    def test_record_exception_uses_error_metadata(self):
        tracker = ErrorTracker()

        info = tracker.record_exception("orchestrator", RateLimited("429", attempts=4))

        assert info.category is ErrorCategory.RATE_LIMIT
        assert info.severity is ErrorSeverity.HIGH

    def test_record_plain_exception(self):
        tracker = ErrorTracker()

        info = tracker.record_exception("orchestrator", KeyError("x"))

        assert info.category is ErrorCategory.SYSTEM
        assert info.severity is ErrorSeverity.MEDIUM

    def test_bounded_history(self):
        tracker = ErrorTracker(max_errors=3, max_per_component=2)

        for i in range(5):
            tracker.record_error("alert.store", ErrorCategory.STORAGE, ErrorSeverity.LOW, f"error {i}")

        assert [e.message for e in tracker.errors] == ["error 2", "error 3", "error 4"]
        assert [e.message for e in tracker.get_component_errors("alert.store")] == ["error 3", "error 4"]
        assert tracker.error_counts["alert.store.storage.low"] == 5

    def test_clear_old_errors(self):
        tracker = ErrorTracker()
        old = tracker.record_error("orchestrator", ErrorCategory.SYSTEM, ErrorSeverity.LOW, "old")
        tracker.record_error("orchestrator", ErrorCategory.SYSTEM, ErrorSeverity.LOW, "new")
        old.timestamp = datetime.now() - timedelta(days=10)

        tracker.clear_old_errors(older_than_days=7)

        assert [e.message for e in tracker.errors] == ["new"]
        assert [e.message for e in tracker.get_component_errors("orchestrator")] == ["new"]

    def test_global_tracker_is_shared(self):
        assert get_error_tracker() is get_error_tracker()


class TestRetryConfig:
    def test_exponential_without_jitter(self):
        config = RetryConfig(base_delay=1.0, max_delay=10.0)

        assert [config.compute_delay(a) for a in range(5)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_linear(self):
        config = RetryConfig(base_delay=2.0, exponential_backoff=False)

        assert config.compute_delay(3) == 2.0

    def test_jitter_bounds_and_growth(self):
        config = RetryConfig(max_attempts=4, base_delay=1.0, max_delay=10.0, jitter_seconds=1.0)
        rng = random.Random(7)

        delays = [config.compute_delay(a, rng) for a in range(3)]

        assert 1.0 <= delays[0] <= 2.0
        assert 2.0 <= delays[1] <= 3.0
        assert 4.0 <= delays[2] <= 5.0
        assert delays == sorted(delays)


class TestWithErrorHandling:
    def test_sync_retries_then_succeeds(self):
        calls = []

        @with_error_handling("orchestrator", ErrorCategory.SYSTEM,
                             retry_config=RetryConfig(max_attempts=3, base_delay=0.0))
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ValueError("not yet")
            return "done"

        assert flaky() == "done"
        assert len(calls) == 3

    def test_sync_suppressed_returns_fallback(self):
        @with_error_handling("orchestrator", ErrorCategory.CONFIGURATION,
                             fallback_value=False, suppress_exceptions=True)
        def broken():
            raise ValueError("bad config")

        assert broken() is False

    def test_sync_raises_without_suppression(self):
        @with_error_handling("orchestrator", ErrorCategory.SYSTEM)
        def broken():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            broken()

    def test_reraise_skips_retries_and_suppression(self):
        calls = []

        @with_error_handling("fetch.paginator", ErrorCategory.NETWORK,
                             retry_config=RetryConfig(max_attempts=3, base_delay=0.0),
                             suppress_exceptions=True, reraise=(AuthExpired,))
        def rejected():
            calls.append(1)
            raise AuthExpired("HTTP 401")

        with pytest.raises(AuthExpired):
            rejected()
        assert len(calls) == 1

    def test_retry_on_limits_retried_types(self):
        calls = []

        @with_error_handling("alert.store", ErrorCategory.STORAGE,
                             retry_config=RetryConfig(max_attempts=3, base_delay=0.0),
                             retry_on=(TimeoutError,))
        def write():
            calls.append(1)
            raise ValueError("constraint failed")

        with pytest.raises(ValueError):
            write()
        assert len(calls) == 1

    def test_failure_recorded_with_error_category(self):
        tracker = get_error_tracker()
        before = len(tracker.get_component_errors("test.component", limit=1000))

        @with_error_handling("test.component", ErrorCategory.SYSTEM, suppress_exceptions=True)
        def broken():
            raise UpstreamShapeError("bad payload")

        broken()

        errors = tracker.get_component_errors("test.component", limit=1000)
        assert len(errors) == before + 1
        assert errors[-1].category is ErrorCategory.PARSING

    @pytest.mark.asyncio
    async def test_async_retries(self):
        calls = []

        @with_error_handling("alert.matcher", ErrorCategory.NETWORK,
                             retry_config=RetryConfig(max_attempts=2, base_delay=0.0))
        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise UpstreamUnavailable("down")
            return 42

        assert await flaky() == 42
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_async_fallback(self):
        @with_error_handling("alert.matcher", ErrorCategory.NETWORK,
                             fallback_value=[], suppress_exceptions=True)
        async def broken():
            raise UpstreamUnavailable("down")

        assert await broken() == []
