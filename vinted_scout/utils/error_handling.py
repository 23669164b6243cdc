"""
Error handling utilities for the Vinted scout.

This module defines the scout's exception taxonomy, the error tracker used
to keep a bounded history of failures, the retry/backoff policy shared by the
fetcher, and the ``with_error_handling`` decorator.
"""

import asyncio
import functools
import inspect
import random
import time
import traceback
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .logging import get_logger


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""

    NETWORK = "network"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    CONFIGURATION = "configuration"
    PARSING = "parsing"
    DATA_VALIDATION = "data_validation"
    STORAGE = "storage"
    SYSTEM = "system"
    EXTERNAL_SERVICE = "external_service"


class ScoutError(Exception):
    """Base class for every error raised by the scout."""

    category = ErrorCategory.SYSTEM
    severity = ErrorSeverity.MEDIUM


class MissingCredential(ScoutError):
    """The cookie string lacks the access token cookie."""

    category = ErrorCategory.AUTHENTICATION
    severity = ErrorSeverity.CRITICAL


class AuthExpired(ScoutError):
    """The marketplace rejected the session (HTTP 401/403)."""

    category = ErrorCategory.AUTHENTICATION
    severity = ErrorSeverity.CRITICAL

    def __init__(self, message: str = "Session token expired", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(ScoutError):
    """HTTP 429 persisted after every retry attempt."""

    category = ErrorCategory.RATE_LIMIT
    severity = ErrorSeverity.HIGH

    def __init__(self, message: str = "Rate limited by upstream", attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class UpstreamShapeError(ScoutError):
    """An upstream payload did not match any known shape."""

    category = ErrorCategory.PARSING
    severity = ErrorSeverity.LOW


class UpstreamUnavailable(ScoutError):
    """Timeouts, connection failures or unexpected HTTP statuses."""

    category = ErrorCategory.NETWORK
    severity = ErrorSeverity.HIGH

    def __init__(self, message: str = "Upstream unavailable", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ErrorInfo:
    """Information about an error occurrence."""

    timestamp: datetime
    component: str
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    exception_type: str
    traceback: str
    context: Dict[str, Any]


class ErrorTracker:
    """
    Tracks errors and provides statistics for monitoring.
    """

    def __init__(self, max_errors: int = 1000, max_per_component: int = 100):
        """
        Initialize error tracker.

        Args:
            max_errors: Maximum number of errors to keep in memory
            max_per_component: Maximum number of errors kept per component
        """
        self.max_errors = max_errors
        self.max_per_component = max_per_component
        self.errors: List[ErrorInfo] = []
        self.error_counts: Dict[str, int] = {}
        self.component_errors: Dict[str, List[ErrorInfo]] = {}
        self.logger = get_logger("error_tracker")

    def record_error(
        self,
        component: str,
        category: ErrorCategory,
        severity: ErrorSeverity,
        message: str,
        exception: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> ErrorInfo:
        """
        Record an error occurrence.

        Args:
            component: Component where error occurred
            category: Error category
            severity: Error severity
            message: Error message
            exception: Exception object if available
            context: Additional context information

        Returns:
            ErrorInfo object
        """
        error_info = ErrorInfo(
            timestamp=datetime.now(),
            component=component,
            category=category,
            severity=severity,
            message=message,
            exception_type=type(exception).__name__ if exception else "Unknown",
            traceback="".join(traceback.format_exception(
                type(exception), exception, exception.__traceback__
            )) if exception else "",
            context=context or {},
        )

        self.errors.append(error_info)
        if len(self.errors) > self.max_errors:
            self.errors.pop(0)

        error_key = f"{component}.{category.value}.{severity.value}"
        self.error_counts[error_key] = self.error_counts.get(error_key, 0) + 1

        component_errors = self.component_errors.setdefault(component, [])
        component_errors.append(error_info)
        if len(component_errors) > self.max_per_component:
            component_errors.pop(0)

        self.logger.error(
            f"Error recorded: {message}",
            extra={
                "error_component": component,
                "category": category.value,
                "severity": severity.value,
                "exception_type": error_info.exception_type,
                "context": context,
            },
        )

        return error_info

    def record_exception(self, component: str, exception: BaseException,
                         context: Optional[Dict[str, Any]] = None) -> ErrorInfo:
        """Record an exception using its own category and severity when it is a ScoutError."""
        category = getattr(exception, "category", ErrorCategory.SYSTEM)
        severity = getattr(exception, "severity", ErrorSeverity.MEDIUM)
        return self.record_error(component, category, severity, str(exception), exception, context)

    def get_error_stats(self) -> Dict[str, Any]:
        """Get error statistics."""
        now = datetime.now()
        last_hour = now - timedelta(hours=1)
        last_day = now - timedelta(days=1)

        return {
            "total_errors": len(self.errors),
            "errors_last_hour": len([e for e in self.errors if e.timestamp >= last_hour]),
            "errors_last_day": len([e for e in self.errors if e.timestamp >= last_day]),
            "error_counts": self.error_counts.copy(),
            "component_error_counts": {
                component: len(errors)
                for component, errors in self.component_errors.items()
            },
            "severity_breakdown": {
                severity.value: len([e for e in self.errors if e.severity == severity])
                for severity in ErrorSeverity
            },
            "category_breakdown": {
                category.value: len([e for e in self.errors if e.category == category])
                for category in ErrorCategory
            },
        }

    def get_component_errors(self, component: str, limit: int = 10) -> List[ErrorInfo]:
        """Get recent errors for a specific component."""
        return self.component_errors.get(component, [])[-limit:]

    def clear_old_errors(self, older_than_days: int = 7):
        """Clear errors older than specified days."""
        cutoff = datetime.now() - timedelta(days=older_than_days)
        self.errors = [e for e in self.errors if e.timestamp >= cutoff]
        for component in self.component_errors:
            self.component_errors[component] = [
                e for e in self.component_errors[component] if e.timestamp >= cutoff
            ]


class RetryConfig:
    """Configuration for retry behavior.

    Delays grow as ``base_delay * 2**attempt`` plus up to ``jitter_seconds``
    of uniform jitter, capped at ``max_delay``.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_backoff: bool = True,
        jitter_seconds: float = 0.0,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_backoff = exponential_backoff
        self.jitter_seconds = jitter_seconds

    def compute_delay(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Delay in seconds before retrying after the zero-based ``attempt``."""
        delay = self.base_delay
        if self.exponential_backoff:
            delay = self.base_delay * (2 ** attempt)
        if self.jitter_seconds > 0:
            delay += (rng or random).uniform(0, self.jitter_seconds)
        return min(delay, self.max_delay)


# Global error tracker instance
_error_tracker: Optional[ErrorTracker] = None


def get_error_tracker() -> ErrorTracker:
    """Get global error tracker instance."""
    global _error_tracker
    if _error_tracker is None:
        _error_tracker = ErrorTracker()
    return _error_tracker


def with_error_handling(
    component: str,
    category: ErrorCategory,
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    retry_config: Optional[RetryConfig] = None,
    fallback_value: Any = None,
    suppress_exceptions: bool = False,
    reraise: tuple = (),
    retry_on: tuple = (Exception,),
):
    """
    Decorator for comprehensive error handling.

    Args:
        component: Component name
        category: Error category
        severity: Error severity
        retry_config: Retry configuration
        fallback_value: Value to return on failure
        suppress_exceptions: Whether to suppress exceptions
        reraise: Exception types that are never retried nor suppressed
        retry_on: Exception types worth another attempt
    """

    def decorator(func: Callable) -> Callable:
        attempts = retry_config.max_attempts if retry_config else 1

        def _on_failure(exc: Exception, attempt: int) -> bool:
            """Record the failure; return True when the caller should retry."""
            get_error_tracker().record_error(
                component=component,
                category=getattr(exc, "category", category),
                severity=getattr(exc, "severity", severity),
                message=f"Error in {func.__name__}: {exc}",
                exception=exc,
                context={
                    "function": func.__name__,
                    "attempt": attempt + 1,
                    "max_attempts": attempts,
                },
            )
            if isinstance(exc, reraise):
                raise exc
            if attempt < attempts - 1 and isinstance(exc, retry_on):
                return True
            if suppress_exceptions:
                get_logger(component).warning(
                    f"Suppressing exception in {func.__name__}: {exc}"
                )
                return False
            raise exc

        def _delay(attempt: int) -> float:
            delay = retry_config.compute_delay(attempt)
            get_logger(component).info(
                f"Retrying {func.__name__} in {delay:.2f} seconds "
                f"(attempt {attempt + 1}/{attempts})"
            )
            return delay

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            for attempt in range(attempts):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not _on_failure(e, attempt):
                        return fallback_value
                    await asyncio.sleep(_delay(attempt))
            return fallback_value

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            for attempt in range(attempts):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not _on_failure(e, attempt):
                        return fallback_value
                    time.sleep(_delay(attempt))
            return fallback_value

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
