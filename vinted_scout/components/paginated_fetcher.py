"""
Paginated listing fetcher for the Vinted scout.

This module walks the catalogue search, promoted closets and homepage feeds
page by page with randomized inter-page delays, bounded retries for rate
limiting and network failures, and early-stop heuristics that avoid
requesting pages that cannot add useful listings.
"""

import random
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..interfaces import IDelayConfigSource
from ..models.config import FetchConfig, MarketplaceConfig
from ..models.fetch import Feed, FetchResult, StopReason
from ..models.item import Item
from ..models.query import FetchFilters
from ..models.session import Session
from ..utils.error_handling import (
    AuthExpired,
    RateLimited,
    RetryConfig,
    UpstreamShapeError,
    UpstreamUnavailable,
    get_error_tracker,
)
from ..utils.logging import get_logger
from .item_normalizer import ItemNormalizer, extract_raw_items
from .platform_aliases import platform_id
from .session_builder import SessionBuilder

logger = get_logger("fetch.paginator")

SEARCH_PATH = "/api/v2/catalog/items"
PROMOTED_PATH = "/api/v2/promoted_closets"
HOMEPAGE_PATH = "/api/v2/homepage/all"

VIDEO_GAMES_CATALOG_ID = "3026"
# Price filters at or beyond these bounds are left out of search requests
PRICE_TO_CEILING = 1000


def _pagination_int(value: Any) -> Optional[int]:
    """Pagination counter as int, None when absent or not numeric."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _next_page_token(payload: Dict[str, Any]) -> Optional[str]:
    """Homepage continuation token from any of the places the API puts it."""
    token = payload.get("next_page_token")
    if token:
        return str(token)

    pagination = payload.get("pagination")
    if isinstance(pagination, dict) and pagination.get("next_page_token"):
        return str(pagination["next_page_token"])

    load_more = payload.get("load_more_button")
    if isinstance(load_more, dict) and load_more.get("url"):
        values = parse_qs(urlparse(load_more["url"]).query).get("next_page_token")
        if values:
            return values[0]
    return None


class PaginatedFetcher:
    """
    Fetches listings across pages of one feed.

    The sleep function, random generator and clock are injectable so that
    pacing and staleness can be tested without waiting.
    """

    def __init__(
        self,
        delay_source: IDelayConfigSource,
        fetch_config: Optional[FetchConfig] = None,
        marketplace: Optional[MarketplaceConfig] = None,
        http: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        pool_size: int = 4,
    ):
        self.delay_source = delay_source
        self.config = fetch_config or FetchConfig()
        self.marketplace = marketplace or MarketplaceConfig()
        self.session_builder = SessionBuilder(self.marketplace)
        self.normalizer = ItemNormalizer(self.marketplace.base_url)
        self.http = http or self._create_http_session(pool_size)
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.retry_config = RetryConfig(
            max_attempts=self.config.max_attempts,
            base_delay=self.config.backoff_base,
            max_delay=self.config.max_backoff,
            jitter_seconds=self.config.backoff_jitter,
        )

    def _create_http_session(self, pool_size: int) -> requests.Session:
        """Create a requests session; retries are driven by the fetcher itself."""
        session = requests.Session()
        retry_strategy = Retry(total=0, redirect=3, raise_on_status=False)
        adapter = HTTPAdapter(
            max_retries=retry_strategy,
            pool_connections=pool_size,
            pool_maxsize=pool_size,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def close(self):
        self.http.close()

    # Request building

    def _url(self, path: str) -> str:
        return self.marketplace.base_url.rstrip("/") + path

    def _search_request(self, filters: FetchFilters, page: int, per_page: int) -> Tuple[str, Dict[str, Any]]:
        params: Dict[str, Any] = {
            "search_text": filters.search_text,
            "per_page": per_page,
            "page": page,
        }
        if filters.price_from is not None and filters.price_from > 0:
            params["price_from"] = filters.price_from
        if filters.price_to is not None and filters.price_to < PRICE_TO_CEILING:
            params["price_to"] = filters.price_to
        if filters.order:
            params["order"] = filters.order
        return self._url(SEARCH_PATH), params

    def _promoted_request(self, filters: FetchFilters, page: int, per_page: int,
                          search_session_id: str) -> Tuple[str, Dict[str, Any]]:
        params: Dict[str, Any] = {
            "per_page": per_page,
            "screen_name": "catalog",
            "search_session_id": search_session_id,
            "catalog_ids": VIDEO_GAMES_CATALOG_ID,
            "order": filters.order,
        }
        if page > 1:
            params["page"] = page
        if filters.search_text and filters.search_text.strip():
            params["search_text"] = filters.search_text.strip()
        catalog_platform = platform_id(filters.platform)
        if catalog_platform is not None:
            params["video_game_platform_ids"] = catalog_platform
        if filters.status_ids:
            params["status_ids"] = filters.status_ids
        if filters.price_to is not None and filters.price_to > 0:
            params["price_to"] = filters.price_to
        return self._url(PROMOTED_PATH), params

    def _homepage_request(self, next_token: Optional[str], homepage_session_id: str) -> Tuple[str, Dict[str, Any]]:
        params: Dict[str, Any] = {
            "homepage_session_id": homepage_session_id,
            "column_count": self.config.homepage_column_count,
            "version": self.config.homepage_version,
        }
        if next_token:
            params["next_page_token"] = next_token
        return self._url(HOMEPAGE_PATH), params

    # HTTP with retries

    def _request_json(self, session: Session, url: str, params: Dict[str, Any]) -> Any:
        """
        GET one page.

        Retries 429, 5xx, timeouts and connection errors with bounded backoff.

        Raises:
            AuthExpired: On 401/403, never retried
            RateLimited: When 429 persists through every attempt
            UpstreamUnavailable: On other failures
            UpstreamShapeError: When the body is not JSON
        """
        headers = self.session_builder.build_headers(session)
        attempts = self.retry_config.max_attempts

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                response = self.http.get(
                    url, params=params, headers=headers, timeout=self.config.request_timeout
                )
            except (requests.Timeout, requests.ConnectionError) as e:
                if last_attempt:
                    raise UpstreamUnavailable(f"Request failed after {attempts} attempts: {e}")
                self._backoff(attempt, f"network error: {e}")
                continue
            except requests.RequestException as e:
                raise UpstreamUnavailable(f"Request failed: {type(e).__name__}: {e}")

            status = response.status_code
            if status in (401, 403):
                raise AuthExpired(f"Upstream rejected the session (HTTP {status})", status_code=status)

            if status == 429:
                if last_attempt:
                    raise RateLimited(f"HTTP 429 persisted after {attempts} attempts", attempts=attempts)
                self._backoff(attempt, "rate limited (HTTP 429)")
                continue

            if status >= 500:
                if last_attempt:
                    raise UpstreamUnavailable(f"HTTP {status} after {attempts} attempts", status_code=status)
                self._backoff(attempt, f"server error (HTTP {status})")
                continue

            if status >= 400:
                raise UpstreamUnavailable(f"Unexpected HTTP {status}", status_code=status)

            try:
                return response.json()
            except ValueError as e:
                raise UpstreamShapeError(f"Response body is not JSON: {e}")

        raise UpstreamUnavailable(f"No response after {attempts} attempts")

    def _backoff(self, attempt: int, reason: str):
        delay = self.retry_config.compute_delay(attempt, self.rng)
        logger.warning(
            f"Retrying after {reason}",
            extra={"attempt": attempt + 1, "max_attempts": self.retry_config.max_attempts,
                   "wait_seconds": round(delay, 3)},
        )
        self.sleep(delay)

    # Stop conditions

    def _is_stale(self, items: List[Item]) -> bool:
        """True when every dated item is older than the age limit."""
        dated = [item.added_since for item in items if item.added_since is not None]
        if not dated:
            return False
        cutoff = self.clock() - timedelta(days=self.config.max_item_age_days)
        return all(added < cutoff for added in dated)

    def fetch_pages(
        self,
        session: Session,
        filters: FetchFilters,
        max_pages: Optional[int] = None,
        per_page: Optional[int] = None,
        feed: Feed = Feed.SEARCH,
        limit: Optional[int] = None,
    ) -> FetchResult:
        """
        Fetch listings page by page.

        Args:
            session: Authenticated session
            filters: Search text and price/platform filters
            max_pages: Page cap, defaults to the configured cap
            per_page: Page size, capped at the configured maximum
            feed: Which upstream feed to walk
            limit: Stop once this many unique items were gathered

        Returns:
            FetchResult with items deduplicated by id
        """
        max_pages = max_pages or self.config.max_pages
        per_page = min(per_page or self.config.per_page, self.config.max_per_page)
        assume_available = feed is Feed.PROMOTED and bool(filters.status_ids)
        search_session_id = str(uuid.uuid4())
        next_token: Optional[str] = None

        result = FetchResult()
        seen_ids = set()
        page = 1

        logger.info(
            "Starting pagination",
            extra={"feed": feed.value, "search_text": filters.search_text,
                   "max_pages": max_pages, "per_page": per_page},
        )

        while True:
            if page > 1:
                delay = self.delay_source.current().next_delay(self.rng)
                logger.debug("Waiting before next page", extra={"page": page, "wait_seconds": round(delay, 3)})
                self.sleep(delay)

            if feed is Feed.SEARCH:
                url, params = self._search_request(filters, page, per_page)
            elif feed is Feed.PROMOTED:
                url, params = self._promoted_request(filters, page, per_page, search_session_id)
            else:
                url, params = self._homepage_request(next_token, search_session_id)

            try:
                payload = self._request_json(session, url, params)
                raw_items = extract_raw_items(payload, feed.value)
            except UpstreamShapeError as e:
                get_error_tracker().record_exception(
                    "fetch.paginator", e, {"feed": feed.value, "page": page}
                )
                result.stop_reason = StopReason.UPSTREAM_SHAPE
                break

            result.pages_fetched = page
            page_items = self.normalizer.normalize_items(raw_items, feed.value, assume_available)
            pagination = payload.get("pagination") if isinstance(payload.get("pagination"), dict) else {}
            if page == 1 and pagination.get("total_entries") is not None:
                result.total_entries = _pagination_int(pagination["total_entries"])

            logger.info(
                "Fetched page",
                extra={"feed": feed.value, "page": page, "raw_items": len(raw_items),
                       "items": len(page_items), "total_entries": result.total_entries},
            )

            if not raw_items:
                result.stop_reason = StopReason.EMPTY_PAGE
                break

            # Listings of a stale page are dropped, not just the following pages
            stale = self._is_stale(page_items)
            if not stale:
                for item in page_items:
                    if limit is not None and len(result.items) >= limit:
                        break
                    if item.id in seen_ids:
                        continue
                    seen_ids.add(item.id)
                    result.items.append(item)

            if (
                page == 1
                and result.total_entries is not None
                and result.total_entries < self.config.small_result_threshold
            ):
                result.stop_reason = StopReason.SMALL_RESULT_SET
                break

            if stale:
                result.stop_reason = StopReason.STALE_FEED
                break

            if page + 1 > max_pages:
                result.stop_reason = StopReason.PAGE_CAP
                break

            if feed is Feed.HOMEPAGE:
                next_token = _next_page_token(payload)
                has_more = next_token is not None
            else:
                current_page = _pagination_int(pagination.get("current_page"))
                total_pages = _pagination_int(pagination.get("total_pages"))
                has_more = (
                    current_page is not None
                    and total_pages is not None
                    and current_page < total_pages
                )
            if not has_more:
                result.stop_reason = StopReason.NO_MORE_PAGES
                break

            if limit is not None and len(result.items) >= limit:
                result.stop_reason = StopReason.ITEM_LIMIT
                break

            page += 1

        logger.info(
            "Pagination finished",
            extra={"feed": feed.value, "stop_reason": result.stop_reason.value,
                   "pages_fetched": result.pages_fetched, "items": len(result.items)},
        )
        return result
