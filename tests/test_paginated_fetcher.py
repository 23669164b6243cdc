"""
Unit tests for the paginated fetcher: retries, pacing and stop conditions.
"""

from unittest.mock import Mock

import pytest
import requests

from helpers import (
    fake_response,
    promoted_page,
    raw_promoted_item,
    raw_search_item,
    search_page,
)
from vinted_scout.components.paginated_fetcher import PaginatedFetcher
from vinted_scout.models.fetch import Feed, StopReason
from vinted_scout.models.query import FetchFilters
from vinted_scout.utils.error_handling import AuthExpired, RateLimited, UpstreamUnavailable


@pytest.fixture
def http():
    return Mock()


@pytest.fixture
def fetcher(http, delay_source, fetch_config, sleeps, rng):
    return PaginatedFetcher(
        delay_source,
        fetch_config=fetch_config,
        http=http,
        sleep=sleeps.append,
        rng=rng,
    )


def page_of(ids, **kwargs):
    return fake_response(200, search_page([raw_search_item(i, f"Zelda {i}") for i in ids], **kwargs))


@pytest.mark.unit
class TestRetries:
    def test_rate_limit_then_success(self, fetcher, http, session, sleeps):
        http.get.side_effect = [
            fake_response(429),
            fake_response(429),
            page_of([1, 2], total_pages=1),
        ]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert [item.id for item in result.items] == [1, 2]
        assert http.get.call_count == 3
        assert len(sleeps) == 2
        assert 1.0 <= sleeps[0] <= 2.0
        assert 2.0 <= sleeps[1] <= 3.0
        assert sleeps[0] < sleeps[1]

    def test_rate_limit_exhausted(self, fetcher, http, session, sleeps):
        http.get.side_effect = [fake_response(429)] * 4

        with pytest.raises(RateLimited) as exc_info:
            fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert exc_info.value.attempts == 4
        assert http.get.call_count == 4
        assert len(sleeps) == 3
        assert all(wait <= 10.0 for wait in sleeps)

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_rejection_not_retried(self, fetcher, http, session, sleeps, status):
        http.get.side_effect = [fake_response(status)]

        with pytest.raises(AuthExpired) as exc_info:
            fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert exc_info.value.status_code == status
        assert http.get.call_count == 1
        assert sleeps == []

    def test_server_error_retried(self, fetcher, http, session, sleeps):
        http.get.side_effect = [fake_response(503), page_of([1], total_pages=1)]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert len(result.items) == 1
        assert len(sleeps) == 1

    def test_network_errors_exhausted(self, fetcher, http, session):
        http.get.side_effect = requests.ConnectionError("connection reset")

        with pytest.raises(UpstreamUnavailable):
            fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert http.get.call_count == 4

    def test_timeout_then_success(self, fetcher, http, session):
        http.get.side_effect = [requests.Timeout("slow"), page_of([1], total_pages=1)]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert len(result.items) == 1

    def test_client_error_not_retried(self, fetcher, http, session):
        http.get.side_effect = [fake_response(404)]

        with pytest.raises(UpstreamUnavailable) as exc_info:
            fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert exc_info.value.status_code == 404
        assert http.get.call_count == 1

    @pytest.mark.parametrize(
        "error",
        [
            requests.TooManyRedirects("redirect loop"),
            requests.exceptions.ChunkedEncodingError("truncated body"),
            requests.exceptions.InvalidURL("bad url"),
        ],
    )
    def test_other_request_errors_become_unavailable(self, fetcher, http, session, sleeps, error):
        http.get.side_effect = [error]

        with pytest.raises(UpstreamUnavailable, match=type(error).__name__):
            fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert http.get.call_count == 1
        assert sleeps == []


@pytest.mark.unit
class TestStopConditions:
    def test_page_cap_with_dedup_and_pacing(self, fetcher, http, session, sleeps):
        http.get.side_effect = [page_of([1, 2, 3]), page_of([3, 4, 5], current_page=2)]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"), max_pages=2)

        assert [item.id for item in result.items] == [1, 2, 3, 4, 5]
        assert result.stop_reason is StopReason.PAGE_CAP
        assert result.pages_fetched == 2
        assert result.total_entries == 100
        assert len(sleeps) == 1
        assert 12.0 <= sleeps[0] <= 25.0
        assert http.get.call_args_list[1].kwargs["params"]["page"] == 2
        result.validate()

    def test_small_result_set_stops_after_first_page(self, fetcher, http, session):
        http.get.side_effect = [page_of([1, 2], total_entries=2)]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert result.stop_reason is StopReason.SMALL_RESULT_SET
        assert len(result.items) == 2
        assert http.get.call_count == 1

    def test_stale_page_stops_and_is_dropped(self, fetcher, http, session):
        stale = [raw_search_item(i, f"Zelda {i}", age_days=10) for i in (4, 5)]
        http.get.side_effect = [
            page_of([1, 2]),
            fake_response(200, search_page(stale, current_page=2)),
        ]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert result.stop_reason is StopReason.STALE_FEED
        assert [item.id for item in result.items] == [1, 2]
        assert http.get.call_count == 2

    def test_empty_page(self, fetcher, http, session):
        http.get.side_effect = [page_of([1]), fake_response(200, search_page([], current_page=2))]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert result.stop_reason is StopReason.EMPTY_PAGE
        assert [item.id for item in result.items] == [1]

    def test_no_more_pages(self, fetcher, http, session):
        http.get.side_effect = [page_of([1], total_pages=1)]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert result.stop_reason is StopReason.NO_MORE_PAGES

    def test_item_limit(self, fetcher, http, session):
        http.get.side_effect = [page_of([1, 2, 3])]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"), limit=2)

        assert result.stop_reason is StopReason.ITEM_LIMIT
        assert [item.id for item in result.items] == [1, 2]

    def test_unrecognized_payload_stops_with_partial_results(self, fetcher, http, session):
        http.get.side_effect = [page_of([1, 2]), fake_response(200, {"unexpected": True})]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert result.stop_reason is StopReason.UPSTREAM_SHAPE
        assert [item.id for item in result.items] == [1, 2]
        assert result.pages_fetched == 1

    def test_non_json_body(self, fetcher, http, session):
        response = fake_response(200)
        response.json.side_effect = ValueError("Expecting value")
        http.get.side_effect = [response]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert result.stop_reason is StopReason.UPSTREAM_SHAPE
        assert result.items == []

    def test_non_numeric_pagination(self, fetcher, http, session):
        payload = {
            "items": [raw_search_item(1, "Zelda 1")],
            "pagination": {"current_page": "1", "total_pages": "n/a", "total_entries": "many"},
        }
        http.get.side_effect = [fake_response(200, payload)]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert result.total_entries is None
        assert result.stop_reason is StopReason.NO_MORE_PAGES
        assert [item.id for item in result.items] == [1]

    def test_malformed_listing_skipped_within_page(self, fetcher, http, session):
        raws = [
            raw_search_item(1, "Zelda 1"),
            raw_search_item(2, "Zelda 2", photos=5),
            raw_search_item(3, "Zelda 3", created_at_ts=None, updated_at_ts=1_700_000_000_000),
        ]
        http.get.side_effect = [fake_response(200, search_page(raws, total_pages=1))]

        result = fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert [item.id for item in result.items] == [1, 3]
        assert result.stop_reason is StopReason.NO_MORE_PAGES


@pytest.mark.unit
class TestRequests:
    def test_search_request(self, fetcher, http, session):
        http.get.side_effect = [page_of([1], total_pages=1)]
        filters = FetchFilters(search_text="zelda", price_from=0, price_to=1000)

        fetcher.fetch_pages(session, filters, per_page=50)

        args, kwargs = http.get.call_args
        assert args[0] == "https://www.vinted.fr/api/v2/catalog/items"
        assert kwargs["params"]["search_text"] == "zelda"
        assert kwargs["params"]["per_page"] == 20
        assert "price_from" not in kwargs["params"]
        assert "price_to" not in kwargs["params"]
        assert kwargs["headers"]["cookie"] == session.cookie_header
        assert kwargs["timeout"] == 15.0

    def test_search_price_filters(self, fetcher, http, session):
        http.get.side_effect = [page_of([1], total_pages=1)]

        fetcher.fetch_pages(session, FetchFilters(search_text="zelda", price_from=5, price_to=30))

        params = http.get.call_args.kwargs["params"]
        assert params["price_from"] == 5
        assert params["price_to"] == 30

    def test_promoted_feed(self, fetcher, http, session):
        http.get.side_effect = [fake_response(200, promoted_page([raw_promoted_item(1), raw_promoted_item(2)]))]
        filters = FetchFilters(search_text="mario kart", price_to=30, platform="switch", status_ids="2,1,6")

        result = fetcher.fetch_pages(session, filters, feed=Feed.PROMOTED)

        args, kwargs = http.get.call_args
        assert args[0] == "https://www.vinted.fr/api/v2/promoted_closets"
        params = kwargs["params"]
        assert params["catalog_ids"] == "3026"
        assert params["video_game_platform_ids"] == 1273
        assert params["status_ids"] == "2,1,6"
        assert params["price_to"] == 30
        assert "page" not in params
        assert result.stop_reason is StopReason.NO_MORE_PAGES
        assert all(item.can_buy and item.source == "promoted" for item in result.items)

    def test_homepage_follows_continuation_token(self, fetcher, http, session):
        first = {"blocks": [{"type": "item", "entity": raw_search_item(1)}], "next_page_token": "abc"}
        second = {"blocks": [{"type": "item", "entity": raw_search_item(2)}]}
        http.get.side_effect = [fake_response(200, first), fake_response(200, second)]

        result = fetcher.fetch_pages(session, FetchFilters(), feed=Feed.HOMEPAGE)

        assert [item.id for item in result.items] == [1, 2]
        assert result.stop_reason is StopReason.NO_MORE_PAGES
        assert "next_page_token" not in http.get.call_args_list[0].kwargs["params"]
        assert http.get.call_args_list[1].kwargs["params"]["next_page_token"] == "abc"

    def test_homepage_token_from_load_more_url(self, fetcher, http, session):
        first = {
            "blocks": [{"type": "item", "entity": raw_search_item(1)}],
            "load_more_button": {"url": "/api/v2/homepage/all?next_page_token=xyz&version=4"},
        }
        http.get.side_effect = [fake_response(200, first), fake_response(200, {"blocks": []})]

        result = fetcher.fetch_pages(session, FetchFilters(), feed=Feed.HOMEPAGE)

        assert http.get.call_args_list[1].kwargs["params"]["next_page_token"] == "xyz"
        assert result.stop_reason is StopReason.EMPTY_PAGE

    def test_delay_source_consulted_per_page(self, fetcher, http, session, delay_source):
        http.get.side_effect = [page_of([1]), page_of([2], current_page=2), page_of([3], current_page=3)]

        fetcher.fetch_pages(session, FetchFilters(search_text="zelda"))

        assert delay_source.current.call_count == 2
