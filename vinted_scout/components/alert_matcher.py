"""
Alert matching engine for the Vinted scout.

This module checks every active price alert against fresh listings from the
promoted closets feed, decides which listings match, and records matches
idempotently so repeated scheduled runs never notify twice for the same
(alert, listing) pair.
"""

import asyncio
import math
import sqlite3
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Set

from ..interfaces import IAlertStore, IPaginatedFetcher
from ..models.alert import (
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
from ..models.config import AlertConfig
from ..models.fetch import Feed
from ..models.item import Item
from ..models.query import FetchFilters
from ..models.session import Session
from ..utils.error_handling import AuthExpired, ScoutError, get_error_tracker
from ..utils.logging import get_logger
from .keyword_extractor import STOPWORDS, extract_keywords, is_numeric_token, numeric_equivalents
from .platform_aliases import consume_platforms, normalize_text, text_mentions_platform

logger = get_logger("alert.matcher")


def _word_present(word: str, words: Set[str], text: str) -> bool:
    if is_numeric_token(word):
        return bool(numeric_equivalents(word) & words)
    return word in words or (len(word) >= 3 and word in text)


def alert_words(game_title: str) -> List[str]:
    """Significant words of an alert title: no platforms, no stopwords, no single letters."""
    _, remaining = consume_platforms(normalize_text(game_title))
    words: List[str] = []
    for word in remaining.split():
        if word in STOPWORDS or word in words:
            continue
        if len(word) >= 2 or is_numeric_token(word):
            words.append(word)
    return words


def jaccard_similarity(left: str, right: str) -> float:
    a = set(normalize_text(left).split())
    b = set(normalize_text(right).split())
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


class AlertMatcher:
    """Runs price alerts through fetch, match and persist steps."""

    def __init__(
        self,
        fetcher: IPaginatedFetcher,
        store: IAlertStore,
        config: Optional[AlertConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.fetcher = fetcher
        self.store = store
        self.config = config or AlertConfig()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _transition(self, alert: Alert, state: AlertState):
        logger.debug("Alert state change", extra={"alert_id": alert.id, "state": state.value})

    def _alert_platform(self, alert: Alert) -> Optional[str]:
        if alert.platform:
            return alert.platform
        return extract_keywords(alert.game_title).primary_platform

    def match_item(self, item: Item, alert: Alert) -> MatchDecision:
        """
        Decide whether a listing satisfies an alert.

        Checks run in order (price, availability, platform, title) and the
        first failing check names the decision's reason.
        """
        if item.price_amount > alert.max_price:
            return MatchDecision(
                MatchReason.PRICE, f"price {item.price_amount} above {alert.max_price}"
            )

        if item.is_reserved or not item.can_buy:
            return MatchDecision(
                MatchReason.UNAVAILABLE,
                f"not available (reserved={item.is_reserved}, can_buy={item.can_buy})",
            )

        text = normalize_text(item.text)
        platform = self._alert_platform(alert)
        if platform and not text_mentions_platform(text, platform):
            return MatchDecision(MatchReason.PLATFORM, f"platform '{platform}' not mentioned")

        words = set(text.split())
        significant = alert_words(alert.game_title)
        if significant:
            found = [w for w in significant if _word_present(w, words, text)]
            ratio = len(found) / len(significant)
            if ratio >= self.config.word_match_ratio:
                return MatchDecision(
                    MatchReason.MATCHED, f"title match: {len(found)}/{len(significant)} words"
                )
            if len(found) >= self.config.min_overlap_words:
                return MatchDecision(MatchReason.MATCHED, f"title match: {len(found)} key words")

        title_tokens = extract_keywords(alert.game_title).title_tokens
        if title_tokens:
            found = [w for w in title_tokens if _word_present(w, words, text)]
            if len(found) >= max(2, math.ceil(len(title_tokens) * 0.6)):
                return MatchDecision(
                    MatchReason.MATCHED,
                    f"title match (keywords): {len(found)}/{len(title_tokens)} words",
                )

        similarity = jaccard_similarity(alert.game_title, item.title)
        if similarity >= self.config.jaccard_threshold:
            return MatchDecision(MatchReason.MATCHED, f"title similarity {similarity:.0%}")

        return MatchDecision(
            MatchReason.TITLE, f"title '{item.title}' does not match '{alert.game_title}'"
        )

    def check_alert(self, session: Session, alert: Alert) -> AlertCheckResult:
        """Fetch, match and persist for one alert. Failures are captured in the result."""
        result = AlertCheckResult(alert=alert)
        try:
            self._transition(alert, AlertState.FETCHING)
            filters = FetchFilters(
                search_text=alert.game_title,
                price_to=alert.max_price,
                platform=self._alert_platform(alert),
                status_ids=self.config.status_ids,
                order=self.config.order,
            )
            fetched = self.fetcher.fetch_pages(
                session,
                filters,
                max_pages=self.config.max_pages,
                per_page=self.config.per_page,
                feed=Feed.PROMOTED,
            )
            result.items_checked = len(fetched.items)

            self._transition(alert, AlertState.MATCHING)
            matched = []
            samples = 0
            for item in fetched.items:
                decision = self.match_item(item, alert)
                if decision.matched:
                    matched.append((item, decision))
                    continue
                result.stats.count(decision.reason)
                if samples < self.config.debug_sample_limit:
                    samples += 1
                    logger.debug(
                        "Item rejected",
                        extra={"alert_id": alert.id, "item_id": item.id,
                               "reason": decision.reason.value, "detail": decision.detail},
                    )
            result.matching_items = len(matched)

            self._transition(alert, AlertState.PERSISTING)
            for item, decision in matched:
                if self.store.insert_match(AlertMatch(alert.id, item.id, decision.detail)):
                    result.new_matches.append(
                        MatchedAlertItem(alert.id, alert.game_title, decision.detail, item)
                    )
            self.store.record_trigger(alert.id, len(result.new_matches), self.clock())

        except (ScoutError, sqlite3.Error) as e:
            get_error_tracker().record_exception("alert.matcher", e, {"alert_id": alert.id})
            result.error = AlertError(alert.id, alert.game_title, type(e).__name__, str(e))
            result.auth_expired = isinstance(e, AuthExpired)
        except Exception as e:
            get_error_tracker().record_exception("alert.matcher", e, {"alert_id": alert.id})
            logger.error(
                "Unexpected error while checking alert",
                extra={"alert_id": alert.id, "error_type": type(e).__name__, "error": str(e)},
                exc_info=True,
            )
            result.error = AlertError(alert.id, alert.game_title, type(e).__name__, str(e))
        finally:
            self._transition(alert, AlertState.IDLE)

        logger.info(
            "Alert checked",
            extra={"alert_id": alert.id, "items_checked": result.items_checked,
                   "matching_items": result.matching_items,
                   "new_matches": len(result.new_matches),
                   "error": result.error.error_type if result.error else None},
        )
        return result

    def _summarize(self, results: Sequence[AlertCheckResult], checked_at: datetime) -> AlertRunSummary:
        summary = AlertRunSummary(checked_at=checked_at, alerts_checked=len(results))
        for result in results:
            summary.items_checked += result.items_checked
            summary.matches.extend(result.new_matches)
            summary.stats.merge(result.stats)
            if result.new_matches:
                summary.updated_alert_ids.append(result.alert.id)
            if result.error:
                summary.errors.append(result.error)

        # Every alert failing on auth means the session itself is dead
        if results and all(r.error for r in results) and any(r.auth_expired for r in results):
            raise AuthExpired(
                f"Session rejected while checking {len(results)} alert(s)"
            )

        logger.info(
            "Alert run finished",
            extra={"alerts_checked": summary.alerts_checked, "items_checked": summary.items_checked,
                   "new_matches": len(summary.matches), "errors": len(summary.errors),
                   "stats": summary.stats.to_dict()},
        )
        return summary

    def check_alerts(self, session: Session) -> AlertRunSummary:
        """Check every active alert sequentially."""
        checked_at = self.clock()
        alerts = self.store.list_active_alerts()
        logger.info("Checking alerts", extra={"alerts": len(alerts), "concurrency": 1})
        results = [self.check_alert(session, alert) for alert in alerts]
        return self._summarize(results, checked_at)

    async def check_alerts_concurrently(self, session: Session,
                                        max_concurrent: Optional[int] = None) -> AlertRunSummary:
        """Check every active alert with at most ``max_concurrent`` in flight."""
        checked_at = self.clock()
        max_concurrent = max_concurrent or self.config.max_concurrent
        loop = asyncio.get_running_loop()
        alerts = await loop.run_in_executor(None, self.store.list_active_alerts)
        logger.info("Checking alerts", extra={"alerts": len(alerts), "concurrency": max_concurrent})

        semaphore = asyncio.Semaphore(max_concurrent)

        async def run(alert: Alert) -> AlertCheckResult:
            async with semaphore:
                return await loop.run_in_executor(None, self.check_alert, session, alert)

        results = await asyncio.gather(*(run(alert) for alert in alerts))
        return self._summarize(results, checked_at)
