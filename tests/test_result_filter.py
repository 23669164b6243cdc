"""
Unit tests for thresholding, ranking and fallbacks.
"""

import pytest

from helpers import make_item
from vinted_scout.components.relevance_scorer import RelevanceScorer
from vinted_scout.components.result_filter import ResultFilter, rank
from vinted_scout.models.config import ScoringConfig
from vinted_scout.models.query import Query
from vinted_scout.models.scoring import ConfidenceTier, ScoredItem


@pytest.fixture
def result_filter():
    return ResultFilter()


QUERY = Query("dragon quest 11 switch")


@pytest.mark.unit
class TestRank:
    def test_score_then_confidence_then_id(self):
        scored = [
            ScoredItem(make_item(5), 60.0, [], ConfidenceTier.HIGH),
            ScoredItem(make_item(2), 60.0, [], ConfidenceTier.HIGH),
            ScoredItem(make_item(1), 40.0, [], ConfidenceTier.MEDIUM),
            ScoredItem(make_item(9), 90.0, [], ConfidenceTier.HIGH),
        ]

        assert [s.item.id for s in rank(scored)] == [9, 2, 5, 1]


@pytest.mark.unit
class TestResultFilter:
    def test_threshold_keeps_relevant_items(self, result_filter):
        items = [make_item(1, "Dragon Quest Treasures"), make_item(2, "Dragon Quest XI Switch")]

        outcome = result_filter.filter_and_rank(items, QUERY)

        assert [item.id for item in outcome.items] == [2]
        assert outcome.scored[0].score == 100.0
        assert not outcome.low_confidence
        assert not outcome.fallback_used

    def test_relaxed_floor(self, result_filter):
        outcome = result_filter.filter_and_rank([make_item(1, "Dragon Quest XI")], QUERY)

        assert [item.id for item in outcome.items] == [1]
        assert outcome.low_confidence
        assert not outcome.fallback_used
        assert outcome.scored[0].confidence is ConfidenceTier.MEDIUM

    def test_top_n_fallback_never_empty(self, result_filter):
        outcome = result_filter.filter_and_rank([make_item(1, "Dragon Quest Treasures")], QUERY)

        assert [item.id for item in outcome.items] == [1]
        assert outcome.fallback_used
        assert outcome.low_confidence

    def test_fallback_capped(self):
        config = ScoringConfig(fallback_max_results=2)
        result_filter = ResultFilter(RelevanceScorer(config), config)
        items = [make_item(i, "Lampe de bureau") for i in range(1, 6)]

        outcome = result_filter.filter_and_rank(items, QUERY)

        assert [item.id for item in outcome.items] == [1, 2]
        assert outcome.fallback_used

    def test_hard_floor_allows_empty(self, result_filter):
        outcome = result_filter.filter_and_rank(
            [make_item(1, "Dragon Quest Treasures")], QUERY, hard_floor=True
        )

        assert outcome.items == []
        assert not outcome.fallback_used

    def test_min_score_defaults_to_query(self, result_filter):
        strict = Query("dragon quest 11 switch", min_relevance_score=100)
        items = [make_item(1, "Dragon Quest XI"), make_item(2, "Dragon Quest XI Switch")]

        outcome = result_filter.filter_and_rank(items, strict)

        assert [item.id for item in outcome.items] == [2]

    def test_explicit_min_score_overrides_query(self, result_filter):
        items = [make_item(1, "Dragon Quest XI"), make_item(2, "Dragon Quest XI Switch")]

        outcome = result_filter.filter_and_rank(items, QUERY, min_score=30)

        assert [item.id for item in outcome.items] == [2, 1]

    def test_max_results(self, result_filter):
        items = [make_item(i, "Dragon Quest XI Switch") for i in (4, 3, 2)]

        outcome = result_filter.filter_and_rank(items, QUERY, max_results=2)

        assert [item.id for item in outcome.items] == [2, 3]

    def test_empty_input(self, result_filter):
        outcome = result_filter.filter_and_rank([], QUERY)

        assert outcome.items == []
        assert not outcome.fallback_used
        assert not outcome.low_confidence
