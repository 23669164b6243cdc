"""Result filter: threshold, rank and fall back so searches rarely come back empty."""

from typing import List, Optional, Sequence

from ..models.config import ScoringConfig
from ..models.item import Item
from ..models.query import Query
from ..models.scoring import FilterOutcome, ScoredItem
from ..utils.logging import get_logger
from .keyword_extractor import extract_keywords
from .relevance_scorer import RelevanceScorer

logger = get_logger("result.filter")


def _rank_key(scored: ScoredItem):
    return (-scored.score, -scored.confidence.rank, scored.item.id)


def rank(scored_items: Sequence[ScoredItem]) -> List[ScoredItem]:
    """Score descending, then confidence tier, then item id for stability."""
    return sorted(scored_items, key=_rank_key)


class ResultFilter:
    """Applies the relevance threshold with relaxed and top-N fallbacks."""

    def __init__(self, scorer: Optional[RelevanceScorer] = None,
                 config: Optional[ScoringConfig] = None):
        self.config = config or (scorer.config if scorer else ScoringConfig())
        self.scorer = scorer or RelevanceScorer(self.config)

    def filter_and_rank(
        self,
        items: Sequence[Item],
        query: Query,
        min_score: Optional[float] = None,
        max_results: Optional[int] = None,
        hard_floor: bool = False,
    ) -> FilterOutcome:
        """
        Score, threshold and rank listings.

        Items at or above ``min_score`` are returned first. When none pass,
        the relaxed floor is tried, then the best items by raw score, so a
        non-empty input never yields an empty result unless ``hard_floor``
        is set.
        """
        if min_score is None:
            min_score = query.min_relevance_score
        if not items:
            return FilterOutcome()

        keywords = extract_keywords(query.text)
        ranked = rank([self.scorer.score_item(item, query, keywords) for item in items])

        passing = [s for s in ranked if s.score >= min_score]
        if max_results is not None:
            passing = passing[:max_results]
        if passing or hard_floor:
            logger.info(f"{len(passing)}/{len(ranked)} items scored at least {min_score}")
            return FilterOutcome(items=[s.item for s in passing], scored=passing)

        relaxed = [s for s in ranked if s.score >= self.config.relaxed_floor]
        relaxed = relaxed[: self.config.relaxed_max_results]
        if relaxed:
            logger.info(
                f"No item reached {min_score}; keeping {len(relaxed)} items "
                f"above relaxed floor {self.config.relaxed_floor}"
            )
            return FilterOutcome(
                items=[s.item for s in relaxed], scored=relaxed, low_confidence=True
            )

        fallback = ranked[: self.config.fallback_max_results]
        logger.warning(
            f"No item reached the relaxed floor; returning top {len(fallback)} by raw score"
        )
        return FilterOutcome(
            items=[s.item for s in fallback],
            scored=fallback,
            fallback_used=True,
            low_confidence=True,
        )
