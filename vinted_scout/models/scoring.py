"""
Relevance scoring and ranking result models.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .fetch import StopReason
from .item import Item
from .query import Query


class ConfidenceTier(Enum):
    """Confidence buckets derived from the relevance score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]

    @classmethod
    def from_score(cls, score: float, high: float = 50, medium: float = 25) -> "ConfidenceTier":
        if score >= high:
            return cls.HIGH
        if score >= medium:
            return cls.MEDIUM
        return cls.LOW


@dataclass
class ScoredItem:
    """An item with its relevance score. Derived, never persisted."""

    item: Item
    score: float
    reasons: List[str]
    confidence: ConfidenceTier

    def validate(self) -> bool:
        if not (0 <= self.score <= 100):
            raise ValueError("score must be between 0 and 100")
        if not isinstance(self.confidence, ConfidenceTier):
            raise ValueError("confidence must be a ConfidenceTier enum")
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.item.to_dict(),
            "relevance_score": round(self.score, 2),
            "confidence": self.confidence.value,
            "reasons": list(self.reasons),
        }


@dataclass
class FilterOutcome:
    """Ranked items plus how they were selected."""

    items: List[Item] = field(default_factory=list)
    scored: List[ScoredItem] = field(default_factory=list)
    fallback_used: bool = False
    low_confidence: bool = False


@dataclass
class SearchOutcome:
    """Caller-facing result of an ad hoc search.

    ``error`` is set when the search ended early but still returns what was
    gathered; callers must treat such results as best-effort.
    """

    query: Query
    items: List[Item] = field(default_factory=list)
    scored: List[ScoredItem] = field(default_factory=list)
    low_confidence: bool = False
    fallback_used: bool = False
    stop_reason: Optional[StopReason] = None
    pages_fetched: int = 0
    new_item_ids: List[int] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query.text,
            "success": self.success,
            "error": self.error,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
            "pages_fetched": self.pages_fetched,
            "low_confidence": self.low_confidence,
            "fallback_used": self.fallback_used,
            "total": len(self.scored),
            "new_item_ids": list(self.new_item_ids),
            "items": [scored.to_dict() for scored in self.scored],
        }
