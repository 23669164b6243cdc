"""
Relevance scoring of listings against a search query.

The score is the clamped sum of an ordered set of named rules. Each rule is a
pure function of a ``ScoringContext`` and returns a score delta with the
reasons behind it, so individual rules can be tested and reordered in
isolation.
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..models.config import ScoringConfig
from ..models.item import Item
from ..models.query import Query, SearchKeywords
from ..models.scoring import ConfidenceTier, ScoredItem
from ..utils.logging import get_logger
from .keyword_extractor import extract_keywords, is_numeric_token, numeric_equivalents
from .platform_aliases import find_platforms, normalize_text, resolve_platform, text_mentions_platform

logger = get_logger("relevance.scorer")

MIN_SCORE = 0.0
MAX_SCORE = 100.0

PRESENCE_WEIGHT = 50.0
MISSING_NUMBER_PENALTY = 30.0
MISSING_TITLE_WORD_PENALTY = 20.0
MISSING_PLATFORM_PENALTY = 15.0
ALL_CRITICAL_PRESENT_BONUS = 10.0
ALTERNATE_TITLE_PENALTY = 25.0
TITLE_PHRASE_BONUS = 15.0
PLATFORM_MATCH_BONUS = 20.0
UPSTREAM_SIGNAL_WEIGHT = 10.0
TYPE_COHERENCE_BONUS = 5.0
UNCLASSIFIED_TYPE_PENALTY = 10.0

# Spin-offs that share a franchise name with numbered main entries
ALTERNATE_TITLE_MARKERS: Set[str] = {
    "treasure", "treasures", "treasury", "collection", "remake", "remaster",
    "remastered", "definitive", "hero", "heroes", "builder", "builders",
    "warrior", "warriors", "monster", "monsters", "adventure", "adventures",
    "tactics", "rivals", "origins",
}

GAME_KEYWORDS: Tuple[str, ...] = (
    "jeu", "jeux", "game", "cartouche", "cartridge", "cd", "dvd", "blu ray",
    "game card", "cib", "loose", "sealed", "complet", "boite", "limited run", "lrg",
)
CLOTHING_KEYWORDS: Tuple[str, ...] = (
    "veste", "jacket", "jean", "jeans", "pantalon", "pants", "t shirt", "tshirt",
    "chemise", "shirt", "pull", "sweater", "sweat", "hoodie", "robe", "dress",
    "chaussure", "chaussures", "shoe", "shoes", "basket", "baskets", "sneaker",
    "sneakers", "boot", "boots", "taille",
)
CLOTHING_BRANDS: Tuple[str, ...] = ("nike", "adidas", "zara", "h m", "uniqlo", "puma", "reebok")

# Checked in order; the first type found in the title wins
SPECIALTY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("console", ("console", "oled", "lite", "pro controller", "manette", "joy con",
                 "joycon", "dock", "chargeur", "charger")),
    ("book", ("manga", "comic", "comics", "livre", "book", "roman", "novel", "artbook")),
    ("accessory", ("coque", "housse", "etui", "case", "protecteur", "screen protector", "sacoche")),
    ("collectible", ("figurine", "statue", "pop", "funko", "amiibo", "peluche", "plush")),
)
TYPE_MISMATCH_PENALTIES: Dict[str, float] = {
    "clothing": 30.0,
    "console": 30.0,
    "book": 30.0,
    "accessory": 25.0,
    "collectible": 20.0,
}

KEYWORD_PATTERN_CACHE_SIZE = 256


@lru_cache(maxsize=KEYWORD_PATTERN_CACHE_SIZE)
def _keyword_pattern(keyword: str) -> "re.Pattern[str]":
    return re.compile(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])")


def _mentions(text: str, keyword: str) -> bool:
    return _keyword_pattern(keyword).search(text) is not None


def _count(text: str, keywords: Sequence[str]) -> int:
    return sum(1 for keyword in keywords if _mentions(text, keyword))


def specialty_type(text: str) -> Optional[str]:
    """Non-game product type named in normalized text, if any."""
    for product_type, keywords in SPECIALTY_KEYWORDS:
        if _count(text, keywords):
            return product_type
    return None


def _base_type(title: str, text: str) -> str:
    """video_game, clothing or other, judged on the title first."""
    title_game = _count(title, GAME_KEYWORDS) + len(find_platforms(title))
    title_clothing = _count(title, CLOTHING_KEYWORDS)
    if title_game > 0 and title_game >= title_clothing:
        return "video_game"
    if title_clothing > title_game:
        return "clothing"

    game = _count(text, GAME_KEYWORDS) + len(find_platforms(text))
    clothing = _count(text, CLOTHING_KEYWORDS)
    if game > clothing:
        return "video_game"
    if clothing > game:
        return "clothing"
    if _count(text, CLOTHING_BRANDS):
        return "clothing"
    return "other"


def classify_item(item: Item) -> str:
    """
    Classify a listing as video_game, clothing, console, book, accessory,
    collectible or other.
    """
    title = normalize_text(item.title)
    text = normalize_text(" ".join(filter(None, [item.title, item.description, item.brand, item.size_label])))
    base = _base_type(title, text)
    if base == "other":
        return specialty_type(title) or "other"
    return base


@dataclass
class ScoringContext:
    """Everything a rule may look at, precomputed once per item."""

    item: Item
    query: Query
    keywords: SearchKeywords
    platforms: List[str]
    title: str
    text: str
    title_words: Set[str] = field(default_factory=set)
    words: Set[str] = field(default_factory=set)

    @classmethod
    def build(cls, item: Item, query: Query, keywords: SearchKeywords) -> "ScoringContext":
        platforms = list(keywords.platform_tokens)
        hinted = resolve_platform(query.platform_hint) if query.platform_hint else None
        if hinted and hinted not in platforms:
            platforms.append(hinted)
        title = normalize_text(item.title)
        text = normalize_text(item.text)
        return cls(
            item=item,
            query=query,
            keywords=keywords,
            platforms=platforms,
            title=title,
            text=text,
            title_words=set(title.split()),
            words=set(text.split()),
        )

    def has_number(self, token: str, words: Optional[Set[str]] = None) -> bool:
        return bool(numeric_equivalents(token) & (self.words if words is None else words))

    def has_word(self, token: str) -> bool:
        return token in self.words or (len(token) >= 3 and token in self.text)

    def has_platform(self, platform: str) -> bool:
        return text_mentions_platform(self.text, platform)

    def has_term(self, term: str) -> bool:
        if term in self.platforms:
            return self.has_platform(term)
        if is_numeric_token(term):
            return self.has_number(term)
        return self.has_word(term)


@dataclass(frozen=True)
class RuleOutcome:
    delta: float = 0.0
    reasons: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ScoringRule:
    name: str
    apply: Callable[[ScoringContext], RuleOutcome]


def presence_ratio(ctx: ScoringContext) -> RuleOutcome:
    terms = list(ctx.keywords.all_tokens)
    for platform in ctx.platforms:
        if platform not in terms:
            terms.append(platform)
    if not terms:
        return RuleOutcome(0.0, ("no query terms to match",))

    missing = [term for term in terms if not ctx.has_term(term)]
    present = len(terms) - len(missing)
    reason = f"{present}/{len(terms)} query terms present"
    if missing:
        reason += f" (missing: {', '.join(missing)})"
    return RuleOutcome(present / len(terms) * PRESENCE_WEIGHT, (reason,))


def critical_tokens(ctx: ScoringContext) -> RuleOutcome:
    delta = 0.0
    reasons: List[str] = []

    missing_numbers = [t for t in ctx.keywords.numeric_tokens if not ctx.has_number(t)]
    missing_words = [t for t in ctx.keywords.word_tokens if not ctx.has_word(t)]

    for token in missing_numbers:
        delta -= MISSING_NUMBER_PENALTY
        reasons.append(f"missing number '{token}'")
    for token in missing_words:
        delta -= MISSING_TITLE_WORD_PENALTY
        reasons.append(f"missing title word '{token}'")

    if ctx.platforms and not any(ctx.has_platform(p) for p in ctx.platforms):
        delta -= MISSING_PLATFORM_PENALTY
        reasons.append(f"missing platform '{ctx.platforms[0]}'")

    if not missing_numbers and not missing_words:
        delta += ALL_CRITICAL_PRESENT_BONUS
        reasons.append("all title words present")
    return RuleOutcome(delta, tuple(reasons))


def alternate_title(ctx: ScoringContext) -> RuleOutcome:
    numbers = ctx.keywords.numeric_tokens
    if not numbers or all(ctx.has_number(t) for t in numbers):
        return RuleOutcome()
    markers = sorted(
        (ctx.title_words & ALTERNATE_TITLE_MARKERS) - set(ctx.keywords.title_tokens)
    )
    if not markers:
        return RuleOutcome()
    return RuleOutcome(
        -ALTERNATE_TITLE_PENALTY,
        (f"looks like a different entry ({', '.join(markers)}) without '{numbers[0]}'",),
    )


def title_phrase(ctx: ScoringContext) -> RuleOutcome:
    tokens = ctx.keywords.title_tokens
    if not tokens:
        return RuleOutcome()
    phrase = " ".join(tokens)
    if _mentions(ctx.title, phrase):
        return RuleOutcome(TITLE_PHRASE_BONUS, (f"title contains '{phrase}'",))

    base = " ".join(ctx.keywords.word_tokens)
    numbers = ctx.keywords.numeric_tokens
    if (
        base
        and numbers
        and _mentions(ctx.title, base)
        and all(ctx.has_number(t, ctx.title_words) for t in numbers)
    ):
        return RuleOutcome(TITLE_PHRASE_BONUS, (f"title contains '{base}' with its number",))
    return RuleOutcome()


def platform_match(ctx: ScoringContext) -> RuleOutcome:
    for platform in ctx.platforms:
        if ctx.has_platform(platform):
            return RuleOutcome(PLATFORM_MATCH_BONUS, (f"platform '{platform}' matches",))
    return RuleOutcome()


def upstream_signal(ctx: ScoringContext) -> RuleOutcome:
    score = ctx.item.search_score
    if score is None or score <= 0:
        return RuleOutcome()
    if score > 1:
        score = score / 100.0
    score = min(score, 1.0)
    return RuleOutcome(score * UPSTREAM_SIGNAL_WEIGHT, (f"upstream relevance {score:.2f}",))


def type_coherence(ctx: ScoringContext) -> RuleOutcome:
    query_specialty = specialty_type(normalize_text(ctx.query.text))
    item_type = classify_item(ctx.item)

    if query_specialty:
        if item_type == query_specialty or specialty_type(ctx.title) == query_specialty:
            return RuleOutcome(TYPE_COHERENCE_BONUS, (f"product type '{query_specialty}' matches",))
        return RuleOutcome()

    if not ctx.platforms and not ctx.keywords.title_tokens:
        return RuleOutcome()

    if item_type == "video_game":
        if specialty_type(ctx.title):
            return RuleOutcome(0.0, ("game listing bundled with hardware or merchandise",))
        return RuleOutcome(TYPE_COHERENCE_BONUS, ("product type is a video game",))
    if item_type in TYPE_MISMATCH_PENALTIES:
        return RuleOutcome(
            -TYPE_MISMATCH_PENALTIES[item_type], (f"searching a game but listing is {item_type}",)
        )
    return RuleOutcome(-UNCLASSIFIED_TYPE_PENALTY, ("product type unclear",))


DEFAULT_RULES: Tuple[ScoringRule, ...] = (
    ScoringRule("presence_ratio", presence_ratio),
    ScoringRule("critical_tokens", critical_tokens),
    ScoringRule("alternate_title", alternate_title),
    ScoringRule("title_phrase", title_phrase),
    ScoringRule("platform_match", platform_match),
    ScoringRule("upstream_signal", upstream_signal),
    ScoringRule("type_coherence", type_coherence),
)


class RelevanceScorer:
    """Scores listings against a query with an ordered set of rules."""

    def __init__(self, config: Optional[ScoringConfig] = None,
                 rules: Sequence[ScoringRule] = DEFAULT_RULES):
        self.config = config or ScoringConfig()
        self.rules = tuple(rules)

    def score_item(self, item: Item, query: Query,
                   keywords: Optional[SearchKeywords] = None) -> ScoredItem:
        """
        Score one listing.

        Args:
            item: Listing to score
            query: Query it is scored against
            keywords: Pre-extracted query keywords, reused across a batch

        Returns:
            ScoredItem with a score clamped to [0, 100]
        """
        keywords = keywords or extract_keywords(query.text)
        ctx = ScoringContext.build(item, query, keywords)

        total = 0.0
        reasons: List[str] = []
        for rule in self.rules:
            outcome = rule.apply(ctx)
            total += outcome.delta
            reasons.extend(outcome.reasons)

        score = max(MIN_SCORE, min(MAX_SCORE, total))
        confidence = ConfidenceTier.from_score(
            score, self.config.high_confidence, self.config.medium_confidence
        )
        logger.debug(f"Scored item {item.id} at {score:.1f} ({confidence.value}): {reasons}")
        return ScoredItem(item=item, score=score, reasons=reasons, confidence=confidence)

    def score_items(self, items: Sequence[Item], query: Query) -> List[ScoredItem]:
        keywords = extract_keywords(query.text)
        return [self.score_item(item, query, keywords) for item in items]


def score_item(item: Item, query: Query, keywords: Optional[SearchKeywords] = None) -> ScoredItem:
    """Score a listing with the default rules."""
    return RelevanceScorer().score_item(item, query, keywords)
