"""
Keyword extraction from free-text queries.
"""

import logging
from typing import Dict, List, Optional, Set

from ..models.query import SearchKeywords
from .platform_aliases import consume_platforms, normalize_text

logger = logging.getLogger(__name__)

STOPWORDS: Set[str] = {
    "jeu", "jeux", "game", "games", "pour", "sur", "avec", "sans",
    "the", "and", "for", "of", "le", "la", "les", "un", "une",
    "de", "du", "des", "et", "ou", "en",
    "video", "retro", "vintage", "occasion", "bon", "etat", "tres",
    "parfait", "neuf", "complet", "boite", "box", "cib", "loose", "sealed",
}

ROMAN_NUMERALS: Dict[str, int] = {
    "i": 1, "ii": 2, "iii": 3, "iv": 4, "v": 5,
    "vi": 6, "vii": 7, "viii": 8, "ix": 9, "x": 10,
    "xi": 11, "xii": 12, "xiii": 13, "xiv": 14, "xv": 15,
    "xvi": 16, "xvii": 17, "xviii": 18, "xix": 19, "xx": 20,
}
_ARABIC_TO_ROMAN: Dict[str, str] = {str(v): k for k, v in ROMAN_NUMERALS.items()}

MIN_TITLE_TOKEN_LENGTH = 3


def is_numeric_token(token: str) -> bool:
    return token.isdigit() or token in ROMAN_NUMERALS


def numeric_equivalents(token: str) -> Set[str]:
    """All spellings of a number token: "11" and "xi" are equivalent."""
    forms = {token}
    if token in ROMAN_NUMERALS:
        forms.add(str(ROMAN_NUMERALS[token]))
    else:
        stripped = token.lstrip("0") or "0"
        forms.add(stripped)
        if stripped in _ARABIC_TO_ROMAN:
            forms.add(_ARABIC_TO_ROMAN[stripped])
    return forms


def tokenize(text: Optional[str]) -> List[str]:
    """Normalized words of ``text``."""
    return normalize_text(text).split()


def _append_unique(target: List[str], token: str):
    if token not in target:
        target.append(token)


def extract_keywords(query_text: Optional[str]) -> SearchKeywords:
    """
    Split a query into platform, title and numeric tokens.

    Multi-word platform aliases are matched before single words and their
    span is removed, so "xbox series" never also yields "xbox". Remaining
    words become title tokens when they are at least three characters long
    and not stopwords; numbers and Roman numerals are always kept.
    """
    platforms, remaining = consume_platforms(normalize_text(query_text))
    keywords = SearchKeywords(platform_tokens=list(platforms))

    for platform in platforms:
        _append_unique(keywords.all_tokens, platform)

    for word in remaining.split():
        if word in STOPWORDS:
            continue
        if is_numeric_token(word):
            _append_unique(keywords.numeric_tokens, word)
            _append_unique(keywords.title_tokens, word)
        elif len(word) >= MIN_TITLE_TOKEN_LENGTH:
            _append_unique(keywords.title_tokens, word)
        elif len(word) < 2:
            continue
        _append_unique(keywords.all_tokens, word)

    logger.debug(
        "Extracted keywords from %r: platforms=%s title=%s numeric=%s",
        query_text,
        keywords.platform_tokens,
        keywords.title_tokens,
        keywords.numeric_tokens,
    )
    return keywords
