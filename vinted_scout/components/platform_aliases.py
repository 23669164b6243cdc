"""
Gaming platform aliases shared by keyword extraction, scoring and alert matching.

Every lookup works on text already passed through ``normalize_text``:
lowercase, accents stripped, punctuation turned into spaces.
"""

import re
import unicodedata
from typing import Dict, List, Optional, Tuple

PLATFORM_ALIASES: Dict[str, Tuple[str, ...]] = {
    "switch": ("switch", "swicth", "swich", "nintendo switch"),
    "playstation 5": ("ps5", "playstation 5", "playstation5"),
    "playstation 4": ("ps4", "playstation 4", "playstation4"),
    "playstation 3": ("ps3", "playstation 3", "playstation3"),
    "playstation 2": ("ps2", "playstation 2", "playstation2"),
    "playstation 1": ("ps1", "psx", "psone", "playstation 1", "playstation1"),
    "xbox series": ("xbox series x", "xbox series s", "xbox series"),
    "xbox one": ("xbox one",),
    "xbox 360": ("xbox 360", "xbox360"),
    "xbox": ("xbox",),
    "wii u": ("wii u", "wiiu"),
    "wii": ("wii",),
    "3ds": ("3ds", "nintendo 3ds", "2ds"),
    "ds": ("ds", "nintendo ds", "nds"),
    "gamecube": ("gamecube", "game cube", "ngc"),
    "n64": ("n64", "nintendo 64"),
    "snes": ("snes", "super nintendo"),
    "nes": ("nes",),
    "gameboy advance": ("gba", "game boy advance", "gameboy advance"),
    "gameboy": ("gameboy", "game boy", "gbc"),
    "pc": ("pc", "steam"),
}

# Vinted catalogue ids used by the promoted closets filter
PLATFORM_IDS: Dict[str, int] = {
    "switch": 1273,
    "playstation 5": 1274,
    "playstation 4": 1275,
    "playstation 3": 1276,
    "xbox series": 1277,
    "xbox one": 1278,
    "xbox 360": 1279,
    "wii u": 1280,
    "wii": 1281,
    "3ds": 1282,
    "ds": 1283,
}

_ALIAS_TO_PLATFORM: Dict[str, str] = {
    alias: canonical
    for canonical, aliases in PLATFORM_ALIASES.items()
    for alias in aliases
}

# Longest aliases first so "xbox series" consumes its span before "xbox" is tried
_ORDERED_ALIASES: List[Tuple[str, "re.Pattern[str]"]] = [
    (alias, re.compile(rf"(?<![a-z0-9]){re.escape(alias)}(?![a-z0-9])"))
    for alias in sorted(_ALIAS_TO_PLATFORM, key=lambda a: (-len(a), a))
]

_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, strip accents, replace punctuation with spaces and collapse whitespace."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    stripped = _PUNCTUATION.sub(" ", stripped)
    return _WHITESPACE.sub(" ", stripped).strip()


def resolve_platform(token: str) -> Optional[str]:
    """Canonical platform for an alias, or None."""
    return _ALIAS_TO_PLATFORM.get(normalize_text(token))


def consume_platforms(text: str) -> Tuple[List[str], str]:
    """
    Find platforms in normalized text.

    Returns the canonical platforms in order of first appearance and the text
    with every matched alias span blanked out.
    """
    remaining = text
    found: List[Tuple[int, str]] = []
    for alias, pattern in _ORDERED_ALIASES:
        for match in list(pattern.finditer(remaining)):
            found.append((match.start(), _ALIAS_TO_PLATFORM[alias]))
        remaining = pattern.sub(lambda m: " " * len(m.group(0)), remaining)

    platforms: List[str] = []
    for _, canonical in sorted(found):
        if canonical not in platforms:
            platforms.append(canonical)
    return platforms, _WHITESPACE.sub(" ", remaining).strip()


def find_platforms(text: Optional[str]) -> List[str]:
    """Canonical platforms mentioned in ``text``, in order of appearance."""
    platforms, _ = consume_platforms(normalize_text(text))
    return platforms


def text_mentions_platform(text: Optional[str], canonical: str) -> bool:
    """
    Whether ``text`` mentions ``canonical`` through any alias.

    A family name also matches its members: "xbox" is satisfied by "xbox one".
    """
    canonical = resolve_platform(canonical) or normalize_text(canonical)
    for platform in find_platforms(text):
        if platform == canonical or platform.startswith(canonical + " "):
            return True
    return False


def platform_id(canonical: Optional[str]) -> Optional[int]:
    """Catalogue filter id for a platform, when the marketplace has one."""
    if not canonical:
        return None
    return PLATFORM_IDS.get(resolve_platform(canonical) or normalize_text(canonical))
