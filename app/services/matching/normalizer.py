"""
Name normalization for Job ↔ Deal matching.

Both sides of every comparison must go through the same function with the
same strictness, otherwise equal names can compare unequal.
"""

import re

_WHITESPACE_RE = re.compile(r"\s+")
# Anything that is not a letter, digit, whitespace or hyphen (underscore included)
_PUNCTUATION_RE = re.compile(r"[^\w\s-]|_")


def normalize_name(name: str | None, strip_punctuation: bool = False) -> str:
    """
    Reduce a display name to its comparison key.

    Lower-cases, optionally strips punctuation, collapses whitespace runs to a
    single space and trims. ``None`` or empty input yields ``""``.
    """
    if not name:
        return ""

    normalized = name.lower()
    if strip_punctuation:
        normalized = _PUNCTUATION_RE.sub("", normalized)

    return _WHITESPACE_RE.sub(" ", normalized).strip()


def close_match(a: str | None, b: str | None, strip_punctuation: bool = False) -> bool:
    """
    True when the normalized names are equal, or when one non-empty
    normalized name is contained in the other (e.g. a "(Retained)" suffix).
    """
    left = normalize_name(a, strip_punctuation)
    right = normalize_name(b, strip_punctuation)

    if left == right:
        return True
    if left and left in right:
        return True
    return bool(right) and right in left


def similarity_score(a: str | None, b: str | None, strip_punctuation: bool = False) -> float:
    """Length ratio of the shorter normalized name to the longer; 1.0 when equal."""
    left = normalize_name(a, strip_punctuation)
    right = normalize_name(b, strip_punctuation)

    if left == right:
        return 1.0
    longest = max(len(left), len(right))
    if not longest:
        return 0.0
    return round(min(len(left), len(right)) / longest, 3)
