"""
Text normalization and banned term matching.

Matching is boundary-aware: a banned term only matches when it is surrounded by
characters that are neither letters nor digits (or by the ends of the text), so
``"ass"`` does not match inside ``"classic"``. Letter and digit classes are
Unicode-aware, so accented or non-Latin neighbours also count as part of a word.
"""

from __future__ import annotations

import re
from typing import Iterable, Pattern

WHITESPACE_RUN = re.compile(r"\s+")

# A letter or digit in any script. ``\w`` would also treat "_" as a word
# character, which would hide terms written as "_term_".
WORD_CHAR = r"[^\W_]"


def normalize_text(body: str | None) -> str:
    """Trim, collapse whitespace runs to a single space and lowercase."""
    if not body:
        return ""
    return WHITESPACE_RUN.sub(" ", body.strip()).lower()


def parse_terms(terms: Iterable[str]) -> tuple[str, ...]:
    """Lowercase and strip terms, dropping blanks and repeats while keeping order."""
    seen: dict[str, None] = {}
    for term in terms:
        cleaned = normalize_text(term)
        if cleaned:
            seen.setdefault(cleaned, None)
    return tuple(seen)


def build_term_pattern(term: str) -> Pattern[str]:
    """Compile a boundary-aware pattern for a single normalized term."""
    return re.compile(rf"(?<!{WORD_CHAR}){re.escape(term)}(?!{WORD_CHAR})")


class BannedTermMatcher:
    """Immutable matcher over an ordered set of banned terms.

    Terms are tested in configured order and the first match is reported, so
    the result is the same on every call for the same input.
    """

    __slots__ = ("_terms", "_patterns")

    def __init__(self, terms: Iterable[str]) -> None:
        self._terms = parse_terms(terms)
        self._patterns = tuple((term, build_term_pattern(term)) for term in self._terms)

    @property
    def terms(self) -> tuple[str, ...]:
        return self._terms

    def match(self, body: str | None) -> str | None:
        """Return the first banned term found in ``body``, or None."""
        text = normalize_text(body)
        if not text:
            return None
        for term, pattern in self._patterns:
            if pattern.search(text):
                return term
        return None

    def __len__(self) -> int:
        return len(self._terms)

    def __repr__(self) -> str:
        return f"BannedTermMatcher({len(self._terms)} terms)"


def matches(body: str | None, terms: Iterable[str]) -> str | None:
    """Convenience wrapper: match ``body`` against ``terms`` without keeping a matcher."""
    return BannedTermMatcher(terms).match(body)
