"""Phrase matching over normalized text."""

from typing import List

from .common import MatchSpan
from .normalizer import normalize_query


# ASCII-only word chars. Non-ASCII letters count as boundaries (known limitation).
_WORD_CHARS = frozenset(
    'abcdefghijklmnopqrstuvwxyz'
    'ABCDEFGHIJKLMNOPQRSTUVWXYZ'
    '0123456789_'
)


def fold_case(text: str) -> str:
    """
    Lower-case text without changing its length.

    Characters whose lower-case form is longer than one char (e.g. 'İ')
    are kept as-is so indices into the folded string stay valid for the
    original.
    """
    out = []
    for ch in text:
        lowered = ch.lower()
        out.append(lowered if len(lowered) == 1 else ch)
    return ''.join(out)


def is_word_char(ch: str) -> bool:
    return ch in _WORD_CHARS


def has_word_boundaries(haystack: str, start: int, end: int) -> bool:
    """True when the chars just outside [start, end) are not word chars (or are out of range)."""
    if start > 0 and is_word_char(haystack[start - 1]):
        return False
    if end < len(haystack) and is_word_char(haystack[end]):
        return False
    return True


def find_matches(haystack: str, query: str, case_sensitive: bool = False,
                 whole_words: bool = False, first_only: bool = False) -> List[MatchSpan]:
    """
    Find query in a normalized haystack.

    Args:
        haystack: Normalized (decoded, whitespace-collapsed) text
        query: Search phrase; collapsed and trimmed before comparison
        case_sensitive: Compare exact case when True
        whole_words: Require ASCII word boundaries on both sides of a match
        first_only: Stop after the first match

    Returns:
        Non-overlapping spans, left to right; empty when nothing matches
    """
    needle = normalize_query(query)
    if not needle or not haystack:
        return []

    if case_sensitive:
        target = haystack
    else:
        target = fold_case(haystack)
        needle = fold_case(needle)

    spans: List[MatchSpan] = []
    pos = target.find(needle)
    while pos != -1:
        end = pos + len(needle)
        if whole_words and not has_word_boundaries(target, pos, end):
            pos = target.find(needle, pos + 1)
            continue
        spans.append(MatchSpan(pos, end))
        if first_only:
            break
        pos = target.find(needle, end)
    return spans
