"""Project normalized-space matches back onto raw fragment offsets."""

from typing import List

from .common import MatchSpan, ResolvedSpan
from .normalizer import NormalizedView


def resolve_span(span: MatchSpan, view: NormalizedView) -> ResolvedSpan:
    """
    Map a normalized match span to a [start, end) slice of the source fragment.

    `end` comes from the map entry at span.end, or the source length when
    the match runs to the end of the text. Both ends therefore fall on the
    start of an entity, a whitespace run or a markup token, never inside one.
    """
    return ResolvedSpan(view.to_source(span.start), view.to_source(span.end))


def resolve_spans(spans: List[MatchSpan], view: NormalizedView) -> List[ResolvedSpan]:
    return [resolve_span(span, view) for span in spans]
