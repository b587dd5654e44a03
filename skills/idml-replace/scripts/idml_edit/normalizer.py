"""
Two-layer text normalization with index maps back to the raw fragment.

Layer 1 decodes the five predefined XML entities, layer 2 collapses
whitespace runs. Each layer keeps `index_map[i] = source index` so a match
found in normalized text can be sliced out of the untouched markup.
"""

from bisect import bisect_right
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .common import MARKUP_PLACEHOLDER
from .markup import iter_markup_tokens


XML_ENTITIES = {
    '&amp;': '&',
    '&lt;': '<',
    '&gt;': '>',
    '&quot;': '"',
    '&apos;': "'",
}

_LONGEST_ENTITY = max(len(e) for e in XML_ENTITIES)


@dataclass(frozen=True)
class NormalizedView:
    """Normalized text plus the map from each of its chars to a source index"""
    text: str
    index_map: Tuple[int, ...]
    source_length: int

    def to_source(self, index: int) -> int:
        """Map a normalized index to a source index; len(text) maps to source_length."""
        if index >= len(self.index_map):
            return self.source_length
        return self.index_map[index]

    def to_normalized(self, source_index: int) -> int:
        """
        Map a source index to the normalized char that covers it.

        Indices inside an entity or a collapsed whitespace run map to the
        char produced by that entity or run.
        """
        if source_index >= self.source_length:
            return len(self.text)
        return max(0, bisect_right(self.index_map, source_index) - 1)


def _markup_spans(fragment: str) -> dict:
    """Map token start -> token end for markup embedded in a text fragment."""
    if '<' not in fragment:
        return {}
    return {token.start: token.end for token in iter_markup_tokens(fragment)}


def decode_entities(fragment: str) -> Tuple[str, List[int]]:
    """
    Decode the five predefined XML entities.

    Any other '&...;' sequence is kept literally. Embedded markup tokens
    become a single placeholder char. Each output char records the index
    of the start of its source entity (or token, or literal char).
    """
    markup = _markup_spans(fragment)
    chars: List[str] = []
    index_map: List[int] = []
    i = 0
    n = len(fragment)
    while i < n:
        ch = fragment[i]
        if ch == '&':
            semi = fragment.find(';', i + 1, i + _LONGEST_ENTITY)
            entity = fragment[i:semi + 1] if semi != -1 else ''
            if entity in XML_ENTITIES:
                chars.append(XML_ENTITIES[entity])
                index_map.append(i)
                i = semi + 1
                continue
        elif ch == '<' and i in markup:
            chars.append(MARKUP_PLACEHOLDER)
            index_map.append(i)
            i = markup[i]
            continue
        chars.append(ch)
        index_map.append(i)
        i += 1
    return ''.join(chars), index_map


def collapse_whitespace(text: str) -> Tuple[str, List[int]]:
    """
    Collapse each maximal run of Unicode whitespace into one ASCII space.

    The collapsed space maps to the start of its run; every other char maps
    to its own index.
    """
    chars: List[str] = []
    index_map: List[int] = []
    in_run = False
    for i, ch in enumerate(text):
        if ch.isspace():
            if not in_run:
                chars.append(' ')
                index_map.append(i)
                in_run = True
            continue
        in_run = False
        chars.append(ch)
        index_map.append(i)
    return ''.join(chars), index_map


def compose_maps(outer: Sequence[int], inner: Sequence[int]) -> Tuple[int, ...]:
    """Compose outer (normalized -> intermediate) with inner (intermediate -> source)."""
    return tuple(inner[i] for i in outer)


def normalize(fragment: str) -> NormalizedView:
    """Decode entities, collapse whitespace and keep a map back to fragment offsets."""
    decoded, decode_map = decode_entities(fragment)
    return collapse_view(decoded, decode_map, len(fragment))


def collapse_view(decoded: str, decode_map: Sequence[int], source_length: int) -> NormalizedView:
    """Apply the whitespace layer to already-decoded text whose chars map through decode_map."""
    collapsed, collapse_map = collapse_whitespace(decoded)
    return NormalizedView(
        text=collapsed,
        index_map=compose_maps(collapse_map, decode_map),
        source_length=source_length,
    )


def normalize_query(query: str) -> str:
    """Collapse and trim a search phrase so it compares against collapsed text."""
    collapsed, _ = collapse_whitespace((query or '').replace(MARKUP_PLACEHOLDER, ''))
    return collapsed.strip()
