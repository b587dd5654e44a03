"""Markup token scanning: locate text-bearing elements and check raw spans structurally."""

from dataclasses import dataclass
from typing import Iterator, List, Optional

from .common import CONTENT_TAG, Block


TOKEN_START = "start"
TOKEN_END = "end"
TOKEN_EMPTY = "empty"
TOKEN_COMMENT = "comment"
TOKEN_PI = "pi"
TOKEN_CDATA = "cdata"
TOKEN_DECL = "decl"


@dataclass(frozen=True)
class MarkupToken:
    """One markup token: a tag, comment, PI, CDATA section or declaration"""
    kind: str
    name: str
    start: int
    end: int  # Exclusive


def _find_tag_end(text: str, pos: int) -> int:
    """
    Return the index just past the '>' closing the tag opened at pos.

    Quoted attribute values may contain '>' and are skipped.
    Returns -1 when the tag is never closed.
    """
    quote = None
    i = pos + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch in ('"', "'"):
            quote = ch
        elif ch == '>':
            return i + 1
        i += 1
    return -1


def _tag_name(tag_text: str) -> str:
    """Extract the element name from '<Name ...>', '</Name>' or '<Name/>'."""
    body = tag_text[1:-1].strip()
    if body.startswith('/'):
        body = body[1:]
    if body.endswith('/'):
        body = body[:-1]
    return body.split(None, 1)[0] if body.split() else ''


def iter_markup_tokens(text: str, start: int = 0, end: Optional[int] = None) -> Iterator[MarkupToken]:
    """
    Scan text[start:end] and yield every markup token in order.

    Character data between tokens is not yielded. An unterminated token
    stops the scan; callers that need strictness check coverage themselves.
    """
    if end is None:
        end = len(text)
    pos = text.find('<', start, end)
    while pos != -1:
        if text.startswith('<!--', pos):
            close = text.find('-->', pos + 4, end)
            if close == -1:
                return
            yield MarkupToken(TOKEN_COMMENT, '', pos, close + 3)
            nxt = close + 3
        elif text.startswith('<?', pos):
            close = text.find('?>', pos + 2, end)
            if close == -1:
                return
            yield MarkupToken(TOKEN_PI, '', pos, close + 2)
            nxt = close + 2
        elif text.startswith('<![CDATA[', pos):
            close = text.find(']]>', pos + 9, end)
            if close == -1:
                return
            yield MarkupToken(TOKEN_CDATA, '', pos, close + 3)
            nxt = close + 3
        elif text.startswith('<!', pos):
            close = text.find('>', pos + 2, end)
            if close == -1:
                return
            yield MarkupToken(TOKEN_DECL, '', pos, close + 1)
            nxt = close + 1
        else:
            nxt = _find_tag_end(text, pos)
            if nxt == -1 or nxt > end:
                return
            tag_text = text[pos:nxt]
            if tag_text.startswith('</'):
                kind = TOKEN_END
            elif tag_text.endswith('/>'):
                kind = TOKEN_EMPTY
            else:
                kind = TOKEN_START
            yield MarkupToken(kind, _tag_name(tag_text), pos, nxt)
        pos = text.find('<', nxt, end)


def find_blocks(fragment: str, text_tag: str = CONTENT_TAG) -> List[Block]:
    """
    Locate every text-bearing element in a unit fragment, in document order.

    Text-bearing elements do not nest. Any markup inside one (processing
    instructions, comments) stays part of its inner text; the normalizer
    turns it into a placeholder so it can never be matched or split.

    An open tag without a matching close tag ends the scan: the fragment is
    already malformed and the validator will refuse any edit to it.
    """
    blocks: List[Block] = []
    open_token = None
    for token in iter_markup_tokens(fragment):
        if token.name != text_tag:
            continue
        if token.kind == TOKEN_EMPTY and open_token is None:
            blocks.append(Block(
                inner_text='',
                start_offset=token.start,
                end_offset=token.end,
                inner_start=token.end,
                inner_end=token.end,
                open_tag=fragment[token.start:token.end],
                self_closing=True,
            ))
        elif token.kind == TOKEN_START and open_token is None:
            open_token = token
        elif token.kind == TOKEN_END and open_token is not None:
            blocks.append(Block(
                inner_text=fragment[open_token.end:token.start],
                start_offset=open_token.start,
                end_offset=token.end,
                inner_start=open_token.end,
                inner_end=token.start,
                open_tag=fragment[open_token.start:open_token.end],
            ))
            open_token = None
    return blocks


def contains_markup(text: str) -> bool:
    """True when text holds any markup token."""
    return next(iter_markup_tokens(text), None) is not None


def is_block_run(fragment: str, blocks: List[Block], first: int, last: int) -> bool:
    """
    Check that blocks[first..last] form a run that may be collapsed into one element.

    The raw span from the start of the first element to the end of the last
    one may contain only whitespace and the text-bearing elements
    themselves, and none of those elements may carry embedded markup.
    """
    if first < 0 or last >= len(blocks) or first > last:
        return False
    for index in range(first, last + 1):
        block = blocks[index]
        if not block.self_closing and contains_markup(block.inner_text):
            return False
        if index < last:
            gap = fragment[block.end_offset:blocks[index + 1].start_offset]
            if gap.strip():
                return False
    return True


def count_element_tags(text: str, text_tag: str = CONTENT_TAG) -> tuple:
    """Return (open, close) counts of the text-bearing tag in text; empty tags count as both."""
    opens = closes = 0
    for token in iter_markup_tokens(text):
        if token.name != text_tag:
            continue
        if token.kind == TOKEN_START:
            opens += 1
        elif token.kind == TOKEN_END:
            closes += 1
        elif token.kind == TOKEN_EMPTY:
            opens += 1
            closes += 1
    return opens, closes
