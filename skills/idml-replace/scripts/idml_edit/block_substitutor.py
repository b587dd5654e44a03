"""
Substitution inside one text-bearing element.

Normalizer -> Matcher -> Resolver on the element's raw content, then splice
replacements from the last match to the first so earlier offsets stay valid.
"""

from dataclasses import dataclass
from typing import List, Optional

from xml_utils import escape_xml_text

from .common import CONTENT_TAG, Block, Rule, context_window, format_text_preview
from .markup import find_blocks
from .matcher import find_matches
from .normalizer import normalize
from .resolver import resolve_spans


@dataclass
class BlockEdit:
    """Result of substituting inside one block"""
    new_inner_text: str
    applied_count: int
    before_snippet: str = ''
    after_snippet: str = ''


@dataclass
class UnitEdit:
    """Result of the block-level pass over a whole unit fragment"""
    fragment: str
    applied_count: int
    edited_blocks: List[int]
    before_snippet: str = ''
    after_snippet: str = ''


def _snippets(view_text: str, start: int, end: int, replacement: str):
    left, matched, right = context_window(view_text, start, end)
    before = format_text_preview(f"{left}[{matched}]{right}", 80)
    after = format_text_preview(f"{left}[{replacement}]{right}", 80)
    return before, after


def substitute_in_block(inner_text: str, rule: Rule, first_only: Optional[bool] = None) -> BlockEdit:
    """
    Replace rule.find inside one element's raw content.

    Args:
        inner_text: Raw element content (entity-escaped)
        rule: Rule to apply; replacement is escaped on insert
        first_only: Override rule.scope when given

    Returns:
        BlockEdit with the new raw content and the number of replacements
    """
    if first_only is None:
        first_only = rule.first_only

    view = normalize(inner_text)
    spans = find_matches(view.text, rule.find,
                         case_sensitive=rule.case_sensitive,
                         whole_words=rule.whole_words,
                         first_only=first_only)
    if not spans:
        return BlockEdit(inner_text, 0)

    before, after = _snippets(view.text, spans[0].start, spans[0].end, rule.replace)
    replacement = escape_xml_text(rule.replace)
    new_text = inner_text
    # Descending order keeps the offsets of earlier matches valid
    for resolved in reversed(resolve_spans(spans, view)):
        new_text = new_text[:resolved.start] + replacement + new_text[resolved.end:]
    return BlockEdit(new_text, len(spans), before, after)


def substitute_blocks(fragment: str, rule: Rule, text_tag: str = CONTENT_TAG,
                      blocks: Optional[List[Block]] = None) -> UnitEdit:
    """
    Apply substitute_in_block to every text-bearing element of a unit.

    In first-occurrence mode only the first element (in document order)
    containing a match is edited, and only its first match.
    """
    if blocks is None:
        blocks = find_blocks(fragment, text_tag)

    edits = []
    for index, block in enumerate(blocks):
        if block.self_closing or not block.inner_text:
            continue
        edit = substitute_in_block(block.inner_text, rule)
        if edit.applied_count:
            edits.append((index, edit))
            if rule.first_only:
                break

    if not edits:
        return UnitEdit(fragment, 0, [])

    new_fragment = fragment
    for index, edit in reversed(edits):
        block = blocks[index]
        new_fragment = (new_fragment[:block.inner_start]
                        + edit.new_inner_text
                        + new_fragment[block.inner_end:])

    first_edit = edits[0][1]
    return UnitEdit(
        fragment=new_fragment,
        applied_count=sum(edit.applied_count for _, edit in edits),
        edited_blocks=[index for index, _ in edits],
        before_snippet=first_edit.before_snippet,
        after_snippet=first_edit.after_snippet,
    )
