"""
Substitution across adjacent text-bearing elements.

Used only when no single element contains the whole phrase. The decoded
contents of all elements are joined with one synthetic space, matched, and a
match that spans several elements is consolidated into ONE element, but only
when the raw markup between the first and last element holds nothing except
whitespace and further text-bearing elements. Anything else is skipped and
reported; the source is never patched heuristically.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from xml_utils import escape_xml_text

from .common import (
    BLOCK_JOIN_SEPARATOR,
    CONTENT_TAG,
    Block,
    MatchSpan,
    Rule,
    context_window,
    format_text_preview,
)
from .markup import (
    TOKEN_END,
    TOKEN_START,
    count_element_tags,
    find_blocks,
    is_block_run,
    iter_markup_tokens,
)
from .matcher import find_matches
from .normalizer import NormalizedView, collapse_view, decode_entities


SKIP_FOREIGN_MARKUP = "intervening markup between text elements"
SKIP_UNBALANCED = "consolidated element failed the tag balance check"


@dataclass
class SkippedMatch:
    """A cross-block match that was declined"""
    start_block: int
    end_block: int
    reason: str
    snippet: str = ''


@dataclass
class CrossBlockResult:
    fragment: str
    applied_count: int
    touched_block_ranges: List[Tuple[int, int]] = field(default_factory=list)
    skipped: List[SkippedMatch] = field(default_factory=list)
    before_snippet: str = ''
    after_snippet: str = ''


@dataclass
class _PlannedEdit:
    start_block: int
    end_block: int
    raw_start: int   # Offset inside start block's raw content
    raw_end: int     # Offset inside end block's raw content
    before: str
    after: str


class CombinedText:
    """
    Decoded contents of a block sequence joined by a synthetic separator.

    `positions[i]` gives (block index, local decoded index) for combined
    char i; separator chars carry local index -1.
    """

    def __init__(self, blocks: List[Block]):
        self.blocks = blocks
        self.decode_maps: List[List[int]] = []
        self.positions: List[Tuple[int, int]] = []
        parts: List[str] = []
        for index, block in enumerate(blocks):
            decoded, decode_map = decode_entities(block.inner_text)
            self.decode_maps.append(decode_map)
            if index > 0:
                parts.append(BLOCK_JOIN_SEPARATOR)
                self.positions.append((index - 1, -1))
            parts.append(decoded)
            self.positions.extend((index, local) for local in range(len(decoded)))
        self.text = ''.join(parts)
        # The view maps normalized chars to combined indices
        self.view: NormalizedView = collapse_view(self.text, range(len(self.text)), len(self.text))

    def locate(self, normalized_index: int) -> Tuple[int, int]:
        """(block index, local decoded index) of a normalized char."""
        return self.positions[self.view.index_map[normalized_index]]

    def raw_offset(self, block_index: int, local_index: int) -> int:
        """Raw content offset of a local decoded index; the content length past the end."""
        decode_map = self.decode_maps[block_index]
        if local_index >= len(decode_map):
            return len(self.blocks[block_index].inner_text)
        return decode_map[local_index]


def _plan_edit(combined: CombinedText, span: MatchSpan, rule: Rule) -> _PlannedEdit:
    start_block, start_local = combined.locate(span.start)
    end_block, last_local = combined.locate(span.end - 1)
    left, matched, right = context_window(combined.view.text, span.start, span.end)
    return _PlannedEdit(
        start_block=start_block,
        end_block=end_block,
        raw_start=combined.raw_offset(start_block, start_local),
        raw_end=combined.raw_offset(end_block, last_local + 1),
        before=format_text_preview(f"{left}[{matched}]{right}", 80),
        after=format_text_preview(f"{left}[{rule.replace}]{right}", 80),
    )


def _is_single_element(element: str, text_tag: str) -> bool:
    """The consolidated element must be exactly one open tag and one close tag of text_tag."""
    tokens = list(iter_markup_tokens(element))
    return (len(tokens) == 2
            and tokens[0].kind == TOKEN_START and tokens[0].name == text_tag
            and tokens[1].kind == TOKEN_END and tokens[1].name == text_tag
            and tokens[0].start == 0 and tokens[1].end == len(element))


def _apply_edit(fragment: str, blocks: List[Block], plan: _PlannedEdit,
                replacement: str, text_tag: str) -> Optional[str]:
    """Splice one planned edit into fragment. Returns None when the balance check fails."""
    first = blocks[plan.start_block]
    last = blocks[plan.end_block]

    if plan.start_block == plan.end_block:
        # Whole match inside one element: plain content splice
        content = first.inner_text
        new_content = content[:plan.raw_start] + replacement + content[plan.raw_end:]
        return fragment[:first.inner_start] + new_content + fragment[first.inner_end:]

    # Unconsumed raw prefix/suffix are already escaped; only the replacement is escaped here
    new_content = first.inner_text[:plan.raw_start] + replacement + last.inner_text[plan.raw_end:]
    element = f"{first.open_tag}{new_content}</{text_tag}>"
    if not _is_single_element(element, text_tag):
        return None

    candidate = fragment[:first.start_offset] + element + fragment[last.end_offset:]
    before_open, before_close = count_element_tags(fragment, text_tag)
    after_open, after_close = count_element_tags(candidate, text_tag)
    if before_open - before_close != after_open - after_close:
        return None
    return candidate


def substitute_across_blocks(fragment: str, blocks: List[Block], rule: Rule,
                             text_tag: str = CONTENT_TAG,
                             verbose: bool = False) -> CrossBlockResult:
    """
    Search the joined contents of blocks and consolidate matches that span elements.

    Args:
        fragment: Unit markup the blocks were found in
        blocks: Text-bearing elements of fragment, document order
        rule: Rule to apply; first-occurrence rules stop at the first accepted match
        text_tag: Name of the text-bearing element
        verbose: Print a diagnostic line for every skipped match

    Returns:
        CrossBlockResult with the edited fragment (unchanged when nothing applied)
    """
    result = CrossBlockResult(fragment=fragment, applied_count=0)
    if len(blocks) < 2:
        return result

    combined = CombinedText(blocks)
    spans = find_matches(combined.view.text, rule.find,
                         case_sensitive=rule.case_sensitive,
                         whole_words=rule.whole_words,
                         first_only=False)
    if not spans:
        return result

    replacement = escape_xml_text(rule.replace)
    # First-occurrence: earliest acceptable match. All: last to first.
    ordered = spans if rule.first_only else list(reversed(spans))
    # Edits run last to first, so an earlier match sharing a rewritten element
    # only reaches into that element's untouched raw prefix
    live_blocks = blocks
    applied_plans: List[_PlannedEdit] = []

    for span in ordered:
        plan = _plan_edit(combined, span, rule)
        is_cross = plan.start_block != plan.end_block

        reason = None
        if is_cross and not is_block_run(result.fragment, live_blocks, plan.start_block, plan.end_block):
            reason = SKIP_FOREIGN_MARKUP

        candidate = None
        if reason is None:
            candidate = _apply_edit(result.fragment, live_blocks, plan, replacement, text_tag)
            if candidate is None:
                reason = SKIP_UNBALANCED

        if reason is not None:
            result.skipped.append(SkippedMatch(plan.start_block, plan.end_block, reason, plan.before))
            if verbose:
                print(f"  [Skip] Cross-block match in elements {plan.start_block}-{plan.end_block}: "
                      f"{reason}: {plan.before}")
            continue

        result.fragment = candidate
        result.applied_count += 1
        applied_plans.append(plan)
        live_blocks = find_blocks(result.fragment, text_tag)
        if verbose:
            label = "Cross-block" if is_cross else "Single-element"
            print(f"  [{label}] Replaced elements {plan.start_block}-{plan.end_block}: {plan.before}")
        if rule.first_only:
            break

    # Report in document order whatever order the edits were spliced in
    applied_plans.sort(key=lambda p: (p.start_block, p.raw_start))
    result.touched_block_ranges = [(p.start_block, p.end_block) for p in applied_plans]
    if applied_plans:
        result.before_snippet = applied_plans[0].before
        result.after_snippet = applied_plans[0].after
    return result
