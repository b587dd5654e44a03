#!/usr/bin/env python3
"""
ABOUTME: Line-level find/replace over positioned plain text (PDF text layers)
ABOUTME: Groups text items into lines and reports replacements for a visual-overlay caller
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from idml_edit.common import Rule
from idml_edit.matcher import find_matches
from idml_edit.normalizer import collapse_view
from idml_edit.resolver import resolve_spans


# Minimum vertical distance (points) between two items still on one line
MIN_LINE_TOLERANCE = 5.0
LINE_TOLERANCE_RATIO = 0.3


@dataclass
class TextItem:
    """One positioned run of text as extracted from a page"""
    text: str
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    font_size: Optional[float] = None


@dataclass
class TextLine:
    items: List[TextItem] = field(default_factory=list)
    text: str = ''
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    font_size: Optional[float] = None

    @property
    def bbox(self) -> Tuple[float, float, float, float]:
        """(x, y, width, height)"""
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class LineReplacement:
    found: bool
    new_text: str
    count: int


@dataclass(frozen=True)
class LineChange:
    """A line whose text changed; the caller overlays new_text at bbox"""
    page: int                  # 1-based
    line: int                  # 0-based, top to bottom
    rule: Rule
    original_text: str
    new_text: str
    count: int
    bbox: Tuple[float, float, float, float]
    font_size: Optional[float] = None

    def to_dict(self) -> Dict:
        return {
            'page': self.page,
            'line': self.line,
            'find': self.rule.find,
            'replace': self.rule.replace,
            'original_text': self.original_text,
            'new_text': self.new_text,
            'count': self.count,
            'bbox': list(self.bbox),
            'font_size': self.font_size,
        }


def group_text_into_lines(items: Sequence[TextItem]) -> List[TextLine]:
    """
    Group text items lying on approximately the same baseline.

    Items are visited top to bottom (descending y, PDF coordinates); an
    item joins the first line whose y is within max(5, item.height * 0.3).
    A line keeps the y of its first item. Items inside a line are ordered
    left to right and joined with single spaces.
    """
    lines: List[TextLine] = []
    for item in sorted(items, key=lambda it: it.y, reverse=True):
        tolerance = max(MIN_LINE_TOLERANCE, item.height * LINE_TOLERANCE_RATIO)
        for line in lines:
            if abs(item.y - line.y) <= tolerance:
                line.items.append(item)
                right = max(line.x + line.width, item.x + item.width)
                line.x = min(line.x, item.x)
                line.width = right - line.x
                break
        else:
            lines.append(TextLine(
                items=[item], text=item.text, x=item.x, y=item.y,
                width=item.width, height=item.height, font_size=item.font_size,
            ))

    for line in lines:
        line.items.sort(key=lambda it: it.x)
        line.text = ' '.join(it.text for it in line.items)
    return lines


def replace_in_line(line_text: str, rule: Rule, replace_all: Optional[bool] = None) -> LineReplacement:
    """
    Apply one rule to a plain line of text.

    Matching follows the markup engine (collapsed whitespace, case fold,
    ASCII whole-word boundaries); the replacement is inserted verbatim since
    the caller draws it rather than writing markup.

    Args:
        line_text: Text of one line
        rule: Rule to apply
        replace_all: Override rule.scope when given

    Returns:
        LineReplacement; new_text equals line_text when nothing matched
    """
    if replace_all is None:
        replace_all = not rule.first_only

    view = collapse_view(line_text, range(len(line_text)), len(line_text))
    spans = find_matches(view.text, rule.find,
                         case_sensitive=rule.case_sensitive,
                         whole_words=rule.whole_words,
                         first_only=not replace_all)
    if not spans:
        return LineReplacement(False, line_text, 0)

    new_text = line_text
    for resolved in reversed(resolve_spans(spans, view)):
        new_text = new_text[:resolved.start] + rule.replace + new_text[resolved.end:]
    return LineReplacement(True, new_text, len(spans))


def apply_rules_to_pages(pages: Sequence[Sequence[TextItem]], rules: Sequence[Rule],
                         verbose: bool = False) -> List[LineChange]:
    """
    Walk rules over the lines of every page.

    First-occurrence rules stop at the first line that matches anywhere in
    the document; all-occurrence rules visit every line. Later rules see
    the text produced by earlier ones.

    Args:
        pages: Text items per page, page order
        rules: Ordered rule set

    Returns:
        One LineChange per (rule, line) application, in application order
    """
    page_lines = [group_text_into_lines(items) for items in pages]
    changes: List[LineChange] = []

    for rule in rules:
        done = False
        for page_index, lines in enumerate(page_lines):
            for line_index, line in enumerate(lines):
                result = replace_in_line(line.text, rule)
                if not result.found:
                    continue
                changes.append(LineChange(
                    page=page_index + 1,
                    line=line_index,
                    rule=rule,
                    original_text=line.text,
                    new_text=result.new_text,
                    count=result.count,
                    bbox=line.bbox,
                    font_size=line.font_size,
                ))
                if verbose:
                    print(f"  [Line] page {page_index + 1} line {line_index}: "
                          f"{rule.describe()} x{result.count}")
                line.text = result.new_text
                if rule.first_only:
                    done = True
                    break
            if done:
                break
    return changes
