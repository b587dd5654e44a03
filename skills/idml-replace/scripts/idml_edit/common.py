#!/usr/bin/env python3
"""
ABOUTME: Shared constants, data classes and helpers for IDML story editing
ABOUTME: Rules, spans, blocks and change records used across the substitution engine
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


# ============================================================
# Constants
# ============================================================

# Text-bearing element of IDML stories
CONTENT_TAG = os.getenv("IDML_REPLACE_TEXT_TAG", "Content")

# Story entries live under this folder of the IDML package
STORY_PREFIX = "Stories/"

IDPKG_NS = "http://ns.adobe.com/AdobeInDesign/idml/1.0/packaging"

# Entries every IDML package exported by InDesign carries
REQUIRED_IDML_ENTRIES = (
    "mimetype",
    "META-INF/metadata.xml",
    "designmap.xml",
)

IDML_MIMETYPE = "application/vnd.adobe.indesign-idml-package"

# Stand-in for markup embedded inside a text run (e.g. <?ACE 7?>); never matches user text
MARKUP_PLACEHOLDER = "\ufffc"

# Separator inserted between consecutive blocks when searching across them
BLOCK_JOIN_SEPARATOR = " "

METHOD_SINGLE_BLOCK = "single-block"
METHOD_CROSS_BLOCK = "cross-block"

STATUS_APPLIED = "applied"
STATUS_SKIPPED = "skipped"
STATUS_REJECTED = "rejected"
STATUS_NOT_FOUND = "not_found"


# ============================================================
# Errors
# ============================================================

class InvalidRuleError(ValueError):
    """A rule (or glossary row) that cannot be applied: empty find or replace."""


class ContainerError(RuntimeError):
    """The document container could not be read or written."""


# ============================================================
# Data Classes
# ============================================================

class Scope(str, Enum):
    FIRST_OCCURRENCE = "first"
    ALL_OCCURRENCES = "all"


@dataclass(frozen=True)
class Rule:
    """One find/replace instruction; immutable once built"""
    find: str
    replace: str
    case_sensitive: bool = False
    whole_words: bool = False
    scope: Scope = Scope.FIRST_OCCURRENCE

    def __post_init__(self):
        if not isinstance(self.find, str) or not self.find.strip():
            raise InvalidRuleError("Rule 'find' must be a non-empty string")
        if not isinstance(self.replace, str) or not self.replace:
            raise InvalidRuleError(
                f"Rule 'replace' must be a non-empty string (find: {format_text_preview(self.find)})"
            )
        if not isinstance(self.scope, Scope):
            object.__setattr__(self, 'scope', Scope(self.scope))

    @property
    def first_only(self) -> bool:
        return self.scope is Scope.FIRST_OCCURRENCE

    def describe(self) -> str:
        """Short label for log lines and reports"""
        return f"{format_text_preview(self.find)} -> {format_text_preview(self.replace)}"


@dataclass(frozen=True)
class MatchSpan:
    """Match region in normalized-text coordinates, end exclusive"""
    start: int
    end: int


@dataclass(frozen=True)
class ResolvedSpan:
    """Match region in raw fragment coordinates, end exclusive"""
    start: int
    end: int


@dataclass(frozen=True)
class Block:
    """One text-bearing element inside a unit fragment"""
    inner_text: str              # Raw (still escaped) element content
    start_offset: int            # Offset of '<' of the open tag
    end_offset: int              # Offset just past the close tag
    inner_start: int             # Offset of the first content char
    inner_end: int               # Offset of '<' of the close tag
    open_tag: str                # Open tag text, attributes included
    self_closing: bool = False


@dataclass(frozen=True)
class ChangeRecord:
    """Outcome of one rule on one unit; append-only report entry"""
    unit: Optional[str]
    rule: Rule
    count_applied: int
    method: Optional[str]
    before_snippet: str = ''
    after_snippet: str = ''
    status: str = STATUS_APPLIED
    message: str = ''

    def to_dict(self) -> Dict:
        return {
            'unit': self.unit,
            'find': self.rule.find,
            'replace': self.rule.replace,
            'case_sensitive': self.rule.case_sensitive,
            'whole_words': self.rule.whole_words,
            'scope': self.rule.scope.value,
            'count_applied': self.count_applied,
            'method': self.method,
            'before_snippet': self.before_snippet,
            'after_snippet': self.after_snippet,
            'status': self.status,
            'message': self.message,
        }


@dataclass
class WalkReport:
    """Everything a run hands back to its caller"""
    records: List[ChangeRecord] = field(default_factory=list)
    edited_units: Dict[str, str] = field(default_factory=dict)
    state: str = 'idle'

    @property
    def total_applied(self) -> int:
        return sum(r.count_applied for r in self.records if r.status == STATUS_APPLIED)

    @property
    def problems(self) -> List[ChangeRecord]:
        return [r for r in self.records if r.status in (STATUS_SKIPPED, STATUS_REJECTED)]


# ============================================================
# Helper Functions
# ============================================================

def format_text_preview(text: str, max_len: int = 30) -> str:
    """
    Format text for log output: remove newlines and truncate.

    Args:
        text: Text to format
        max_len: Maximum length before truncation

    Returns:
        Clean, truncated text with "..." suffix if truncated
    """
    clean = (text or '').replace('\n', ' ').replace('\r', '').replace('\t', ' ')
    # Collapse multiple spaces
    while '  ' in clean:
        clean = clean.replace('  ', ' ')
    clean = clean.strip()
    if len(clean) > max_len:
        return clean[:max_len] + "..."
    return clean


def context_window(text: str, start: int, end: int, radius: int = 20) -> Tuple[str, str, str]:
    """Split text into (left context, matched text, right context) around [start, end)."""
    left = text[max(0, start - radius):start]
    right = text[end:end + radius]
    return left, text[start:end], right
