"""
Rule-over-units driver.

Rules run in order; each rule visits the units in container order. A unit
edited by an earlier rule is read back from the edited-unit overlay, so
later rules see earlier edits. Every accepted edit is checked for
well-formedness before it replaces the overlay entry.
"""

from typing import Callable, Dict, List, Optional, Sequence

from xml_utils import check_well_formed

from .block_substitutor import substitute_blocks
from .common import (
    CONTENT_TAG,
    METHOD_CROSS_BLOCK,
    METHOD_SINGLE_BLOCK,
    STATUS_APPLIED,
    STATUS_NOT_FOUND,
    STATUS_REJECTED,
    STATUS_SKIPPED,
    ChangeRecord,
    InvalidRuleError,
    Rule,
    WalkReport,
    format_text_preview,
)
from .cross_block import substitute_across_blocks
from .markup import find_blocks


STATE_IDLE = "idle"
STATE_WALKING = "walking"
STATE_DONE = "done"
STATE_CANCELLED = "cancelled"
STATE_FAILED = "failed"


class DocumentWalker:
    """
    Apply an ordered rule set to every text unit of a container.

    The container only needs list_text_units / read_unit / write_unit.
    Nothing is written back until commit(), which run() calls on its own
    when the walk completes and auto_commit is set.
    """

    def __init__(self, container, rules: Sequence[Rule], text_tag: str = CONTENT_TAG,
                 verbose: bool = False, should_cancel: Optional[Callable[[], bool]] = None,
                 auto_commit: bool = True):
        for index, rule in enumerate(rules):
            if not isinstance(rule, Rule):
                raise InvalidRuleError(f"Rule {index + 1} is not a Rule instance: {rule!r}")
        self.container = container
        self.rules: List[Rule] = list(rules)
        self.text_tag = text_tag
        self.verbose = verbose
        self.should_cancel = should_cancel
        self.auto_commit = auto_commit

        self.state = STATE_IDLE
        self.records: List[ChangeRecord] = []
        self.edited_units: Dict[str, str] = {}
        self._cancel_requested = False

    # ----------------------------------------------------------
    # Control
    # ----------------------------------------------------------

    def cancel(self):
        """Stop the walk at the next unit boundary."""
        self._cancel_requested = True

    def _is_cancelled(self) -> bool:
        if self._cancel_requested:
            return True
        return self.should_cancel is not None and bool(self.should_cancel())

    def read(self, unit: str) -> str:
        """Latest fragment of unit: the edited copy when there is one."""
        if unit in self.edited_units:
            return self.edited_units[unit]
        return self.container.read_unit(unit)

    def report(self) -> WalkReport:
        return WalkReport(
            records=list(self.records),
            edited_units=dict(self.edited_units),
            state=self.state,
        )

    # ----------------------------------------------------------
    # Walk
    # ----------------------------------------------------------

    def run(self) -> WalkReport:
        """
        Walk every rule over the units.

        Returns:
            WalkReport with the change records in the order they happened

        Raises:
            ContainerError: a unit could not be read; the walk stops there
        """
        if self.state != STATE_IDLE:
            raise RuntimeError(f"Walker already used (state: {self.state})")
        self.state = STATE_WALKING

        try:
            units = list(self.container.list_text_units())
            for rule_index, rule in enumerate(self.rules):
                if self.verbose:
                    print(f"[{rule_index + 1}/{len(self.rules)}] {rule.describe()} "
                          f"({rule.scope.value})")
                if not self._run_rule(rule, units):
                    break
        except Exception:
            self.state = STATE_FAILED
            raise

        if self.state == STATE_WALKING:
            self.state = STATE_DONE
            if self.auto_commit:
                self.commit()
        return self.report()

    def _run_rule(self, rule: Rule, units: List[str]) -> bool:
        """Apply one rule; False when the walk was cancelled."""
        total = 0
        for unit in units:
            if self._is_cancelled():
                self.state = STATE_CANCELLED
                if self.verbose:
                    print(f"  [Cancelled] Stopped before {unit}")
                return False
            count = self._apply_to_unit(rule, unit)
            total += count
            if count and rule.first_only:
                break

        if total == 0:
            self.records.append(ChangeRecord(
                unit=None, rule=rule, count_applied=0, method=None,
                status=STATUS_NOT_FOUND, message="No occurrence found",
            ))
            if self.verbose:
                print(f"  [Not found] {format_text_preview(rule.find)}")
        return True

    def _apply_to_unit(self, rule: Rule, unit: str) -> int:
        """Try the block pass, then the cross-block pass. Returns the accepted count."""
        fragment = self.read(unit)
        blocks = find_blocks(fragment, self.text_tag)
        if not blocks:
            return 0

        edit = substitute_blocks(fragment, rule, self.text_tag, blocks)
        if edit.applied_count:
            method = METHOD_SINGLE_BLOCK
            new_fragment = edit.fragment
            count = edit.applied_count
            before, after = edit.before_snippet, edit.after_snippet
        else:
            cross = substitute_across_blocks(fragment, blocks, rule, self.text_tag,
                                             verbose=self.verbose)
            for skipped in cross.skipped:
                self.records.append(ChangeRecord(
                    unit=unit, rule=rule, count_applied=0, method=METHOD_CROSS_BLOCK,
                    before_snippet=skipped.snippet, status=STATUS_SKIPPED,
                    message=f"Elements {skipped.start_block}-{skipped.end_block}: {skipped.reason}",
                ))
            if not cross.applied_count:
                return 0
            method = METHOD_CROSS_BLOCK
            new_fragment = cross.fragment
            count = cross.applied_count
            before, after = cross.before_snippet, cross.after_snippet

        error = check_well_formed(new_fragment)
        if error is not None:
            if self.verbose:
                print(f"  [Validate] Discarded edit in {unit} for {rule.describe()}: {error}")
            self.records.append(ChangeRecord(
                unit=unit, rule=rule, count_applied=0, method=method,
                before_snippet=before, after_snippet=after,
                status=STATUS_REJECTED, message=f"Edited story is not well-formed: {error}",
            ))
            return 0

        self.edited_units[unit] = new_fragment
        self.records.append(ChangeRecord(
            unit=unit, rule=rule, count_applied=count, method=method,
            before_snippet=before, after_snippet=after, status=STATUS_APPLIED,
        ))
        if self.verbose:
            print(f"  [Applied] {unit} x{count} ({method}): {before}")
        return count

    # ----------------------------------------------------------
    # Output
    # ----------------------------------------------------------

    def commit(self) -> List[str]:
        """
        Write every edited unit back through the container, container order.

        Allowed after a completed or cancelled walk; the caller decides
        whether a partial run is worth keeping.

        Returns:
            Units written
        """
        if self.state not in (STATE_DONE, STATE_CANCELLED):
            raise RuntimeError(f"Nothing to commit in state: {self.state}")
        written = []
        for unit in self.container.list_text_units():
            if unit in self.edited_units:
                self.container.write_unit(unit, self.edited_units[unit])
                written.append(unit)
        return written
