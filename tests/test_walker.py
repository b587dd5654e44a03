"""
Tests for DocumentWalker: rule-over-units ordering, overlay reads, records and validation
"""

import pytest

from _idml_helpers import DictContainer

import idml_edit.block_substitutor as block_substitutor
import idml_edit.cross_block as cross_block
from idml_edit.common import (
    METHOD_CROSS_BLOCK,
    METHOD_SINGLE_BLOCK,
    STATUS_APPLIED,
    STATUS_NOT_FOUND,
    STATUS_REJECTED,
    STATUS_SKIPPED,
    ContainerError,
    InvalidRuleError,
    Rule,
    Scope,
)
from idml_edit.walker import (
    STATE_CANCELLED,
    STATE_DONE,
    STATE_FAILED,
    STATE_IDLE,
    DocumentWalker,
)


ALL = Scope.ALL_OCCURRENCES


def _walk(units, rules, **kwargs):
    container = DictContainer(units)
    walker = DocumentWalker(container, rules, text_tag="T", **kwargs)
    return container, walker, walker.run()


class TestOrdering:
    """Rules compose left to right over cumulative edits"""

    def test_order_sensitivity(self):
        container, _, report = _walk(
            {"u1": "<S><T>A</T></S>"},
            [Rule("A", "B", scope=ALL), Rule("B", "C", scope=ALL)],
        )
        assert container.units["u1"] == "<S><T>C</T></S>"
        assert report.total_applied == 2
        assert [r.status for r in report.records] == [STATUS_APPLIED, STATUS_APPLIED]

    def test_reversed_rule_order_differs(self):
        container, _, _ = _walk(
            {"u1": "<S><T>A</T></S>"},
            [Rule("B", "C", scope=ALL), Rule("A", "B", scope=ALL)],
        )
        assert container.units["u1"] == "<S><T>B</T></S>"

    def test_edited_unit_read_from_overlay(self):
        container, _, _ = _walk(
            {"u1": "<S><T>A</T></S>"},
            [Rule("A", "B"), Rule("B", "C")],
        )
        # Each rule reads u1; the second one sees the first one's edit
        assert container.reads == ["u1"]
        assert container.units["u1"] == "<S><T>C</T></S>"


class TestScope:
    def test_first_only_stops_early(self):
        container, _, report = _walk(
            {"u1": "<S><T>X</T></S>", "u2": "<S><T>X</T></S>"},
            [Rule("X", "Y")],
        )
        assert container.units == {"u1": "<S><T>Y</T></S>", "u2": "<S><T>X</T></S>"}
        assert len(report.records) == 1
        assert report.records[0].unit == "u1"
        assert container.reads == ["u1"]

    def test_first_only_skips_units_without_match(self):
        container, _, report = _walk(
            {"u1": "<S><T>none</T></S>", "u2": "<S><T>X</T></S>", "u3": "<S><T>X</T></S>"},
            [Rule("X", "Y")],
        )
        assert container.writes == ["u2"]
        assert report.records[0].unit == "u2"

    def test_all_occurrences_visits_every_unit(self):
        container, _, report = _walk(
            {"u1": "<S><T>X X</T></S>", "u2": "<S><T>none</T></S>", "u3": "<S><T>X</T></S>"},
            [Rule("X", "Y", scope=ALL)],
        )
        assert container.units["u1"] == "<S><T>Y Y</T></S>"
        assert container.units["u3"] == "<S><T>Y</T></S>"
        assert [(r.unit, r.count_applied) for r in report.records] == [("u1", 2), ("u3", 1)]
        assert report.total_applied == 3


class TestNoOp:
    def test_missing_phrase_leaves_units_identical(self):
        units = {"u1": "<S><T>Tom &amp; Jerry</T>\n  <T>x</T></S>", "u2": "<S><T>y</T></S>"}
        container, _, report = _walk(dict(units), [Rule("absent", "z", scope=ALL)])
        assert container.units == units
        assert container.writes == []
        assert report.edited_units == {}

    def test_not_found_record(self):
        _, _, report = _walk({"u1": "<S><T>a</T></S>"}, [Rule("absent", "z")])
        assert len(report.records) == 1
        record = report.records[0]
        assert record.status == STATUS_NOT_FOUND
        assert record.unit is None
        assert record.count_applied == 0
        assert report.total_applied == 0

    def test_unit_without_text_elements(self):
        container, _, report = _walk({"u1": "<S><Other>a</Other></S>"}, [Rule("a", "b")])
        assert container.writes == []
        assert report.records[0].status == STATUS_NOT_FOUND


class TestMethods:
    def test_single_block_method(self):
        _, _, report = _walk({"u1": "<S><T>Hello World</T></S>"}, [Rule("World", "There")])
        assert report.records[0].method == METHOD_SINGLE_BLOCK

    def test_cross_block_stitching(self):
        container, _, report = _walk({"u1": "<S><T>Hello </T><T>World</T></S>"},
                                     [Rule("Hello World", "Hi")])
        assert container.units["u1"] == "<S><T>Hi</T></S>"
        assert report.records[0].method == METHOD_CROSS_BLOCK
        assert report.records[0].status == STATUS_APPLIED

    def test_cross_block_refusal(self):
        fragment = "<S><T>Hello </T><Other/><T>World</T></S>"
        container, _, report = _walk({"u1": fragment}, [Rule("Hello World", "Hi")])
        assert container.units["u1"] == fragment
        assert report.total_applied == 0
        statuses = [r.status for r in report.records]
        assert statuses == [STATUS_SKIPPED, STATUS_NOT_FOUND]
        assert report.problems[0].unit == "u1"

    def test_cross_block_unbalanced_skip(self, monkeypatch):
        monkeypatch.setattr(cross_block, "escape_xml_text", lambda text: text)
        fragment = "<S><T>Hello </T><T>World</T></S>"
        container, walker, report = _walk({"u1": fragment}, [Rule("Hello World", "<B>Hi")])
        assert container.units["u1"] == fragment
        assert walker.edited_units == {}
        assert [r.status for r in report.records] == [STATUS_SKIPPED, STATUS_NOT_FOUND]
        assert report.records[0].method == METHOD_CROSS_BLOCK
        assert cross_block.SKIP_UNBALANCED in report.records[0].message

    def test_cross_block_not_tried_after_block_match(self):
        container, _, report = _walk(
            {"u1": "<S><T>Hello World</T><T>Hello </T><T>World</T></S>"},
            [Rule("Hello World", "Hi", scope=ALL)],
        )
        assert container.units["u1"] == "<S><T>Hi</T><T>Hello </T><T>World</T></S>"
        assert [r.method for r in report.records] == [METHOD_SINGLE_BLOCK]

    def test_entity_safety_through_walk(self):
        container, _, _ = _walk({"u1": "<S><T>Tom &amp; Jerry</T></S>"}, [Rule("Tom & Jerry", "Cats")])
        assert container.units["u1"] == "<S><T>Cats</T></S>"

    def test_whole_words_through_walk(self):
        container, _, _ = _walk(
            {"u1": "<S><T>concatenate cats</T></S>", "u2": "<S><T>a cat ran</T></S>"},
            [Rule("cat", "dog", whole_words=True, scope=ALL)],
        )
        assert container.units["u1"] == "<S><T>concatenate cats</T></S>"
        assert container.units["u2"] == "<S><T>a dog ran</T></S>"


class TestValidation:
    def test_malformed_result_rejected(self, monkeypatch):
        """An edit that would leave unbalanced tags is discarded with a diagnostic"""
        monkeypatch.setattr(block_substitutor, "escape_xml_text", lambda text: text)
        fragment = "<S><T>X</T></S>"
        container, walker, report = _walk({"u1": fragment}, [Rule("X", "<Broken>")])
        assert container.units["u1"] == fragment
        assert container.writes == []
        assert walker.edited_units == {}
        record = report.records[0]
        assert record.status == STATUS_REJECTED
        assert record.unit == "u1"
        assert record.rule.find == "X"
        assert record.message
        assert report.records[-1].status == STATUS_NOT_FOUND

    def test_walk_continues_after_rejection(self, monkeypatch):
        monkeypatch.setattr(block_substitutor, "escape_xml_text", lambda text: text)
        container, _, report = _walk(
            {"u1": "<S><T>X</T></S>", "u2": "<S><T>X</T></S>"},
            [Rule("X", "<Broken>"), Rule("X", "fine", scope=ALL)],
        )
        assert container.units["u1"] == "<S><T>fine</T></S>"
        assert container.units["u2"] == "<S><T>fine</T></S>"
        assert report.records[0].status == STATUS_REJECTED

    def test_already_malformed_unit_rejected(self):
        fragment = "<S><T>X</T>"
        container, _, report = _walk({"u1": fragment}, [Rule("X", "Y")])
        assert container.units["u1"] == fragment
        assert report.records[0].status == STATUS_REJECTED


class TestLifecycle:
    def test_states(self):
        container = DictContainer({"u1": "<S><T>a</T></S>"})
        walker = DocumentWalker(container, [Rule("a", "b")], text_tag="T")
        assert walker.state == STATE_IDLE
        report = walker.run()
        assert walker.state == STATE_DONE
        assert report.state == STATE_DONE

    def test_run_only_once(self):
        walker = DocumentWalker(DictContainer({"u1": "<S/>"}), [Rule("a", "b")], text_tag="T")
        walker.run()
        with pytest.raises(RuntimeError):
            walker.run()

    def test_invalid_rule_rejected_before_walk(self):
        container = DictContainer({"u1": "<S><T>a</T></S>"})
        with pytest.raises(InvalidRuleError):
            DocumentWalker(container, [Rule("a", "b"), ("a", "b")])
        assert container.reads == []

    def test_auto_commit_disabled(self):
        container, walker, report = _walk({"u1": "<S><T>a</T></S>"}, [Rule("a", "b")], auto_commit=False)
        assert container.writes == []
        assert report.edited_units == {"u1": "<S><T>b</T></S>"}
        assert walker.commit() == ["u1"]
        assert container.units["u1"] == "<S><T>b</T></S>"

    def test_commit_in_container_order(self):
        container, _, _ = _walk(
            {"u1": "<S><T>b</T></S>", "u2": "<S><T>a</T></S>"},
            [Rule("a", "x"), Rule("b", "y")],
        )
        assert container.writes == ["u1", "u2"]

    def test_cancel_before_start(self):
        container, walker, report = _walk({"u1": "<S><T>a</T></S>"}, [Rule("a", "b")],
                                          should_cancel=lambda: True)
        assert report.state == STATE_CANCELLED
        assert report.records == []
        assert container.reads == []

    def test_cancel_between_units_keeps_applied_edits(self):
        checks = []

        def should_cancel():
            checks.append(1)
            return len(checks) > 1

        container, walker, report = _walk(
            {"u1": "<S><T>a</T></S>", "u2": "<S><T>a</T></S>"},
            [Rule("a", "b", scope=ALL)],
            should_cancel=should_cancel,
        )
        assert report.state == STATE_CANCELLED
        assert report.edited_units == {"u1": "<S><T>b</T></S>"}
        # Partial runs are not written unless the caller asks for it
        assert container.writes == []
        assert walker.commit() == ["u1"]

    def test_cancel_method(self):
        container = DictContainer({"u1": "<S><T>a</T></S>"})
        walker = DocumentWalker(container, [Rule("a", "b")], text_tag="T")
        walker.cancel()
        assert walker.run().state == STATE_CANCELLED

    def test_container_error_is_fatal(self):
        class BrokenContainer(DictContainer):
            def list_text_units(self):
                return ["missing"]

        walker = DocumentWalker(BrokenContainer({}), [Rule("a", "b")], text_tag="T")
        with pytest.raises(ContainerError):
            walker.run()
        assert walker.state == STATE_FAILED

    def test_commit_before_run_fails(self):
        walker = DocumentWalker(DictContainer({}), [Rule("a", "b")])
        with pytest.raises(RuntimeError):
            walker.commit()

    def test_verbose_output(self, capsys):
        _walk({"u1": "<S><T>Hello </T><Other/><T>World</T></S>"}, [Rule("Hello World", "Hi")],
              verbose=True)
        out = capsys.readouterr().out
        assert "[1/1]" in out
        assert "[Skip]" in out
        assert "[Not found]" in out
