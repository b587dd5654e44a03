"""
Tests for substitution inside single text-bearing elements
"""

import _idml_helpers  # noqa: F401

from idml_edit.block_substitutor import substitute_blocks, substitute_in_block
from idml_edit.common import Rule, Scope


ALL = Scope.ALL_OCCURRENCES


class TestSubstituteInBlock:
    """Single element content"""

    def test_simple_replace(self):
        edit = substitute_in_block("Hello World", Rule("World", "There"))
        assert edit.new_inner_text == "Hello There"
        assert edit.applied_count == 1

    def test_entity_safety(self):
        """Decoded comparison; no stray entity fragments left behind"""
        edit = substitute_in_block("Tom &amp; Jerry", Rule("Tom & Jerry", "Cats"))
        assert edit.new_inner_text == "Cats"

    def test_replacement_is_escaped(self):
        edit = substitute_in_block("A and B", Rule("and", "<&>"))
        assert edit.new_inner_text == "A &lt;&amp;&gt; B"

    def test_unknown_entity_preserved(self):
        edit = substitute_in_block("a&nbsp;cat", Rule("cat", "dog"))
        assert edit.new_inner_text == "a&nbsp;dog"

    def test_phrase_across_soft_line_break(self):
        edit = substitute_in_block("Say Hello\n   World now", Rule("Hello World", "Hi"))
        assert edit.new_inner_text == "Say Hi now"

    def test_first_only_replaces_one(self):
        edit = substitute_in_block("cat cat cat", Rule("cat", "dog"))
        assert edit.new_inner_text == "dog cat cat"
        assert edit.applied_count == 1

    def test_all_occurrences(self):
        edit = substitute_in_block("cat cat cat", Rule("cat", "dog", scope=ALL))
        assert edit.new_inner_text == "dog dog dog"
        assert edit.applied_count == 3

    def test_all_with_different_replacement_length(self):
        """Descending splice keeps earlier offsets valid"""
        edit = substitute_in_block("a &amp; a &amp; a", Rule("a", "xyz", scope=ALL))
        assert edit.new_inner_text == "xyz &amp; xyz &amp; xyz"

    def test_replacement_keeps_its_case(self):
        edit = substitute_in_block("HELLO there", Rule("hello", "Goodbye"))
        assert edit.new_inner_text == "Goodbye there"

    def test_case_sensitive_miss(self):
        edit = substitute_in_block("HELLO there", Rule("hello", "Goodbye", case_sensitive=True))
        assert edit.applied_count == 0
        assert edit.new_inner_text == "HELLO there"

    def test_whole_words(self):
        rule = Rule("cat", "dog", whole_words=True, scope=ALL)
        assert substitute_in_block("concatenate cats", rule).applied_count == 0
        assert substitute_in_block("a cat ran", rule).new_inner_text == "a dog ran"

    def test_embedded_markup_never_matched(self):
        edit = substitute_in_block("Hel<?ACE 7?>lo", Rule("Hello", "Bye"))
        assert edit.applied_count == 0

    def test_match_next_to_embedded_markup_keeps_it(self):
        edit = substitute_in_block("Hello<?ACE 7?> World", Rule("Hello", "Bye"))
        assert edit.new_inner_text == "Bye<?ACE 7?> World"

    def test_snippets(self):
        edit = substitute_in_block("Hello World", Rule("World", "There"))
        assert "[World]" in edit.before_snippet
        assert "[There]" in edit.after_snippet

    def test_first_only_override(self):
        edit = substitute_in_block("x x", Rule("x", "y"), first_only=False)
        assert edit.new_inner_text == "y y"


class TestSubstituteBlocks:
    """Unit-level block pass"""

    def test_first_mode_edits_first_matching_block_only(self):
        fragment = "<S><T>none</T><T>x</T><T>x</T></S>"
        edit = substitute_blocks(fragment, Rule("x", "y"), "T")
        assert edit.fragment == "<S><T>none</T><T>y</T><T>x</T></S>"
        assert edit.edited_blocks == [1]
        assert edit.applied_count == 1

    def test_all_mode_edits_every_block(self):
        fragment = "<S><T>x x</T><T>a</T><T>x</T></S>"
        edit = substitute_blocks(fragment, Rule("x", "long", scope=ALL), "T")
        assert edit.fragment == "<S><T>long long</T><T>a</T><T>long</T></S>"
        assert edit.applied_count == 3
        assert edit.edited_blocks == [0, 2]

    def test_markup_outside_blocks_untouched(self):
        fragment = '<S><T>cat</T><Note>cat</Note></S>'
        edit = substitute_blocks(fragment, Rule("cat", "dog", scope=ALL), "T")
        assert edit.fragment == '<S><T>dog</T><Note>cat</Note></S>'

    def test_no_match_returns_fragment_unchanged(self):
        fragment = "<S><T>abc</T></S>"
        edit = substitute_blocks(fragment, Rule("zzz", "y"), "T")
        assert edit.fragment is fragment
        assert edit.applied_count == 0

    def test_phrase_split_over_elements_not_matched(self):
        edit = substitute_blocks("<S><T>Hello </T><T>World</T></S>", Rule("Hello World", "Hi"), "T")
        assert edit.applied_count == 0
