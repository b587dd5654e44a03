"""
Tests for xml_utils module - sanitization, escaping and the well-formedness check
"""

import sys
from pathlib import Path

# Add scripts directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "skills" / "idml-replace" / "scripts"))

from xml_utils import check_well_formed, escape_xml_text, sanitize_xml_string  # type: ignore


class TestSanitizeXmlString:
    """Tests for sanitize_xml_string function"""

    def test_empty_string(self):
        """Empty string returns empty string"""
        assert sanitize_xml_string("") == ""

    def test_none_returns_none(self):
        """None input returns None"""
        assert sanitize_xml_string(None) is None

    def test_preserves_allowed_whitespace(self):
        """Tab, LF, and CR are preserved"""
        text = "Line1\tTabbed\nLine2\rLine3"
        assert sanitize_xml_string(text) == text

    def test_removes_control_chars(self):
        """0x00-0x08, 0x0B, 0x0C and 0x0E-0x1F are removed"""
        assert sanitize_xml_string("A\x00B\x07C\x0BD\x0CE\x1FF") == "ABCDEF"

    def test_unicode_preserved(self):
        """Unicode characters above 0x1F are preserved"""
        text = "Hello 世界 café ok"
        assert sanitize_xml_string(text) == text


class TestEscapeXmlText:
    """Tests for escape_xml_text function"""

    def test_plain_text_unchanged(self):
        assert escape_xml_text("Hello World") == "Hello World"

    def test_escapes_markup_chars(self):
        """&, <, > and double quote become entities"""
        assert escape_xml_text('a & b <c> "d"') == 'a &amp; b &lt;c&gt; &quot;d&quot;'

    def test_ampersand_escaped_once(self):
        """Already-escaped looking text is treated as plain text"""
        assert escape_xml_text("&amp;") == "&amp;amp;"

    def test_strips_control_chars(self):
        assert escape_xml_text("A\x00B") == "AB"

    def test_empty(self):
        assert escape_xml_text("") == ""


class TestCheckWellFormed:
    """Tests for check_well_formed function"""

    def test_well_formed_fragment(self):
        assert check_well_formed("<Story><Content>Hi</Content></Story>") is None

    def test_with_xml_declaration(self):
        """Story entries carry an encoding declaration"""
        xml = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n<Story><Content>Hi</Content></Story>'
        assert check_well_formed(xml) is None

    def test_unbalanced_tags(self):
        error = check_well_formed("<Story><Content>Hi</Story>")
        assert error is not None
        assert error

    def test_unclosed_root(self):
        assert check_well_formed("<Story><Content>Hi</Content>") is not None

    def test_bare_ampersand_rejected(self):
        assert check_well_formed("<Story><Content>Tom & Jerry</Content></Story>") is not None

    def test_empty_document(self):
        assert check_well_formed("") == "empty document"
        assert check_well_formed("   ") == "empty document"

    def test_processing_instruction_allowed(self):
        assert check_well_formed("<Story><Content>A<?ACE 7?>B</Content></Story>") is None
