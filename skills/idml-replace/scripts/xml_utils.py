#!/usr/bin/env python3
"""
ABOUTME: XML utility functions for story markup editing
ABOUTME: Provides sanitization, text escaping and the post-edit well-formedness check
"""

from typing import Optional

from lxml import etree


# Parser used for the post-edit check: never resolve entities or touch the network
_CHECK_PARSER = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    load_dtd=False,
    huge_tree=True,
)


def sanitize_xml_string(text: str) -> str:
    """
    Remove control characters that are illegal in XML 1.0.

    XML 1.0 allows: #x9 (tab), #xA (LF), #xD (CR), and #x20-#xD7FF, #xE000-#xFFFD, #x10000-#x10FFFF
    This function removes all other control characters (0x00-0x08, 0x0B, 0x0C, 0x0E-0x1F).

    Args:
        text: Text that may contain control characters

    Returns:
        Sanitized text safe for XML. Returns input unchanged if not a non-empty string.
    """
    if not text or not isinstance(text, str):
        return text
    # Keep: \t (0x09), \n (0x0A), \r (0x0D)
    illegal_chars = ''.join(
        chr(c) for c in range(0x20)
        if c not in (0x09, 0x0A, 0x0D)
    )
    return text.translate(str.maketrans('', '', illegal_chars))


def escape_xml_text(text: str) -> str:
    """
    Escape replacement text for insertion as element content.

    This is the only place where plain text becomes markup: callers work
    with decoded text everywhere else and escape exactly once on insert.
    """
    text = sanitize_xml_string(text) or ''
    return (text
        .replace('&', '&amp;')
        .replace('<', '&lt;')
        .replace('>', '&gt;')
        .replace('"', '&quot;'))


def check_well_formed(fragment: str) -> Optional[str]:
    """
    Parse a unit fragment and report whether it is well-formed XML.

    Args:
        fragment: Complete unit markup (may carry an XML declaration)

    Returns:
        None when the fragment parses, otherwise the parser's error message
    """
    if not fragment or not fragment.strip():
        return "empty document"
    try:
        etree.fromstring(fragment.encode('utf-8'), _CHECK_PARSER)
    except etree.XMLSyntaxError as e:
        return str(e)
    return None
