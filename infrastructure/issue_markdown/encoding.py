"""Reversible encoding for values embedded in HTML comments.

A raw value that contains a newline or `-->` would end the comment early,
so those (and values that already look encoded) are stored as Base64.
"""

import base64
import binascii
import re

BASE64_PREFIX = "base64:"


def encode_metadata_value(value: str) -> str:
    if "\n" in value or "\r" in value or "-->" in value or value.startswith(BASE64_PREFIX):
        return BASE64_PREFIX + base64.b64encode(value.encode("utf-8")).decode("ascii")
    return value


def decode_metadata_value(value: str) -> str:
    if not value.startswith(BASE64_PREFIX):
        return value
    try:
        return base64.b64decode(value[len(BASE64_PREFIX):], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        # hand-edited payload; keep what the human wrote
        return value


# Lines the parser treats as structure: `###` section headings and the
# top-level section headers. Text lines like these get one leading backslash.
_STRUCTURAL_LINE = r"\\*(?:###|## (?:Subtasks|Task Tree|Task Details)[ \t]*$)"
_ESCAPE_PATTERN = re.compile(rf"^(?={_STRUCTURAL_LINE})", re.MULTILINE)
_UNESCAPE_PATTERN = re.compile(rf"^\\(?={_STRUCTURAL_LINE})", re.MULTILINE)


def escape_section_text(text: str) -> str:
    return _ESCAPE_PATTERN.sub("\\\\", text)


def unescape_section_text(text: str) -> str:
    return _UNESCAPE_PATTERN.sub("", text)
