"""Gigaset LocalDirectory XML.

The base station downloads this document and accepts at most 32 characters
per attribute, so every value is cut before it is escaped.
"""
from __future__ import annotations

from .model import MAX_FIELD_LENGTH, TEXT_FIELDS, ContactRecord, wire_name

_XML_HEADER = '<?xml version="1.0" encoding="utf-8"?>\n<!DOCTYPE LocalDirectory>\n'

_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
    ("\n", " "),
    ("\r", ""),
)


def escape_xml(value: str) -> str:
    if not value:
        return ""
    for char, entity in _ESCAPES:
        value = value.replace(char, entity)
    return value


def truncate_field(value: str, max_length: int = MAX_FIELD_LENGTH) -> str:
    return (value or "")[:max_length]


def render_entry(record: ContactRecord) -> str:
    attrs = " ".join(
        f'{wire_name(f)}="{escape_xml(truncate_field(getattr(record, f)))}"'
        for f in TEXT_FIELDS
    )
    return f"  <entry {attrs}/>"


def render_phonebook_xml(records: list[ContactRecord]) -> str:
    lines = [_XML_HEADER + "<list>"]
    lines.extend(render_entry(r) for r in records)
    lines.append("</list>")
    return "\n".join(lines)
