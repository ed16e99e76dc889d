from __future__ import annotations

import json
import logging
import re
from enum import StrEnum
from pathlib import Path
from typing import Any

import vobject

from .errors import ParseError
from .model import ContactRecord

logger = logging.getLogger(__name__)


class SourceFormat(StrEnum):
    VCARD = "vcard"
    JSON = "json"

    @classmethod
    def parse(cls, value: str | SourceFormat) -> SourceFormat:
        if isinstance(value, SourceFormat):
            return value
        key = (value or "").strip().lower().lstrip(".")
        if key in ("vcard", "vcf", "vcards", "text/vcard", "text/x-vcard"):
            return cls.VCARD
        if key in ("json", "application/json"):
            return cls.JSON
        raise ParseError(f"Unknown source format: {value!r}")

    @classmethod
    def for_path(cls, path: Path) -> SourceFormat:
        return cls.JSON if path.suffix.lower() == ".json" else cls.VCARD


# ── Pre-parse sanitisation ─────────────────────────────────────────────────────
#
# iCloud exports group properties as itemN.PROP and attach Apple X- labels to
# the group. vobject keeps the group, but the X- lines only add noise, and the
# double-dot / bare-dot variants trip its line parser.
#
#   item1..TEL   double-dot group prefix  → strip prefix, keep property
#   item1.TEL    single-dot group prefix  → strip prefix, keep property
#   item1.X-*    Apple extension on group → drop line entirely
#   .TEL         bare leading dot         → strip the dot, keep property
#   .X-*         bare leading dot + X-    → drop line entirely

_ITEM_DOUBLE_DOT = re.compile(r"^item\d+\.\.", re.IGNORECASE)
_ITEM_SINGLE_STD = re.compile(r"^item\d+\.((?!X-)[A-Z])", re.IGNORECASE)
_ITEM_X_PROP     = re.compile(r"^item\d+\.X-", re.IGNORECASE)
_BARE_DOT_X      = re.compile(r"^\.(X-)", re.IGNORECASE)
_BARE_DOT_STD    = re.compile(r"^\.((?!X-)[A-Z])", re.IGNORECASE)

_BEGIN_VCARD = re.compile(r"(?=^BEGIN:VCARD)", re.IGNORECASE | re.MULTILINE)
_END_VCARD = re.compile(r"^END:VCARD\s*$", re.IGNORECASE)


def _sanitise_vcf(data: str, source_label: str) -> str:
    """Clean up known malformed line patterns before vobject sees them."""
    out: list[str] = []
    skipped = fixed = 0

    for line in data.splitlines():
        if _ITEM_X_PROP.match(line) or _BARE_DOT_X.match(line):
            skipped += 1
            continue

        if _ITEM_DOUBLE_DOT.match(line):
            line = _ITEM_DOUBLE_DOT.sub("", line)
            fixed += 1
        elif _ITEM_SINGLE_STD.match(line):
            line = _ITEM_SINGLE_STD.sub(r"\1", line)
            fixed += 1
        elif _BARE_DOT_STD.match(line):
            line = _BARE_DOT_STD.sub(r"\1", line)
            fixed += 1

        out.append(line)

    if skipped or fixed:
        logger.debug("%s: %d line(s) fixed, %d dropped", source_label, fixed, skipped)

    return "\n".join(out)


def split_vcard_blocks(text: str) -> list[str]:
    """Cut a stream into one string per card, each closed by END:VCARD.

    Text before the first BEGIN:VCARD is discarded, anything after a card's
    END line is ignored, and a card that never ends is closed for it.
    """
    blocks: list[str] = []
    for chunk in _BEGIN_VCARD.split(text):
        if not chunk.strip() or not chunk.upper().startswith("BEGIN:VCARD"):
            continue
        lines: list[str] = []
        for line in chunk.splitlines():
            lines.append(line)
            if _END_VCARD.match(line):
                break
        else:
            lines.append("END:VCARD")
        blocks.append("\n".join(lines) + "\n")
    return blocks


# ── vCard field extraction ─────────────────────────────────────────────────────

_MOBILE_TYPES = {"CELL", "MOBILE", "IPHONE"}
_OFFICE_TYPES = {"WORK", "OFFICE", "MAIN"}


def _flatten(value: Any) -> str:
    """vobject hands back str or list[str] for structured components."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ",".join(_flatten(v) for v in value)
    return str(value)


def _tel_types(line: vobject.base.ContentLine) -> set[str]:
    types: set[str] = set()
    for raw in line.params.get("TYPE", []):
        types.update(t.strip().upper() for t in str(raw).split(","))
    # vCard 2.1 style: TEL;CELL:...
    types.update(str(p).upper() for p in line.singletonparams)
    return types


def _tel_value(line: vobject.base.ContentLine) -> str:
    # vobject has already unescaped the value; ENCODING=b lines carry bytes.
    if not isinstance(line.value, str):
        return ""
    value = line.value.strip()
    if value.lower().startswith("tel:"):
        value = value[4:].strip()
    return value


def _split_full_name(full_name: str) -> tuple[str, str]:
    """FN fallback: first token is the given name, the rest the surname."""
    tokens = full_name.split()
    if len(tokens) >= 2:
        return " ".join(tokens[1:]), tokens[0]
    return full_name, ""


def card_to_record(vc: vobject.base.Component) -> ContactRecord:
    record = ContactRecord()
    contents = vc.contents

    name_was_empty = False
    if "n" in contents:
        n = contents["n"][0].value
        record.surname = _flatten(getattr(n, "family", "")).strip()
        record.given_name = _flatten(getattr(n, "given", "")).strip()
        name_was_empty = not record.surname and not record.given_name

    if not record.has_name and "fn" in contents:
        full_name = _flatten(contents["fn"][0].value).strip()
        record.surname, record.given_name = _split_full_name(full_name)

    org = ""
    if "org" in contents:
        value = contents["org"][0].value
        if isinstance(value, (list, tuple)):
            first = value[0] if value else ""
        else:
            first = str(value).split(";")[0]
        org = _flatten(first).strip()

    if name_was_empty and org:
        record.surname = org
        record.given_name = ""

    office: list[str] = []
    mobile: list[str] = []
    home: list[str] = []
    for tel in contents.get("tel", []):
        number = _tel_value(tel)
        if not number:
            continue
        types = _tel_types(tel)
        if types & _MOBILE_TYPES:
            mobile.append(number)
        elif types & _OFFICE_TYPES:
            office.append(number)
        else:
            home.append(number)

    record.office1, record.office2 = (office + ["", ""])[:2]
    record.mobile1, record.mobile2 = (mobile + ["", ""])[:2]
    record.home1, record.home2 = (home + ["", ""])[:2]
    return record


def _is_worth_keeping(record: ContactRecord) -> bool:
    return record.has_name or bool(record.office1 or record.mobile1 or record.home1)


# ── Public API ─────────────────────────────────────────────────────────────────

def decode_bytes(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ParseError(f"File is not valid UTF-8 text: {exc.reason}") from exc


def parse_vcards(text: str, source_label: str = "upload") -> list[ContactRecord]:
    """Parse every card in a vCard stream into a candidate record."""
    data = _sanitise_vcf(text, source_label)
    records: list[ContactRecord] = []
    blocks = split_vcard_blocks(data)
    for i, block in enumerate(blocks, start=1):
        try:
            vc = vobject.readOne(block, ignoreUnreadable=True)
        except (vobject.base.VObjectError, StopIteration) as exc:
            logger.warning("%s: skipping unreadable card #%d: %s", source_label, i, exc)
            continue
        record = card_to_record(vc)
        if _is_worth_keeping(record):
            records.append(record)
    logger.debug("%s: %d card(s), %d kept", source_label, len(blocks), len(records))
    return records


def parse_phonebook_json(text: str) -> list[ContactRecord]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON file: {exc.msg}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
        raise ParseError("Invalid phonebook format: missing entries array")
    return [
        ContactRecord.from_dict(entry, keep_id=False)
        for entry in data["entries"]
        if isinstance(entry, dict)
    ]


def parse_source(
    source_format: str | SourceFormat,
    raw: bytes,
    source_label: str = "upload",
) -> list[ContactRecord]:
    fmt = SourceFormat.parse(source_format)
    text = decode_bytes(raw)
    if fmt is SourceFormat.JSON:
        return parse_phonebook_json(text)
    records = parse_vcards(text, source_label)
    if not records:
        raise ParseError("No valid contacts found in file")
    return records


def read_source_file(path: Path, source_format: str | None = None) -> list[ContactRecord]:
    fmt = SourceFormat.parse(source_format) if source_format else SourceFormat.for_path(path)
    return parse_source(fmt, path.read_bytes(), source_label=path.stem)
