from __future__ import annotations

import json
from pathlib import Path

import vobject

from .model import ContactRecord

# Slot prefix → TEL TYPE, chosen so a re-import lands in the same slots.
_TEL_TYPES = (("office", "WORK"), ("mobile", "CELL"), ("home", "HOME"))


def export_json(records: list[ContactRecord]) -> str:
    """phonebook.json as served by /api/export and read back by the JSON importer."""
    return json.dumps({"entries": [r.to_dict() for r in records]}, indent=2, ensure_ascii=False)


def record_to_vcard(record: ContactRecord) -> vobject.base.Component:
    v = vobject.vCard()
    v.add("version").value = "3.0"
    v.add("n").value = vobject.vcard.Name(family=record.surname, given=record.given_name)
    full_name = " ".join(p for p in (record.given_name, record.surname) if p)
    v.add("fn").value = full_name or (record.phones() or ["Unnamed"])[0]
    for prefix, tel_type in _TEL_TYPES:
        for slot in (1, 2):
            number = getattr(record, f"{prefix}{slot}")
            if number:
                tel = v.add("tel")
                tel.value = number
                tel.type_param = tel_type
    if record.id:
        v.add("uid").value = record.id
    v.add("prodid").value = "-//gigaset-phonebook//EN"
    return v


def export_vcards(records: list[ContactRecord]) -> str:
    return "".join(record_to_vcard(r).serialize() for r in records)


def write_export(text: str, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path
