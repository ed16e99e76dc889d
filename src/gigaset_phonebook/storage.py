"""storage.py — the phonebook JSON file.

The whole phonebook lives in one file, ``data/phonebook.json``::

    {"entries": [{"id": "...", "surname": "...", "name": "...", "office1": "...", ...}]}

Every mutation is a read-modify-write of that file. The new content is
written to a temp file in the same directory and renamed over the old one, so
a failed write leaves the previous phonebook in place. A lock serialises the
cycle; after each successful write the registered listeners run (the XML
cache drops its copy).
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Iterable

from .errors import NotFoundError
from .model import PHONE_FIELDS, TEXT_FIELDS, ContactRecord, MutationIntent, MutationOp, attr_name

logger = logging.getLogger(__name__)

PHONEBOOK_FILE = "phonebook.json"


@dataclass
class ApplyResult:
    inserted: int = 0
    updated: int = 0
    missing: int = 0


def _generate_id() -> str:
    return str(uuid.uuid4())


def matches_search(record: ContactRecord, search: str) -> bool:
    """Names match case-insensitively, phone slots by plain substring."""
    needle = search.lower()
    if needle in record.surname.lower() or needle in record.given_name.lower():
        return True
    return any(search in getattr(record, f) for f in PHONE_FIELDS)


def update_fields(updates: dict[str, Any]) -> dict[str, str]:
    """Pick the known fields out of an update payload.

    Accepts wire keys ("name") and attribute keys ("given_name"). Keys that
    are absent stay absent, so the stored value is kept; ``None`` clears.
    """
    out: dict[str, str] = {}
    for key, value in updates.items():
        attr = attr_name(key)
        if attr in TEXT_FIELDS:
            out[attr] = "" if value is None else str(value)
    return out


class PhonebookStore:

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / PHONEBOOK_FILE
        self._lock = threading.RLock()
        self._listeners: list[Callable[[], None]] = []

    # ── Persistence ───────────────────────────────────────────────────────────

    def add_listener(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def _load(self) -> list[ContactRecord]:
        if not self.path.exists():
            return []
        data = json.loads(self.path.read_text(encoding="utf-8"))
        records = [ContactRecord.from_dict(e) for e in data.get("entries", [])]
        unnamed = [r for r in records if not r.id]
        if unnamed:
            # Hand-edited files may lack ids; assign them once and persist.
            for r in unnamed:
                r.id = _generate_id()
            with self._lock:
                self._save(records)
            logger.info("Assigned ids to %d entries", len(unnamed))
        return records

    def _save(self, records: list[ContactRecord]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({"entries": [r.to_dict() for r in records]}, indent=2, ensure_ascii=False)
        fd, tmp = tempfile.mkstemp(dir=self.data_dir, prefix=".phonebook-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.info("Saved %d entries to %s", len(records), self.path)
        for callback in self._listeners:
            callback()

    @property
    def last_modified(self) -> float | None:
        return self.path.stat().st_mtime if self.path.exists() else None

    # ── Queries ───────────────────────────────────────────────────────────────

    def list_entries(self, search: str | None = None) -> list[ContactRecord]:
        records = self._load()
        if search:
            records = [r for r in records if matches_search(r, search)]
        return records

    def get_entry(self, entry_id: str) -> ContactRecord:
        for r in self._load():
            if r.id == entry_id:
                return r
        raise NotFoundError(entry_id)

    # ── Mutations ─────────────────────────────────────────────────────────────

    def create_entry(self, fields: dict[str, Any] | ContactRecord) -> ContactRecord:
        record = fields if isinstance(fields, ContactRecord) else ContactRecord.from_dict(fields)
        record = replace(record, id=_generate_id())
        with self._lock:
            records = self._load()
            records.append(record)
            self._save(records)
        return record

    def update_entry(self, entry_id: str, updates: dict[str, Any]) -> ContactRecord:
        fields = update_fields(updates)
        with self._lock:
            records = self._load()
            for i, r in enumerate(records):
                if r.id == entry_id:
                    records[i] = replace(r, **fields)
                    self._save(records)
                    return records[i]
        raise NotFoundError(entry_id)

    def delete_entry(self, entry_id: str) -> None:
        with self._lock:
            records = self._load()
            kept = [r for r in records if r.id != entry_id]
            if len(kept) == len(records):
                raise NotFoundError(entry_id)
            self._save(kept)

    def delete_entries(self, ids: Iterable[str]) -> int:
        wanted = set(ids)
        with self._lock:
            records = self._load()
            kept = [r for r in records if r.id not in wanted]
            deleted = len(records) - len(kept)
            self._save(kept)
        return deleted

    def import_entries(self, records: Iterable[ContactRecord]) -> list[ContactRecord]:
        """Append records as new entries, each with a fresh id."""
        new = [replace(r, id=_generate_id()) for r in records]
        with self._lock:
            existing = self._load()
            self._save(existing + new)
        return new

    def replace_all(self, records: Iterable[ContactRecord]) -> list[ContactRecord]:
        new = [replace(r, id=_generate_id()) for r in records]
        with self._lock:
            self._save(new)
        return new

    def apply(self, intents: list[MutationIntent]) -> ApplyResult:
        """Run a resolved import in one write.

        Updates aimed at an id that has disappeared are counted, not raised,
        so the rest of the batch still lands.
        """
        result = ApplyResult()
        if not intents:
            return result
        with self._lock:
            records = self._load()
            position = {r.id: i for i, r in enumerate(records)}
            for intent in intents:
                if intent.op is MutationOp.INSERT:
                    records.append(replace(intent.record, id=_generate_id()))
                    result.inserted += 1
                    continue
                i = position.get(intent.record.id)
                if i is None:
                    logger.warning("Update skipped, entry %s no longer exists", intent.record.id)
                    result.missing += 1
                    continue
                records[i] = replace(records[i], **update_fields(intent.fields))
                result.updated += 1
            self._save(records)
        return result
