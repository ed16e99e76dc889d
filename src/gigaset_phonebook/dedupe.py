from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .model import ContactRecord, DuplicateMatch, MatchType
from .phone import normalize_phone


@dataclass
class DetectionResult:
    new_candidates: list[ContactRecord] = field(default_factory=list)
    duplicates: list[DuplicateMatch] = field(default_factory=list)


def phone_keys(record: ContactRecord) -> list[str]:
    keys = (normalize_phone(p) for p in record.phones())
    return [k for k in keys if k]


def name_key(record: ContactRecord) -> tuple[str, str] | None:
    if not record.has_name:
        return None
    return record.surname.lower(), record.given_name.lower()


class DuplicateIndex:
    """Lookup tables over the existing store; the first record seen wins."""

    def __init__(self, existing: list[ContactRecord]):
        self.by_phone: dict[str, ContactRecord] = {}
        self.by_name: dict[tuple[str, str], ContactRecord] = {}
        for record in existing:
            for key in phone_keys(record):
                self.by_phone.setdefault(key, record)
            nk = name_key(record)
            if nk is not None:
                self.by_name.setdefault(nk, record)
        self._order = {id(r): i for i, r in enumerate(existing)}

    def match(self, candidate: ContactRecord) -> DuplicateMatch | None:
        # Phone beats name. Among phone hits the earliest record in the store
        # wins, whichever of the candidate's slots produced the hit.
        hits = [self.by_phone[k] for k in phone_keys(candidate) if k in self.by_phone]
        if hits:
            first = min(hits, key=lambda r: self._order[id(r)])
            return DuplicateMatch(candidate, first, MatchType.PHONE)
        nk = name_key(candidate)
        if nk is not None and nk in self.by_name:
            return DuplicateMatch(candidate, self.by_name[nk], MatchType.NAME)
        return None


def detect_duplicates(
    candidates: list[ContactRecord],
    existing: list[ContactRecord],
) -> DetectionResult:
    """Split candidates into new ones and ones that duplicate a stored record."""
    index = DuplicateIndex(existing)
    result = DetectionResult()
    for candidate in candidates:
        match = index.match(candidate)
        if match is None:
            result.new_candidates.append(candidate)
        else:
            result.duplicates.append(match)
    return result


# ── Phonebook scan ─────────────────────────────────────────────────────────────

@dataclass
class DuplicateGroup:
    match_type: MatchType
    key: str
    entries: list[ContactRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": str(self.match_type),
            "key": self.key,
            "entries": [e.to_dict() for e in self.entries],
        }


def find_phonebook_duplicates(records: list[ContactRecord]) -> list[DuplicateGroup]:
    """Group stored entries that share a number or a full name.

    Phone groups come first, in order of first appearance; an entry joins a
    group once even if several of its slots carry the same number. Name keys
    are rendered as "surname|given name", lowercased.
    """
    by_phone: dict[str, DuplicateGroup] = {}
    by_name: dict[tuple[str, str], DuplicateGroup] = {}
    for record in records:
        for key in dict.fromkeys(phone_keys(record)):
            group = by_phone.setdefault(key, DuplicateGroup(MatchType.PHONE, key))
            group.entries.append(record)
        nk = name_key(record)
        if nk is not None:
            group = by_name.setdefault(nk, DuplicateGroup(MatchType.NAME, "|".join(nk)))
            group.entries.append(record)
    groups = list(by_phone.values()) + list(by_name.values())
    return [g for g in groups if len(g.entries) > 1]


def entries_without_phone(records: list[ContactRecord]) -> list[ContactRecord]:
    return [r for r in records if not r.has_phone]
