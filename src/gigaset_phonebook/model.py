from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

# Gigaset LocalDirectory field limit, enforced at XML render time.
MAX_FIELD_LENGTH = 32

PHONE_FIELDS: tuple[str, ...] = ("office1", "office2", "mobile1", "mobile2", "home1", "home2")
NAME_FIELDS: tuple[str, ...] = ("surname", "given_name")
TEXT_FIELDS: tuple[str, ...] = NAME_FIELDS + PHONE_FIELDS

# On the wire (phonebook.json, the HTTP API, the device XML) the given name is "name".
_WIRE_NAMES = {"given_name": "name"}
_ATTR_NAMES = {v: k for k, v in _WIRE_NAMES.items()}


def wire_name(attr: str) -> str:
    return _WIRE_NAMES.get(attr, attr)


def attr_name(key: str) -> str:
    return _ATTR_NAMES.get(key, key)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


@dataclass
class ContactRecord:
    surname: str = ""
    given_name: str = ""
    office1: str = ""
    office2: str = ""
    mobile1: str = ""
    mobile2: str = ""
    home1: str = ""
    home2: str = ""
    id: str | None = None  # None until the store persists the record

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, keep_id: bool = True) -> ContactRecord:
        """Build a record from a wire dict, defaulting every missing field to ''."""
        values = {attr: _text(data.get(wire_name(attr))) for attr in TEXT_FIELDS}
        entry_id = data.get("id") if keep_id else None
        return cls(id=_text(entry_id) or None, **values)

    def to_dict(self, *, include_id: bool = True) -> dict[str, str]:
        out: dict[str, str] = {}
        if include_id and self.id is not None:
            out["id"] = self.id
        for attr in TEXT_FIELDS:
            out[wire_name(attr)] = getattr(self, attr)
        return out

    def fields(self) -> dict[str, str]:
        """Attribute-keyed copy of the eight text fields."""
        return {attr: getattr(self, attr) for attr in TEXT_FIELDS}

    def phones(self) -> list[str]:
        return [getattr(self, f) for f in PHONE_FIELDS if getattr(self, f)]

    @property
    def has_phone(self) -> bool:
        return any(getattr(self, f) for f in PHONE_FIELDS)

    @property
    def has_name(self) -> bool:
        return bool(self.surname or self.given_name)

    @property
    def display_name(self) -> str:
        if self.surname and self.given_name:
            return f"{self.surname}, {self.given_name}"
        return self.surname or self.given_name or (self.phones() or ["Unnamed"])[0]

    def without_id(self) -> ContactRecord:
        return replace(self, id=None)


class MatchType(StrEnum):
    PHONE = "phone"
    NAME = "name"


@dataclass
class DuplicateMatch:
    candidate: ContactRecord
    existing: ContactRecord
    match_type: MatchType

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.candidate.to_dict(include_id=False),
            "existing": self.existing.to_dict(),
            "matchType": str(self.match_type),
        }


class IssueKind(StrEnum):
    NAME_TOO_LONG = "name_too_long"
    NO_PHONE_NUMBER = "no_phone_number"
    TOO_MANY_ENTRIES = "too_many_entries"


class Severity(StrEnum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ValidationIssue:
    kind: IssueKind
    severity: Severity
    subject: str

    @property
    def message(self) -> str:
        if self.kind is IssueKind.NAME_TOO_LONG:
            return f"{self.subject}: name longer than {MAX_FIELD_LENGTH} characters will be truncated"
        if self.kind is IssueKind.NO_PHONE_NUMBER:
            return f"{self.subject}: no phone number"
        return self.subject

    def to_dict(self) -> dict[str, str]:
        return {
            "kind": str(self.kind),
            "severity": str(self.severity),
            "subject": self.subject,
            "message": self.message,
        }


@dataclass
class ImportPlan:
    new_candidates: list[ContactRecord] = field(default_factory=list)
    duplicates: list[DuplicateMatch] = field(default_factory=list)
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def candidates(self) -> list[ContactRecord]:
        return self.new_candidates + [d.candidate for d in self.duplicates]

    @property
    def blocked(self) -> bool:
        return any(i.severity is Severity.ERROR for i in self.issues)

    def to_dict(self) -> dict[str, Any]:
        return {
            "newEntries": [c.to_dict(include_id=False) for c in self.new_candidates],
            "duplicates": [d.to_dict() for d in self.duplicates],
            "issues": [i.to_dict() for i in self.issues],
            "blocked": self.blocked,
        }


class MutationOp(StrEnum):
    INSERT = "insert"
    UPDATE = "update"


@dataclass
class MutationIntent:
    op: MutationOp
    record: ContactRecord
    fields: dict[str, str] = field(default_factory=dict)  # updates only, attribute-keyed
