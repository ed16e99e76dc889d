"""Phone number helpers.

Two unrelated jobs live here because they share the phone-field list:

* ``normalize_phone`` builds comparison keys for duplicate detection and never
  touches stored values.
* ``PhoneFormatPolicy`` rewrites stored numbers into the dialling form the base
  station expects (``+49 176 …`` → ``0176…`` for the local country, ``00…``
  for everything else) when the user enables it in settings.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace

import phonenumbers

from .errors import InvalidSettingError
from .model import PHONE_FIELDS, ContactRecord, MutationIntent, MutationOp

# Characters ignored when comparing two numbers.
_COMPARE_STRIP = re.compile(r"[\s\-.()]")

# Separators removed by the formatting policy, and whitespace.
_SEPARATORS = re.compile(r"[.\-_,;/\\()\[\]{}]")
_SPACES = re.compile(r"\s+")

_UNKNOWN_REGION = "ZZ"


def normalize_phone(phone: str) -> str:
    return _COMPARE_STRIP.sub("", phone or "")


def same_number(a: str, b: str) -> bool:
    return normalize_phone(a) == normalize_phone(b)


def resolve_country_code(value: str) -> str:
    """Turn '+49', '49' or 'DE' into '+49'. Empty input stays empty."""
    value = (value or "").strip()
    if not value:
        return ""
    if value.isalpha():
        code = phonenumbers.country_code_for_region(value.upper())
        if not code:
            raise InvalidSettingError(f"Unknown region: {value!r}")
        return f"+{code}"
    digits = value.lstrip("+").lstrip("0")
    if not digits.isdigit():
        raise InvalidSettingError(f"Invalid country code: {value!r}")
    if phonenumbers.region_code_for_country_code(int(digits)) == _UNKNOWN_REGION:
        raise InvalidSettingError(f"Unknown country code: {value!r}")
    return f"+{digits}"


@dataclass(frozen=True)
class PhoneFormatPolicy:
    local_country_code: str = ""
    convert_format: bool = False
    remove_separators: bool = False
    remove_spaces: bool = False

    @property
    def enabled(self) -> bool:
        return self.convert_format or self.remove_separators or self.remove_spaces

    def convert(self, phone: str) -> str:
        if not phone or not phone.startswith("+"):
            return phone
        if self.local_country_code and phone.startswith(self.local_country_code):
            return "0" + phone[len(self.local_country_code):]
        return "00" + phone[1:]

    def apply(self, phone: str) -> str:
        if not phone:
            return phone
        result = phone
        if self.remove_separators:
            result = _SEPARATORS.sub("", result)
        if self.remove_spaces:
            result = _SPACES.sub("", result)
        if self.convert_format and self.local_country_code:
            result = self.convert(result)
        return result

    def needs_transformation(self, phone: str) -> bool:
        if not phone:
            return False
        if self.convert_format and phone.startswith("+"):
            return True
        if self.remove_separators and _SEPARATORS.search(phone):
            return True
        return bool(self.remove_spaces and _SPACES.search(phone))

    def format_record(self, record: ContactRecord) -> ContactRecord:
        if not self.enabled:
            return record
        changes = {f: self.apply(getattr(record, f)) for f in PHONE_FIELDS}
        return replace(record, **changes)

    def record_needs_transformation(self, record: ContactRecord) -> bool:
        return any(self.needs_transformation(getattr(record, f)) for f in PHONE_FIELDS)

    def count_unconverted(self, records: list[ContactRecord]) -> int:
        return sum(1 for r in records if self.record_needs_transformation(r))


def conversion_intents(records: list[ContactRecord], policy: PhoneFormatPolicy) -> list[MutationIntent]:
    """Store updates that bring every record's phones in line with the policy."""
    intents = []
    for record in records:
        if policy.record_needs_transformation(record):
            formatted = policy.format_record(record)
            changes = {f: getattr(formatted, f) for f in PHONE_FIELDS}
            intents.append(MutationIntent(MutationOp.UPDATE, record, changes))
    return intents
