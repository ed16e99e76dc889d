"""Pre-import checks.

The validator only classifies. Whether an error-severity issue stops the
import is decided by the caller (see ``importer.confirm``).
"""
from __future__ import annotations

from .model import (
    MAX_FIELD_LENGTH,
    ContactRecord,
    ImportPlan,
    IssueKind,
    Severity,
    ValidationIssue,
)

DEFAULT_MAX_ENTRIES = 2000


def validate_candidates(
    candidates: list[ContactRecord],
    max_entries: int = DEFAULT_MAX_ENTRIES,
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []

    if len(candidates) > max_entries:
        issues.append(ValidationIssue(
            IssueKind.TOO_MANY_ENTRIES,
            Severity.ERROR,
            f"{len(candidates)} contacts exceed the limit of {max_entries}",
        ))

    for c in candidates:
        if len(c.surname) > MAX_FIELD_LENGTH or len(c.given_name) > MAX_FIELD_LENGTH:
            issues.append(ValidationIssue(IssueKind.NAME_TOO_LONG, Severity.WARNING, c.display_name))
        if not c.has_phone:
            issues.append(ValidationIssue(IssueKind.NO_PHONE_NUMBER, Severity.WARNING, c.display_name))

    return issues


def validate_plan(plan: ImportPlan, max_entries: int = DEFAULT_MAX_ENTRIES) -> list[ValidationIssue]:
    return validate_candidates(plan.candidates, max_entries)
