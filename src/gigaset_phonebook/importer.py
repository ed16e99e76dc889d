"""importer.py — two-phase contact import.

1. ``preview`` parses an uploaded file, validates the candidates and splits
   them into new entries and duplicates of stored ones. Nothing is written;
   the resulting ``ImportPlan`` goes back to the caller.
2. ``confirm`` receives that plan again together with the merge strategy the
   user picked, and applies it.

No state is kept between the two calls. The payload handed to ``confirm`` is
checked for shape, and detection runs again against the live store, so a
plan that went stale (entries edited or deleted in between) or was altered
by the client is reconciled with what is actually stored before anything is
written.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .dedupe import detect_duplicates
from .errors import ImportBlockedError, InvalidPlanError
from .io import SourceFormat, decode_bytes, parse_phonebook_json, parse_source
from .merge import MergeStrategy, resolve
from .model import ContactRecord, DuplicateMatch, ImportPlan, MatchType, Severity
from .storage import PhonebookStore
from .validate import DEFAULT_MAX_ENTRIES, validate_plan

logger = logging.getLogger(__name__)


@dataclass
class ImportOutcome:
    strategy: MergeStrategy
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    missing: int = 0
    stale: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "missing": self.missing,
            "stale": self.stale,
            "strategy": str(self.strategy),
        }


def build_plan(
    candidates: list[ContactRecord],
    existing: list[ContactRecord],
    max_entries: int = DEFAULT_MAX_ENTRIES,
) -> ImportPlan:
    detection = detect_duplicates(candidates, existing)
    plan = ImportPlan(detection.new_candidates, detection.duplicates)
    plan.issues = validate_plan(plan, max_entries)
    return plan


def preview(
    source_format: str | SourceFormat,
    raw: bytes,
    existing: list[ContactRecord],
    max_entries: int = DEFAULT_MAX_ENTRIES,
    source_label: str = "upload",
) -> ImportPlan:
    candidates = parse_source(source_format, raw, source_label=source_label)
    plan = build_plan(candidates, existing, max_entries)
    logger.info(
        "%s: %d new, %d duplicate(s), %d issue(s)",
        source_label, len(plan.new_candidates), len(plan.duplicates), len(plan.issues),
    )
    return plan


# ── Confirm payload ────────────────────────────────────────────────────────────

def _record(value: Any, where: str, *, keep_id: bool) -> ContactRecord:
    if not isinstance(value, dict):
        raise InvalidPlanError(f"{where} must be an object")
    return ContactRecord.from_dict(value, keep_id=keep_id)


def plan_from_payload(payload: Any) -> ImportPlan:
    """Rebuild an ImportPlan from the dict ``ImportPlan.to_dict`` produced."""
    if not isinstance(payload, dict):
        raise InvalidPlanError("Import payload must be an object")
    new_entries = payload.get("newEntries", [])
    duplicates = payload.get("duplicates", [])
    if not isinstance(new_entries, list) or not isinstance(duplicates, list):
        raise InvalidPlanError("newEntries and duplicates must be arrays")

    plan = ImportPlan()
    for i, entry in enumerate(new_entries):
        plan.new_candidates.append(_record(entry, f"newEntries[{i}]", keep_id=False))

    for i, dup in enumerate(duplicates):
        if not isinstance(dup, dict):
            raise InvalidPlanError(f"duplicates[{i}] must be an object")
        candidate = _record(dup.get("imported"), f"duplicates[{i}].imported", keep_id=False)
        existing = _record(dup.get("existing"), f"duplicates[{i}].existing", keep_id=True)
        if not existing.id:
            raise InvalidPlanError(f"duplicates[{i}].existing has no id")
        try:
            match_type = MatchType(dup.get("matchType") or MatchType.PHONE)
        except ValueError:
            raise InvalidPlanError(f"duplicates[{i}].matchType is invalid") from None
        plan.duplicates.append(DuplicateMatch(candidate, existing, match_type))
    return plan


def _pairing(plan: ImportPlan) -> list[tuple[str, str | None]]:
    pairs = [(repr(c.fields()), None) for c in plan.new_candidates]
    pairs += [(repr(d.candidate.fields()), d.existing.id) for d in plan.duplicates]
    return sorted(pairs, key=lambda p: (p[0], p[1] or ""))


def reconcile_plan(
    plan: ImportPlan,
    existing: list[ContactRecord],
    max_entries: int = DEFAULT_MAX_ENTRIES,
) -> tuple[ImportPlan, bool]:
    """Re-run detection for the plan's candidates against the live store.

    Returns the fresh plan and whether it differs from the one supplied.
    """
    fresh = build_plan(plan.candidates, existing, max_entries)
    stale = _pairing(fresh) != _pairing(plan)
    if stale:
        logger.warning(
            "Import plan out of date: %d new / %d duplicate(s) supplied, %d / %d now",
            len(plan.new_candidates), len(plan.duplicates),
            len(fresh.new_candidates), len(fresh.duplicates),
        )
    return fresh, stale


def confirm(
    payload: Any,
    store: PhonebookStore,
    max_entries: int = DEFAULT_MAX_ENTRIES,
) -> ImportOutcome:
    if not isinstance(payload, dict):
        raise InvalidPlanError("Import payload must be an object")
    strategy = MergeStrategy.parse(payload.get("strategy"))
    supplied = plan_from_payload(payload)

    plan, stale = reconcile_plan(supplied, store.list_entries(), max_entries)
    if plan.blocked:
        raise ImportBlockedError([i for i in plan.issues if i.severity is Severity.ERROR])

    intents = resolve(plan, strategy)
    result = store.apply(intents)
    outcome = ImportOutcome(
        strategy=strategy,
        inserted=result.inserted,
        updated=result.updated,
        skipped=len(plan.duplicates) - result.updated - result.missing,
        missing=result.missing,
        stale=stale,
    )
    logger.info(
        "Import confirmed (%s): %d inserted, %d updated, %d skipped",
        strategy, outcome.inserted, outcome.updated, outcome.skipped,
    )
    return outcome


def import_json_replace(raw: bytes, store: PhonebookStore) -> int:
    """Throw the current phonebook away and load a JSON export in its place."""
    records = parse_phonebook_json(decode_bytes(raw))
    store.replace_all(records)
    logger.info("Phonebook replaced with %d entries", len(records))
    return len(records)
