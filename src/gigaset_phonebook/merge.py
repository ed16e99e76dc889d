from __future__ import annotations

from enum import StrEnum

from .errors import InvalidStrategyError
from .model import (
    NAME_FIELDS,
    PHONE_FIELDS,
    DuplicateMatch,
    ImportPlan,
    MutationIntent,
    MutationOp,
)


class MergeStrategy(StrEnum):
    SKIP = "skip"
    REPLACE = "replace"
    FILL_MISSING = "fill_missing"

    @classmethod
    def parse(cls, value: str | MergeStrategy | None) -> MergeStrategy:
        if isinstance(value, MergeStrategy):
            return value
        key = str(value or "").strip().lower().replace("-", "_")
        try:
            return _ALIASES[key]
        except KeyError:
            raise InvalidStrategyError(
                f"Unknown merge strategy {value!r} (expected skip, replace or fill-missing)"
            ) from None


_ALIASES = {
    "skip": MergeStrategy.SKIP,
    "ignore": MergeStrategy.SKIP,  # web UI name
    "replace": MergeStrategy.REPLACE,
    "overwrite": MergeStrategy.REPLACE,
    "fill": MergeStrategy.FILL_MISSING,
    "fill_missing": MergeStrategy.FILL_MISSING,
    "fillmissing": MergeStrategy.FILL_MISSING,
}


def replace_fields(match: DuplicateMatch) -> dict[str, str]:
    return {f: getattr(match.candidate, f) for f in NAME_FIELDS + PHONE_FIELDS}


def fill_missing_fields(match: DuplicateMatch) -> dict[str, str]:
    """Phone slots empty on the stored record and set on the candidate."""
    return {
        f: getattr(match.candidate, f)
        for f in PHONE_FIELDS
        if not getattr(match.existing, f) and getattr(match.candidate, f)
    }


def resolve(plan: ImportPlan, strategy: str | MergeStrategy) -> list[MutationIntent]:
    """Turn a plan plus a strategy into the ordered store mutations."""
    strategy = MergeStrategy.parse(strategy)
    intents = [MutationIntent(MutationOp.INSERT, c.without_id()) for c in plan.new_candidates]

    if strategy is MergeStrategy.SKIP:
        return intents

    for match in plan.duplicates:
        if strategy is MergeStrategy.REPLACE:
            fields = replace_fields(match)
        else:
            fields = fill_missing_fields(match)
        if fields:
            intents.append(MutationIntent(MutationOp.UPDATE, match.existing, fields))
    return intents
