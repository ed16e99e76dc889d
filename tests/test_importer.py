"""Two-phase import: preview, then confirm against the live store."""
from __future__ import annotations

from pathlib import Path

import pytest

from gigaset_phonebook.errors import ImportBlockedError, InvalidPlanError, InvalidStrategyError
from gigaset_phonebook.exporter import export_json
from gigaset_phonebook.importer import confirm, import_json_replace, plan_from_payload, preview
from gigaset_phonebook.model import ContactRecord, MatchType
from gigaset_phonebook.storage import PhonebookStore


# ── helpers ────────────────────────────────────────────────────────────────────

VCF = (
    "BEGIN:VCARD\nVERSION:3.0\nN:Doe;John;;;\nTEL;TYPE=CELL:+49 170 1111111\n"
    "TEL;TYPE=WORK:089 123\nEND:VCARD\n"
    "BEGIN:VCARD\nVERSION:3.0\nN:New;Nina;;;\nTEL;TYPE=HOME:030 999\nEND:VCARD\n"
).encode()


@pytest.fixture
def store(tmp_path: Path) -> PhonebookStore:
    s = PhonebookStore(tmp_path / "data")
    s.create_entry(ContactRecord(surname="Doe", given_name="John", mobile1="+49 170 1111111"))
    return s


def _payload(plan, strategy: str) -> dict:
    return {**plan.to_dict(), "strategy": strategy}


# ── Preview ────────────────────────────────────────────────────────────────────

def test_preview_splits_new_and_duplicates(store: PhonebookStore):
    plan = preview("vcard", VCF, store.list_entries())
    assert [c.surname for c in plan.new_candidates] == ["New"]
    [dup] = plan.duplicates
    assert dup.match_type is MatchType.PHONE
    assert dup.existing.surname == "Doe"
    assert not plan.blocked


def test_preview_does_not_write(store: PhonebookStore):
    before = store.path.read_bytes()
    preview("vcard", VCF, store.list_entries())
    assert store.path.read_bytes() == before


def test_preview_blocked_over_limit(store: PhonebookStore):
    plan = preview("vcard", VCF, store.list_entries(), max_entries=1)
    assert plan.blocked
    assert plan.to_dict()["blocked"] is True


# ── Confirm ────────────────────────────────────────────────────────────────────

def test_confirm_fill_missing(store: PhonebookStore):
    plan = preview("vcard", VCF, store.list_entries())
    outcome = confirm(_payload(plan, "fill-missing"), store)
    assert (outcome.inserted, outcome.updated, outcome.skipped) == (1, 1, 0)
    doe = next(r for r in store.list_entries() if r.surname == "Doe")
    assert doe.office1 == "089 123"
    assert doe.mobile1 == "+49 170 1111111"


def test_confirm_skip_leaves_duplicates_alone(store: PhonebookStore):
    plan = preview("vcard", VCF, store.list_entries())
    outcome = confirm(_payload(plan, "ignore"), store)
    assert (outcome.inserted, outcome.updated, outcome.skipped) == (1, 0, 1)
    doe = next(r for r in store.list_entries() if r.surname == "Doe")
    assert doe.office1 == ""


def test_confirm_requires_a_known_strategy(store: PhonebookStore):
    plan = preview("vcard", VCF, store.list_entries())
    with pytest.raises(InvalidStrategyError):
        confirm(plan.to_dict(), store)


def test_confirm_rejects_malformed_payload(store: PhonebookStore):
    with pytest.raises(InvalidPlanError):
        confirm({"strategy": "skip", "newEntries": "nope"}, store)
    with pytest.raises(InvalidPlanError):
        confirm({"strategy": "skip", "duplicates": [{"imported": {}, "existing": {}}]}, store)


def test_confirm_refuses_blocked_plan(store: PhonebookStore):
    plan = preview("vcard", VCF, store.list_entries())
    with pytest.raises(ImportBlockedError) as excinfo:
        confirm(_payload(plan, "skip"), store, max_entries=1)
    assert excinfo.value.issues
    assert len(store.list_entries()) == 1


def test_confirm_rechecks_a_stale_plan(store: PhonebookStore):
    plan = preview("vcard", VCF, store.list_entries())
    # The matched entry disappears between preview and confirm.
    [doe] = store.list_entries()
    store.delete_entry(doe.id)

    outcome = confirm(_payload(plan, "replace"), store)
    assert outcome.stale
    assert outcome.inserted == 2
    assert outcome.updated == 0
    assert sorted(r.surname for r in store.list_entries()) == ["Doe", "New"]


def test_confirm_catches_duplicate_smuggled_in_as_new(store: PhonebookStore):
    [doe] = store.list_entries()
    payload = {"newEntries": [doe.to_dict(include_id=False) | {"home1": "040"}], "strategy": "fill"}
    outcome = confirm(payload, store)
    assert outcome.stale
    assert outcome.inserted == 0
    assert store.get_entry(doe.id).home1 == "040"


def test_plan_from_payload_round_trip(store: PhonebookStore):
    plan = preview("vcard", VCF, store.list_entries())
    rebuilt = plan_from_payload(plan.to_dict())
    assert rebuilt.new_candidates == plan.new_candidates
    assert rebuilt.duplicates == plan.duplicates


# ── JSON round trip ────────────────────────────────────────────────────────────

def test_export_then_reimport_with_replace_reproduces_records(store: PhonebookStore, tmp_path: Path):
    store.create_entry(ContactRecord(surname="Schmidt", given_name="Eva", home1="030 1", office2="089 2"))
    before = [r.to_dict(include_id=False) for r in store.list_entries()]
    exported = export_json(store.list_entries()).encode("utf-8")

    plan = preview("json", exported, store.list_entries())
    assert plan.new_candidates == []
    confirm(_payload(plan, "replace"), store)

    after = [r.to_dict(include_id=False) for r in store.list_entries()]
    assert after == before


def test_import_json_replace_swaps_the_phonebook(store: PhonebookStore):
    raw = b'{"entries": [{"surname": "Only", "mobile1": "1"}]}'
    assert import_json_replace(raw, store) == 1
    assert [r.surname for r in store.list_entries()] == ["Only"]
