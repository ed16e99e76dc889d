from __future__ import annotations

from gigaset_phonebook.model import ContactRecord, MutationOp
from gigaset_phonebook.phone import PhoneFormatPolicy, conversion_intents

GERMANY = PhoneFormatPolicy(local_country_code="+49", convert_format=True)


def test_local_numbers_get_trunk_prefix():
    assert GERMANY.apply("+491701234567") == "01701234567"


def test_foreign_numbers_get_international_prefix():
    assert GERMANY.apply("+441234567") == "00441234567"


def test_numbers_without_plus_are_untouched():
    assert GERMANY.apply("0301234") == "0301234"
    assert GERMANY.apply("") == ""


def test_conversion_needs_a_country_code():
    policy = PhoneFormatPolicy(convert_format=True)
    assert policy.apply("+491701234567") == "+491701234567"


def test_separators_and_spaces():
    policy = PhoneFormatPolicy(local_country_code="+49", convert_format=True,
                               remove_separators=True, remove_spaces=True)
    assert policy.apply("+49 (170) 123-45/67") == "01701234567"
    only_separators = PhoneFormatPolicy(remove_separators=True)
    assert only_separators.apply("030/123-4") == "0301234"
    assert only_separators.apply("030 123") == "030 123"


def test_disabled_policy_changes_nothing():
    policy = PhoneFormatPolicy(local_country_code="+49")
    record = ContactRecord(surname="A", mobile1="+49 170 1")
    assert not policy.enabled
    assert policy.format_record(record) is record


def test_needs_transformation_and_count():
    records = [
        ContactRecord(surname="A", mobile1="+49 170"),
        ContactRecord(surname="B", home1="030123"),
    ]
    assert GERMANY.count_unconverted(records) == 1
    assert PhoneFormatPolicy(remove_spaces=True).count_unconverted(records) == 1


def test_conversion_intents_cover_only_changed_records():
    a = ContactRecord(id="a", surname="A", mobile1="+49170", home1="+4430")
    b = ContactRecord(id="b", surname="B", home1="030")
    [intent] = conversion_intents([a, b], GERMANY)
    assert intent.op is MutationOp.UPDATE
    assert intent.record.id == "a"
    assert intent.fields["mobile1"] == "0170"
    assert intent.fields["home1"] == "004430"
