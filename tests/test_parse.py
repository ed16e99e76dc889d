"""vCard and phonebook JSON parsing."""
from __future__ import annotations

from pathlib import Path

import pytest

from gigaset_phonebook.errors import ParseError
from gigaset_phonebook.io import (
    SourceFormat,
    parse_phonebook_json,
    parse_source,
    parse_vcards,
    read_source_file,
    split_vcard_blocks,
)


# ── helpers ────────────────────────────────────────────────────────────────────

def _vcf(*props: str) -> str:
    body = "\n".join(props)
    return f"BEGIN:VCARD\nVERSION:3.0\n{body}\nEND:VCARD\n"


# ── Splitting ──────────────────────────────────────────────────────────────────

def test_split_discards_preamble():
    text = "garbage line\n" + _vcf("FN:A") + _vcf("FN:B")
    blocks = split_vcard_blocks(text)
    assert len(blocks) == 2
    assert all(b.startswith("BEGIN:VCARD") for b in blocks)


def test_split_is_case_insensitive():
    text = "begin:vcard\nVERSION:3.0\nFN:A\nend:vcard\n"
    assert len(split_vcard_blocks(text)) == 1


def test_split_closes_unterminated_card():
    blocks = split_vcard_blocks("BEGIN:VCARD\nVERSION:3.0\nFN:A\n")
    assert blocks[0].rstrip().endswith("END:VCARD")


# ── Field extraction ───────────────────────────────────────────────────────────

def test_name_and_two_mobiles():
    text = _vcf(
        "N:Doe;John;;;",
        "FN:John Doe",
        "TEL;TYPE=CELL:+49 170 1111111",
        "TEL;TYPE=CELL:+49 170 2222222",
    )
    [r] = parse_vcards(text)
    assert (r.surname, r.given_name) == ("Doe", "John")
    assert r.mobile1 == "+49 170 1111111"
    assert r.mobile2 == "+49 170 2222222"
    assert r.office1 == r.home1 == ""


def test_empty_name_with_org_becomes_business_contact():
    text = _vcf("N:;;;;", "FN:Jane Smith", "ORG:ACME GmbH;Sales", "TEL;TYPE=WORK:030 123")
    [r] = parse_vcards(text)
    assert r.surname == "ACME GmbH"
    assert r.given_name == ""
    assert r.office1 == "030 123"


def test_full_name_fallback_when_n_missing():
    [r] = parse_vcards(_vcf("FN:Anna Maria Berg", "TEL:0301"))
    assert r.given_name == "Anna"
    assert r.surname == "Maria Berg"


def test_single_word_full_name_goes_to_surname():
    [r] = parse_vcards(_vcf("FN:Plumber", "TEL:0301"))
    assert (r.surname, r.given_name) == ("Plumber", "")


def test_card_without_name_or_phone_is_dropped():
    text = _vcf("EMAIL:nobody@example.com") + _vcf("N:Keep;Me;;;")
    records = parse_vcards(text)
    assert [r.surname for r in records] == ["Keep"]


def test_phone_type_buckets():
    text = _vcf(
        "N:Doe;John;;;",
        "TEL;TYPE=WORK:1",
        "TEL;TYPE=HOME:2",
        "TEL;TYPE=CELL:3",
        "TEL:4",
        "TEL;TYPE=WORK:5",
        "TEL;TYPE=WORK:6",
    )
    [r] = parse_vcards(text)
    assert (r.office1, r.office2) == ("1", "5")
    assert (r.mobile1, r.mobile2) == ("3", "")
    assert (r.home1, r.home2) == ("2", "4")


def test_vcard21_bare_type_parameter():
    text = "BEGIN:VCARD\nVERSION:2.1\nN:Old;Phone\nTEL;CELL:0171\nEND:VCARD\n"
    [r] = parse_vcards(text)
    assert r.mobile1 == "0171"


def test_folded_lines_are_joined():
    text = _vcf("N:Verylongsur", " name;Max;;;", "TEL:1")
    [r] = parse_vcards(text)
    assert r.surname == "Verylongsurname"


def test_icloud_item_prefix_is_stripped():
    text = _vcf("N:Doe;John;;;", "item1.TEL;TYPE=CELL:0170", "item1.X-ABLabel:Mobile")
    [r] = parse_vcards(text)
    assert r.mobile1 == "0170"


def test_tel_uri_prefix_removed():
    [r] = parse_vcards(_vcf("N:Doe;John;;;", "TEL;TYPE=HOME:tel:+4930123"))
    assert r.home1 == "+4930123"


def test_binary_tel_is_skipped():
    text = _vcf("N:Doe;John;;;", "TEL;ENCODING=b;TYPE=CELL:aGVsbG8=", "TEL;TYPE=HOME:030")
    [r] = parse_vcards(text)
    assert r.home1 == "030"
    assert not r.mobile1.startswith("b'")


# ── Escapes ────────────────────────────────────────────────────────────────────

def test_escaped_comma_and_backslash_in_name():
    [r] = parse_vcards(_vcf(r"N:Doe\, Jr.;Back\\slash;;;", "TEL:1"))
    assert r.surname == "Doe, Jr."
    assert r.given_name == "Back\\slash"


def test_escaped_semicolon_in_org():
    [r] = parse_vcards(_vcf("N:;;;;", r"ORG:Smith\; Sons;Sales", "TEL:1"))
    assert r.surname == "Smith; Sons"


def test_escaped_newline_in_full_name():
    [r] = parse_vcards(_vcf(r"FN:Anna\nBerg", "TEL:1"))
    assert (r.given_name, r.surname) == ("Anna", "Berg")


def test_tel_values_are_unescaped_once():
    text = _vcf("N:Doe;John;;;", r"TEL;TYPE=CELL:0170\\n1", r"TEL;TYPE=HOME:030\,123")
    [r] = parse_vcards(text)
    assert r.mobile1 == "0170\\n1"
    assert r.home1 == "030,123"


# ── Sources ────────────────────────────────────────────────────────────────────

def test_invalid_utf8_is_a_parse_error():
    with pytest.raises(ParseError):
        parse_source(SourceFormat.VCARD, b"BEGIN:VCARD\n\xff\xfe\xfa\nEND:VCARD")


def test_vcard_source_without_contacts_is_a_parse_error():
    with pytest.raises(ParseError, match="No valid contacts"):
        parse_source("vcf", b"nothing to see here")


def test_utf8_bom_is_accepted():
    records = parse_source("vcard", ("\ufeff" + _vcf("N:Müller;Jürgen;;;", "TEL:1")).encode())
    assert records[0].surname == "Müller"


def test_json_missing_entries_array():
    with pytest.raises(ParseError, match="missing entries array"):
        parse_phonebook_json('{"contacts": []}')


def test_json_not_json():
    with pytest.raises(ParseError, match="Invalid JSON"):
        parse_phonebook_json("{nope")


def test_json_entries_default_missing_fields_and_drop_ids():
    records = parse_phonebook_json(
        '{"entries": [{"id": "x1", "surname": "Doe", "mobile1": 170}, "junk"]}'
    )
    assert len(records) == 1
    r = records[0]
    assert r.id is None
    assert r.surname == "Doe"
    assert r.given_name == ""
    assert r.mobile1 == "170"


def test_source_format_aliases():
    assert SourceFormat.parse("VCF") is SourceFormat.VCARD
    assert SourceFormat.parse("application/json") is SourceFormat.JSON
    with pytest.raises(ParseError):
        SourceFormat.parse("csv")


def test_read_source_file_uses_extension(tmp_path: Path):
    path = tmp_path / "book.json"
    path.write_text('{"entries": [{"surname": "A", "home1": "1"}]}', encoding="utf-8")
    [r] = read_source_file(path)
    assert r.home1 == "1"
