from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from gigaset_phonebook.cli import app
from gigaset_phonebook.model import ContactRecord
from gigaset_phonebook.storage import PhonebookStore

runner = CliRunner()

VCF = "BEGIN:VCARD\nVERSION:3.0\nN:Doe;John;;;\nTEL;TYPE=CELL:0170\nTEL;TYPE=WORK:089\nEND:VCARD\n"


def _run(home: Path, *args: str):
    return runner.invoke(app, ["--home", str(home), *args])


def _store(home: Path) -> PhonebookStore:
    return PhonebookStore(home / "data")


def test_import_new_contacts(tmp_path: Path):
    src = tmp_path / "contacts.vcf"
    src.write_text(VCF, encoding="utf-8")

    result = _run(tmp_path, "import", str(src), "--yes")
    assert result.exit_code == 0, result.output
    [entry] = _store(tmp_path).list_entries()
    assert entry.mobile1 == "0170"
    assert entry.office1 == "089"


def test_import_fill_missing_into_existing(tmp_path: Path):
    _store(tmp_path).create_entry(ContactRecord(surname="Doe", given_name="John", mobile1="0170"))
    src = tmp_path / "contacts.vcf"
    src.write_text(VCF, encoding="utf-8")

    result = _run(tmp_path, "import", str(src), "--strategy", "fill-missing", "--yes")
    assert result.exit_code == 0, result.output
    [entry] = _store(tmp_path).list_entries()
    assert entry.office1 == "089"


def test_import_dry_run_writes_nothing(tmp_path: Path):
    src = tmp_path / "contacts.vcf"
    src.write_text(VCF, encoding="utf-8")

    result = _run(tmp_path, "import", str(src), "--dry-run", "--yes")
    assert result.exit_code == 0, result.output
    assert _store(tmp_path).list_entries() == []


def test_import_bad_file_exits_nonzero(tmp_path: Path):
    src = tmp_path / "broken.json"
    src.write_text("{not json", encoding="utf-8")
    result = _run(tmp_path, "import", str(src), "--yes")
    assert result.exit_code == 2
    assert "Invalid JSON" in result.output


def test_export_json_to_file(tmp_path: Path):
    _store(tmp_path).create_entry(ContactRecord(surname="Doe", mobile1="1"))
    out = tmp_path / "out" / "phonebook.json"
    result = _run(tmp_path, "export", "-o", str(out))
    assert result.exit_code == 0, result.output
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["entries"][0]["surname"] == "Doe"


def test_xml_to_stdout(tmp_path: Path):
    _store(tmp_path).create_entry(ContactRecord(surname="Doe", mobile1="1"))
    result = _run(tmp_path, "xml")
    assert result.exit_code == 0
    assert 'surname="Doe"' in result.output


def test_settings_set_and_convert(tmp_path: Path):
    _store(tmp_path).create_entry(ContactRecord(surname="Doe", mobile1="+491701"))

    result = _run(tmp_path, "settings", "--set", "local_country_code=DE", "--set", "phone_format_conversion=true")
    assert result.exit_code == 0, result.output
    assert "+49" in result.output

    result = _run(tmp_path, "convert-phones")
    assert result.exit_code == 0, result.output
    [entry] = _store(tmp_path).list_entries()
    assert entry.mobile1 == "01701"


def test_settings_rejects_bad_value(tmp_path: Path):
    result = _run(tmp_path, "settings", "--set", "port=abc")
    assert result.exit_code == 2


def test_duplicates_lists_shared_numbers(tmp_path: Path):
    store = _store(tmp_path)
    store.create_entry(ContactRecord(surname="Doe", mobile1="0170 1"))
    store.create_entry(ContactRecord(surname="Roe", home1="0170-1"))
    result = _run(tmp_path, "duplicates")
    assert result.exit_code == 0, result.output
    assert "01701" in result.output
    assert "Roe" in result.output


def test_duplicates_on_clean_phonebook(tmp_path: Path):
    _store(tmp_path).create_entry(ContactRecord(surname="Doe", mobile1="1"))
    result = _run(tmp_path, "duplicates")
    assert result.exit_code == 0
    assert "No duplicates found" in result.output
