import json

from click.testing import CliRunner

import probate_cli
from probate_cli import cli
from schemas import BatchReport, FilingStub, Outcome, ParsedRecord


def test_courts_lists_registries():
    result = CliRunner().invoke(cli, ["courts"])

    assert result.exit_code == 0
    assert "Erie County" in result.output
    assert "PROBATE PETITION" in result.output


def test_search_rejects_bad_dates():
    result = CliRunner().invoke(cli, ["search", "--from", "2026-01-01", "--to", "01/31/2026"])

    assert result.exit_code == 1
    assert "Invalid search" in result.output


def test_process_runs_saved_stubs(tmp_path, monkeypatch):
    stubs_file = tmp_path / "stubs.json"
    stubs_file.write_text(json.dumps({"files": [{"file_number": "2026-0001", "file_date": "01/20/2026"}]}))
    csv_file = tmp_path / "results.csv"
    seen = {}

    async def fake_process(settings, county, stubs, min_value, batch_size=None, cancel_event=None, error_sink=None):
        seen["args"] = (county, [s.file_number for s in stubs], min_value)
        report = BatchReport()
        report.add(Outcome.included(stubs[0], ParsedRecord(decedent_name="JOHN DOE", estate_value_upper=200000)))
        return report

    monkeypatch.setattr(probate_cli, "process_in_batches", fake_process)

    result = CliRunner().invoke(cli, ["process", str(stubs_file), "--min-value", "150000", "--csv", str(csv_file)])

    assert result.exit_code == 0, result.output
    assert seen["args"] == ("15", ["2026-0001"], 150000.0)
    assert "JOHN DOE" in result.output
    assert csv_file.exists()


def test_load_stubs_accepts_plain_list(tmp_path):
    path = tmp_path / "stubs.json"
    path.write_text(json.dumps([{"file_number": "A"}, {"file_number": "B"}]))

    assert probate_cli._load_stubs(str(path)) == [FilingStub(file_number="A"), FilingStub(file_number="B")]


def test_process_reports_malformed_stub_file(tmp_path):
    stubs_file = tmp_path / "stubs.json"
    stubs_file.write_text("{not json")

    result = CliRunner().invoke(cli, ["process", str(stubs_file)])

    assert result.exit_code == 1
    assert "is not valid JSON" in result.output


def test_process_reports_invalid_stub_row(tmp_path):
    stubs_file = tmp_path / "stubs.json"
    stubs_file.write_text(json.dumps([{"file_date": "01/20/2026"}]))

    result = CliRunner().invoke(cli, ["process", str(stubs_file)])

    assert result.exit_code == 1
    assert "Invalid filing in" in result.output
