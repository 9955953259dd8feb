from datetime import date

import pandas as pd

from error_log import ErrorLog
from export import COLUMN_NAMES, default_export_path, export_csv, outcomes_to_frame
from schemas import FilingStub, Outcome, ParsedRecord

STUB = FilingStub(file_number="2026-0001", file_date="01/20/2026", file_name="PUBLIC, JOHN Q")

RECORD = ParsedRecord(
    decedent_name="JOHN Q. PUBLIC",
    decedent_address="45 Oak Avenue, Amherst, Erie, New York",
    executor_name="MARY A. PUBLIC",
    estate_value_lower=500000,
    estate_value_upper=1000000,
    unimproved_real_property=0,
)


def outcomes():
    return [
        Outcome.included(STUB, RECORD, "Jane Lawyer, Esq."),
        Outcome.skipped(FilingStub(file_number="2026-0002"), "below threshold"),
        Outcome.error(FilingStub(file_number="2026-0003"), "No PDF available"),
    ]


def test_frame_has_only_included_rows():
    df = outcomes_to_frame(outcomes())

    assert list(df.columns) == COLUMN_NAMES
    assert len(df) == 1
    row = df.iloc[0]
    assert row["File Number"] == "2026-0001"
    assert row["Decedent Address"] == "45 Oak Avenue, Amherst, Erie, New York"
    assert row["Estate Attorney"] == "Jane Lawyer, Esq."
    assert row["Unimproved Real Property"] == 0


def test_empty_frame_keeps_columns():
    assert list(outcomes_to_frame([]).columns) == COLUMN_NAMES


def test_export_csv_writes_blank_cells_for_missing_values(tmp_path):
    path = export_csv(outcomes(), tmp_path / "out" / "results.csv")

    df = pd.read_csv(path, keep_default_na=False, dtype=str)
    assert len(df) == 1
    assert df.loc[0, "Executor Address"] == ""
    assert df.loc[0, "Personal Property"] == ""
    assert df.loc[0, "Estate Value Upper"] in ("1000000.0", "1000000")


def test_default_export_path():
    assert str(default_export_path(date(2026, 3, 1))).endswith("probate_results_2026-03-01.csv")


def test_error_log_is_bounded_and_newest_first():
    log = ErrorLog(max_entries=3)
    for i in range(5):
        log.record("process", f"failure {i}", {"file_number": str(i)})

    entries = log.entries()
    assert [e["message"] for e in entries] == ["failure 4", "failure 3", "failure 2"]
    assert entries[0]["details"] == {"file_number": "4"}

    log.clear()
    assert log.entries() == []


def test_error_log_truncates_long_messages():
    log = ErrorLog()
    log.record("search", "x" * 5000)

    assert len(log.entries()[0]["message"]) == 1000
