"""
CSV export of included probate outcomes.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Union

import pandas as pd

from schemas import Outcome, OutcomeStatus

logger = logging.getLogger(__name__)

EXPORT_DIR = Path("data")

# column -> IncludedRecord field (None = taken from the outcome itself)
COLUMNS = [
    ("File Number", None),
    ("File Date", None),
    ("Decedent Name", "decedent_name"),
    ("Decedent Address", "decedent_address"),
    ("Date of Death", "date_of_death"),
    ("Executor Name", "executor_name"),
    ("Executor Address", "executor_address"),
    ("Estate Value Lower", "estate_value_lower"),
    ("Estate Value Upper", "estate_value_upper"),
    ("Personal Property", "personal_property"),
    ("Improved Real Property", "improved_real_property"),
    ("Unimproved Real Property", "unimproved_real_property"),
    ("Estate Attorney", "attorney"),
]

COLUMN_NAMES: List[str] = [name for name, _ in COLUMNS]


def _row(outcome: Outcome) -> dict:
    data = outcome.data
    row = {"File Number": outcome.file_number, "File Date": outcome.file_date}
    for column, field in COLUMNS[2:]:
        row[column] = getattr(data, field) if data is not None else None
    return row


def outcomes_to_frame(outcomes: Iterable[Outcome]) -> pd.DataFrame:
    """One row per included outcome, fixed column order"""
    rows = [_row(o) for o in outcomes if o.status is OutcomeStatus.INCLUDED]
    return pd.DataFrame(rows, columns=COLUMN_NAMES)


def default_export_path(day: Optional[date] = None) -> Path:
    return EXPORT_DIR / f"probate_results_{(day or date.today()).isoformat()}.csv"


def export_csv(outcomes: Iterable[Outcome], path: Optional[Union[str, Path]] = None) -> Path:
    """Write included outcomes to CSV (missing values become empty cells)"""
    csv_path = Path(path) if path else default_export_path()
    csv_path.parent.mkdir(parents=True, exist_ok=True)

    df = outcomes_to_frame(outcomes)
    df.to_csv(csv_path, index=False, encoding="utf-8")
    logger.info(f"📊 Exported {len(df)} records to {csv_path}")
    return csv_path
