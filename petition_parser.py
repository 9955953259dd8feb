"""
Probate Petition Parser
=======================

Reads decedent, executor and estate-value fields out of the text of a New York
probate petition (form P-1). Every field is extracted independently and on a
best-effort basis: a field that cannot be found stays None, and an extractor
that blows up is noted in ``parse_errors`` without stopping the others.
"""

import logging
import re
from typing import Callable, Dict, List, Optional, Tuple

from schemas import ParsedRecord

logger = logging.getLogger(__name__)

FLAGS = re.IGNORECASE | re.DOTALL

# ─────────────────────────────────────────────────────────────────────────────
# PATTERNS
# ─────────────────────────────────────────────────────────────────────────────

# Section 2: decedent
DECEDENT_NAME_RE = re.compile(
    r"(?:2\.\s+The name.*?decedent.*?follows:|2\.\s+.*?(?:\(a\)\s*)?Name:)\s*([A-Z][A-Z\s.]+?)(?:\n|\(|Date)",
    FLAGS,
)
WILL_OF_RE = re.compile(r"WILL\s+OF:\s*([A-Z][A-Z\s.]+?)(?:\n|a/k/a)", FLAGS)
DATE_OF_DEATH_RE = re.compile(
    r"Date\s+of\s+death\s*[:\-]?\s*([A-Za-z]+\s+\d{1,2},?\s+\d{4}|\d{1,2}/\d{1,2}/\d{4})",
    FLAGS,
)
PLACE_OF_DEATH_RE = re.compile(r"Place\s+of\s+death\s*[:\-]?\s*([A-Za-z,.\s]+?)(?:\n|\(d\)|Domicile)", FLAGS)
DOMICILE_RE = re.compile(
    r"Domicile:\s*Street\s*([^\n]+?)"
    r"(?:\n\s*City.*?(?:Village|Town)\s*([^\n]+?))?"
    r"(?:\n\s*County\s*([^\n]+?))?"
    r"\s*State\s*([^\n]+)",
    FLAGS,
)
DOMICILE_STREET_RE = re.compile(r"(?:\(d\)\s*)?Domicile.*?Street\s+(.+?)(?:City|Village|Town)", FLAGS)

# Section 1: petitioner (executor)
PETITIONER_RE = re.compile(
    r"petitioner\s+are\s+as\s+follows:\s*(?:Name:)?\s*([A-Z][A-Z\s.]+?)(?:\n|\(First\))",
    FLAGS,
)
NAME_FIELDS_RE = re.compile(
    r"Name:\s*([A-Z][a-zA-Z]+)\s*\.?\s*([A-Z])?\.?\s*\(First\)\s*\(Middle\)\s*([A-Z][a-zA-Z]+)\s*\(Last\)",
    FLAGS,
)
EXECUTOR_ADDRESS_RE = re.compile(
    r"Domicile\s+or\s+Principal\s+Office:\s*([^\n]+?)"
    r"(?:\n\s*\(Street.*?\)\s*\n\s*([^\n]+?))?"
    r"(?:\n.*?\(City|$)",
    FLAGS,
)

# Section 9: estate values
VALUE_RANGE_RE = re.compile(
    r"greater\s+than\s+\$\s*([0-9,.]+)\s*(?:\.00)?\s*(?:but\s+)?less\s+than\s+\$\s*([0-9,.]+)",
    FLAGS,
)
PERSONAL_PROPERTY_RE = re.compile(r"Personal\s+Property\s+\$\s*([0-9,.]+|NONE)", FLAGS)
IMPROVED_RE = re.compile(r"(?<!un)Improved\s+real\s+property.*?\$\s*([0-9,.]+|NONE)", FLAGS)
UNIMPROVED_RE = re.compile(r"Unimproved\s+real\s+property.*?\$\s*([0-9,.]+|NONE)", FLAGS)
AMOUNT_TOKEN_RE = re.compile(r"^\d+(\.\d+)?$")

# ─────────────────────────────────────────────────────────────────────────────
# CLEANERS
# ─────────────────────────────────────────────────────────────────────────────

def clean_name(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = re.sub(r"\s+", " ", value)
    value = re.sub(r"[^A-Za-z\s.',-]", "", value)
    return value.strip() or None


def clean_address(value: Optional[str]) -> Optional[str]:
    """Collapse whitespace and drop parenthesised form captions like (Street)"""
    if not value:
        return None
    value = re.sub(r"\s+", " ", value)
    value = re.sub(r"\(.*?\)", "", value)
    return value.strip() or None


def parse_amount(token: Optional[str]) -> float:
    """
    Dollar amount from a petition token. NONE, blanks and garbage all read as 0.

    >>> parse_amount("1,250,000.00")
    1250000.0
    >>> parse_amount("NONE")
    0.0
    """
    if not token or token.strip().upper() == "NONE":
        return 0.0
    cleaned = re.sub(r"[,$\s]", "", token).rstrip(".")
    if not AMOUNT_TOKEN_RE.match(cleaned):
        return 0.0
    return float(cleaned)

# ─────────────────────────────────────────────────────────────────────────────
# FIELD EXTRACTORS
# ─────────────────────────────────────────────────────────────────────────────

def _decedent_name(text: str) -> Dict:
    match = DECEDENT_NAME_RE.search(text)
    name = clean_name(match.group(1)) if match else None
    if not name:
        match = WILL_OF_RE.search(text)
        name = clean_name(match.group(1)) if match else None
    return {"decedent_name": name}


def _date_of_death(text: str) -> Dict:
    match = DATE_OF_DEATH_RE.search(text)
    return {"date_of_death": match.group(1).strip() if match else None}


def _place_of_death(text: str) -> Dict:
    match = PLACE_OF_DEATH_RE.search(text)
    return {"place_of_death": clean_address(match.group(1)) if match else None}


def _decedent_address(text: str) -> Dict:
    address = None
    match = DOMICILE_RE.search(text)
    if match:
        parts = [clean_address(part or "") for part in match.groups()]
        address = ", ".join(part for part in parts if part) or None
    if not address:
        match = DOMICILE_STREET_RE.search(text)
        if match:
            address = clean_address(match.group(1))
    return {"decedent_address": address}


def _executor_name(text: str) -> Dict:
    match = PETITIONER_RE.search(text)
    name = clean_name(match.group(1)) if match else None
    if not name:
        match = NAME_FIELDS_RE.search(text)
        if match:
            first, middle, last = match.groups()
            middle = f"{middle.strip()}." if middle else ""
            name = " ".join(part for part in (first.strip(), middle, last.strip()) if part)
    return {"executor_name": name}


def _executor_address(text: str) -> Dict:
    match = EXECUTOR_ADDRESS_RE.search(text)
    if not match:
        return {"executor_address": None}
    street = clean_address(match.group(1))
    city_line = clean_address(match.group(2) or "")
    return {"executor_address": ", ".join(part for part in (street, city_line) if part) or None}


def _value_range(text: str) -> Dict:
    match = VALUE_RANGE_RE.search(text)
    if not match:
        return {}
    return {
        "estate_value_lower": parse_amount(match.group(1)),
        "estate_value_upper": parse_amount(match.group(2)),
    }


def _property_values(text: str) -> Dict:
    values = {}
    for field, pattern in (
        ("personal_property", PERSONAL_PROPERTY_RE),
        ("improved_real_property", IMPROVED_RE),
        ("unimproved_real_property", UNIMPROVED_RE),
    ):
        match = pattern.search(text)
        if match:
            values[field] = parse_amount(match.group(1))
    return values


EXTRACTORS: List[Tuple[str, Callable[[str], Dict]]] = [
    ("decedent name", _decedent_name),
    ("date of death", _date_of_death),
    ("place of death", _place_of_death),
    ("decedent address", _decedent_address),
    ("executor name", _executor_name),
    ("executor address", _executor_address),
    ("estate value range", _value_range),
    ("property values", _property_values),
]


def parse_petition_text(text: str) -> ParsedRecord:
    """Run every field extractor over the petition text"""
    fields: Dict = {}
    errors: List[str] = []
    for name, extractor in EXTRACTORS:
        try:
            fields.update(extractor(text or ""))
        except Exception as e:
            logger.warning(f"Petition parse error ({name}): {e}")
            errors.append(f"{name}: {e}")
    return ParsedRecord(**{k: v for k, v in fields.items() if v is not None}, parse_errors=errors)

# ─────────────────────────────────────────────────────────────────────────────
# VALUE FILTER
# ─────────────────────────────────────────────────────────────────────────────

def meets_threshold(record: ParsedRecord, min_value: float) -> bool:
    """Upper bound strictly above the minimum; unknown values are kept for manual review"""
    if record.estate_value_upper is None:
        return True
    return record.estate_value_upper > min_value


def _money(value: Optional[float]) -> str:
    return "?" if value is None else f"{value:,.0f}"


def threshold_reason(record: ParsedRecord, min_value: float) -> str:
    return (
        f"Estate value ${_money(record.estate_value_lower)}-${_money(record.estate_value_upper)} "
        f"below ${_money(min_value)} threshold"
    )
