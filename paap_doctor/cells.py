"""
cells.py — cell value normalization for paap-doctor

Every reader (openpyxl, pandas, delimited text) produces Cell objects so the
extraction code never cares where a value came from.

Two distinct conversions live here:
    normalize_cell(cell)  display text used for matching and names
    parse_amount(cell)    locale-aware float used for monetary values
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Optional

logger = logging.getLogger(__name__)

ERROR_VALUES = {"#REF!", "#VALUE!", "#DIV/0!", "#NAME?", "#NULL!", "#N/A", "#NUM!"}
DATE_DISPLAY_FORMAT = "%d.%m.%Y"
TIME_DISPLAY_FORMAT = "%H:%M:%S"

# Romanian locale: "." groups thousands, "," separates decimals.
RO_GROUPED_RE = re.compile(r"^-?\d{1,3}(?:\.\d{3})+(?:,\d+)?$")
RO_PLAIN_RE = re.compile(r"^-?\d+(?:,\d+)?$")
AMOUNT_STRIP_RE = re.compile(r"[^0-9.,\-]")
FIRST_INT_RE = re.compile(r"\d+")
NUMERIC_TEXT_RE = re.compile(r"^-?(?:\d{1,3}(?:[.,\s]\d{3})+|\d+)(?:[.,]\d+)?$")
CURRENCY_TOKEN_RE = re.compile(r"(?i)\b(?:lei|ron|eur|euro|usd)\b|[€$]")
FORMULA_STRING_RE = re.compile(r'^=\s*"((?:[^"]|"")*)"\s*$')
FORMULA_NUMBER_RE = re.compile(r"^=\s*(-?\d+(?:\.\d+)?)\s*$")

TEXT = "text"
NUMBER = "number"
BOOLEAN = "boolean"
DATE = "date"
FORMULA = "formula"
ERROR = "error"
BLANK = "blank"


@dataclass(frozen=True)
class Cell:
    """One spreadsheet cell as delivered by a reader.

    For formula cells ``value`` holds the cached result (None when the
    workbook was never recalculated) and ``formula`` the formula text.
    """

    kind: str
    value: Any = None
    formula: Optional[str] = None


BLANK_CELL = Cell(BLANK)


def is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def classify_value(value) -> str:
    if is_blank(value):
        return BLANK
    if isinstance(value, bool):
        return BOOLEAN
    if isinstance(value, (datetime, date, time)):
        return DATE
    if isinstance(value, (int, float)):
        return NUMBER
    if isinstance(value, str) and value.strip().upper() in ERROR_VALUES:
        return ERROR
    return TEXT


def make_cell(value, formula: Optional[str] = None) -> Cell:
    """Wrap a raw reader value; pass ``formula`` to mark a formula cell."""
    if formula is not None:
        return Cell(FORMULA, None if is_blank(value) else value, formula)
    kind = classify_value(value)
    if kind == BLANK:
        return BLANK_CELL
    if kind == NUMBER and not isinstance(value, (int, float)):
        value = float(value)
    return Cell(kind, value)


def format_number(value) -> str:
    number = float(value)
    if math.isinf(number) or math.isnan(number):
        return ""
    if number.is_integer():
        return "%.0f" % number
    return repr(number)


def format_date(value) -> str:
    if isinstance(value, datetime):
        return value.strftime(DATE_DISPLAY_FORMAT)
    if isinstance(value, date):
        return value.strftime(DATE_DISPLAY_FORMAT)
    if isinstance(value, time):
        return value.strftime(TIME_DISPLAY_FORMAT)
    return str(value)


def _formula_literal(formula: str) -> str:
    text = formula.strip()
    match = FORMULA_STRING_RE.match(text)
    if match:
        return match.group(1).replace('""', '"')
    match = FORMULA_NUMBER_RE.match(text)
    if match:
        return format_number(match.group(1))
    return ""


def normalize_cell(cell: Optional[Cell]) -> str:
    """Return the display text of a cell (never None)."""
    if cell is None:
        return ""
    kind = cell.kind
    if kind == TEXT:
        return str(cell.value)
    if kind == NUMBER:
        return format_number(cell.value)
    if kind == BOOLEAN:
        return "true" if cell.value else "false"
    if kind == DATE:
        return format_date(cell.value)
    if kind == FORMULA:
        if cell.value is not None:
            return normalize_cell(make_cell(cell.value))
        logger.debug("Formula %s has no cached result; using its literal", cell.formula)
        return _formula_literal(cell.formula or "")
    return ""


def cell_text(cell: Optional[Cell]) -> str:
    return normalize_cell(cell).strip()


def parse_amount_text(text: str) -> float:
    """
    Parse a monetary amount written by hand.

    The Romanian form is tried first ("1.234,56"). When that fails, a comma
    next to a dot is taken as a thousands separator and a lone comma as the
    decimal separator. Anything unparsable is 0.0.
    """
    cleaned = AMOUNT_STRIP_RE.sub("", text or "")
    if not cleaned:
        return 0.0
    if RO_GROUPED_RE.match(cleaned) or RO_PLAIN_RE.match(cleaned):
        return float(cleaned.replace(".", "").replace(",", "."))
    if "," in cleaned and "." in cleaned:
        candidate = cleaned.replace(",", "")
    elif "," in cleaned:
        candidate = cleaned.replace(",", ".")
    else:
        candidate = cleaned
    try:
        return float(candidate)
    except ValueError:
        logger.debug("Unparsable amount %r; using 0.0", text)
        return 0.0


def parse_amount(cell: Optional[Cell]) -> float:
    """Return a non-negative float for a value cell."""
    if cell is None:
        return 0.0
    if cell.kind == FORMULA:
        if cell.value is None:
            return parse_amount_text(_formula_literal(cell.formula or ""))
        return parse_amount(make_cell(cell.value))
    if cell.kind == NUMBER:
        amount = float(cell.value)
    elif cell.kind == TEXT:
        amount = parse_amount_text(str(cell.value))
    else:
        return 0.0
    if math.isnan(amount) or math.isinf(amount):
        return 0.0
    if amount < 0:
        logger.debug("Negative amount %r clamped to 0.0", cell.value)
        return 0.0
    return amount


def extract_int(cell: Optional[Cell]) -> int:
    """First integer found in a cell, or 0."""
    if cell is None:
        return 0
    if cell.kind == NUMBER:
        number = float(cell.value)
        return int(number) if math.isfinite(number) else 0
    match = FIRST_INT_RE.search(normalize_cell(cell))
    return int(match.group(0)) if match else 0


def looks_numeric(cell: Optional[Cell]) -> bool:
    """True for number cells and text that reads as an amount."""
    if cell is None:
        return False
    if cell.kind == FORMULA and cell.value is not None:
        return looks_numeric(make_cell(cell.value))
    if cell.kind == NUMBER:
        return True
    if cell.kind != TEXT:
        return False
    text = CURRENCY_TOKEN_RE.sub("", str(cell.value)).strip()
    return bool(text) and bool(NUMERIC_TEXT_RE.match(text))


def is_date_cell(cell: Optional[Cell]) -> bool:
    if cell is None:
        return False
    if cell.kind == FORMULA and cell.value is not None:
        return classify_value(cell.value) == DATE
    return cell.kind == DATE
