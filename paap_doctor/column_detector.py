"""
column_detector.py — header location and column-role classification

Decides which column of a procurement sheet holds which field even when the
headers are in Romanian, English, a mix of both, or missing entirely.

Three ways of building a ColumnMap, from most to least trusted:
    classify_by_header      keyword scoring over a located header row
    classify_generic_header role regexes over a looser header search
    classify_by_content     per-column statistics over the first data rows

All of them are pure functions of a Sheet. A field that cannot be placed is
left out of the map.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from paap_doctor.cells import is_date_cell, looks_numeric
from paap_doctor.config import DEFAULT_EXTRACTION, ExtractionSettings
from paap_doctor.cpv import extract_cpv_codes
from paap_doctor.loader import Sheet
from paap_doctor.models import (
    COMPLETION_DATE,
    CPV_FIELD,
    INITIATION_DATE,
    OBJECT_NAME,
    ROW_NUMBER,
    SOURCE,
    VALUE_WITH_TVA,
    VALUE_WITHOUT_TVA,
    ColumnMap,
)

HEADER_KEYWORDS = (
    "nr. crt", "nr.crt", "nr crt", "nr", "numar", "număr", "pozitie",
    "obiectul", "obiect", "achizitie", "achiziție", "denumire",
    "cod cpv", "cpv", "cod", "coduri",
    "value", "valoare", "pret", "preț",
)

KEYWORD_POINTS = 3


@dataclass(frozen=True)
class FieldRule:
    field: str
    keywords: tuple[str, ...]
    # (phrases, points): added once when any phrase is present and the
    # column already scored for this field.
    bonuses: tuple[tuple[tuple[str, ...], int], ...] = ()


FIELD_RULES = (
    FieldRule(ROW_NUMBER, (
        "nr. crt", "nr.crt", "nr crt", "nr", "#", "numar", "număr", "pozitie", "position",
    )),
    FieldRule(OBJECT_NAME, (
        "obiectul", "obiect", "achizitie", "achiziției", "achizitiei", "achiziție",
        "denumire", "denumirea", "name", "object", "description", "item",
    )),
    FieldRule(CPV_FIELD, ("cod cpv", "cpv", "cod", "coduri", "code")),
    FieldRule(
        VALUE_WITHOUT_TVA,
        (
            "valoare", "valoarea", "fără tva", "fara tva", "fără", "fara", "lei", "ron",
            "pret", "price", "netă", "neta", "net", "excluding vat", "without vat",
        ),
        bonuses=((("fara tva", "fără tva"), 5),),
    ),
    FieldRule(
        VALUE_WITH_TVA,
        (
            "valoare", "valoarea", "cu tva", "inclusiv tva", "cu", "lei", "ron",
            "brut", "brută", "including vat", "with vat",
        ),
        bonuses=((("cu tva", "inclusiv tva"), 5),),
    ),
    FieldRule(SOURCE, (
        "sursa", "sursă", "finanțare", "finantare", "fonduri", "buget", "source", "funding",
    )),
    FieldRule(INITIATION_DATE, (
        "inițiere", "initiere", "data", "dată", "începere", "incepere", "start",
        "beginning", "initiation",
    )),
    FieldRule(COMPLETION_DATE, (
        "finalizare", "finalizarea", "data", "dată", "încheiere", "incheiere", "final",
        "sfarsit", "sfârșit", "completion", "end",
    )),
)

DATE_TEXT_RE = re.compile(r"\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4}|\d{4}[/.-]\d{1,2}[/.-]\d{1,2}")

GENERIC_CPV_RE = re.compile(r"(?i)(cpv|\bcod)")
GENERIC_DESCRIPTION_RE = re.compile(r"(?i)(description|name|denumire|desc|text|obiect)")
GENERIC_VALUE_RE = re.compile(r"(?i)(value|sum|amount|valoare|cost|price|pret)")
GENERIC_GROSS_RE = re.compile(r"(?i)(cu\s+tva|inclusiv|with\s+vat|including\s+vat|brut)")
GENERIC_ROW_NUMBER_RE = re.compile(r"(?i)^\s*(nr\b|nr\.|no\b|no\.|#)")
GENERIC_SOURCE_RE = re.compile(r"(?i)(sursa|sursă|source|funding|finan)")
GENERIC_START_RE = re.compile(r"(?i)(initiere|inițiere|incepere|începere|start)")
GENERIC_END_RE = re.compile(r"(?i)(finalizare|incheiere|încheiere|completion|\bend\b)")
GENERIC_DATE_RE = re.compile(r"(?i)(\bdata\b|\bdată\b|\bdate\b)")


# ══════════════════════════════════════════════════════════════════════════════
# HEADER LOCATION
# ══════════════════════════════════════════════════════════════════════════════

def header_match_counts(texts: list[str], keywords: tuple[str, ...] = HEADER_KEYWORDS) -> tuple[int, int]:
    """Return (cells containing a header keyword, non-empty cells)."""
    candidates = [text.lower() for text in texts if text]
    matches = sum(1 for text in candidates if any(keyword in text for keyword in keywords))
    return matches, len(candidates)


def locate_header_row(sheet: Sheet, settings: ExtractionSettings = DEFAULT_EXTRACTION) -> Optional[int]:
    """
    Return the index of the first row that looks like a header, or None.

    A row qualifies when enough of its cells contain a header keyword, both
    as an absolute count and as a share of its non-empty cells.
    """
    for index in range(min(settings.header_scan_rows, len(sheet))):
        matches, candidates = header_match_counts(sheet.row_texts(index))
        if candidates == 0:
            continue
        if matches >= settings.header_min_matches and matches / candidates >= settings.header_min_ratio:
            return index
    return None


# ══════════════════════════════════════════════════════════════════════════════
# HEADER-DRIVEN SCORING
# ══════════════════════════════════════════════════════════════════════════════

def score_header_cell(text: str, rule: FieldRule) -> int:
    lowered = text.lower().strip()
    if not lowered:
        return 0
    score = KEYWORD_POINTS * sum(1 for keyword in rule.keywords if keyword in lowered)
    if score > 0:
        for phrases, points in rule.bonuses:
            if any(phrase in lowered for phrase in phrases):
                score += points
    return score


def score_header_columns(header_texts: list[str], rules: tuple[FieldRule, ...] = FIELD_RULES) -> dict[str, list[int]]:
    """Score every header cell against every field rule."""
    return {rule.field: [score_header_cell(text, rule) for text in header_texts] for rule in rules}


def classify_by_header(sheet: Sheet, header_row: int, rules: tuple[FieldRule, ...] = FIELD_RULES) -> ColumnMap:
    """Map each field to its best-scoring header column; the leftmost wins ties."""
    scores = score_header_columns(sheet.row_texts(header_row), rules)
    column_map: ColumnMap = {}
    for field, column_scores in scores.items():
        best_col, best_score = -1, 0
        for col, score in enumerate(column_scores):
            if score > best_score:
                best_col, best_score = col, score
        if best_col >= 0:
            column_map[field] = best_col
    return column_map


def find_data_start(
    sheet: Sheet,
    header_row: int,
    column_map: ColumnMap,
    settings: ExtractionSettings = DEFAULT_EXTRACTION,
) -> Optional[int]:
    """First row after the header with any mapped cell filled in."""
    columns = sorted(set(column_map.values()))
    last = min(header_row + settings.data_start_window, len(sheet) - 1)
    for index in range(header_row + 1, last + 1):
        if any(sheet.text(index, col) for col in columns):
            return index
    return None


# ══════════════════════════════════════════════════════════════════════════════
# GENERIC HEADER ROLES
# ══════════════════════════════════════════════════════════════════════════════

def _generic_roles(texts: list[str]) -> ColumnMap:
    column_map: ColumnMap = {}
    undated: list[int] = []
    for col, text in enumerate(texts):
        if not text:
            continue
        if GENERIC_CPV_RE.search(text):
            column_map.setdefault(CPV_FIELD, col)
        elif GENERIC_VALUE_RE.search(text):
            if GENERIC_GROSS_RE.search(text):
                column_map.setdefault(VALUE_WITH_TVA, col)
            else:
                column_map.setdefault(VALUE_WITHOUT_TVA, col)
        elif GENERIC_ROW_NUMBER_RE.search(text):
            column_map.setdefault(ROW_NUMBER, col)
        elif GENERIC_SOURCE_RE.search(text):
            column_map.setdefault(SOURCE, col)
        elif GENERIC_START_RE.search(text):
            column_map.setdefault(INITIATION_DATE, col)
        elif GENERIC_END_RE.search(text):
            column_map.setdefault(COMPLETION_DATE, col)
        elif GENERIC_DATE_RE.search(text):
            undated.append(col)
        elif GENERIC_DESCRIPTION_RE.search(text):
            column_map.setdefault(OBJECT_NAME, col)
    for col in undated:
        if INITIATION_DATE not in column_map:
            column_map[INITIATION_DATE] = col
        elif COMPLETION_DATE not in column_map:
            column_map[COMPLETION_DATE] = col
    return column_map


def classify_generic_header(
    sheet: Sheet,
    settings: ExtractionSettings = DEFAULT_EXTRACTION,
) -> Optional[tuple[int, ColumnMap]]:
    """
    Search the first rows for a header naming at least a description and a
    value column. Returns (header_row, column_map) or None.
    """
    for index in range(min(settings.generic_header_scan_rows, len(sheet))):
        column_map = _generic_roles(sheet.row_texts(index))
        has_value = VALUE_WITHOUT_TVA in column_map or VALUE_WITH_TVA in column_map
        if OBJECT_NAME in column_map and has_value:
            return index, column_map
    return None


# ══════════════════════════════════════════════════════════════════════════════
# CONTENT-DRIVEN STATISTICS
# ══════════════════════════════════════════════════════════════════════════════

@dataclass
class ColumnStats:
    column: int
    cpv_hits: int = 0
    numeric_hits: int = 0
    date_hits: int = 0
    text_length: int = 0
    integers: tuple = ()


def sample_rows(sheet: Sheet, start_row: int, limit: int) -> list[int]:
    rows: list[int] = []
    index = start_row
    while index < len(sheet) and len(rows) < limit:
        if not sheet.is_blank_row(index):
            rows.append(index)
        index += 1
    return rows


def column_stats(sheet: Sheet, rows: list[int]) -> list[ColumnStats]:
    width = max((sheet.width(index) for index in rows), default=0)
    stats = [ColumnStats(column=col) for col in range(width)]
    for index in rows:
        for col, entry in enumerate(stats):
            cell = sheet.cell(index, col)
            text = sheet.text(index, col)
            if not text:
                continue
            entry.text_length += len(text)
            if extract_cpv_codes(text):
                entry.cpv_hits += 1
            if looks_numeric(cell):
                entry.numeric_hits += 1
                if text.isdigit():
                    entry.integers += (int(text),)
            if is_date_cell(cell) or DATE_TEXT_RE.search(text):
                entry.date_hits += 1
    return stats


def _is_counter(entry: ColumnStats, sampled: int) -> bool:
    values = entry.integers
    if len(values) != sampled or len(values) < 2:
        return False
    return all(later - earlier == 1 for earlier, later in zip(values, values[1:]))


def classify_by_content(
    sheet: Sheet,
    start_row: int = 0,
    settings: ExtractionSettings = DEFAULT_EXTRACTION,
) -> ColumnMap:
    """
    Guess column roles from the first data rows when no header is usable.

    CPV column: most code hits, covering at least half the sample.
    Item name: longest cumulative text outside the CPV column.
    Values: numeric in at least half the sample and more numeric than date
    hits, first two in column order. Dates: date-like in at least a third of
    the sample, first two in column order. A leading 1, 2, 3... column is
    taken as the row number before values are assigned.
    """
    rows = sample_rows(sheet, start_row, settings.headerless_sample_rows)
    sampled = len(rows)
    if sampled < settings.headerless_min_rows:
        return {}

    stats = column_stats(sheet, rows)
    column_map: ColumnMap = {}
    taken: set[int] = set()

    best_cpv = None
    for entry in stats:
        if entry.cpv_hits > 0 and (best_cpv is None or entry.cpv_hits > best_cpv.cpv_hits):
            best_cpv = entry
    if best_cpv is not None and best_cpv.cpv_hits >= sampled * settings.cpv_hit_ratio:
        column_map[CPV_FIELD] = best_cpv.column
        taken.add(best_cpv.column)

    best_name = None
    for entry in stats:
        if entry.column in taken or entry.text_length == 0:
            continue
        if best_name is None or entry.text_length > best_name.text_length:
            best_name = entry
    if best_name is not None:
        column_map[OBJECT_NAME] = best_name.column
        taken.add(best_name.column)

    for entry in stats:
        if entry.column not in taken and _is_counter(entry, sampled):
            column_map[ROW_NUMBER] = entry.column
            taken.add(entry.column)
            break

    value_fields = [VALUE_WITHOUT_TVA, VALUE_WITH_TVA]
    for entry in stats:
        if not value_fields:
            break
        if entry.column in taken:
            continue
        if entry.numeric_hits >= sampled * settings.numeric_hit_ratio and entry.date_hits < entry.numeric_hits:
            column_map[value_fields.pop(0)] = entry.column
            taken.add(entry.column)

    date_fields = [INITIATION_DATE, COMPLETION_DATE]
    for entry in stats:
        if not date_fields:
            break
        if entry.column in taken:
            continue
        if entry.date_hits > 0 and entry.date_hits >= sampled * settings.date_hit_ratio:
            column_map[date_fields.pop(0)] = entry.column
            taken.add(entry.column)

    return column_map
