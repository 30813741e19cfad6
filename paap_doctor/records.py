"""
records.py — procurement item extraction

One ProcurementItem per data row, using the column map of the first strategy
that fits each sheet:

    standard        keyword header (first 50 rows) + header scoring
    generic-header  looser role regexes over the first 20 rows
    headerless      column statistics from row 0

Rows with an empty item name (subtotals, separators, notes) are dropped.
A row that fails to convert is skipped with a warning; it never aborts the
sheet.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from paap_doctor.cells import extract_int, parse_amount
from paap_doctor.column_detector import (
    classify_by_content,
    classify_by_header,
    classify_generic_header,
    find_data_start,
    locate_header_row,
)
from paap_doctor.config import DEFAULT_EXTRACTION, ExtractionSettings
from paap_doctor.errors import NoItemsFound
from paap_doctor.loader import Sheet, Workbook, as_workbook
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
    ProcurementItem,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SheetLayout:
    """Where the data of one sheet lives."""

    strategy: str
    column_map: ColumnMap
    data_start: int
    header_row: Optional[int] = None


@dataclass
class SheetExtraction:
    sheet_name: str
    layout: Optional[SheetLayout]
    items: list[ProcurementItem] = field(default_factory=list)
    dropped_rows: int = 0
    failed_rows: list[int] = field(default_factory=list)

    def summary(self) -> dict:
        layout = self.layout
        return {
            "sheet": self.sheet_name,
            "strategy": layout.strategy if layout else None,
            "header_row": layout.header_row + 1 if layout and layout.header_row is not None else None,
            "data_start_row": layout.data_start + 1 if layout else None,
            "column_map": dict(layout.column_map) if layout else {},
            "items": len(self.items),
            "dropped_rows": self.dropped_rows,
            "failed_rows": list(self.failed_rows),
        }


@dataclass
class ExtractionResult:
    items: list[ProcurementItem]
    sheets: list[SheetExtraction]
    warnings: list[str] = field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════════
# LAYOUT STRATEGIES
# ══════════════════════════════════════════════════════════════════════════════

def standard_layout(sheet: Sheet, settings: ExtractionSettings = DEFAULT_EXTRACTION) -> Optional[SheetLayout]:
    header_row = locate_header_row(sheet, settings)
    if header_row is None:
        return None
    column_map = classify_by_header(sheet, header_row)
    if OBJECT_NAME not in column_map:
        return None
    data_start = find_data_start(sheet, header_row, column_map, settings)
    if data_start is None:
        return None
    return SheetLayout("standard", column_map, data_start, header_row)


def generic_header_layout(sheet: Sheet, settings: ExtractionSettings = DEFAULT_EXTRACTION) -> Optional[SheetLayout]:
    found = classify_generic_header(sheet, settings)
    if found is None:
        return None
    header_row, column_map = found
    data_start = find_data_start(sheet, header_row, column_map, settings)
    if data_start is None:
        return None
    return SheetLayout("generic-header", column_map, data_start, header_row)


def headerless_layout(sheet: Sheet, settings: ExtractionSettings = DEFAULT_EXTRACTION) -> Optional[SheetLayout]:
    column_map = classify_by_content(sheet, 0, settings)
    if OBJECT_NAME not in column_map:
        return None
    return SheetLayout("headerless", column_map, 0, None)


LAYOUT_STRATEGIES: tuple[tuple[str, Callable[[Sheet, ExtractionSettings], Optional[SheetLayout]]], ...] = (
    ("standard", standard_layout),
    ("generic-header", generic_header_layout),
    ("headerless", headerless_layout),
)


# ══════════════════════════════════════════════════════════════════════════════
# ROW CONVERSION
# ══════════════════════════════════════════════════════════════════════════════

def _optional_text(sheet: Sheet, index: int, column_map: ColumnMap, name: str) -> Optional[str]:
    if name not in column_map:
        return None
    return sheet.text(index, column_map[name]) or None


def build_item(sheet: Sheet, index: int, layout: SheetLayout) -> Optional[ProcurementItem]:
    """Convert one sheet row; None when the row has no item name."""
    column_map = layout.column_map
    name = sheet.text(index, column_map[OBJECT_NAME]) if OBJECT_NAME in column_map else ""
    if not name:
        return None

    if ROW_NUMBER in column_map:
        row_number = extract_int(sheet.cell(index, column_map[ROW_NUMBER]))
    elif layout.header_row is not None:
        row_number = index - layout.header_row
    else:
        row_number = index + 1

    cpv_field = sheet.text(index, column_map[CPV_FIELD]) if CPV_FIELD in column_map else ""
    without_tva = parse_amount(sheet.cell(index, column_map[VALUE_WITHOUT_TVA])) if VALUE_WITHOUT_TVA in column_map else 0.0
    with_tva = parse_amount(sheet.cell(index, column_map[VALUE_WITH_TVA])) if VALUE_WITH_TVA in column_map else 0.0

    return ProcurementItem(
        row_number=row_number,
        object_name=name,
        cpv_field=cpv_field,
        value_without_tva=without_tva,
        value_with_tva=with_tva,
        source=_optional_text(sheet, index, column_map, SOURCE),
        initiation_date=_optional_text(sheet, index, column_map, INITIATION_DATE),
        completion_date=_optional_text(sheet, index, column_map, COMPLETION_DATE),
    )


def extract_sheet(sheet: Sheet, settings: ExtractionSettings = DEFAULT_EXTRACTION) -> SheetExtraction:
    layout = None
    for name, strategy in LAYOUT_STRATEGIES:
        layout = strategy(sheet, settings)
        if layout is not None:
            break
    result = SheetExtraction(sheet.name, layout)
    if layout is None:
        logger.info("Sheet '%s': no usable column layout", sheet.name)
        return result

    logger.info(
        "Sheet '%s': %s layout, data from row %d, columns %s",
        sheet.name, layout.strategy, layout.data_start + 1, layout.column_map,
    )
    for index in range(layout.data_start, len(sheet)):
        if sheet.is_blank_row(index):
            continue
        try:
            item = build_item(sheet, index, layout)
        except Exception as exc:
            logger.warning("Skipping row %d in '%s': %s", index + 1, sheet.name, exc)
            result.failed_rows.append(index + 1)
            continue
        if item is None:
            result.dropped_rows += 1
            continue
        result.items.append(item)
    return result


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def extract_items(
    source: "str | Path | Workbook | Sheet",
    settings: Optional[ExtractionSettings] = None,
) -> ExtractionResult:
    """
    Extract procurement items from every sheet, in workbook order.

    Raises NoItemsFound when no sheet yields an item, IOFailure when the file
    cannot be read.
    """
    settings = settings or DEFAULT_EXTRACTION
    workbook = as_workbook(source, settings)
    items: list[ProcurementItem] = []
    sheets: list[SheetExtraction] = []
    warnings = list(workbook.warnings)

    for sheet in workbook.sheets:
        extraction = extract_sheet(sheet, settings)
        sheets.append(extraction)
        items.extend(extraction.items)
        if extraction.layout is None and len(sheet):
            warnings.append(f"Sheet '{sheet.name}' has no recognisable procurement columns")
        if extraction.failed_rows:
            rows = ", ".join(str(row) for row in extraction.failed_rows)
            warnings.append(f"Sheet '{sheet.name}': skipped unreadable row(s) {rows}")

    if not items:
        raise NoItemsFound(workbook.path, workbook.sheet_names)
    return ExtractionResult(items=items, sheets=sheets, warnings=warnings)


def load_procurement_items(
    source: "str | Path | Workbook | Sheet",
    settings: Optional[ExtractionSettings] = None,
) -> list[ProcurementItem]:
    """Return the procurement items of a PAAP file in sheet and row order."""
    return extract_items(source, settings).items
