"""
registry.py — CPV dictionary builder

Each sheet goes through an ordered chain of strategies; the first one that
yields any code provides that sheet's entries. Entries from all sheets merge
by code, later sheets overwriting earlier ones.

    standard     code column near the top, Romanian and English names after it
    alternative  labelled header row within the first rows
    generic      every cell scanned for embedded codes
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from paap_doctor.config import DEFAULT_EXTRACTION, ExtractionSettings
from paap_doctor.cpv import FULL_CODE_RE, BARE_CODE_RE, BARE_SUFFIX, extract_cpv_codes, match_code_cell
from paap_doctor.errors import NoCodesFound
from paap_doctor.loader import Sheet, Workbook, as_workbook
from paap_doctor.models import CpvCode

logger = logging.getLogger(__name__)

REGISTRY_HEADER_RE = re.compile(r"(?i)(cpv|common procurement vocabulary|cod)")
REGISTRY_HEADER_WORDS = {"CODE", "COD"}
NAME_HINTS = ("descrip", "name", "denumire", "text")
ENGLISH_HINTS = ("engl", "en")
ROMANIAN_HINTS = ("rom", "ro")

Strategy = Callable[[Sheet, ExtractionSettings], dict]


@dataclass
class SheetRegistry:
    sheet_name: str
    strategy: Optional[str]
    codes: dict[str, CpvCode] = field(default_factory=dict)


@dataclass
class RegistryBuild:
    codes: dict[str, CpvCode]
    sheets: list[SheetRegistry]
    warnings: list[str] = field(default_factory=list)

    def summary(self) -> dict:
        return {
            "code_count": len(self.codes),
            "sheets": [
                {"sheet": entry.sheet_name, "strategy": entry.strategy, "codes": len(entry.codes)}
                for entry in self.sheets
            ],
        }


def _first_code(text: str) -> Optional[str]:
    match = FULL_CODE_RE.search(text)
    if match:
        return match.group(0)
    match = BARE_CODE_RE.search(text)
    if match:
        return match.group(0) + BARE_SUFFIX
    return None


# ══════════════════════════════════════════════════════════════════════════════
# STRATEGIES
# ══════════════════════════════════════════════════════════════════════════════

def read_standard_registry(sheet: Sheet, settings: ExtractionSettings = DEFAULT_EXTRACTION) -> dict[str, CpvCode]:
    """Code column found in the first rows; the next two columns are the names."""
    if not len(sheet):
        return {}
    first = sheet.text(0, 0)
    has_header = first.upper() in REGISTRY_HEADER_WORDS or bool(REGISTRY_HEADER_RE.search(first))
    start = 1 if has_header else 0

    code_col = None
    for index in range(start, min(start + settings.registry_code_probe_rows, len(sheet))):
        for col in range(min(settings.registry_code_probe_columns, sheet.width(index))):
            if match_code_cell(sheet.text(index, col)):
                code_col = col
                break
        if code_col is not None:
            break
    if code_col is None:
        return {}

    codes: dict[str, CpvCode] = {}
    for index in range(start, len(sheet)):
        try:
            code = match_code_cell(sheet.text(index, code_col))
            if code is None:
                continue
            codes[code] = CpvCode(code, sheet.text(index, code_col + 1), sheet.text(index, code_col + 2))
        except Exception as exc:
            logger.warning("Skipping registry row %d in '%s': %s", index + 1, sheet.name, exc)
    return codes


def _alternative_header(texts: list[str]) -> Optional[dict[str, int]]:
    columns: dict[str, int] = {}
    for col, raw in enumerate(texts):
        text = raw.lower()
        if not text:
            continue
        if "cpv" in text or "cod" in text or text == "code":
            columns.setdefault("cpv", col)
        elif any(hint in text for hint in NAME_HINTS):
            if "ro" not in columns:
                columns["ro"] = col
            elif "en" not in columns:
                columns["en"] = col
        elif any(hint in text for hint in ENGLISH_HINTS):
            columns["en"] = col
        elif any(hint in text for hint in ROMANIAN_HINTS):
            columns["ro"] = col
    if "cpv" in columns and len(columns) >= 2:
        return columns
    return None


def read_alternative_registry(sheet: Sheet, settings: ExtractionSettings = DEFAULT_EXTRACTION) -> dict[str, CpvCode]:
    """Header row with a CPV column and at least one name column."""
    header_row, columns = None, None
    for index in range(min(settings.registry_header_scan_rows, len(sheet))):
        columns = _alternative_header(sheet.row_texts(index))
        if columns is not None:
            header_row = index
            break
    if header_row is None or columns is None:
        return {}
    logger.debug("Alternative registry header in '%s' at row %d: %s", sheet.name, header_row + 1, columns)

    codes: dict[str, CpvCode] = {}
    for index in range(header_row + 1, len(sheet)):
        if sheet.is_blank_row(index):
            continue
        try:
            code = _first_code(sheet.text(index, columns["cpv"]))
            if code is None:
                continue
            ro_name = sheet.text(index, columns["ro"]) if "ro" in columns else ""
            en_name = sheet.text(index, columns["en"]) if "en" in columns else ""
            codes[code] = CpvCode(code, ro_name, en_name)
        except Exception as exc:
            logger.warning("Skipping registry row %d in '%s': %s", index + 1, sheet.name, exc)
    return codes


def read_generic_registry(sheet: Sheet, settings: ExtractionSettings = DEFAULT_EXTRACTION) -> dict[str, CpvCode]:
    """Every code anywhere in the sheet, described by its neighbouring cell."""
    codes: dict[str, CpvCode] = {}
    for index in range(len(sheet)):
        width = sheet.width(index)
        for col in range(width):
            found = extract_cpv_codes(sheet.text(index, col))
            if not found:
                continue
            if col + 1 < width:
                description = sheet.text(index, col + 1)
            elif col > 0:
                description = sheet.text(index, col - 1)
            else:
                description = ""
            for code in found:
                codes[code] = CpvCode(code, description, "")
    return codes


REGISTRY_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("standard", read_standard_registry),
    ("alternative", read_alternative_registry),
    ("generic", read_generic_registry),
)


def first_strategy_match(
    sheet: Sheet,
    strategies: tuple[tuple[str, Strategy], ...],
    settings: ExtractionSettings,
):
    """Run strategies lazily; return (name, result) for the first non-empty result."""
    for name, strategy in strategies:
        result = strategy(sheet, settings)
        if result:
            return name, result
    return None, None


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def build_registry(
    source: "str | Path | Workbook | Sheet",
    settings: Optional[ExtractionSettings] = None,
) -> RegistryBuild:
    """
    Build the CPV dictionary of a workbook and report which strategy served
    each sheet.

    Raises NoCodesFound when no sheet yields a code, IOFailure when the file
    cannot be read.
    """
    settings = settings or DEFAULT_EXTRACTION
    workbook = as_workbook(source, settings)
    merged: dict[str, CpvCode] = {}
    sheets: list[SheetRegistry] = []
    warnings = list(workbook.warnings)

    for sheet in workbook.sheets:
        name, codes = first_strategy_match(sheet, REGISTRY_STRATEGIES, settings)
        if name is None:
            logger.info("Sheet '%s': no CPV codes recognised", sheet.name)
            warnings.append(f"Sheet '{sheet.name}' contains no recognisable CPV codes")
            sheets.append(SheetRegistry(sheet.name, None))
            continue
        logger.info("Sheet '%s': %d CPV code(s) via %s format", sheet.name, len(codes), name)
        sheets.append(SheetRegistry(sheet.name, name, codes))
        merged.update(codes)

    if not merged:
        raise NoCodesFound(workbook.path, workbook.sheet_names)
    return RegistryBuild(codes=merged, sheets=sheets, warnings=warnings)


def load_cpv_registry(
    source: "str | Path | Workbook | Sheet",
    settings: Optional[ExtractionSettings] = None,
) -> dict[str, CpvCode]:
    """Return the merged code -> CpvCode mapping of a registry file."""
    return build_registry(source, settings).codes
