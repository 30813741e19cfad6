"""
detection.py — guess whether a workbook is a CPV registry or a PAAP plan

Looks only at the first rows of each sheet: full-pattern CPV codes,
registry-style header words and procurement-style header words.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from paap_doctor.config import DEFAULT_EXTRACTION, ExtractionSettings
from paap_doctor.cpv import FULL_CODE_RE
from paap_doctor.loader import Sheet, Workbook, as_workbook

logger = logging.getLogger(__name__)

REGISTRY_KEYWORDS = ("cpv", "cod", "code", "denumire", "description", "english", "romana")
PROCUREMENT_KEYWORDS = (
    "valoare", "value", "tva", "achizitie", "procurement",
    "sursa", "finantare", "data", "estimat", "obiect",
)

CPV_CODES = "cpv_codes"
PROCUREMENT_DATA = "procurement_data"
UNKNOWN = "unknown"


def scan_sheet(sheet: Sheet, settings: ExtractionSettings = DEFAULT_EXTRACTION) -> dict:
    code_hits = 0
    registry_hits = 0
    procurement_hits = 0
    for index in range(min(settings.detection_scan_rows, len(sheet))):
        for text in sheet.row_texts(index):
            if not text:
                continue
            lowered = text.lower()
            if FULL_CODE_RE.search(text):
                code_hits += 1
            if any(word in lowered for word in REGISTRY_KEYWORDS):
                registry_hits += 1
            if any(word in lowered for word in PROCUREMENT_KEYWORDS):
                procurement_hits += 1
    return {
        "sheet": sheet.name,
        "cpv_code_cells": code_hits,
        "registry_keyword_cells": registry_hits,
        "procurement_keyword_cells": procurement_hits,
    }


def classify_counts(code_hits: int, registry_hits: int, procurement_hits: int) -> tuple[str, int]:
    """Map keyword and code counts to (detected type, confidence 0-100)."""
    if code_hits >= 5 and registry_hits > 0 and registry_hits >= procurement_hits:
        return CPV_CODES, 90
    if procurement_hits >= 3:
        return PROCUREMENT_DATA, 85
    if registry_hits > 0 and code_hits > 0:
        return CPV_CODES, 80
    if procurement_hits >= 1 and code_hits > 0:
        return PROCUREMENT_DATA, 70
    return UNKNOWN, 30


def detect_file_kind(
    source: "str | Path | Workbook | Sheet",
    settings: Optional[ExtractionSettings] = None,
) -> dict:
    settings = settings or DEFAULT_EXTRACTION
    workbook = as_workbook(source, settings)
    sheets = [scan_sheet(sheet, settings) for sheet in workbook.sheets]
    detected, confidence = classify_counts(
        sum(entry["cpv_code_cells"] for entry in sheets),
        sum(entry["registry_keyword_cells"] for entry in sheets),
        sum(entry["procurement_keyword_cells"] for entry in sheets),
    )
    logger.info("Detected %s (%d%% confidence) for %s", detected, confidence, workbook.path or "in-memory sheet")
    return {
        "file": str(workbook.path) if workbook.path else None,
        "detected_format": workbook.detected_format,
        "detected_type": detected,
        "confidence_score": confidence,
        "recommended_import": detected,
        "sheets": sheets,
        "warnings": list(workbook.warnings),
    }
