"""CPV code extraction from free text."""

from __future__ import annotations

import re
from typing import Optional

FULL_CODE_RE = re.compile(r"\d{8}-\d")
BARE_CODE_RE = re.compile(r"\d{8}")
FULL_CODE_EXACT_RE = re.compile(r"^\d{8}-\d$")
BARE_CODE_EXACT_RE = re.compile(r"^\d{8}$")
BARE_SUFFIX = "-0"


def extract_cpv_codes(text: Optional[str]) -> list[str]:
    """
    Return the CPV codes in ``text`` in order of appearance.

    Full ``DDDDDDDD-D`` codes win. Bare eight-digit runs are only read, with
    a ``-0`` check digit, when the text holds no full code at all.
    """
    if not text:
        return []
    full = FULL_CODE_RE.findall(text)
    if full:
        return full
    return [code + BARE_SUFFIX for code in BARE_CODE_RE.findall(text)]


def match_code_cell(text: str) -> Optional[str]:
    """Return the code when a whole cell is a CPV code, else None."""
    value = text.strip()
    if FULL_CODE_EXACT_RE.match(value):
        return value
    if BARE_CODE_EXACT_RE.match(value):
        return value + BARE_SUFFIX
    return None


def first_cpv_code(text: Optional[str]) -> Optional[str]:
    codes = extract_cpv_codes(text)
    return codes[0] if codes else None


def cpv_category(code: str) -> str:
    return code[:2] if len(code) >= 2 else ""
