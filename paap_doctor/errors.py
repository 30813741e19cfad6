"""Whole-file failure kinds surfaced to callers.

Row-level anomalies never reach this module: they degrade to defaults and are
logged where they happen.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class PaapDoctorError(Exception):
    """Base class for every error paap-doctor raises on purpose."""


class IOFailure(PaapDoctorError, OSError):
    """The file could not be opened, decoded or parsed as a workbook."""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class RecognitionError(PaapDoctorError, ValueError):
    """Every supported strategy ran over the whole workbook and found nothing."""

    what = "records"

    def __init__(
        self,
        path: Optional[Path] = None,
        sheet_names: Sequence[str] = (),
        message: Optional[str] = None,
    ) -> None:
        self.path = path
        self.sheet_names = list(sheet_names)
        if message is None:
            where = f" in {path.name}" if path is not None else ""
            scanned = ", ".join(self.sheet_names) or "no sheets"
            message = f"No {self.what} found{where} (scanned: {scanned})"
        super().__init__(message)


class NoCodesFound(RecognitionError):
    what = "CPV codes"


class NoItemsFound(RecognitionError):
    what = "procurement items"
