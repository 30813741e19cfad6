"""
loader.py — workbook and delimited-text reader for paap-doctor

Supports: .csv .tsv .txt .xlsx .xlsm .xls .ods

Public API:
    workbook = load_workbook("path/to/plan.xlsx")
    for sheet in workbook.sheets:
        sheet.text(row, col)

Every format ends up as a Workbook of Sheets holding Cell objects, in
workbook order. Rows keep their sheet position (blank rows included) and
each row is trimmed of trailing blank cells.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

import chardet

from paap_doctor.cells import BLANK, Cell, cell_text, make_cell
from paap_doctor.config import DEFAULT_EXTRACTION, ExtractionSettings
from paap_doctor.errors import IOFailure

logger = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS   = {".csv", ".tsv", ".txt"}
OPENPYXL_FORMATS = {".xlsx", ".xlsm"}
XLS_FORMATS    = {".xls"}
ODS_FORMATS    = {".ods"}
ALL_FORMATS    = TEXT_FORMATS | OPENPYXL_FORMATS | XLS_FORMATS | ODS_FORMATS

DELIMITER_CANDIDATES = (",", ";", "\t")


# ══════════════════════════════════════════════════════════════════════════════
# SHEET MODEL
# ══════════════════════════════════════════════════════════════════════════════

def _trim_row(cells: Iterable[Cell]) -> tuple[Cell, ...]:
    row = list(cells)
    while row and row[-1].kind == BLANK:
        row.pop()
    return tuple(row)


@dataclass(frozen=True)
class Sheet:
    name: str
    rows: tuple[tuple[Cell, ...], ...] = ()

    @classmethod
    def from_cells(cls, name: str, rows: Iterable[Iterable[Cell]]) -> "Sheet":
        return cls(name=name, rows=tuple(_trim_row(row) for row in rows))

    @classmethod
    def from_values(cls, name: str, rows: Iterable[Iterable[Any]]) -> "Sheet":
        """Build a sheet from plain Python values (None for empty cells)."""
        return cls.from_cells(name, ([make_cell(value) for value in row] for row in rows))

    def __len__(self) -> int:
        return len(self.rows)

    def row(self, index: int) -> tuple[Cell, ...]:
        if 0 <= index < len(self.rows):
            return self.rows[index]
        return ()

    def width(self, index: int) -> int:
        return len(self.row(index))

    @property
    def max_width(self) -> int:
        return max((len(row) for row in self.rows), default=0)

    def cell(self, row: int, col: int) -> Optional[Cell]:
        cells = self.row(row)
        if 0 <= col < len(cells):
            return cells[col]
        return None

    def text(self, row: int, col: int) -> str:
        return cell_text(self.cell(row, col))

    def row_texts(self, index: int) -> list[str]:
        return [cell_text(cell) for cell in self.row(index)]

    def is_blank_row(self, index: int) -> bool:
        return not any(self.row_texts(index))


@dataclass
class Workbook:
    path: Optional[Path]
    detected_format: str
    sheets: list[Sheet]
    encoding: Optional[str] = None
    encoding_info: Optional[dict] = None
    delimiter: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def sheet_names(self) -> list[str]:
        return [sheet.name for sheet in self.sheets]

    @classmethod
    def from_sheets(cls, *sheets: Sheet) -> "Workbook":
        return cls(path=None, detected_format="memory", sheets=list(sheets))


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding_info(raw: bytes) -> dict:
    """
    Detect encoding from raw bytes.

    Returns dict with: detected, confidence, is_utf8, suspicious_chars.
    """
    result     = chardet.detect(raw)
    detected   = result.get("encoding") or "unknown"
    confidence = round(result.get("confidence") or 0.0, 2)
    is_utf8    = detected.upper().replace("-", "") in ("UTF8", "ASCII", "UTF8SIG")

    suspicious: list[str] = []
    if not is_utf8:
        for row_idx, line in enumerate(raw.split(b"\n")[:100], start=1):
            try:
                line.decode("utf-8")
            except UnicodeDecodeError as e:
                bad_byte = line[e.start : e.end]
                suspicious.append(f"row {row_idx}: byte {bad_byte!r} at position {e.start}")

    return {
        "detected":         detected,
        "confidence":       confidence,
        "is_utf8":          is_utf8,
        "suspicious_chars": suspicious[:10],
    }


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line:
      1. Try UTF-8
      2. Try preferred_encoding (chardet result)
      3. Try latin-1
      4. CP1252 with replace (never crashes)

    Also strips embedded null bytes and a leading byte-order mark.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc or enc == "unknown":
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", "").rstrip("\r"))
    text = "\n".join(decoded_lines)
    return text.lstrip("\ufeff")


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION + TOKENIZING
# ══════════════════════════════════════════════════════════════════════════════

def detect_delimiter(handle: Iterable[str], sample_lines: int = DEFAULT_EXTRACTION.delimiter_sample_lines) -> str:
    """
    Pick the delimiter of a text file from its first non-blank lines.

    Counts commas, semicolons and tabs over up to ``sample_lines`` non-blank
    lines. The highest count wins; ties keep the earlier candidate in the
    order comma, semicolon, tab. A file with no content gives a comma.
    """
    counts = dict.fromkeys(DELIMITER_CANDIDATES, 0)
    seen = 0
    for line in handle:
        if seen >= sample_lines:
            break
        if not line.strip():
            continue
        seen += 1
        for delimiter in DELIMITER_CANDIDATES:
            counts[delimiter] += line.count(delimiter)

    best = DELIMITER_CANDIDATES[0]
    for delimiter in DELIMITER_CANDIDATES[1:]:
        if counts[delimiter] > counts[best]:
            best = delimiter
    return best


def tokenize_line(line: str, delimiter: str = ",") -> list[str]:
    """
    Split one delimited line into fields.

    A double quote toggles quoting; inside a quoted field a doubled quote is
    a literal quote. The delimiter only splits outside quotes. An empty line
    gives one empty field.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    index = 0
    length = len(line)
    while index < length:
        char = line[index]
        if char == '"':
            if in_quotes and index + 1 < length and line[index + 1] == '"':
                current.append('"')
                index += 1
            else:
                in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
        index += 1
    fields.append("".join(current))
    return fields


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_text(path: Path, suffix: str, settings: ExtractionSettings) -> Workbook:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise IOFailure(f"Could not read {path.name}: {exc}", path) from exc

    enc_info = _detect_encoding_info(raw)
    enc      = enc_info["detected"] if enc_info["detected"] != "unknown" else "utf-8"
    text     = _read_text_safely(raw, enc)
    warnings: list[str] = []
    if enc_info["suspicious_chars"]:
        warnings.append(
            f"Mixed encodings: {len(enc_info['suspicious_chars'])} line(s) were not valid UTF-8 "
            f"and were decoded as {enc}"
        )

    if suffix == ".tsv":
        delimiter = "\t"
    else:
        delimiter = detect_delimiter(io.StringIO(text), settings.delimiter_sample_lines)

    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    rows = ([make_cell(token) for token in tokenize_line(line, delimiter)] for line in lines)
    sheet = Sheet.from_cells(path.stem, rows)
    logger.info("Read %s: %d line(s), delimiter %r, encoding %s", path.name, len(sheet), delimiter, enc)

    return Workbook(
        path=path,
        detected_format=suffix.lstrip("."),
        sheets=[sheet],
        encoding=enc,
        encoding_info=enc_info,
        delimiter=delimiter,
        warnings=warnings,
    )


def _is_formula(value) -> bool:
    if isinstance(value, str):
        return value.startswith("=")
    return hasattr(value, "text") and str(getattr(value, "text", "")).startswith("=")


def _load_openpyxl(path: Path, suffix: str) -> Workbook:
    from openpyxl import load_workbook as open_workbook

    keep_vba = suffix == ".xlsm"
    try:
        values_book = open_workbook(path, data_only=True, keep_vba=keep_vba)
        formula_book = open_workbook(path, data_only=False, keep_vba=keep_vba)
    except Exception as exc:
        raise IOFailure(f"Could not read workbook {path.name}: {exc}", path) from exc

    sheets: list[Sheet] = []
    warnings: list[str] = []
    cache_misses = 0
    for values_ws in values_book.worksheets:
        formula_ws = formula_book[values_ws.title]
        max_row = formula_ws.max_row
        max_col = formula_ws.max_column
        rows = []
        pairs = zip(
            values_ws.iter_rows(min_row=1, max_row=max_row, max_col=max_col, values_only=True),
            formula_ws.iter_rows(min_row=1, max_row=max_row, max_col=max_col, values_only=True),
        )
        for cached_row, formula_row in pairs:
            cells = []
            for cached, raw in zip(cached_row, formula_row):
                if _is_formula(raw):
                    formula = raw if isinstance(raw, str) else str(raw.text)
                    if cached is None:
                        cache_misses += 1
                    cells.append(make_cell(cached, formula=formula))
                else:
                    cells.append(make_cell(cached))
            rows.append(cells)
        sheets.append(Sheet.from_cells(values_ws.title, rows))

    if cache_misses:
        warnings.append(
            f"{cache_misses} formula cell(s) have no cached value; their literal text was used instead"
        )
    return Workbook(path=path, detected_format=suffix.lstrip("."), sheets=sheets, warnings=warnings)


def _plain_value(value):
    import pandas as pd

    if value is None:
        return None
    if isinstance(value, str):
        return value
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return value
    if isinstance(value, datetime):
        return value.to_pydatetime() if hasattr(value, "to_pydatetime") else value
    if hasattr(value, "item"):
        return value.item()
    return value


def _load_pandas(path: Path, suffix: str) -> Workbook:
    """Load .xls (xlrd) or .ods (odfpy) through pandas, keeping every sheet."""
    import pandas as pd

    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd: run pip install xlrd")
        engine = "xlrd"
    else:
        try:
            import odf  # noqa: F401
        except ImportError:
            raise ImportError(".ods files require odfpy: run pip install odfpy")
        engine = "odf"

    try:
        frames = pd.read_excel(path, sheet_name=None, header=None, engine=engine)
    except Exception as exc:
        raise IOFailure(f"Could not read workbook {path.name}: {exc}", path) from exc

    sheets = []
    for name, frame in frames.items():
        rows = (
            [make_cell(_plain_value(value)) for value in record]
            for record in frame.astype(object).itertuples(index=False, name=None)
        )
        sheets.append(Sheet.from_cells(str(name), rows))
    return Workbook(path=path, detected_format=suffix.lstrip("."), sheets=sheets)


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_workbook(path: "str | Path", settings: Optional[ExtractionSettings] = None) -> Workbook:
    """
    Load any supported file into a Workbook.

    Raises:
        IOFailure    if the file is missing, unsupported or unreadable.
        ImportError  if the reader for .xls/.ods is not installed.
    """
    settings = settings or DEFAULT_EXTRACTION
    path   = Path(path)
    suffix = path.suffix.lower()

    if not path.exists():
        raise IOFailure(f"File not found: {path}", path)

    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise IOFailure(f"Unsupported format '{suffix}'. Supported: {supported}", path)

    if suffix in TEXT_FORMATS:
        return _load_text(path, suffix, settings)

    if suffix in OPENPYXL_FORMATS:
        return _load_openpyxl(path, suffix)

    return _load_pandas(path, suffix)


def as_workbook(source: "str | Path | Workbook | Sheet", settings: Optional[ExtractionSettings] = None) -> Workbook:
    """Accept a path, a Workbook or a single Sheet."""
    if isinstance(source, Workbook):
        return source
    if isinstance(source, Sheet):
        return Workbook.from_sheets(source)
    return load_workbook(source, settings)
