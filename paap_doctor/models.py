"""Value objects shared by extraction, the data model and analytics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from paap_doctor.cpv import cpv_category, extract_cpv_codes

ROW_NUMBER = "row_number"
OBJECT_NAME = "object_name"
CPV_FIELD = "cpv_field"
VALUE_WITHOUT_TVA = "value_without_tva"
VALUE_WITH_TVA = "value_with_tva"
SOURCE = "source"
INITIATION_DATE = "initiation_date"
COMPLETION_DATE = "completion_date"

FIELDS = (
    ROW_NUMBER,
    OBJECT_NAME,
    CPV_FIELD,
    VALUE_WITHOUT_TVA,
    VALUE_WITH_TVA,
    SOURCE,
    INITIATION_DATE,
    COMPLETION_DATE,
)

# Semantic field name -> zero-based column index. Fields that could not be
# classified are absent.
ColumnMap = dict[str, int]


@dataclass(frozen=True)
class ProcurementItem:
    row_number: int
    object_name: str
    cpv_field: str = ""
    value_without_tva: float = 0.0
    value_with_tva: float = 0.0
    source: Optional[str] = None
    initiation_date: Optional[str] = None
    completion_date: Optional[str] = None
    cpv_codes: tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "cpv_codes", tuple(extract_cpv_codes(self.cpv_field)))

    @property
    def date_text(self) -> str:
        """Initiation date, falling back to the completion date."""
        return (self.initiation_date or "").strip() or (self.completion_date or "").strip()

    def __str__(self) -> str:
        return f"#{self.row_number}: {self.object_name} - {self.value_without_tva:,.2f} RON"

    def to_dict(self) -> dict:
        return {
            "row_number": self.row_number,
            "object_name": self.object_name,
            "cpv_field": self.cpv_field,
            "cpv_codes": list(self.cpv_codes),
            "value_without_tva": self.value_without_tva,
            "value_with_tva": self.value_with_tva,
            "source": self.source,
            "initiation_date": self.initiation_date,
            "completion_date": self.completion_date,
        }


@dataclass(frozen=True)
class CpvCode:
    code: str
    romanian_name: str = ""
    english_name: str = ""

    @property
    def category(self) -> str:
        return cpv_category(self.code)

    def __str__(self) -> str:
        return f"{self.code} - {self.romanian_name} / {self.english_name}"

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "romanian_name": self.romanian_name,
            "english_name": self.english_name,
            "category": self.category,
        }
