"""
data_model.py — the in-memory model queried by analytics and front-ends

The model holds one immutable Snapshot (items + registry). Imports build the
new collection first and swap the snapshot reference only when they succeed,
so a failed import leaves the previous data in place and readers never see a
half-updated model. Every query returns a fresh collection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from paap_doctor.config import DEFAULT_ANALYTICS, AnalyticsSettings, ExtractionSettings
from paap_doctor.models import CpvCode, ProcurementItem
from paap_doctor.records import ExtractionResult, extract_items
from paap_doctor.registry import RegistryBuild, build_registry

logger = logging.getLogger(__name__)

UNCATEGORIZED = "00"


def _frozen_codes(codes: Optional[Mapping[str, CpvCode]] = None) -> Mapping[str, CpvCode]:
    return MappingProxyType(dict(codes or {}))


@dataclass(frozen=True)
class Snapshot:
    items: tuple[ProcurementItem, ...] = ()
    cpv_codes: Mapping[str, CpvCode] = field(default_factory=_frozen_codes)


def value_range_labels(settings: AnalyticsSettings = DEFAULT_ANALYTICS) -> list[str]:
    edges = list(settings.value_range_edges)
    labels = []
    lower = 0.0
    for upper in edges:
        labels.append(f"{lower:,.0f}-{upper:,.0f}")
        lower = upper
    labels.append(f"{lower:,.0f}+")
    return labels


def value_range_label(value: float, settings: AnalyticsSettings = DEFAULT_ANALYTICS) -> str:
    """Half-open buckets: inclusive low edge, exclusive high edge."""
    labels = value_range_labels(settings)
    for label, upper in zip(labels, settings.value_range_edges):
        if value < upper:
            return label
    return labels[-1]


def item_category(item: ProcurementItem, cpv_codes: Mapping[str, CpvCode]) -> Optional[str]:
    """First registry-resolvable category of the item, "00" when none, None for nameless items."""
    for code in item.cpv_codes:
        entry = cpv_codes.get(code)
        if entry is not None and entry.category:
            return entry.category
    if item.object_name:
        return UNCATEGORIZED
    return None


def bucket_by_category(
    items: Sequence[ProcurementItem],
    cpv_codes: Mapping[str, CpvCode],
) -> dict[str, list[ProcurementItem]]:
    buckets: dict[str, list[ProcurementItem]] = {}
    for item in items:
        category = item_category(item, cpv_codes)
        if category is not None:
            buckets.setdefault(category, []).append(item)
    return buckets


class DataModel:
    def __init__(
        self,
        items: Sequence[ProcurementItem] = (),
        cpv_codes: Optional[Mapping[str, CpvCode]] = None,
        settings: AnalyticsSettings = DEFAULT_ANALYTICS,
    ) -> None:
        self._snapshot = Snapshot(tuple(items), _frozen_codes(cpv_codes))
        self.settings = settings

    # ── Snapshot access ─────────────────────────────────────────────────────

    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def items(self) -> list[ProcurementItem]:
        return list(self._snapshot.items)

    @property
    def cpv_codes(self) -> dict[str, CpvCode]:
        return dict(self._snapshot.cpv_codes)

    def set_procurement_items(self, items: Sequence[ProcurementItem]) -> None:
        self._snapshot = replace(self._snapshot, items=tuple(items))

    def set_cpv_codes(self, cpv_codes: Mapping[str, CpvCode]) -> None:
        self._snapshot = replace(self._snapshot, cpv_codes=_frozen_codes(cpv_codes))

    def load_procurement_file(
        self,
        source,
        settings: Optional[ExtractionSettings] = None,
    ) -> ExtractionResult:
        """Import a PAAP file; on any error the current items are kept."""
        result = extract_items(source, settings)
        self.set_procurement_items(result.items)
        logger.info("Loaded %d procurement item(s)", len(result.items))
        return result

    def load_cpv_file(
        self,
        source,
        settings: Optional[ExtractionSettings] = None,
    ) -> RegistryBuild:
        """Import a CPV registry; on any error the current registry is kept."""
        result = build_registry(source, settings)
        self.set_cpv_codes(result.codes)
        logger.info("Loaded %d CPV code(s)", len(result.codes))
        return result

    # ── Lookups ─────────────────────────────────────────────────────────────

    def get_cpv_code(self, code: str) -> Optional[CpvCode]:
        return self._snapshot.cpv_codes.get(code)

    def get_cpv_code_name(self, code: str, romanian: bool = True) -> str:
        entry = self.get_cpv_code(code)
        if entry is None:
            return ""
        return entry.romanian_name if romanian else entry.english_name

    def search(self, query: str) -> list[ProcurementItem]:
        """
        Case-insensitive substring search over item names, raw CPV text, the
        extracted codes and the registry names of those codes. A blank query
        returns every item.
        """
        snapshot = self._snapshot
        needle = (query or "").strip().lower()
        if not needle:
            return list(snapshot.items)

        matches = []
        for item in snapshot.items:
            haystack = [item.object_name, item.cpv_field, *item.cpv_codes]
            for code in item.cpv_codes:
                entry = snapshot.cpv_codes.get(code)
                if entry is not None:
                    haystack.extend((entry.romanian_name, entry.english_name))
            if any(needle in (text or "").lower() for text in haystack):
                matches.append(item)
        return matches

    # ── Aggregates ──────────────────────────────────────────────────────────

    def get_procurement_items_by_category(self) -> dict[str, list[ProcurementItem]]:
        snapshot = self._snapshot
        return bucket_by_category(snapshot.items, snapshot.cpv_codes)

    def get_procurement_items_by_value_range(self) -> dict[str, list[ProcurementItem]]:
        buckets: dict[str, list[ProcurementItem]] = {label: [] for label in value_range_labels(self.settings)}
        for item in self._snapshot.items:
            buckets[value_range_label(item.value_without_tva, self.settings)].append(item)
        return buckets

    def get_value_by_cpv_category(self) -> dict[str, float]:
        totals: dict[str, float] = {}
        for category, items in self.get_procurement_items_by_category().items():
            total = sum(item.value_without_tva for item in items)
            if total > 0:
                totals[category] = total
        return totals

    def get_top_procurement_items_by_value(self, n: int) -> list[ProcurementItem]:
        positive = [item for item in self._snapshot.items if item.value_without_tva > 0]
        positive.sort(key=lambda item: item.value_without_tva, reverse=True)
        return positive[: max(n, 0)]

    def get_total_value_without_tva(self) -> float:
        return sum(item.value_without_tva for item in self._snapshot.items)

    def get_total_value_with_tva(self) -> float:
        return sum(item.value_with_tva for item in self._snapshot.items)

    def get_statistics(self) -> dict:
        snapshot = self._snapshot
        items = snapshot.items
        return {
            "item_count": len(items),
            "cpv_code_count": len(snapshot.cpv_codes),
            "total_without_tva": self.get_total_value_without_tva(),
            "total_with_tva": self.get_total_value_with_tva(),
            "items_with_cpv": sum(1 for item in items if item.cpv_codes),
            "items_with_value": sum(1 for item in items if item.value_without_tva > 0),
            "categories": len(self.get_procurement_items_by_category()),
        }

    def to_dataframe(self, items: Optional[Sequence[ProcurementItem]] = None):
        """
        Items as a pandas DataFrame, one row per item, for presentation code.
        Pass ``items`` (for example search matches) to tabulate a subset.
        """
        import pandas as pd

        snapshot = self._snapshot
        records = []
        for item in snapshot.items if items is None else items:
            record = item.to_dict()
            record["cpv_codes"] = ", ".join(item.cpv_codes)
            record["category"] = item_category(item, snapshot.cpv_codes)
            record["value_range"] = value_range_label(item.value_without_tva, self.settings)
            records.append(record)
        columns = [
            "row_number", "object_name", "cpv_field", "cpv_codes", "category",
            "value_without_tva", "value_with_tva", "value_range",
            "source", "initiation_date", "completion_date",
        ]
        return pd.DataFrame.from_records(records, columns=columns)
