"""
analytics.py — aggregate statistics over a DataModel snapshot

Pure functions: each call reads the model's current snapshot once and returns
new result objects. Nothing here mutates the model or keeps state between
calls, so repeated calls on an unchanged model give identical results.

Mean, median and σ come from a pandas Series. σ is the population deviation
(ddof=0).
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

import pandas as pd

from paap_doctor.config import DEFAULT_ANALYTICS, AnalyticsSettings
from paap_doctor.data_model import (
    UNCATEGORIZED,
    DataModel,
    Snapshot,
    bucket_by_category,
    value_range_label,
    value_range_labels,
)
from paap_doctor.models import CpvCode, ProcurementItem

MONTH_ABBREVIATIONS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
QUARTERS = ("Q1", "Q2", "Q3", "Q4")
UNKNOWN_SOURCE = "Unknown"

# Checked in order; the first substring found decides the month.
MONTH_NAME_TABLE = (
    ("ian", 1), ("feb", 2), ("mar", 3), ("apr", 4), ("mai", 5), ("iun", 6),
    ("iul", 7), ("aug", 8), ("sep", 9), ("oct", 10), ("noi", 11), ("dec", 12),
    ("january", 1), ("february", 2), ("march", 3), ("april", 4), ("may", 5), ("june", 6),
    ("july", 7), ("august", 8), ("september", 9), ("october", 10), ("november", 11), ("december", 12),
)
DAY_MONTH_RE = re.compile(r"\b(\d{1,2})[-/.](\d{1,2})[-/.](\d{2,4})\b")
ISO_DATE_RE = re.compile(r"\b(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})\b")
QUARTER_TOKEN_RE = re.compile(r"(?i)\bq([1-4])\b|\bquarter\s*([1-4])\b|\btrim(?:estrul)?\s*([1-4])\b")

SEASONS = (
    ("Spring", (3, 4, 5)),
    ("Summer", (6, 7, 8)),
    ("Autumn", (9, 10, 11)),
    ("Winter", (12, 1, 2)),
)
SEASONALITY_LABELS = ((15.0, "EXCELLENT"), (30.0, "GOOD"), (50.0, "MODERATE"))


def percentage(part: float, whole: float) -> float:
    return part * 100.0 / whole if whole > 0 else 0.0


def _snapshot(model: "DataModel | Snapshot") -> Snapshot:
    return model.snapshot() if isinstance(model, DataModel) else model


def _settings(model, settings: Optional[AnalyticsSettings]) -> AnalyticsSettings:
    if settings is not None:
        return settings
    return getattr(model, "settings", DEFAULT_ANALYTICS)


def _total(items: Sequence[ProcurementItem]) -> float:
    return sum(item.value_without_tva for item in items)


# ══════════════════════════════════════════════════════════════════════════════
# CATEGORIES
# ══════════════════════════════════════════════════════════════════════════════

def category_buckets(model: "DataModel | Snapshot") -> dict[str, list[ProcurementItem]]:
    snapshot = _snapshot(model)
    return bucket_by_category(snapshot.items, snapshot.cpv_codes)


def category_values(model: "DataModel | Snapshot") -> dict[str, float]:
    """Value per category, zero-value categories dropped."""
    values = {category: _total(items) for category, items in category_buckets(model).items()}
    return {category: value for category, value in values.items() if value > 0}


def ranked_categories(model: "DataModel | Snapshot") -> list[tuple[str, float]]:
    return sorted(category_values(model).items(), key=lambda entry: entry[1], reverse=True)


def category_name(category: str, cpv_codes: Mapping[str, CpvCode]) -> str:
    if not category:
        return "Unknown"
    if category == UNCATEGORIZED:
        return "Uncategorized"
    for entry in cpv_codes.values():
        if entry.code.startswith(category) and entry.romanian_name:
            return entry.romanian_name
    return f"Category {category}"


@dataclass(frozen=True)
class CategoryShare:
    category: str
    name: str
    value: float
    share: float
    item_count: int

    @property
    def average(self) -> float:
        return self.value / self.item_count if self.item_count else 0.0


def category_breakdown(model: "DataModel | Snapshot") -> list[CategoryShare]:
    snapshot = _snapshot(model)
    total = _total(snapshot.items)
    buckets = category_buckets(snapshot)
    return [
        CategoryShare(
            category=category,
            name=category_name(category, snapshot.cpv_codes),
            value=value,
            share=percentage(value, total),
            item_count=len(buckets.get(category, [])),
        )
        for category, value in ranked_categories(snapshot)
    ]


@dataclass(frozen=True)
class Concentration:
    total: float
    top_shares: dict[int, float]
    label: str
    hhi: float
    top_category_share: float


def concentration_label(share: float, settings: AnalyticsSettings = DEFAULT_ANALYTICS) -> str:
    if share > settings.high_concentration:
        return "high"
    if share > settings.moderate_concentration:
        return "moderate"
    return "low"


def concentration(model: "DataModel | Snapshot", settings: Optional[AnalyticsSettings] = None) -> Concentration:
    """
    Share of total value held by the top-K categories.

    The label follows the top-3 share (or the largest K below 3 when fewer
    Ks are configured).
    """
    settings = _settings(model, settings)
    snapshot = _snapshot(model)
    total = _total(snapshot.items)
    ranked = ranked_categories(snapshot)
    top_shares = {k: percentage(sum(value for _, value in ranked[:k]), total) for k in settings.concentration_ks}
    label_k = 3 if 3 in top_shares else max(top_shares, default=0)
    hhi = sum((value / total) ** 2 for _, value in ranked) * 100 if total > 0 else 0.0
    return Concentration(
        total=total,
        top_shares=top_shares,
        label=concentration_label(top_shares.get(label_k, 0.0), settings),
        hhi=hhi,
        top_category_share=percentage(ranked[0][1], total) if ranked else 0.0,
    )


# ══════════════════════════════════════════════════════════════════════════════
# VALUES
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ValueRange:
    label: str
    count: int
    value: float
    count_share: float
    value_share: float


def value_distribution(model: "DataModel | Snapshot", settings: Optional[AnalyticsSettings] = None) -> list[ValueRange]:
    settings = _settings(model, settings)
    snapshot = _snapshot(model)
    items = snapshot.items
    total = _total(items)
    labels = value_range_labels(settings)
    buckets: dict[str, list[ProcurementItem]] = {label: [] for label in labels}
    for item in items:
        buckets[value_range_label(item.value_without_tva, settings)].append(item)
    return [
        ValueRange(
            label=label,
            count=len(bucket),
            value=_total(bucket),
            count_share=percentage(len(bucket), len(items)),
            value_share=percentage(_total(bucket), total),
        )
        for label, bucket in buckets.items()
    ]


@dataclass(frozen=True)
class ParetoResult:
    item_count: int
    item_share: float
    total_items: int
    target_share: float


def pareto(model: "DataModel | Snapshot", settings: Optional[AnalyticsSettings] = None) -> ParetoResult:
    """Fewest top-value items whose cumulative value reaches the target share of the total."""
    settings = _settings(model, settings)
    items = list(_snapshot(model).items)
    total = _total(items)
    ranked = sorted(items, key=lambda item: item.value_without_tva, reverse=True)
    cumulative = 0.0
    count = 0
    for item in ranked:
        cumulative += item.value_without_tva
        count += 1
        if cumulative >= total * settings.pareto_share:
            break
    return ParetoResult(
        item_count=count,
        item_share=percentage(count, len(items)),
        total_items=len(items),
        target_share=settings.pareto_share * 100,
    )


@dataclass(frozen=True)
class Outlier:
    item: ProcurementItem
    deviation: float


@dataclass(frozen=True)
class OutlierStats:
    mean: float
    std_dev: float
    threshold: float
    outliers: list[Outlier] = field(default_factory=list)


def outlier_stats(model: "DataModel | Snapshot", settings: Optional[AnalyticsSettings] = None) -> OutlierStats:
    """Items strictly above mean + k·σ (population σ), largest first."""
    settings = _settings(model, settings)
    items = _snapshot(model).items
    if not items:
        return OutlierStats(0.0, 0.0, 0.0, [])
    values = [item.value_without_tva for item in items]
    series = pd.Series(values, dtype=float)
    mean = float(series.mean())
    std_dev = float(series.std(ddof=0))
    threshold = mean + settings.outlier_sigma * std_dev
    flagged = sorted(
        (item for item in items if item.value_without_tva > threshold),
        key=lambda item: item.value_without_tva,
        reverse=True,
    )
    outliers = [
        Outlier(item, (item.value_without_tva - mean) / std_dev if std_dev > 0 else 0.0)
        for item in flagged
    ]
    return OutlierStats(mean=mean, std_dev=std_dev, threshold=threshold, outliers=outliers)


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(pd.Series(values, dtype=float).median())


def general_statistics(model: "DataModel | Snapshot") -> dict:
    snapshot = _snapshot(model)
    items = snapshot.items
    values = [item.value_without_tva for item in items]
    total = sum(values)
    total_with_tva = sum(item.value_with_tva for item in items)
    without_cpv = sum(1 for item in items if not item.cpv_codes)
    distinct_codes = {code for item in items for code in item.cpv_codes}
    positive = [value for value in values if value > 0]
    return {
        "item_count": len(items),
        "total_without_tva": total,
        "total_with_tva": total_with_tva,
        "tva_amount": total_with_tva - total,
        "tva_share": percentage(total_with_tva - total, total),
        "average_value": float(pd.Series(values, dtype=float).mean()) if values else 0.0,
        "median_value": median(values),
        "min_positive_value": min(positive) if positive else 0.0,
        "max_value": max(values) if values else 0.0,
        "distinct_cpv_codes": len(distinct_codes),
        "category_count": len(category_buckets(snapshot)),
        "items_without_cpv": without_cpv,
        "items_without_cpv_share": percentage(without_cpv, len(items)),
    }


# ══════════════════════════════════════════════════════════════════════════════
# TIME
# ══════════════════════════════════════════════════════════════════════════════

def extract_month(text: Optional[str]) -> Optional[int]:
    """
    Month number (1-12) of a free-form date, or None.

    Month names and abbreviations (Romanian, then English) are matched as
    substrings first. Numeric D-M-Y dates take the second group as the month
    unless it exceeds 12 while the first does not. ISO Y-M-D dates come last.
    """
    if not text:
        return None
    lowered = text.lower()
    for needle, month in MONTH_NAME_TABLE:
        if needle in lowered:
            return month
    match = DAY_MONTH_RE.search(text)
    if match:
        first, second = int(match.group(1)), int(match.group(2))
        month = second
        if second > 12 and first <= 12:
            month = first
        if 1 <= month <= 12:
            return month
    match = ISO_DATE_RE.search(text)
    if match:
        month = int(match.group(2))
        if 1 <= month <= 12:
            return month
    return None


def month_abbreviation(text: Optional[str]) -> Optional[str]:
    month = extract_month(text)
    return MONTH_ABBREVIATIONS[month - 1] if month else None


def extract_quarter(text: Optional[str]) -> Optional[int]:
    month = extract_month(text)
    if month is not None:
        return math.ceil(month / 3)
    match = QUARTER_TOKEN_RE.search(text or "")
    if match:
        return int(next(group for group in match.groups() if group))
    return None


def has_time_data(model: "DataModel | Snapshot", settings: Optional[AnalyticsSettings] = None) -> bool:
    settings = _settings(model, settings)
    items = _snapshot(model).items
    if not items:
        return False
    dated = sum(1 for item in items if item.date_text)
    return dated >= len(items) * settings.time_data_ratio


@dataclass(frozen=True)
class PeriodBucket:
    label: str
    count: int
    value: float


@dataclass(frozen=True)
class TimeDistribution:
    months: list[PeriodBucket]
    quarters: list[PeriodBucket]
    identified_items: int
    identified_value: float

    @property
    def peak_quarter(self) -> Optional[PeriodBucket]:
        if not self.identified_items:
            return None
        best = self.quarters[0]
        for bucket in self.quarters[1:]:
            if bucket.value > best.value:
                best = bucket
        return best

    @property
    def peak_quarter_share(self) -> float:
        peak = self.peak_quarter
        return percentage(peak.value, self.identified_value) if peak else 0.0


def time_distribution(model: "DataModel | Snapshot") -> TimeDistribution:
    month_counts = [0] * 12
    month_values = [0.0] * 12
    quarter_counts = [0] * 4
    quarter_values = [0.0] * 4
    for item in _snapshot(model).items:
        text = item.date_text
        if not text:
            continue
        month = extract_month(text)
        if month is not None:
            month_counts[month - 1] += 1
            month_values[month - 1] += item.value_without_tva
        quarter = extract_quarter(text)
        if quarter is not None:
            quarter_counts[quarter - 1] += 1
            quarter_values[quarter - 1] += item.value_without_tva
    return TimeDistribution(
        months=[PeriodBucket(MONTH_ABBREVIATIONS[i], month_counts[i], month_values[i]) for i in range(12)],
        quarters=[PeriodBucket(QUARTERS[i], quarter_counts[i], quarter_values[i]) for i in range(4)],
        identified_items=sum(quarter_counts),
        identified_value=sum(quarter_values),
    )


@dataclass(frozen=True)
class SeasonalDistribution:
    seasons: list[PeriodBucket]
    peak: Optional[str]
    low: Optional[str]
    variation: float
    label: str


def seasonality_label(variation: float) -> str:
    for limit, label in SEASONALITY_LABELS:
        if variation < limit:
            return label
    return "HIGH"


def seasonal_distribution(model: "DataModel | Snapshot") -> SeasonalDistribution:
    """Value per season and the coefficient of variation across the four seasons."""
    months = time_distribution(model).months
    seasons = []
    for name, numbers in SEASONS:
        seasons.append(PeriodBucket(
            name,
            sum(months[number - 1].count for number in numbers),
            sum(months[number - 1].value for number in numbers),
        ))
    values = pd.Series([season.value for season in seasons], dtype=float)
    mean = float(values.mean())
    if mean <= 0:
        return SeasonalDistribution(seasons, None, None, 0.0, seasonality_label(0.0))
    std_dev = float(values.std(ddof=0))
    variation = std_dev / mean * 100
    peak = max(seasons, key=lambda season: season.value)
    low = min(seasons, key=lambda season: season.value)
    return SeasonalDistribution(seasons, peak.label, low.label, variation, seasonality_label(variation))


# ══════════════════════════════════════════════════════════════════════════════
# SOURCES + SCORES
# ══════════════════════════════════════════════════════════════════════════════

def funding_sources(model: "DataModel | Snapshot") -> list[PeriodBucket]:
    """Count and value per funding source, largest value first."""
    counts: dict[str, int] = {}
    values: dict[str, float] = {}
    for item in _snapshot(model).items:
        source = (item.source or "").strip() or UNKNOWN_SOURCE
        counts[source] = counts.get(source, 0) + 1
        values[source] = values.get(source, 0.0) + item.value_without_tva
    buckets = [PeriodBucket(source, counts[source], values[source]) for source in counts]
    return sorted(buckets, key=lambda bucket: bucket.value, reverse=True)


@dataclass(frozen=True)
class MaturityScores:
    data_quality: float
    category_management: float
    process_efficiency: float
    planning: float

    @property
    def overall(self) -> float:
        return (self.data_quality + self.category_management + self.process_efficiency + self.planning) / 4


@dataclass(frozen=True)
class RiskScores:
    concentration: float
    high_value: float
    data_quality: float
    timing: float

    @property
    def overall(self) -> float:
        return (self.concentration + self.high_value + self.data_quality + self.timing) / 4 * 10


def _share_of_items(items: Sequence[ProcurementItem], predicate) -> float:
    return percentage(sum(1 for item in items if predicate(item)), len(items))


def maturity_scores(model: "DataModel | Snapshot", settings: Optional[AnalyticsSettings] = None) -> MaturityScores:
    """Heuristic 0-100 indices; higher is better."""
    settings = _settings(model, settings)
    snapshot = _snapshot(model)
    items = snapshot.items
    if not items:
        return MaturityScores(0.0, 0.0, 0.0, 0.0)
    with_cpv = sum(1 for item in items if item.cpv_codes)
    with_dates = sum(1 for item in items if item.date_text)
    with_value = sum(1 for item in items if item.value_without_tva > 0)
    data_quality = (with_cpv + with_dates + with_value) * 100.0 / (len(items) * 3)

    top_share = concentration(snapshot, settings).top_category_share
    category_score = 100.0 - max(0.0, top_share - 50.0)

    small_share = _share_of_items(items, lambda item: item.value_without_tva < settings.small_item_limit)
    process_score = 100.0 - max(0.0, small_share - 30.0)

    planning = 85.0 if has_time_data(snapshot, settings) else 40.0
    return MaturityScores(
        data_quality=max(0.0, data_quality),
        category_management=max(0.0, category_score),
        process_efficiency=max(0.0, process_score),
        planning=planning,
    )


def risk_scores(model: "DataModel | Snapshot", settings: Optional[AnalyticsSettings] = None) -> RiskScores:
    """Heuristic 0-10 risk levels per area; higher is riskier."""
    settings = _settings(model, settings)
    snapshot = _snapshot(model)
    items = snapshot.items
    if not items:
        return RiskScores(0.0, 0.0, 0.0, 0.0)
    ranked = ranked_categories(snapshot)
    if ranked:
        concentration_risk = min(10.0, concentration(snapshot, settings).top_category_share / 10)
    else:
        concentration_risk = 1.0
    high_share = _share_of_items(items, lambda item: item.value_without_tva >= settings.high_value_limit)
    without_cpv = sum(1 for item in items if not item.cpv_codes)
    return RiskScores(
        concentration=concentration_risk,
        high_value=min(10.0, high_share / 5),
        data_quality=min(10.0, without_cpv * 10.0 / len(items)),
        timing=2.0 if has_time_data(snapshot, settings) else 8.0,
    )
