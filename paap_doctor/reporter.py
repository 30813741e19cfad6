"""
reporter.py — the comprehensive procurement analysis report

Builds the eight numbered sections of the text report from the analytics
results of one model snapshot:

    1. executive summary          5. time distribution
    2. general statistics         6. top procurement items
    3. category analysis          7. anomaly detection
    4. value distribution         8. strategic recommendations

Each section keeps its rendered lines next to the facts they were built from,
so the CLI can emit the same report as JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from paap_doctor.analytics import (
    category_breakdown,
    concentration,
    funding_sources,
    general_statistics,
    has_time_data,
    maturity_scores,
    outlier_stats,
    pareto,
    percentage,
    risk_scores,
    seasonal_distribution,
    time_distribution,
    value_distribution,
)
from paap_doctor.config import AnalyticsSettings
from paap_doctor.data_model import DataModel, Snapshot

RULE = "=" * 50
SECTION_RULE = "-" * 50
TITLE = "       COMPREHENSIVE PROCUREMENT DATA ANALYSIS     "
NO_DATA_MESSAGE = "No procurement data available for analysis."
INSUFFICIENT_TIME_DATA = "Insufficient time data available for temporal analysis."


def money(value: float) -> str:
    return f"{value:,.2f}"


@dataclass
class ReportSection:
    key: str
    title: str
    lines: list[str] = field(default_factory=list)
    facts: dict[str, Any] = field(default_factory=dict)

    def render(self, number: int) -> str:
        body = "\n".join(self.lines)
        return f"{number}. {self.title}\n{SECTION_RULE}\n{body}\n"


@dataclass
class AnalysisReport:
    sections: list[ReportSection] = field(default_factory=list)

    def render(self) -> str:
        parts = [f"{RULE}\n{TITLE}\n{RULE}\n\n"]
        if not self.sections:
            parts.append(NO_DATA_MESSAGE + "\n")
            return "".join(parts)
        for number, section in enumerate(self.sections, start=1):
            parts.append(section.render(number))
            parts.append("\n")
        return "".join(parts)

    def section(self, key: str) -> Optional[ReportSection]:
        for section in self.sections:
            if section.key == key:
                return section
        return None

    def to_dict(self) -> dict:
        return {
            "sections": [
                {"key": section.key, "title": section.title, "facts": section.facts, "text": "\n".join(section.lines)}
                for section in self.sections
            ],
        }


# ══════════════════════════════════════════════════════════════════════════════
# SECTIONS
# ══════════════════════════════════════════════════════════════════════════════

def executive_summary(snapshot: Snapshot, settings: AnalyticsSettings) -> ReportSection:
    stats = general_statistics(snapshot)
    breakdown = category_breakdown(snapshot)
    conc = concentration(snapshot, settings)
    high_value = sum(1 for item in snapshot.items if item.value_without_tva >= settings.high_value_limit)
    high_value_share = percentage(high_value, stats["item_count"])

    lines = [
        "This analysis covers %d procurement items with a total value of %s RON across %d CPV categories."
        % (stats["item_count"], money(stats["total_without_tva"]), len(breakdown)),
        "",
        "Key findings:",
    ]
    if breakdown:
        top = breakdown[0]
        lines.append(f"- The largest category ({top.category} - {top.name}) accounts for {top.share:.2f}% of total value.")
    top3 = conc.top_shares.get(3, 0.0)
    lines.append(f"- The top 3 categories account for {top3:.2f}% of total value.")
    if top3 > settings.high_concentration:
        lines.append("- Procurement spending is highly concentrated in a few categories.")
    lines.append(
        f"- {high_value} items ({high_value_share:.2f}%) have a value of at least {money(settings.high_value_limit)} RON."
    )

    facts: dict[str, Any] = {
        "item_count": stats["item_count"],
        "total_without_tva": stats["total_without_tva"],
        "category_count": len(breakdown),
        "top_category": breakdown[0].category if breakdown else None,
        "top_category_share": breakdown[0].share if breakdown else 0.0,
        "top3_share": top3,
        "high_value_items": high_value,
        "high_value_share": high_value_share,
    }
    if has_time_data(snapshot, settings):
        peak = time_distribution(snapshot).peak_quarter
        if peak is not None:
            lines.append(f"- Peak procurement activity occurs in {peak.label}.")
            facts["peak_quarter"] = peak.label
    return ReportSection("executive_summary", "EXECUTIVE SUMMARY", lines, facts)


def general_statistics_section(snapshot: Snapshot, settings: AnalyticsSettings) -> ReportSection:
    stats = general_statistics(snapshot)
    lines = [
        f"Total procurement items: {stats['item_count']}",
        f"Total value (without TVA): {money(stats['total_without_tva'])} RON",
        f"Total value (with TVA): {money(stats['total_with_tva'])} RON",
        f"TVA amount: {money(stats['tva_amount'])} RON ({stats['tva_share']:.2f}%)",
        f"Average item value: {money(stats['average_value'])} RON",
        f"Median item value: {money(stats['median_value'])} RON",
        f"Value range: {money(stats['min_positive_value'])} - {money(stats['max_value'])} RON",
        f"Distinct CPV codes: {stats['distinct_cpv_codes']}",
        f"CPV categories: {stats['category_count']}",
        f"Items without CPV code: {stats['items_without_cpv']} ({stats['items_without_cpv_share']:.2f}%)",
    ]
    return ReportSection("general_statistics", "GENERAL STATISTICS", lines, dict(stats))


def category_section(snapshot: Snapshot, settings: AnalyticsSettings) -> ReportSection:
    breakdown = category_breakdown(snapshot)
    conc = concentration(snapshot, settings)
    lines = [f"Top {settings.top_categories} categories by value:"]
    for rank, entry in enumerate(breakdown[: settings.top_categories], start=1):
        lines.append(f"{rank}. {entry.category} - {entry.name}")
        lines.append(
            f"   Value: {money(entry.value)} RON ({entry.share:.2f}%) | Items: {entry.item_count} "
            f"| Avg Value: {money(entry.average)} RON"
        )
    lines.append("")
    lines.append("Category concentration:")
    for k, share in sorted(conc.top_shares.items()):
        if k == 1:
            continue
        lines.append(f"- Top {k} categories: {share:.2f}% of total value")

    top3 = conc.top_shares.get(3, 0.0)
    lines.append("")
    if top3 > settings.high_concentration:
        lines.append("WARNING: High concentration - consider diversifying procurement across categories.")
    elif top3 > settings.moderate_concentration:
        lines.append("NOTE: Moderate concentration in the top categories.")
    else:
        lines.append("Spending is spread across categories (low concentration).")

    facts = {
        "categories": [
            {
                "category": entry.category,
                "name": entry.name,
                "value": entry.value,
                "share": entry.share,
                "item_count": entry.item_count,
                "average": entry.average,
            }
            for entry in breakdown[: settings.top_categories]
        ],
        "concentration": {str(k): share for k, share in conc.top_shares.items()},
        "concentration_label": conc.label,
        "hhi": conc.hhi,
    }
    return ReportSection("category_analysis", "CATEGORY ANALYSIS", lines, facts)


def value_distribution_section(snapshot: Snapshot, settings: AnalyticsSettings) -> ReportSection:
    ranges = value_distribution(snapshot, settings)
    lines = ["%-15s %-8s %-12s %-15s %-12s" % ("Range (RON)", "Count", "% of Items", "Total Value", "% of Value")]
    for entry in ranges:
        lines.append(
            "%-15s %-8d %-12s %-15s %-12s"
            % (entry.label, entry.count, f"{entry.count_share:.2f}%", money(entry.value), f"{entry.value_share:.2f}%")
        )

    low, high = ranges[0], ranges[-1]
    lines.append("")
    lines.append(
        f"Low-value items ({low.label}): {low.count_share:.2f}% of items, {low.value_share:.2f}% of value"
    )
    lines.append(
        f"High-value items ({high.label}): {high.count_share:.2f}% of items, {high.value_share:.2f}% of value"
    )

    result = pareto(snapshot, settings)
    lines.append("")
    lines.append("Pareto analysis (80/20 Rule):")
    lines.append(
        f"{result.item_count} items ({result.item_share:.2f}% of {result.total_items}) "
        f"account for {result.target_share:.0f}% of total value."
    )
    if result.item_share < settings.pareto_extreme:
        lines.append("Value is extremely concentrated in a small number of items.")
    elif result.item_share < settings.pareto_classic:
        lines.append("The distribution follows the classic Pareto principle.")
    else:
        lines.append("Value is spread relatively evenly across items.")

    facts = {
        "ranges": [
            {
                "label": entry.label,
                "count": entry.count,
                "value": entry.value,
                "count_share": entry.count_share,
                "value_share": entry.value_share,
            }
            for entry in ranges
        ],
        "pareto": {
            "item_count": result.item_count,
            "item_share": result.item_share,
            "total_items": result.total_items,
            "target_share": result.target_share,
        },
    }
    return ReportSection("value_distribution", "VALUE DISTRIBUTION ANALYSIS", lines, facts)


def time_section(snapshot: Snapshot, settings: AnalyticsSettings) -> ReportSection:
    distribution = time_distribution(snapshot)
    if not has_time_data(snapshot, settings) or not distribution.identified_items:
        return ReportSection(
            "time_distribution", "TIME DISTRIBUTION ANALYSIS", [INSUFFICIENT_TIME_DATA], {"has_time_data": False}
        )

    lines = [
        f"Items with an identifiable date: {distribution.identified_items}",
        "",
        "%-8s %-8s %-18s %-12s" % ("Quarter", "Items", "Value (RON)", "% of Value"),
    ]
    for bucket in distribution.quarters:
        share = percentage(bucket.value, distribution.identified_value)
        lines.append("%-8s %-8d %-18s %-12s" % (bucket.label, bucket.count, money(bucket.value), f"{share:.2f}%"))

    peak = distribution.peak_quarter
    peak_share = distribution.peak_quarter_share
    lines.append("")
    lines.append(f"Peak quarter: {peak.label} ({peak_share:.2f}% of dated value)")
    if peak_share > settings.peak_quarter_warning:
        lines.append("WARNING: More than half of the dated value falls in a single quarter.")
    elif peak_share > settings.peak_quarter_moderate:
        lines.append("NOTE: Procurement activity is moderately concentrated in one quarter.")

    active_months = [bucket for bucket in distribution.months if bucket.count]
    if active_months:
        lines.append("")
        lines.append("Monthly activity:")
        for bucket in active_months:
            lines.append(f"- {bucket.label}: {bucket.count} items, {money(bucket.value)} RON")

    seasonal = seasonal_distribution(snapshot)
    lines.append("")
    lines.append("Seasonal distribution:")
    for bucket in seasonal.seasons:
        lines.append(f"- {bucket.label}: {bucket.count} items, {money(bucket.value)} RON")
    if seasonal.peak is not None:
        lines.append(
            f"Peak season: {seasonal.peak}, lowest: {seasonal.low}, "
            f"variation {seasonal.variation:.2f}% ({seasonal.label} balance)"
        )

    facts = {
        "has_time_data": True,
        "identified_items": distribution.identified_items,
        "identified_value": distribution.identified_value,
        "quarters": {bucket.label: {"count": bucket.count, "value": bucket.value} for bucket in distribution.quarters},
        "months": {bucket.label: {"count": bucket.count, "value": bucket.value} for bucket in distribution.months},
        "peak_quarter": peak.label,
        "peak_quarter_share": peak_share,
        "seasonality": {
            "seasons": {bucket.label: bucket.value for bucket in seasonal.seasons},
            "peak": seasonal.peak,
            "low": seasonal.low,
            "variation": seasonal.variation,
            "label": seasonal.label,
        },
    }
    return ReportSection("time_distribution", "TIME DISTRIBUTION ANALYSIS", lines, facts)


def top_items_section(snapshot: Snapshot, settings: AnalyticsSettings) -> ReportSection:
    total = sum(item.value_without_tva for item in snapshot.items)
    top = sorted(
        (item for item in snapshot.items if item.value_without_tva > 0),
        key=lambda item: item.value_without_tva,
        reverse=True,
    )[: settings.top_items]

    lines = [f"Top {settings.top_items} procurement items by value:"]
    for rank, item in enumerate(top, start=1):
        lines.append(f"{rank}. {item.object_name}")
        lines.append(
            f"   Value: {money(item.value_without_tva)} RON ({percentage(item.value_without_tva, total):.2f}% of total)"
        )
        lines.append(f"   CPV: {item.cpv_field or 'N/A'}")
        if item.initiation_date:
            lines.append(f"   Initiation: {item.initiation_date}")
        if item.completion_date:
            lines.append(f"   Completion: {item.completion_date}")

    top_value = sum(item.value_without_tva for item in top)
    top_share = percentage(top_value, total)
    lines.append("")
    lines.append(f"Top {len(top)} items represent {top_share:.2f}% of total value.")
    if top_share > settings.top_item_dominance:
        lines.append("A small number of items dominates the procurement budget.")

    facts = {
        "items": [dict(item.to_dict(), share=percentage(item.value_without_tva, total)) for item in top],
        "top_share": top_share,
    }
    return ReportSection("top_items", "TOP PROCUREMENT ITEMS ANALYSIS", lines, facts)


def anomaly_section(snapshot: Snapshot, settings: AnalyticsSettings) -> ReportSection:
    stats = outlier_stats(snapshot, settings)
    lines = [
        "Value outliers:",
        f"- Mean value: {money(stats.mean)} RON",
        f"- Standard deviation: {money(stats.std_dev)} RON",
        f"- Outlier threshold (mean + {settings.outlier_sigma:g} std dev): {money(stats.threshold)} RON",
        f"- Outliers found: {len(stats.outliers)}",
    ]
    for outlier in stats.outliers[: settings.top_outliers]:
        lines.append(
            f"  * {outlier.item.object_name}: {money(outlier.item.value_without_tva)} RON "
            f"({outlier.deviation:.2f} std dev above mean)"
        )

    breakdown = category_breakdown(snapshot)
    dominant = [entry for entry in breakdown if entry.share > settings.category_anomaly_share * 100]
    lines.append("")
    lines.append("Category anomalies:")
    if dominant:
        for entry in dominant:
            lines.append(f"- Category {entry.category} ({entry.name}) holds {entry.share:.2f}% of total value")
        if breakdown and breakdown[0].share > settings.high_concentration:
            lines.append("WARNING: A single category dominates the procurement plan.")
    else:
        lines.append("- No category exceeds the concentration threshold.")

    lines.append("")
    lines.append("Time anomalies:")
    time_facts: dict[str, Any] = {}
    distribution = time_distribution(snapshot)
    if has_time_data(snapshot, settings) and distribution.identified_items:
        empty = [bucket.label for bucket in distribution.quarters if not bucket.count]
        if empty:
            lines.append(f"- No procurement activity planned in: {', '.join(empty)}")
        if distribution.peak_quarter_share > settings.peak_quarter_warning:
            lines.append(
                f"- {distribution.peak_quarter.label} concentrates "
                f"{distribution.peak_quarter_share:.2f}% of dated value"
            )
        if not empty and distribution.peak_quarter_share <= settings.peak_quarter_warning:
            lines.append("- No significant timing anomalies detected.")
        time_facts = {"empty_quarters": empty, "peak_quarter_share": distribution.peak_quarter_share}
    else:
        lines.append("- Not enough dated items to detect timing anomalies.")

    facts = {
        "mean": stats.mean,
        "std_dev": stats.std_dev,
        "threshold": stats.threshold,
        "outlier_count": len(stats.outliers),
        "outliers": [
            {"row_number": outlier.item.row_number, "object_name": outlier.item.object_name,
             "value": outlier.item.value_without_tva, "deviation": outlier.deviation}
            for outlier in stats.outliers[: settings.top_outliers]
        ],
        "dominant_categories": [entry.category for entry in dominant],
        "time": time_facts,
    }
    return ReportSection("anomalies", "ANOMALY DETECTION", lines, facts)


def recommendations_section(snapshot: Snapshot, settings: AnalyticsSettings) -> ReportSection:
    items = snapshot.items
    conc = concentration(snapshot, settings)
    top3 = conc.top_shares.get(3, 0.0)
    small_share = percentage(
        sum(1 for item in items if item.value_without_tva < settings.small_item_limit), len(items)
    )
    without_cpv_share = general_statistics(snapshot)["items_without_cpv_share"]
    distribution = time_distribution(snapshot)
    timed = has_time_data(snapshot, settings) and distribution.identified_items > 0

    recommendations = []
    if top3 > settings.recommend_high_concentration:
        recommendations.append(
            "Diversify procurement: the top 3 categories hold "
            f"{top3:.2f}% of total value, which increases supplier dependency risk."
        )
    elif top3 < settings.recommend_low_concentration:
        recommendations.append(
            "Consider consolidating purchases: spending is fragmented across many categories."
        )
    if small_share > settings.recommend_small_items:
        recommendations.append(
            f"Aggregate small purchases: {small_share:.2f}% of items are below "
            f"{money(settings.small_item_limit)} RON; framework agreements could reduce overhead."
        )
    if timed and distribution.peak_quarter_share > settings.recommend_peak_quarter:
        recommendations.append(
            f"Balance the procurement calendar: {distribution.peak_quarter.label} holds "
            f"{distribution.peak_quarter_share:.2f}% of dated value."
        )
    elif not timed:
        recommendations.append("Record initiation and completion dates to enable timeline planning.")
    if without_cpv_share > settings.recommend_missing_cpv:
        recommendations.append(
            f"Improve data quality: {without_cpv_share:.2f}% of items have no CPV code."
        )
    recommendations.append("Review the highest-value items for competitive tendering and value-for-money checks.")
    recommendations.append("Monitor category spending against budget throughout the year.")

    lines = [f"{number}. {text}" for number, text in enumerate(recommendations, start=1)]

    maturity = maturity_scores(snapshot, settings)
    risk = risk_scores(snapshot, settings)
    sources = funding_sources(snapshot)
    lines.extend([
        "",
        f"Procurement maturity: {maturity.overall:.0f}/100 "
        f"(data quality {maturity.data_quality:.0f}, category management {maturity.category_management:.0f}, "
        f"process efficiency {maturity.process_efficiency:.0f}, planning {maturity.planning:.0f})",
        f"Overall risk score: {risk.overall:.0f}/100 "
        f"(concentration {risk.concentration:.1f}, high value {risk.high_value:.1f}, "
        f"data quality {risk.data_quality:.1f}, timing {risk.timing:.1f})",
        f"Herfindahl-Hirschman index: {conc.hhi:.2f}"
        + (" (highly concentrated market)" if conc.hhi > settings.hhi_high else ""),
    ])
    if sources:
        lines.append("Funding sources:")
        total = sum(bucket.value for bucket in sources)
        for bucket in sources:
            lines.append(
                f"- {bucket.label}: {bucket.count} items, {money(bucket.value)} RON "
                f"({percentage(bucket.value, total):.2f}%)"
            )

    facts = {
        "recommendations": recommendations,
        "maturity": {
            "data_quality": maturity.data_quality,
            "category_management": maturity.category_management,
            "process_efficiency": maturity.process_efficiency,
            "planning": maturity.planning,
            "overall": maturity.overall,
        },
        "risk": {
            "concentration": risk.concentration,
            "high_value": risk.high_value,
            "data_quality": risk.data_quality,
            "timing": risk.timing,
            "overall": risk.overall,
        },
        "hhi": conc.hhi,
        "hhi_high": conc.hhi > settings.hhi_high,
        "funding_sources": [{"source": b.label, "count": b.count, "value": b.value} for b in sources],
    }
    return ReportSection("recommendations", "STRATEGIC RECOMMENDATIONS", lines, facts)


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def build_analysis_report(model: DataModel, settings: Optional[AnalyticsSettings] = None) -> AnalysisReport:
    """
    Build every report section from a single snapshot of the model.

    An empty model yields a report with no sections; its rendering carries
    the no-data message after the banner.
    """
    settings = settings or model.settings
    snapshot = model.snapshot()
    if not snapshot.items:
        return AnalysisReport([])
    return AnalysisReport([
        executive_summary(snapshot, settings),
        general_statistics_section(snapshot, settings),
        category_section(snapshot, settings),
        value_distribution_section(snapshot, settings),
        time_section(snapshot, settings),
        top_items_section(snapshot, settings),
        anomaly_section(snapshot, settings),
        recommendations_section(snapshot, settings),
    ])


def generate_comprehensive_analysis(model: DataModel, settings: Optional[AnalyticsSettings] = None) -> str:
    return build_analysis_report(model, settings).render()
