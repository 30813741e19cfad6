"""Tunable thresholds for extraction and analytics.

The header, content-statistics and report cut lines were chosen empirically
against real PAAP exports. They live here so a deployment can adjust them
through a JSON file instead of editing code.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

CONFIG_ENV_VAR = "PAAP_DOCTOR_CONFIG"


@dataclass(frozen=True)
class ExtractionSettings:
    header_scan_rows: int = 50
    header_min_matches: int = 2
    header_min_ratio: float = 0.15
    data_start_window: int = 10
    generic_header_scan_rows: int = 20
    headerless_sample_rows: int = 10
    headerless_min_rows: int = 3
    cpv_hit_ratio: float = 0.5
    numeric_hit_ratio: float = 0.5
    date_hit_ratio: float = 1 / 3
    delimiter_sample_lines: int = 5
    registry_header_scan_rows: int = 10
    registry_code_probe_rows: int = 5
    registry_code_probe_columns: int = 10
    detection_scan_rows: int = 10


@dataclass(frozen=True)
class AnalyticsSettings:
    value_range_edges: tuple = (10_000.0, 50_000.0, 100_000.0)
    concentration_ks: tuple = (1, 3, 5, 10)
    high_concentration: float = 75.0
    moderate_concentration: float = 50.0
    outlier_sigma: float = 2.0
    pareto_share: float = 0.8
    time_data_ratio: float = 0.2
    top_items: int = 10
    top_categories: int = 10
    top_outliers: int = 5
    category_anomaly_share: float = 0.25
    small_item_limit: float = 10_000.0
    high_value_limit: float = 100_000.0
    hhi_high: float = 25.0
    top_item_dominance: float = 50.0
    peak_quarter_warning: float = 50.0
    peak_quarter_moderate: float = 35.0
    pareto_extreme: float = 20.0
    pareto_classic: float = 30.0
    recommend_high_concentration: float = 70.0
    recommend_low_concentration: float = 30.0
    recommend_small_items: float = 50.0
    recommend_peak_quarter: float = 40.0
    recommend_missing_cpv: float = 10.0


@dataclass(frozen=True)
class Settings:
    extraction: ExtractionSettings = ExtractionSettings()
    analytics: AnalyticsSettings = AnalyticsSettings()


DEFAULT_EXTRACTION = ExtractionSettings()
DEFAULT_ANALYTICS = AnalyticsSettings()
DEFAULT_SETTINGS = Settings()


def _apply_overrides(base, overrides: dict[str, Any], section: str):
    if not isinstance(overrides, dict):
        raise ValueError(f"Config section '{section}' must be an object")
    known = {field.name: field for field in fields(base)}
    unknown = sorted(set(overrides) - set(known))
    if unknown:
        raise ValueError(f"Unknown {section} setting(s): {', '.join(unknown)}")
    cleaned: dict[str, Any] = {}
    for key, value in overrides.items():
        current = getattr(base, key)
        if isinstance(current, tuple):
            if not isinstance(value, list):
                raise ValueError(f"Setting '{section}.{key}' must be a list")
            cleaned[key] = tuple(value)
        elif isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Setting '{section}.{key}' must be a number")
        else:
            cleaned[key] = type(current)(value)
    return replace(base, **cleaned)


def settings_from_dict(payload: dict[str, Any]) -> Settings:
    if not isinstance(payload, dict):
        raise ValueError("Config root must be a JSON object")
    unknown = sorted(set(payload) - {"extraction", "analytics"})
    if unknown:
        raise ValueError(f"Unknown config section(s): {', '.join(unknown)}")
    return Settings(
        extraction=_apply_overrides(DEFAULT_EXTRACTION, payload.get("extraction", {}), "extraction"),
        analytics=_apply_overrides(DEFAULT_ANALYTICS, payload.get("analytics", {}), "analytics"),
    )


def load_settings(path: "str | Path | None" = None) -> Settings:
    """
    Load settings from a JSON file.

    Falls back to the file named by PAAP_DOCTOR_CONFIG, then to the defaults.
    Raises ValueError for malformed JSON or unknown keys.
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if not env_path:
            return DEFAULT_SETTINGS
        path = env_path
    config_path = Path(path)
    if not config_path.exists():
        raise ValueError(f"Config file not found: {config_path}")
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Config file is not valid JSON: {exc}") from exc
    return settings_from_dict(payload)


def settings_to_dict(settings: Optional[Settings] = None) -> dict[str, Any]:
    settings = settings or DEFAULT_SETTINGS
    payload = asdict(settings)
    for section in payload.values():
        for key, value in section.items():
            if isinstance(value, tuple):
                section[key] = list(value)
    return payload
