import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from paap_doctor.config import (
    CONFIG_ENV_VAR,
    DEFAULT_SETTINGS,
    load_settings,
    settings_from_dict,
    settings_to_dict,
)


class SettingsTests(unittest.TestCase):
    def test_defaults_round_trip_through_json(self):
        payload = json.loads(json.dumps(settings_to_dict()))
        self.assertEqual(settings_from_dict(payload), DEFAULT_SETTINGS)

    def test_partial_overrides_keep_other_defaults(self):
        settings = settings_from_dict({
            "extraction": {"header_min_ratio": 0.3},
            "analytics": {"value_range_edges": [5000, 20000], "top_items": 5},
        })
        self.assertEqual(settings.extraction.header_min_ratio, 0.3)
        self.assertEqual(settings.extraction.header_scan_rows, 50)
        self.assertEqual(settings.analytics.value_range_edges, (5000, 20000))
        self.assertEqual(settings.analytics.top_items, 5)

    def test_integer_settings_stay_integers(self):
        settings = settings_from_dict({"extraction": {"header_scan_rows": 20.0}})
        self.assertEqual(settings.extraction.header_scan_rows, 20)
        self.assertIsInstance(settings.extraction.header_scan_rows, int)

    def test_unknown_keys_are_rejected(self):
        with self.assertRaisesRegex(ValueError, "Unknown extraction setting"):
            settings_from_dict({"extraction": {"nope": 1}})
        with self.assertRaisesRegex(ValueError, "Unknown config section"):
            settings_from_dict({"reporting": {}})

    def test_wrong_value_types_are_rejected(self):
        with self.assertRaisesRegex(ValueError, "must be a number"):
            settings_from_dict({"analytics": {"outlier_sigma": "two"}})
        with self.assertRaisesRegex(ValueError, "must be a list"):
            settings_from_dict({"analytics": {"concentration_ks": 3}})


class LoadSettingsTests(unittest.TestCase):
    def test_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "paap-doctor.json"
            path.write_text(json.dumps({"analytics": {"outlier_sigma": 3}}), encoding="utf-8")
            settings = load_settings(path)
        self.assertEqual(settings.analytics.outlier_sigma, 3.0)

    def test_environment_variable(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "env.json"
            path.write_text(json.dumps({"extraction": {"headerless_min_rows": 5}}), encoding="utf-8")
            with mock.patch.dict(os.environ, {CONFIG_ENV_VAR: str(path)}):
                settings = load_settings()
        self.assertEqual(settings.extraction.headerless_min_rows, 5)

    def test_defaults_without_file_or_environment(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertIs(load_settings(), DEFAULT_SETTINGS)

    def test_missing_and_malformed_files(self):
        with self.assertRaisesRegex(ValueError, "not found"):
            load_settings("/nonexistent/paap-doctor.json")
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "broken.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaisesRegex(ValueError, "not valid JSON"):
                load_settings(path)


if __name__ == "__main__":
    unittest.main()
