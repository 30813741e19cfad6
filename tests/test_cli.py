from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "paap_doctor.cli"]

PAAP_CSV = (
    "Nr;Denumire;Cod CPV;Valoare fara TVA;Data initiere\n"
    '1;Asfaltare drum comunal;45233140-2;"250.000,00";15.03.2024\n'
    '2;Proiect pod;71320000-7;"80.000,00";10.06.2024\n'
    "3;Hartie copiator;30197630-1;4000;01.09.2024\n"
)

REGISTRY_CSV = (
    "Cod CPV;Denumire;Descriere EN\n"
    "03111000-2;Seminte;Seeds\n"
    "09134100-8;Motorina;Diesel oil\n"
    "30197630-1;Hartie de imprimanta;Printing paper\n"
    "45233140-2;Lucrari de drumuri;Roadworks\n"
    "71320000-7;Servicii de proiectare tehnica;Engineering design services\n"
)


def run_cli(*args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env.pop("PAAP_DOCTOR_CONFIG", None)
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
        env=merged_env,
    )


def write_inputs(tmpdir: str) -> tuple[Path, Path]:
    paap_path = Path(tmpdir) / "paap.csv"
    paap_path.write_text(PAAP_CSV, encoding="utf-8")
    registry_path = Path(tmpdir) / "cpv.csv"
    registry_path.write_text(REGISTRY_CSV, encoding="utf-8")
    return paap_path, registry_path


class PaapDoctorCliTests(unittest.TestCase):
    def test_items_json_emits_contract(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            paap_path, _ = write_inputs(tmpdir)
            proc = run_cli("items", str(paap_path), "--json")
            self.assertEqual(proc.returncode, 0, proc.stderr)
            payload = json.loads(proc.stdout)
            self.assertEqual(payload["contract"]["name"], "paap_doctor.items")
            self.assertEqual(payload["run_summary"]["tool"], "paap-doctor")
            self.assertEqual(payload["run_summary"]["metrics"]["item_count"], 3)
            self.assertEqual(payload["item_count"], 3)
            self.assertEqual(payload["preview"][0]["value_without_tva"], 250000.0)
            self.assertEqual(payload["sheets"][0]["strategy"], "standard")

    def test_items_output_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            paap_path, _ = write_inputs(tmpdir)
            output_path = Path(tmpdir) / "out" / "items.json"
            proc = run_cli("items", str(paap_path), "--output", str(output_path))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Items written:", proc.stderr)
            items = json.loads(output_path.read_text(encoding="utf-8"))["items"]
            self.assertEqual([item["row_number"] for item in items], [1, 2, 3])

    def test_report_text_with_registry(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            paap_path, registry_path = write_inputs(tmpdir)
            proc = run_cli("report", str(paap_path), "--cpv", str(registry_path))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("COMPREHENSIVE PROCUREMENT DATA ANALYSIS", proc.stdout)
            self.assertIn("1. EXECUTIVE SUMMARY", proc.stdout)
            self.assertIn("45 - Lucrari de drumuri", proc.stdout)
            self.assertIn("8. STRATEGIC RECOMMENDATIONS", proc.stdout)

    def test_report_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            paap_path, _ = write_inputs(tmpdir)
            proc = run_cli("report", str(paap_path), "--json")
            self.assertEqual(proc.returncode, 0, proc.stderr)
            payload = json.loads(proc.stdout)
            self.assertEqual(payload["contract"]["name"], "paap_doctor.report")
            self.assertEqual(len(payload["sections"]), 8)
            self.assertEqual(payload["sections"][0]["facts"]["item_count"], 3)

    def test_report_output_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            paap_path, _ = write_inputs(tmpdir)
            output_path = Path(tmpdir) / "report.txt"
            proc = run_cli("report", str(paap_path), "--output", str(output_path))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Report written:", proc.stderr)
            self.assertIn("2. GENERAL STATISTICS", output_path.read_text(encoding="utf-8"))

    def test_missing_input_returns_exit_3(self):
        proc = run_cli("items", "does-not-exist.csv")
        self.assertEqual(proc.returncode, 3)
        self.assertIn("File not found", proc.stderr)

    def test_unrecognised_input_returns_exit_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "notes.csv"
            path.write_text("nimic;aici\n", encoding="utf-8")
            proc = run_cli("items", str(path))
            self.assertEqual(proc.returncode, 2)
            self.assertIn("No procurement items found", proc.stderr)

    def test_registry_command(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            _, registry_path = write_inputs(tmpdir)
            proc = run_cli("registry", str(registry_path), "--json")
            self.assertEqual(proc.returncode, 0, proc.stderr)
            payload = json.loads(proc.stdout)
            self.assertEqual(payload["code_count"], 5)
            self.assertEqual(payload["preview"][0]["code"], "03111000-2")

    def test_detect_registry_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            _, registry_path = write_inputs(tmpdir)
            proc = run_cli("detect", str(registry_path), "--json")
            self.assertEqual(proc.returncode, 0, proc.stderr)
            payload = json.loads(proc.stdout)
            self.assertEqual(payload["detected_type"], "cpv_codes")
            self.assertEqual(payload["confidence_score"], 90)

    def test_search(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            paap_path, registry_path = write_inputs(tmpdir)
            proc = run_cli("search", str(paap_path), "roadworks", "--cpv", str(registry_path), "--json")
            self.assertEqual(proc.returncode, 0, proc.stderr)
            payload = json.loads(proc.stdout)
            self.assertEqual(payload["match_count"], 1)
            self.assertEqual(payload["matches"][0]["object_name"], "Asfaltare drum comunal")

    def test_config_init_refuses_to_overwrite(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "paap-doctor.json"
            first = run_cli("config", "init", "--path", str(config_path))
            self.assertEqual(first.returncode, 0, first.stderr)
            settings = json.loads(config_path.read_text(encoding="utf-8"))
            self.assertEqual(settings["extraction"]["header_scan_rows"], 50)

            second = run_cli("config", "init", "--path", str(config_path))
            self.assertEqual(second.returncode, 1)
            self.assertIn("Refusing to overwrite", second.stderr)

            forced = run_cli("config", "init", "--path", str(config_path), "--force")
            self.assertEqual(forced.returncode, 0, forced.stderr)

    def test_invalid_config_returns_exit_1(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            paap_path, _ = write_inputs(tmpdir)
            config_path = Path(tmpdir) / "bad.json"
            config_path.write_text(json.dumps({"extraction": {"no_such_setting": 1}}), encoding="utf-8")
            proc = run_cli("items", str(paap_path), "--config", str(config_path))
            self.assertEqual(proc.returncode, 1)
            self.assertIn("Invalid configuration", proc.stderr)

    def test_config_from_environment(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            paap_path, _ = write_inputs(tmpdir)
            config_path = Path(tmpdir) / "settings.json"
            config_path.write_text(json.dumps({"analytics": {"top_items": 1}}), encoding="utf-8")
            proc = run_cli("report", str(paap_path), env={"PAAP_DOCTOR_CONFIG": str(config_path)})
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Top 1 procurement items by value:", proc.stdout)

    def test_version(self):
        proc = run_cli("version", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["tool"], "paap-doctor")
        self.assertIn("paap_doctor.report", payload["contracts"])

    def test_usage_error_returns_exit_1(self):
        proc = run_cli("report")
        self.assertEqual(proc.returncode, 1)


if __name__ == "__main__":
    unittest.main()
