from __future__ import annotations

import re
import unittest
from pathlib import Path

from paap_doctor.contracts import CONTRACT_VERSIONS, build_contract, build_run_summary, utc_now_iso, wrap_payload


class ContractTests(unittest.TestCase):
    def test_every_command_contract_is_versioned(self):
        for name in ("paap_doctor.detect", "paap_doctor.registry", "paap_doctor.items", "paap_doctor.report", "paap_doctor.search"):
            contract = build_contract(name)
            self.assertEqual(contract["name"], name)
            self.assertRegex(contract["version"], r"^\d+\.\d+\.\d+$")
        self.assertEqual(len(CONTRACT_VERSIONS), 5)

    def test_unknown_contract_raises(self):
        with self.assertRaises(KeyError):
            build_contract("paap_doctor.unknown")

    def test_run_summary(self):
        summary = build_run_summary(
            command="items",
            input_path=Path("plan.csv"),
            output_path=Path("out/items.json"),
            metrics={"item_count": 3},
            warnings=["Sheet 'Notes' has no recognisable procurement columns"],
        )
        self.assertEqual(summary["tool"], "paap-doctor")
        self.assertEqual(summary["command"], "items")
        self.assertEqual(summary["status"], "ok")
        self.assertEqual(summary["input_file"], "plan.csv")
        self.assertEqual(summary["output_file"], str(Path("out/items.json")))
        self.assertEqual(summary["warnings_count"], 1)
        self.assertEqual(summary["metrics"], {"item_count": 3})

    def test_run_summary_defaults(self):
        summary = build_run_summary(command="detect", input_path=Path("cpv.xlsx"))
        self.assertIsNone(summary["output_file"])
        self.assertEqual(summary["warnings"], [])
        self.assertEqual(summary["metrics"], {})

    def test_timestamp_is_utc_iso(self):
        self.assertTrue(re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$", utc_now_iso()))

    def test_wrap_payload_puts_header_first(self):
        summary = build_run_summary(command="search", input_path=Path("plan.csv"))
        wrapped = wrap_payload("paap_doctor.search", {"query": "drum", "match_count": 0}, summary)
        self.assertEqual(list(wrapped)[:2], ["contract", "run_summary"])
        self.assertEqual(wrapped["contract"]["name"], "paap_doctor.search")
        self.assertEqual(wrapped["query"], "drum")


if __name__ == "__main__":
    unittest.main()
