from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from wizard_config import load_config, load_config_from_env


class TestWizardConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            cfg = load_config_from_env()
        self.assertIsNone(cfg.submit_url)
        self.assertEqual(cfg.submit_timeout_s, 3.0)
        self.assertIsNone(cfg.event_log)
        self.assertEqual(cfg.log_level, "INFO")
        self.assertEqual(cfg.financing.months, 24)
        self.assertAlmostEqual(cfg.financing.annual_rate, 0.10)
        self.assertEqual(cfg.currency, "₹")

    def test_values_from_env(self) -> None:
        env = {
            "WIZARD_SUBMIT_URL": " http://localhost:5000 ",
            "WIZARD_SUBMIT_TIMEOUT_S": "1.5",
            "WIZARD_EVENT_LOG": "/tmp/wizard.jsonl",
            "WIZARD_LOG_LEVEL": "debug",
            "WIZARD_FINANCING_MONTHS": "36",
            "WIZARD_FINANCING_RATE": "0.12",
            "WIZARD_CURRENCY": "$",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            cfg = load_config_from_env()
        self.assertEqual(cfg.submit_url, "http://localhost:5000")
        self.assertEqual(cfg.submit_timeout_s, 1.5)
        self.assertEqual(cfg.event_log, "/tmp/wizard.jsonl")
        self.assertEqual(cfg.log_level, "DEBUG")
        self.assertEqual(cfg.financing_months, 36)
        self.assertEqual(cfg.currency, "$")

    def test_invalid_numbers_name_the_key(self) -> None:
        for key, value in (
            ("WIZARD_SUBMIT_TIMEOUT_S", "soon"),
            ("WIZARD_SUBMIT_TIMEOUT_S", "0"),
            ("WIZARD_FINANCING_MONTHS", "2.5"),
            ("WIZARD_FINANCING_MONTHS", "-1"),
            ("WIZARD_FINANCING_RATE", "ten"),
        ):
            with self.subTest(key=key, value=value):
                with mock.patch.dict(os.environ, {key: value}, clear=True):
                    with self.assertRaises(ValueError) as cm:
                        load_config_from_env()
                self.assertIn(key, str(cm.exception))

    def test_load_config_reads_dotenv_without_overriding_env(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            dotenv = Path(tmp) / ".env"
            dotenv.write_text("WIZARD_CURRENCY=$\nWIZARD_FINANCING_MONTHS=12\n", encoding="utf-8")
            with mock.patch.dict(os.environ, {"WIZARD_FINANCING_MONTHS": "48"}, clear=True):
                cfg = load_config(dotenv)
        self.assertEqual(cfg.currency, "$")
        self.assertEqual(cfg.financing_months, 48)


if __name__ == "__main__":
    unittest.main()
