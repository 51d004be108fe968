from __future__ import annotations

import os
import tempfile
import unittest
from decimal import Decimal
from pathlib import Path
from unittest import mock

from app.config import DEFAULT_CONFIG, load_config, resolve_secret
from extractors.validators import build_validated_fields
from whatsapp.message_templates import build_summary_message, format_amount, format_date


class ConfigTest(unittest.TestCase):
    def test_yaml_overrides_are_deep_merged(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yaml"
            path.write_text("intake:\n  session_ttl_minutes: 10\nstore:\n  backend: dynamodb\n", encoding="utf-8")
            config = load_config(str(path))

        self.assertEqual(config["intake"]["session_ttl_minutes"], 10)
        self.assertEqual(config["intake"]["missing_account_policy"], "best_effort")
        self.assertEqual(config["store"]["backend"], "dynamodb")
        self.assertEqual(config["store"]["sqlite_path"], DEFAULT_CONFIG["store"]["sqlite_path"])

    def test_missing_file_returns_defaults(self) -> None:
        self.assertIs(load_config("/nonexistent/config.yaml"), DEFAULT_CONFIG)
        self.assertIs(load_config(None), DEFAULT_CONFIG)

    def test_resolve_secret_prefers_value_then_env(self) -> None:
        section = {"api_key": None, "api_key_env": "BILLBOT_TEST_KEY"}
        with mock.patch.dict(os.environ, {"BILLBOT_TEST_KEY": " from-env "}):
            self.assertEqual(resolve_secret(section, "api_key"), "from-env")
            self.assertEqual(resolve_secret({"api_key": "inline", "api_key_env": "BILLBOT_TEST_KEY"}, "api_key"), "inline")
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertIsNone(resolve_secret(section, "api_key"))


class MessageTemplatesTest(unittest.TestCase):
    def test_amount_and_date_formatting(self) -> None:
        self.assertEqual(format_amount(Decimal("1234.50")), "€ 1.234,50")
        self.assertEqual(format_amount(Decimal("49.90")), "€ 49,90")
        self.assertEqual(format_amount(None), "-")
        self.assertEqual(format_date("2025-09-10"), "10/09/2025")
        self.assertEqual(format_date(None), "nessuna")

    def test_summary_flags_missing_iban(self) -> None:
        fields = build_validated_fields(ente="Acme", amount=Decimal("12.00"))
        text = build_summary_message(fields, "https://pay.example.com/pay-bolletta?importo=12.00")[0]["text"]
        self.assertIn("IBAN: non rilevato", text)
        self.assertIn("Attenzione", text)
        self.assertTrue(text.endswith("Paga qui: https://pay.example.com/pay-bolletta?importo=12.00"))


if __name__ == "__main__":
    unittest.main()
