from __future__ import annotations

import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path

from app.main import build_parser, main


def _run(argv: list[str]) -> tuple[int, str]:
    buffer = io.StringIO()
    with redirect_stdout(buffer):
        code = main(argv)
    return code, buffer.getvalue()


class MainCliTest(unittest.TestCase):
    def test_extract_command_defaults(self) -> None:
        args = build_parser().parse_args(["extract", "--file", "data/samples/bolletta.pdf"])
        self.assertIsNone(args.content_type)
        self.assertFalse(args.no_model)
        self.assertIsNone(args.output)

    def test_link_command_builds_ordered_query(self) -> None:
        code, output = _run(
            [
                "link",
                "--importo",
                "1.234,56",
                "--ente",
                "Acme",
                "--iban",
                "IT60 X054 2811 1010 0000 0123 456",
                "--scadenza",
                "10/09/2025",
                "--base-url",
                "https://pay.example.com/",
            ]
        )
        self.assertEqual(code, 0)
        self.assertEqual(
            output.strip(),
            "https://pay.example.com/pay-bolletta?importo=1234.56&ente=Acme"
            "&iban=IT60X0542811101000000123456&descr=Bolletta+2025-09-10&scadenza=2025-09-10",
        )

    def test_link_command_rejects_invalid_iban(self) -> None:
        code, output = _run(["link", "--importo", "10", "--iban", "IT61X0542811101000000123456"])
        self.assertEqual(code, 1)
        self.assertIn("invalid iban", output)

    def test_extract_text_without_model(self) -> None:
        code, output = _run(["extract-text", "--no-model", "--text", "Totale da pagare: 49,90 €"])
        self.assertEqual(code, 0)
        self.assertIn("importo=49.90", output)

    def test_extract_writes_output_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            bill = Path(tmp) / "bolletta.txt"
            bill.write_text("Importo: 12,00 EUR\n", encoding="utf-8")
            output = Path(tmp) / "out" / "result.json"

            code, _ = _run(["extract", "--no-model", "--file", str(bill), "--output", str(output)])

            self.assertEqual(code, 0)
            payload = json.loads(output.read_text(encoding="utf-8"))
        self.assertEqual(payload["document_kind"], "text")
        self.assertEqual(payload["fields"]["amount"], "12.00")

    def test_extract_missing_file(self) -> None:
        code, output = _run(["extract", "--no-model", "--file", "/nonexistent/bolletta.pdf"])
        self.assertEqual(code, 1)
        self.assertIn("file not found", output)


if __name__ == "__main__":
    unittest.main()
