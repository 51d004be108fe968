from __future__ import annotations

import unittest
from decimal import Decimal
from urllib.parse import parse_qsl, urlsplit

from extractors.validators import build_validated_fields
from payments.link_builder import build_link_params, build_payment_link

VALID_IBAN = "IT60X0542811101000000123456"


class LinkBuilderTest(unittest.TestCase):
    def test_params_are_ordered_and_locale_neutral(self) -> None:
        fields = build_validated_fields(
            ente="Acme Energy",
            iban=VALID_IBAN,
            amount=Decimal("49.90"),
            scadenza="2025-09-10",
        )
        self.assertEqual(
            build_link_params(fields),
            [
                ("importo", "49.90"),
                ("ente", "Acme Energy"),
                ("iban", VALID_IBAN),
                ("descr", "Bolletta 2025-09-10"),
                ("scadenza", "2025-09-10"),
            ],
        )

    def test_absent_fields_are_omitted(self) -> None:
        fields = build_validated_fields(amount=Decimal("12.00"))
        keys = [key for key, _ in build_link_params(fields)]
        self.assertEqual(keys, ["importo", "ente", "descr"])

    def test_payment_link_joins_base_and_path(self) -> None:
        fields = build_validated_fields(ente="Acme Energy", iban=VALID_IBAN, amount=Decimal("1234.50"))
        link = build_payment_link(fields, "https://pay.example.com/")
        parts = urlsplit(link)
        self.assertEqual(parts.netloc, "pay.example.com")
        self.assertEqual(parts.path, "/pay-bolletta")
        query = dict(parse_qsl(parts.query))
        self.assertEqual(query["importo"], "1234.50")
        self.assertEqual(query["ente"], "Acme Energy")
        self.assertEqual(query["iban"], VALID_IBAN)
        self.assertNotIn("scadenza", query)

    def test_relative_link_without_base_url(self) -> None:
        fields = build_validated_fields(amount=Decimal("5.00"))
        self.assertTrue(build_payment_link(fields, None).startswith("/pay-bolletta?importo=5.00"))


if __name__ == "__main__":
    unittest.main()
