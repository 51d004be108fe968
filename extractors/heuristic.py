from __future__ import annotations

from typing import Iterable

from core.enums import FieldName
from core.models import CandidateFields
from extractors.amount_extractor import AmountExtractor
from extractors.date_extractor import DateExtractor
from extractors.iban_extractor import IbanExtractor
from extractors.payee_extractor import DEFAULT_WINDOW_LINES, PayeeExtractor
from extractors.validators import DEFAULT_IBAN_COUNTRIES


class HeuristicExtractor:
    """Deterministic, low-precision field recovery from raw document text."""

    def __init__(
        self,
        payee_window_lines: int = DEFAULT_WINDOW_LINES,
        iban_countries: Iterable[str] = DEFAULT_IBAN_COUNTRIES,
    ) -> None:
        self.iban_extractor = IbanExtractor(countries=iban_countries)
        self.amount_extractor = AmountExtractor()
        self.date_extractor = DateExtractor()
        self.payee_extractor = PayeeExtractor(window_lines=payee_window_lines)

    def extract(self, text: str | None) -> CandidateFields:
        result = CandidateFields()
        if not text or not str(text).strip():
            return result

        iban, iban_rule = self.iban_extractor.extract(text)
        amount, amount_rule = self.amount_extractor.extract(text)
        scadenza, date_rule = self.date_extractor.extract(text)
        ente, payee_rule = self.payee_extractor.extract(text)

        result.iban = iban
        result.amount = amount
        result.scadenza = scadenza
        result.ente = ente
        for field_name, rule in (
            (FieldName.IBAN, iban_rule),
            (FieldName.AMOUNT, amount_rule),
            (FieldName.SCADENZA, date_rule),
            (FieldName.ENTE, payee_rule),
        ):
            if rule:
                result.rules[field_name] = rule
        return result
