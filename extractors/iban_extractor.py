from __future__ import annotations

import re
from typing import Iterable, Optional

from extractors.rules import NamedRule, first_match
from extractors.validators import DEFAULT_IBAN_COUNTRIES, validate_iban

RE_IBAN_IT = re.compile(
    r"\b(?:IT|SM)\s?\d{2}\s?[A-Z](?:\s?\d){10}(?:\s?[0-9A-Z]){12}\b",
    re.IGNORECASE,
)


def _iban_pattern(text: str) -> Optional[str]:
    match = RE_IBAN_IT.search(text)
    return match.group(0) if match else None


IBAN_RULES = (NamedRule("iban_pattern", _iban_pattern),)


class IbanExtractor:
    def __init__(self, countries: Iterable[str] = DEFAULT_IBAN_COUNTRIES) -> None:
        self.countries = tuple(countries)

    def extract(self, text: str | None) -> tuple[Optional[str], Optional[str]]:
        raw, rule = first_match(IBAN_RULES, text)
        if raw is None:
            return None, None
        # Only the first match is considered; a bad checksum leaves the field empty.
        iban = validate_iban(raw, self.countries)
        if iban is None:
            return None, None
        return iban, rule
