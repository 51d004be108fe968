from __future__ import annotations

import re
from typing import Optional

from extractors.rules import NamedRule, first_match
from extractors.validators import parse_amount

# Longest phrases first so that "totale da pagare" wins over "totale" at equal distance.
AMOUNT_KEYWORDS = (
    "totale da pagare",
    "importo da pagare",
    "totale bolletta",
    "importo totale",
    "totale fattura",
    "total amount due",
    "amount due",
    "total due",
    "da pagare",
    "totale",
    "importo",
    "total",
)
KEYWORD_WINDOW = 40

RE_NUMBER = re.compile(r"(?<![\w.,])(?:\d{1,3}(?:\.\d{3})+(?:,\d{1,2})?|\d+(?:[.,]\d{1,2})?)(?![\w])")
RE_CURRENCY_AMOUNT = re.compile(
    r"(?:€|\bEUR)\s?(?P<pre>\d{1,3}(?:\.\d{3})+(?:,\d{2})?|\d+(?:[.,]\d{2})?)(?![\d])"
    r"|(?<![\d.,])(?P<post>\d{1,3}(?:\.\d{3})+(?:,\d{2})?|\d+(?:[.,]\d{2})?)\s?(?:€|EUR\b)"
    r"|(?<![\d.,])(?P<bare>\d{1,3}(?:\.\d{3})*,\d{2})(?![\d])",
    re.IGNORECASE,
)


def _is_date_fragment(text: str, start: int, end: int) -> bool:
    before = text[max(0, start - 1) : start]
    after = text[end : end + 2]
    if before in {"/", "-"}:
        return True
    return bool(re.match(r"[/\-]\d", after))


def _amount_after_total_keyword(text: str) -> Optional[str]:
    lowered = text.lower()
    best: tuple[int, int, str] | None = None
    for priority, keyword in enumerate(AMOUNT_KEYWORDS):
        for keyword_match in re.finditer(re.escape(keyword), lowered):
            window_start = keyword_match.end()
            window = text[window_start : window_start + KEYWORD_WINDOW]
            for number in RE_NUMBER.finditer(window):
                start = window_start + number.start()
                end = window_start + number.end()
                if _is_date_fragment(text, start, end):
                    continue
                if parse_amount(number.group(0)) is None:
                    continue
                ranked = (number.start(), priority, number.group(0))
                if best is None or ranked[:2] < best[:2]:
                    best = ranked
                break
    return best[2] if best is not None else None


def _first_currency_amount(text: str) -> Optional[str]:
    for match in RE_CURRENCY_AMOUNT.finditer(text):
        value = match.group("pre") or match.group("post") or match.group("bare")
        if value and parse_amount(value) is not None:
            return value
    return None


AMOUNT_RULES = (
    NamedRule("amount_after_total_keyword", _amount_after_total_keyword),
    NamedRule("first_currency_amount", _first_currency_amount),
)


class AmountExtractor:
    def extract(self, text: str | None) -> tuple[Optional[str], Optional[str]]:
        raw, rule = first_match(AMOUNT_RULES, text)
        if raw is None:
            return None, None
        amount = parse_amount(raw)
        if amount is None:
            return None, None
        return format(amount, "f"), rule
