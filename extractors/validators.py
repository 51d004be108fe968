from __future__ import annotations

import math
import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from core.models import DEFAULT_DESCR, DEFAULT_ENTE, ValidatedFields

CENTS = Decimal("0.01")
NO_DUE_DATE_SENTINELS = {"nessuna", "nessuna scadenza", "none", "no", "-"}

# Country code -> full IBAN pattern (after whitespace removal and uppercasing).
IBAN_PATTERNS = {
    "IT": re.compile(r"^IT\d{2}[A-Z]\d{10}[0-9A-Z]{12}$"),
    "SM": re.compile(r"^SM\d{2}[A-Z]\d{10}[0-9A-Z]{12}$"),
    "DE": re.compile(r"^DE\d{20}$"),
    "FR": re.compile(r"^FR\d{12}[0-9A-Z]{11}\d{2}$"),
    "ES": re.compile(r"^ES\d{22}$"),
}
DEFAULT_IBAN_COUNTRIES = ("IT",)

RE_AMOUNT_CHARS = re.compile(r"[^\d.,]")
RE_THOUSANDS_DOT = re.compile(r"\.(?!\d{2}$)")
# Machine-formatted amount ("49.9", "1234.50"); a dot followed by three digits stays a thousands separator.
RE_PLAIN_DECIMAL = re.compile(r"^\d+(?:\.\d{1,2})?$")
RE_ISO_DATE = re.compile(r"^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})$")
RE_DMY_DATE = re.compile(r"^(?P<day>\d{1,2})(?P<sep>[/\-.])(?P<month>\d{1,2})(?P=sep)(?P<year>\d{4})$")


def parse_amount(text: Any) -> Optional[Decimal]:
    """Parse a European-style amount string ("1.234,56") into a cent-quantized Decimal."""
    cleaned = RE_AMOUNT_CHARS.sub("", str(text or ""))
    if not cleaned:
        return None
    cleaned = RE_THOUSANDS_DOT.sub("", cleaned)
    cleaned = cleaned.replace(",", ".")
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    return _positive_cents(value)


def validate_amount(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return _positive_cents(value)
    if isinstance(value, int):
        return _positive_cents(Decimal(value))
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return _positive_cents(Decimal(str(value)))
    text = str(value).strip()
    if RE_PLAIN_DECIMAL.match(text):
        return _positive_cents(Decimal(text))
    return parse_amount(text)


def _positive_cents(value: Decimal) -> Optional[Decimal]:
    if not value.is_finite() or value <= 0:
        return None
    try:
        quantized = value.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    if quantized <= 0:
        return None
    return quantized


def normalize_iban(text: Any) -> str:
    return re.sub(r"\s+", "", str(text or "")).upper()


def iban_checksum_ok(iban: str) -> bool:
    rearranged = iban[4:] + iban[:4]
    digits: list[str] = []
    for ch in rearranged:
        if ch.isdigit():
            digits.append(ch)
        elif "A" <= ch <= "Z":
            digits.append(str(ord(ch) - ord("A") + 10))
        else:
            return False
    if not digits:
        return False
    return int("".join(digits)) % 97 == 1


def validate_iban(text: Any, countries: Iterable[str] = DEFAULT_IBAN_COUNTRIES) -> Optional[str]:
    iban = normalize_iban(text)
    if len(iban) < 5:
        return None
    pattern = IBAN_PATTERNS.get(iban[:2])
    if pattern is None or iban[:2] not in set(countries):
        return None
    if not pattern.match(iban):
        return None
    if not iban_checksum_ok(iban):
        return None
    return iban


def is_no_due_date(text: Any) -> bool:
    normalized = re.sub(r"\s+", " ", str(text or "")).strip().lower()
    return normalized in NO_DUE_DATE_SENTINELS


def normalize_date(text: Any) -> Optional[str]:
    value = str(text or "").strip()
    if not value or is_no_due_date(value):
        return None

    match = RE_ISO_DATE.match(value)
    if match is not None:
        parsed = _build_date(int(match.group("year")), int(match.group("month")), int(match.group("day")))
        return parsed.isoformat() if parsed is not None else None

    match = RE_DMY_DATE.match(value)
    if match is not None:
        parsed = _build_date(int(match.group("year")), int(match.group("month")), int(match.group("day")))
        return parsed.isoformat() if parsed is not None else None
    return None


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def synthesize_descr(scadenza: Optional[str]) -> str:
    if scadenza:
        return f"Bolletta {scadenza}"
    return DEFAULT_DESCR


def build_validated_fields(
    *,
    ente: Optional[str] = None,
    iban: Optional[str] = None,
    amount: Optional[Decimal] = None,
    scadenza: Optional[str] = None,
    descr: Optional[str] = None,
) -> ValidatedFields:
    ente_text = str(ente or "").strip() or DEFAULT_ENTE
    descr_text = str(descr or "").strip() or synthesize_descr(scadenza)
    return ValidatedFields(
        ente=ente_text,
        descr=descr_text,
        iban=iban or None,
        amount=amount,
        scadenza=scadenza or None,
    )
