from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, Iterable, Optional

from core.enums import FieldName
from core.models import CandidateFields, ValidatedFields
from extractors.validators import (
    DEFAULT_IBAN_COUNTRIES,
    build_validated_fields,
    normalize_date,
    validate_amount,
    validate_iban,
)

SOURCE_MODEL = "model"
SOURCE_HEURISTIC = "heuristic"


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def _pick(
    model_value: Any,
    heuristic_value: Any,
    validate: Callable[[Any], Any],
) -> tuple[Any, Optional[str]]:
    value = validate(model_value)
    if value is not None:
        return value, SOURCE_MODEL
    value = validate(heuristic_value)
    if value is not None:
        return value, SOURCE_HEURISTIC
    return None, None


def merge_sources(
    model: CandidateFields | None,
    heuristic: CandidateFields | None,
    iban_countries: Iterable[str] = DEFAULT_IBAN_COUNTRIES,
) -> tuple[dict[str, Any], dict[str, str]]:
    """Field-local precedence: a valid model value, else a valid heuristic value, else absent."""
    model = model or CandidateFields()
    heuristic = heuristic or CandidateFields()
    countries = tuple(iban_countries)

    validators: dict[str, Callable[[Any], Any]] = {
        FieldName.ENTE: _clean_text,
        FieldName.IBAN: lambda value: validate_iban(value, countries) if value else None,
        FieldName.AMOUNT: validate_amount,
        FieldName.SCADENZA: normalize_date,
        FieldName.DESCR: _clean_text,
    }
    values: dict[str, Any] = {}
    sources: dict[str, str] = {}
    for field_name, validate in validators.items():
        value, source = _pick(getattr(model, field_name), getattr(heuristic, field_name), validate)
        values[field_name] = value
        if source is not None:
            sources[field_name] = source
    return values, sources


def merge_with_sources(
    model: CandidateFields | None,
    heuristic: CandidateFields | None,
    iban_countries: Iterable[str] = DEFAULT_IBAN_COUNTRIES,
) -> tuple[ValidatedFields, dict[str, str]]:
    values, sources = merge_sources(model, heuristic, iban_countries)
    amount: Optional[Decimal] = values[FieldName.AMOUNT]
    fields = build_validated_fields(
        ente=values[FieldName.ENTE],
        iban=values[FieldName.IBAN],
        amount=amount,
        scadenza=values[FieldName.SCADENZA],
        descr=values[FieldName.DESCR],
    )
    return fields, sources


def merge_candidates(
    model: CandidateFields | None,
    heuristic: CandidateFields | None,
    iban_countries: Iterable[str] = DEFAULT_IBAN_COUNTRIES,
) -> ValidatedFields:
    fields, _ = merge_with_sources(model, heuristic, iban_countries)
    return fields
