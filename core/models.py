from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from core.enums import DocumentKind

DEFAULT_ENTE = "Fornitore"
DEFAULT_DESCR = "Pagamento bolletta"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _serialize(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return format(value, "f")
    if is_dataclass(value):
        return {k: _serialize(v) for k, v in asdict(value).items()}
    if isinstance(value, tuple):
        return [_serialize(v) for v in value]
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


@dataclass(slots=True)
class CandidateFields:
    ente: Optional[str] = None
    iban: Optional[str] = None
    amount: Any = None
    scadenza: Optional[str] = None
    descr: Optional[str] = None
    rules: dict[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return all(
            value in (None, "")
            for value in (self.ente, self.iban, self.amount, self.scadenza, self.descr)
        )


@dataclass(slots=True, frozen=True)
class ValidatedFields:
    ente: str
    descr: str
    iban: Optional[str] = None
    amount: Optional[Decimal] = None
    scadenza: Optional[str] = None

    def amount_text(self) -> str | None:
        if self.amount is None:
            return None
        return format(self.amount, "f")

    def to_dict(self) -> dict[str, Any]:
        return _serialize(self)


@dataclass(slots=True)
class ExtractionResult:
    document_kind: DocumentKind
    fields: ValidatedFields
    model: Optional[CandidateFields]
    heuristic: CandidateFields
    sources: dict[str, str] = field(default_factory=dict)
    notes: list[str] = field(default_factory=list)
    text_length: int = 0
    processed_at: str = field(default_factory=utc_now_iso)

    def has_payable_fields(self) -> bool:
        return self.fields.amount is not None or self.fields.iban is not None

    def to_dict(self) -> dict[str, Any]:
        return _serialize(self)
