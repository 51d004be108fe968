from __future__ import annotations

from enum import Enum


class DocumentKind(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    TEXT = "text"
    UNSUPPORTED = "unsupported"


class BillSource(str, Enum):
    CONVERSATION = "conversation"
    DOCUMENT = "document"


class JobType(str, Enum):
    BOLLETTA = "bolletta"
    MEDICO = "medico"
    AUTO = "auto"
    WAITLIST = "waitlist"
    ALTRO = "altro"


class MissingAccountPolicy(str, Enum):
    BEST_EFFORT = "best_effort"
    REJECT = "reject"


class FieldName:
    ENTE = "ente"
    IBAN = "iban"
    AMOUNT = "amount"
    SCADENZA = "scadenza"
    DESCR = "descr"

    ALL_FIELDS = (
        ENTE,
        IBAN,
        AMOUNT,
        SCADENZA,
        DESCR,
    )


class Collection:
    SESSIONS = "sessions"
    BILLS = "bills"
    JOBS = "jobs"
