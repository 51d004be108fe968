from __future__ import annotations

import re
from enum import Enum

from extractors.validators import is_no_due_date

CANCEL_WORDS = {"annulla", "cancel", "stop", "esci"}
RE_TRIGGER = re.compile(r"^\s*(?:bolletta|bill)\b", re.IGNORECASE)


class Intent(str, Enum):
    TRIGGER = "trigger"
    CANCEL = "cancel"
    NO_DUE_DATE = "no_due_date"
    SLOT_VALUE = "slot_value"


def classify_intent(text: str | None) -> Intent:
    """Recognize control phrases before any slot parsing. Order: cancel, trigger, no-due-date."""
    cleaned = (text or "").strip()
    lowered = cleaned.lower()
    if lowered.rstrip(".!") in CANCEL_WORDS:
        return Intent.CANCEL
    if RE_TRIGGER.match(cleaned):
        return Intent.TRIGGER
    if is_no_due_date(cleaned):
        return Intent.NO_DUE_DATE
    return Intent.SLOT_VALUE
