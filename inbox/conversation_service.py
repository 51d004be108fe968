from __future__ import annotations

import logging
from typing import Any, Iterable

from core.enums import BillSource
from extractors.validators import (
    DEFAULT_IBAN_COUNTRIES,
    build_validated_fields,
    normalize_date,
    parse_amount,
    validate_amount,
    validate_iban,
)
from inbox.finalize_service import FinalizeService
from inbox.intents import Intent, classify_intent
from inbox.models import ConversationSession
from inbox.sender_locks import SenderLocks
from inbox.session_store import SessionStore
from inbox.state_machine import (
    STEP_DONE,
    STEP_ENTE,
    STEP_IBAN,
    STEP_IMPORTO,
    STEP_SCADENZA,
    STEPS,
    first_step,
    next_step,
)
from store.repository_interface import RecordConflictError, RecordStoreError
from whatsapp import message_templates

logger = logging.getLogger(__name__)

_INVALID = object()


class ConversationService:
    def __init__(
        self,
        session_store: SessionStore,
        finalize_service: FinalizeService,
        locks: SenderLocks | None = None,
        iban_countries: Iterable[str] = DEFAULT_IBAN_COUNTRIES,
    ) -> None:
        self.session_store = session_store
        self.finalize_service = finalize_service
        self.locks = locks or SenderLocks()
        self.iban_countries = tuple(iban_countries)

    def handle_text(self, sender: str, text: str | None) -> list[dict[str, Any]]:
        with self.locks.hold(sender):
            try:
                return self._apply_turn(sender, text or "")
            except RecordConflictError as exc:
                logger.info("session-conflict-retry sender=%s error=%s", sender, exc)
            try:
                return self._apply_turn(sender, text or "")
            except RecordConflictError as exc:
                logger.warning("session-conflict sender=%s error=%s", sender, exc)
                return message_templates.build_retry_message()

    def _apply_turn(self, sender: str, text: str) -> list[dict[str, Any]]:
        intent = classify_intent(text)
        stored = self.session_store.find(sender)
        session = stored
        if session is not None and (self.session_store.is_expired(session) or session.step not in STEPS):
            session = None

        if intent == Intent.CANCEL:
            if stored is not None:
                self.session_store.delete(stored)
            return message_templates.build_cancelled_message()

        if intent == Intent.TRIGGER or session is None:
            # Without a live session the input only restarts the flow; it is not consumed as a value.
            self._start(sender, stored)
            return message_templates.build_step_prompt(first_step())

        return self._apply_slot(session, text, intent)

    def _start(self, sender: str, stored: ConversationSession | None) -> None:
        try:
            self.session_store.start(sender, stored)
        except RecordConflictError:
            raise
        except RecordStoreError as exc:
            logger.warning("session-start-failed sender=%s error=%s", sender, exc)

    def _apply_slot(self, session: ConversationSession, text: str, intent: Intent) -> list[dict[str, Any]]:
        step = session.step
        raw = text.strip()
        if not raw:
            return message_templates.build_step_prompt(step)

        value = self._parse_slot(step, raw, intent)
        if value is _INVALID:
            return message_templates.build_invalid_value_message(step)

        collected = dict(session.collected)
        collected[step] = value
        target = next_step(step)
        try:
            advanced = self.session_store.advance(session, target, collected)
        except RecordConflictError:
            raise
        except RecordStoreError as exc:
            logger.warning("session-advance-failed sender=%s step=%s error=%s", session.sender, step, exc)
            return message_templates.build_retry_message()

        if target != STEP_DONE:
            return message_templates.build_step_prompt(target)
        return self._finish(advanced)

    def _parse_slot(self, step: str, raw: str, intent: Intent) -> Any:
        if step == STEP_ENTE:
            return " ".join(raw.split())
        if step == STEP_IMPORTO:
            amount = parse_amount(raw)
            return format(amount, "f") if amount is not None else _INVALID
        if step == STEP_IBAN:
            iban = validate_iban(raw, self.iban_countries)
            return iban if iban is not None else _INVALID
        if step == STEP_SCADENZA:
            if intent == Intent.NO_DUE_DATE:
                return None
            scadenza = normalize_date(raw)
            return scadenza if scadenza is not None else _INVALID
        raise ValueError(f"unknown step: {step}")

    def _finish(self, session: ConversationSession) -> list[dict[str, Any]]:
        collected = session.collected
        fields = build_validated_fields(
            ente=collected.get(STEP_ENTE),
            iban=validate_iban(collected.get(STEP_IBAN), self.iban_countries),
            amount=validate_amount(collected.get(STEP_IMPORTO)),
            scadenza=normalize_date(collected.get(STEP_SCADENZA)),
            descr=None,
        )
        messages = self.finalize_service.finalize(session.sender, fields, BillSource.CONVERSATION)
        self.session_store.delete(session)
        return messages

    def retire(self, sender: str) -> None:
        """Drop the sender's stored session without consuming any slot; the next text turn starts over."""
        with self.locks.hold(sender):
            session = self.session_store.find(sender)
            if session is not None:
                logger.info("session-retired sender=%s step=%s", sender, session.step)
                self.session_store.delete(session)
