from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from core.enums import Collection
from inbox.models import ConversationSession
from inbox.state_machine import first_step, is_forward
from store.repository_interface import RecordStoreError, RecordStoreProtocol, StoredRecord

logger = logging.getLogger(__name__)

SENDER_FIELD = "sender"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    def __init__(
        self,
        store: RecordStoreProtocol,
        session_ttl_minutes: int = 30,
        collection: str = Collection.SESSIONS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.ttl = timedelta(minutes=max(1, int(session_ttl_minutes)))
        self.collection = collection
        self.clock = clock

    def find(self, sender: str) -> ConversationSession | None:
        """Stored session for the sender, expired or not. Store failures read as no session."""
        try:
            record = self.store.find_one_by_field(self.collection, SENDER_FIELD, sender)
        except RecordStoreError as exc:
            logger.warning("session-load-failed sender=%s error=%s", sender, exc)
            return None
        if record is None:
            return None
        return _session_from_record(record, sender)

    def load(self, sender: str) -> ConversationSession | None:
        session = self.find(sender)
        if session is None or self.is_expired(session):
            return None
        return session

    def is_expired(self, session: ConversationSession) -> bool:
        last_activity = _parse_timestamp(session.last_activity_at)
        if last_activity is None:
            return True
        return self.clock() - last_activity > self.ttl

    def start(self, sender: str, existing: ConversationSession | None = None) -> ConversationSession:
        """Fresh session at the first step, reusing the existing record when there is one."""
        step = first_step()
        now = self.clock().isoformat()
        fields: dict[str, Any] = {
            SENDER_FIELD: sender,
            "step": step,
            "collected": {},
            "last_activity_at": now,
        }
        if existing is not None:
            version = self.store.update(self.collection, existing.record_id, fields, expected_version=existing.version)
            return ConversationSession(
                record_id=existing.record_id,
                sender=sender,
                step=step,
                collected={},
                last_activity_at=now,
                version=version,
            )
        record_id = self.store.create(self.collection, fields)
        return ConversationSession(
            record_id=record_id,
            sender=sender,
            step=step,
            collected={},
            last_activity_at=now,
            version=1,
        )

    def advance(self, session: ConversationSession, step: str, collected: dict[str, Any]) -> ConversationSession:
        if not is_forward(session.step, step):
            raise ValueError(f"session step cannot move from {session.step} to {step}")
        now = self.clock().isoformat()
        version = self.store.update(
            self.collection,
            session.record_id,
            {"step": step, "collected": dict(collected), "last_activity_at": now},
            expected_version=session.version,
        )
        return ConversationSession(
            record_id=session.record_id,
            sender=session.sender,
            step=step,
            collected=dict(collected),
            last_activity_at=now,
            version=version,
        )

    def delete(self, session: ConversationSession) -> None:
        try:
            self.store.delete(self.collection, session.record_id)
        except RecordStoreError as exc:
            logger.warning("session-delete-failed sender=%s error=%s", session.sender, exc)


def _session_from_record(record: StoredRecord, sender: str) -> ConversationSession:
    fields = record.fields
    collected = fields.get("collected")
    return ConversationSession(
        record_id=record.record_id,
        sender=str(fields.get(SENDER_FIELD) or sender),
        step=str(fields.get("step") or ""),
        collected=dict(collected) if isinstance(collected, dict) else {},
        last_activity_at=str(fields.get("last_activity_at") or ""),
        version=int(record.version),
    )


def _parse_timestamp(text: str) -> datetime | None:
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
