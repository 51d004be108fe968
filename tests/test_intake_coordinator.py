from __future__ import annotations

import sqlite3
import tempfile
import unittest
from pathlib import Path
from typing import Any

from app.config import DEFAULT_CONFIG, deep_merge
from app.intake import InboundEvent, IntakeCoordinator, classify_job_type
from app.pipeline import BillExtractionPipeline
from core.enums import JobType
from extractors.model_extractor import ModelExtractor
from store.repository import SQLiteRecordStore
from store.repository_interface import RecordStoreError, StoredRecord
from whatsapp import message_templates
from whatsapp.media_client import MediaDownloadError

SENDER = "whatsapp:+393331112222"
VALID_IBAN = "IT60X0542811101000000123456"

BILL_TEXT = """ENEL ENERGIA S.p.A.
Totale da pagare: 1.234,56 €
Scadenza: 10/09/2025
IBAN: IT60 X054 2811 1010 0000 0123 456
"""
BILL_TEXT_NO_IBAN = """Acqua Pubblica Srl
Importo 49,90 EUR
Scadenza 2025-10-01
"""


class _FakeMediaClient:
    def __init__(self, content: bytes = b"", content_type: str | None = "text/plain", fail: bool = False) -> None:
        self.content = content
        self.content_type = content_type
        self.fail = fail
        self.urls: list[str] = []

    def download(self, url: str) -> tuple[bytes, str | None]:
        self.urls.append(url)
        if self.fail:
            raise MediaDownloadError("boom")
        return self.content, self.content_type


class _UnavailableStore:
    def create(self, collection: str, fields: dict[str, Any]) -> str:
        raise RecordStoreError("store unavailable")

    def update(self, collection: str, record_id: str, fields: dict[str, Any], expected_version: int | None = None) -> int:
        raise RecordStoreError("store unavailable")

    def delete(self, collection: str, record_id: str) -> None:
        raise RecordStoreError("store unavailable")

    def find_one_by_field(self, collection: str, field_name: str, value: Any) -> StoredRecord | None:
        raise RecordStoreError("store unavailable")


class _ExplodingPipeline:
    def process_document(self, data: bytes, content_type: str | None, filename: str | None = None) -> Any:
        raise RuntimeError("unexpected")


def _build_config(tmp: str, **intake: Any) -> dict[str, Any]:
    return deep_merge(
        DEFAULT_CONFIG,
        {
            "app": {"public_url": "https://pay.example.com"},
            "intake": intake,
            "store": {"sqlite_path": str(Path(tmp) / "records.db")},
            "extraction": {"model": {"enabled": False}},
        },
    )


def _count_records(store: SQLiteRecordStore, collection: str) -> int:
    with sqlite3.connect(store.sqlite_path) as conn:
        row = conn.execute("SELECT COUNT(*) FROM records WHERE collection = ?", (collection,)).fetchone()
    return int(row[0])


def _text(messages: list[dict[str, Any]]) -> str:
    return "\n".join(str(message.get("text", "")) for message in messages)


class IntakeCoordinatorTest(unittest.TestCase):
    def _build(self, tmp: str, media_client: _FakeMediaClient, **intake: Any) -> tuple[IntakeCoordinator, SQLiteRecordStore]:
        config = _build_config(tmp, **intake)
        store = SQLiteRecordStore(config["store"]["sqlite_path"])
        pipeline = BillExtractionPipeline(config, model_extractor=ModelExtractor(api_key=None))
        coordinator = IntakeCoordinator(config, store=store, pipeline=pipeline, media_client=media_client)
        return coordinator, store

    def test_document_mid_conversation_retires_abandoned_session(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            media = _FakeMediaClient(BILL_TEXT.encode("utf-8"), "text/plain")
            coordinator, store = self._build(tmp, media)

            for text in ("bolletta", "Acme Energy", "49,90"):
                coordinator.handle_event(InboundEvent(sender=SENDER, text=text))
            before = coordinator.session_store.load(SENDER)
            assert before is not None
            self.assertEqual(before.step, "iban")

            reply = _text(
                coordinator.handle_event(
                    InboundEvent(sender=SENDER, media_url="https://api.twilio.com/media/ME1", media_content_type="text/plain")
                )
            )

            self.assertIn("Ho letto la bolletta", reply)
            self.assertIn("ENEL ENERGIA", reply)
            self.assertNotIn("Acme", reply)
            bill = store.find_one_by_field("bills", "sender", SENDER)
            assert bill is not None
            self.assertEqual(bill.fields["source"], "document")
            self.assertEqual(bill.fields["importo"], "1234.56")
            self.assertEqual(bill.fields["iban"], VALID_IBAN)
            self.assertEqual(bill.fields["scadenza"], "2025-09-10")
            self.assertIsNone(coordinator.session_store.find(SENDER))

            # Later text starts a fresh flow instead of finishing the abandoned one.
            reply = _text(coordinator.handle_event(InboundEvent(sender=SENDER, text=VALID_IBAN)))
            self.assertEqual(reply, _text(message_templates.build_step_prompt("ente")))
            reply = _text(coordinator.handle_event(InboundEvent(sender=SENDER, text="2025-09-10")))
            self.assertEqual(reply, _text(message_templates.build_step_prompt("importo")))

            self.assertEqual(_count_records(store, "bills"), 1)
            session = coordinator.session_store.load(SENDER)
            assert session is not None
            self.assertEqual(session.collected, {"ente": "2025-09-10"})

    def test_rejected_document_keeps_session(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            media = _FakeMediaClient(b"ciao, come stai?", "text/plain")
            coordinator, _ = self._build(tmp, media)

            coordinator.handle_event(InboundEvent(sender=SENDER, text="bolletta"))
            coordinator.handle_event(InboundEvent(sender=SENDER, text="Acme Energy"))
            coordinator.handle_event(InboundEvent(sender=SENDER, media_url="https://m/1"))

            reply = _text(coordinator.handle_event(InboundEvent(sender=SENDER, text="49,90")))
            self.assertEqual(reply, _text(message_templates.build_step_prompt("iban")))

    def test_missing_account_best_effort(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            media = _FakeMediaClient(BILL_TEXT_NO_IBAN.encode("utf-8"), "text/plain")
            coordinator, store = self._build(tmp, media)

            reply = _text(coordinator.handle_event(InboundEvent(sender=SENDER, media_url="https://m/1")))

            self.assertIn("IBAN: non rilevato", reply)
            self.assertNotIn("iban=", reply)
            bill = store.find_one_by_field("bills", "sender", SENDER)
            assert bill is not None
            self.assertEqual(bill.fields["iban"], "")
            self.assertEqual(bill.fields["importo"], "49.90")

    def test_missing_account_reject(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            media = _FakeMediaClient(BILL_TEXT_NO_IBAN.encode("utf-8"), "text/plain")
            coordinator, store = self._build(tmp, media, missing_account_policy="reject")

            reply = _text(coordinator.handle_event(InboundEvent(sender=SENDER, media_url="https://m/1")))

            self.assertEqual(reply, _text(message_templates.build_missing_account_message()))
            self.assertIsNone(store.find_one_by_field("bills", "sender", SENDER))

    def test_unreadable_document(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            media = _FakeMediaClient(b"ciao, come stai?", "text/plain")
            coordinator, store = self._build(tmp, media)

            reply = _text(coordinator.handle_event(InboundEvent(sender=SENDER, media_url="https://m/1")))

            self.assertEqual(reply, _text(message_templates.build_unreadable_document_message()))
            self.assertIsNone(store.find_one_by_field("bills", "sender", SENDER))

    def test_unsupported_document(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            media = _FakeMediaClient(b"PK\x03\x04zipdata", "application/zip")
            coordinator, _ = self._build(tmp, media)

            reply = _text(
                coordinator.handle_event(
                    InboundEvent(sender=SENDER, media_url="https://m/1", media_content_type="application/zip")
                )
            )
            self.assertEqual(reply, _text(message_templates.build_unsupported_document_message()))

    def test_download_failure(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            coordinator, _ = self._build(tmp, _FakeMediaClient(fail=True))
            reply = _text(coordinator.handle_event(InboundEvent(sender=SENDER, media_url="https://m/1")))
            self.assertEqual(reply, _text(message_templates.build_media_unavailable_message()))

    def test_unavailable_store_is_invisible_to_the_user(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = _build_config(tmp)
            pipeline = BillExtractionPipeline(config, model_extractor=ModelExtractor(api_key=None))
            coordinator = IntakeCoordinator(
                config,
                store=_UnavailableStore(),
                pipeline=pipeline,
                media_client=_FakeMediaClient(BILL_TEXT.encode("utf-8"), "text/plain"),  # type: ignore[arg-type]
            )

            with self.assertLogs(level="WARNING"):
                prompt = _text(coordinator.handle_event(InboundEvent(sender=SENDER, text="bolletta")))
                summary = _text(coordinator.handle_event(InboundEvent(sender=SENDER, media_url="https://m/1")))

        self.assertEqual(prompt, _text(message_templates.build_step_prompt("ente")))
        self.assertIn("Ho letto la bolletta", summary)
        self.assertIn("Paga qui: https://pay.example.com/pay-bolletta?importo=1234.56", summary)

    def test_unexpected_error_yields_retry_message(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = _build_config(tmp)
            store = SQLiteRecordStore(config["store"]["sqlite_path"])
            coordinator = IntakeCoordinator(
                config,
                store=store,
                pipeline=_ExplodingPipeline(),  # type: ignore[arg-type]
                media_client=_FakeMediaClient(b"x"),  # type: ignore[arg-type]
            )
            with self.assertLogs("app.intake", level="ERROR"):
                reply = _text(coordinator.handle_event(InboundEvent(sender=SENDER, media_url="https://m/1")))
            self.assertEqual(reply, _text(message_templates.build_retry_message()))

    def test_jobs_are_logged(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            coordinator, store = self._build(tmp, _FakeMediaClient())
            coordinator.handle_event(InboundEvent(sender=SENDER, text="Devo prenotare il MEDICO"))

            job = store.find_one_by_field("jobs", "utente", SENDER)
            assert job is not None
            self.assertEqual(job.fields["tipo"], "medico")
            self.assertEqual(job.fields["stato"], "nuovo")
            self.assertEqual(job.fields["dettagli"], "devo prenotare il medico")

    def test_jobs_can_be_disabled(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            coordinator, store = self._build(tmp, _FakeMediaClient(), log_jobs=False)
            coordinator.handle_event(InboundEvent(sender=SENDER, text="bolletta"))
            self.assertIsNone(store.find_one_by_field("jobs", "utente", SENDER))


class JobTypeTest(unittest.TestCase):
    def test_classify_job_type(self) -> None:
        self.assertEqual(classify_job_type("Ciao, devo pagare la Bolletta"), JobType.BOLLETTA)
        self.assertEqual(classify_job_type("prenota medico"), JobType.MEDICO)
        self.assertEqual(classify_job_type("lavaggio auto"), JobType.AUTO)
        self.assertEqual(classify_job_type("mettimi in lista"), JobType.WAITLIST)
        self.assertEqual(classify_job_type("ciao"), JobType.ALTRO)
        self.assertEqual(classify_job_type("", has_media=True), JobType.BOLLETTA)


if __name__ == "__main__":
    unittest.main()
