from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from app.config import resolve_secret
from app.pipeline import BillExtractionPipeline
from core.enums import BillSource, Collection, DocumentKind, JobType, MissingAccountPolicy
from core.models import utc_now_iso
from inbox.conversation_service import ConversationService
from inbox.finalize_service import FinalizeService
from inbox.sender_locks import SenderLocks
from inbox.session_store import SessionStore
from payments.link_builder import DEFAULT_PAY_PATH
from store.repository_factory import create_record_store
from store.repository_interface import RecordStoreError, RecordStoreProtocol
from whatsapp import message_templates
from whatsapp.media_client import MediaClient, MediaDownloadError, filename_from_url

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InboundEvent:
    sender: str
    text: str = ""
    media_url: str | None = None
    media_content_type: str | None = None
    message_id: str | None = None

    def has_media(self) -> bool:
        return bool(self.media_url)


def classify_job_type(text: str | None, has_media: bool = False) -> JobType:
    if has_media:
        return JobType.BOLLETTA
    lowered = (text or "").strip().lower()
    if "bolletta" in lowered:
        return JobType.BOLLETTA
    if "medico" in lowered:
        return JobType.MEDICO
    if "auto" in lowered:
        return JobType.AUTO
    if "lista" in lowered or "waitlist" in lowered:
        return JobType.WAITLIST
    return JobType.ALTRO


class IntakeCoordinator:
    """Routes an inbound event to the document path or the conversation path."""

    def __init__(
        self,
        config: dict[str, Any],
        store: RecordStoreProtocol | None = None,
        pipeline: BillExtractionPipeline | None = None,
        media_client: MediaClient | None = None,
        locks: SenderLocks | None = None,
    ) -> None:
        self.config = config
        intake_conf = config.get("intake", {})
        app_conf = config.get("app", {})
        wa_conf = config.get("whatsapp", {})
        collections = config.get("store", {}).get("collections", {})

        self.log_jobs = bool(intake_conf.get("log_jobs", True))
        self.jobs_collection = str(collections.get("jobs") or Collection.JOBS)
        policy = str(intake_conf.get("missing_account_policy", MissingAccountPolicy.BEST_EFFORT.value))
        self.missing_account_policy = MissingAccountPolicy(policy.strip().lower())
        iban_countries = tuple(intake_conf.get("iban_countries", ["IT"]))

        self.store = store or create_record_store(config)
        self.pipeline = pipeline or BillExtractionPipeline(config)
        self.media_client = media_client or MediaClient(
            account_sid=resolve_secret(wa_conf, "account_sid"),
            auth_token=resolve_secret(wa_conf, "auth_token"),
            timeout_sec=float(wa_conf.get("timeout_sec", 10)),
            max_bytes=intake_conf.get("max_document_bytes"),
        )
        self.finalize_service = FinalizeService(
            store=self.store,
            public_url=resolve_secret(app_conf, "public_url"),
            pay_path=str(app_conf.get("pay_path") or DEFAULT_PAY_PATH),
            collection=str(collections.get("bills") or Collection.BILLS),
        )
        self.session_store = SessionStore(
            store=self.store,
            session_ttl_minutes=int(intake_conf.get("session_ttl_minutes", 30)),
            collection=str(collections.get("sessions") or Collection.SESSIONS),
        )
        self.conversation_service = ConversationService(
            session_store=self.session_store,
            finalize_service=self.finalize_service,
            locks=locks,
            iban_countries=iban_countries,
        )

    def handle_event(self, event: InboundEvent) -> list[dict[str, Any]]:
        self._log_job(event)
        try:
            if event.has_media():
                return self._handle_document(event)
            return self.conversation_service.handle_text(event.sender, event.text)
        except Exception:  # noqa: BLE001
            logger.exception("intake-failed sender=%s message_id=%s", event.sender, event.message_id)
            return message_templates.build_retry_message()

    def _handle_document(self, event: InboundEvent) -> list[dict[str, Any]]:
        try:
            data, downloaded_type = self.media_client.download(str(event.media_url))
        except MediaDownloadError as exc:
            logger.warning("media-download-failed sender=%s error=%s", event.sender, exc)
            return message_templates.build_media_unavailable_message()

        content_type = event.media_content_type or downloaded_type
        result = self.pipeline.process_document(data, content_type, filename_from_url(event.media_url))
        logger.info(
            "document-extracted sender=%s kind=%s sources=%s notes=%s",
            event.sender,
            result.document_kind.value,
            ",".join(f"{k}:{v}" for k, v in sorted(result.sources.items())) or "-",
            ",".join(result.notes) or "-",
        )
        if result.document_kind == DocumentKind.UNSUPPORTED:
            return message_templates.build_unsupported_document_message()
        if not result.has_payable_fields():
            return message_templates.build_unreadable_document_message()
        if result.fields.iban is None and self.missing_account_policy == MissingAccountPolicy.REJECT:
            return message_templates.build_missing_account_message()
        messages = self.finalize_service.finalize(event.sender, result.fields, BillSource.DOCUMENT)
        # Partially collected slots are discarded, never merged into the document bill.
        self.conversation_service.retire(event.sender)
        return messages

    def _log_job(self, event: InboundEvent) -> None:
        if not self.log_jobs:
            return
        has_media = event.has_media()
        job_type = classify_job_type(event.text, has_media=has_media)
        details = f"media:{event.media_content_type or 'unknown'}" if has_media else (event.text or "").strip().lower()
        try:
            self.store.create(
                self.jobs_collection,
                {
                    "tipo": job_type.value,
                    "stato": "nuovo",
                    "utente": event.sender,
                    "dettagli": details,
                    "created_at": utc_now_iso(),
                },
            )
        except RecordStoreError as exc:
            logger.warning("job-log-failed sender=%s error=%s", event.sender, exc)
