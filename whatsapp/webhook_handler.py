from __future__ import annotations

import logging
from typing import Any, Mapping

from twilio.twiml.messaging_response import MessagingResponse

from app.config import resolve_secret
from app.intake import InboundEvent, IntakeCoordinator
from whatsapp.signature import verify_twilio_signature

logger = logging.getLogger(__name__)

TWIML_MEDIA_TYPE = "application/xml"


def render_twiml(messages: list[dict[str, Any]]) -> str:
    response = MessagingResponse()
    for message in messages:
        text = str(message.get("text", "") or "")
        if message.get("type") == "text" and text:
            response.message(text)
    return str(response)


def inbound_event_from_form(form: Mapping[str, Any]) -> InboundEvent:
    num_media = _safe_int(form.get("NumMedia"))
    media_url = str(form.get("MediaUrl0", "") or "").strip() if num_media > 0 else ""
    media_type = str(form.get("MediaContentType0", "") or "").strip() if num_media > 0 else ""
    return InboundEvent(
        sender=str(form.get("From", "") or "").strip(),
        text=str(form.get("Body", "") or ""),
        media_url=media_url or None,
        media_content_type=media_type or None,
        message_id=str(form.get("MessageSid", "") or "").strip() or None,
    )


class WhatsAppWebhookHandler:
    def __init__(
        self,
        config: dict[str, Any],
        coordinator: IntakeCoordinator | None = None,
    ) -> None:
        self.config = config
        self.wa_conf = config.get("whatsapp", {})
        self.enabled = bool(self.wa_conf.get("enabled", True))
        self.validate_signature = bool(self.wa_conf.get("validate_signature", True))
        self.auth_token = resolve_secret(self.wa_conf, "auth_token") or ""
        self.public_webhook_url = str(self.wa_conf.get("public_webhook_url", "") or "").strip()
        allowed = self.wa_conf.get("allowed_senders", [])
        self.allowed_senders = {
            str(sender).strip()
            for sender in (allowed if isinstance(allowed, list) else [])
            if str(sender).strip()
        }
        self.coordinator = coordinator or IntakeCoordinator(config)

    def handle(
        self,
        form: Mapping[str, Any],
        request_url: str,
        signature: str | None,
    ) -> tuple[int, str]:
        if not self.enabled:
            return 503, render_twiml([])
        if self.validate_signature and self.auth_token:
            url = self.public_webhook_url or request_url
            if not verify_twilio_signature(self.auth_token, url, form, signature):
                logger.warning("whatsapp-signature-invalid url=%s", url)
                return 403, render_twiml([])

        event = inbound_event_from_form(form)
        if not event.sender:
            return 400, render_twiml([])
        if self.allowed_senders and event.sender not in self.allowed_senders:
            return 200, render_twiml([{"type": "text", "text": "Questo numero non è abilitato."}])

        messages = self.coordinator.handle_event(event)
        return 200, render_twiml(messages)


def _safe_int(value: Any) -> int:
    try:
        return int(str(value or "0").strip() or "0")
    except ValueError:
        return 0
