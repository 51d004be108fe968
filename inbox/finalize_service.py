from __future__ import annotations

import logging
from typing import Any

from core.enums import BillSource, Collection
from core.models import ValidatedFields, utc_now_iso
from payments.link_builder import DEFAULT_PAY_PATH, build_payment_link
from store.repository_interface import RecordStoreError, RecordStoreProtocol
from whatsapp import message_templates

logger = logging.getLogger(__name__)


class FinalizeService:
    def __init__(
        self,
        store: RecordStoreProtocol,
        public_url: str | None,
        pay_path: str = DEFAULT_PAY_PATH,
        collection: str = Collection.BILLS,
    ) -> None:
        self.store = store
        self.public_url = public_url or ""
        self.pay_path = pay_path or DEFAULT_PAY_PATH
        self.collection = collection

    def finalize(self, sender: str, fields: ValidatedFields, source: BillSource) -> list[dict[str, Any]]:
        link = build_payment_link(fields, self.public_url, self.pay_path)
        record = {
            "sender": sender,
            "ente": fields.ente,
            "importo": fields.amount_text() or "",
            "iban": fields.iban or "",
            "scadenza": fields.scadenza or "",
            "descr": fields.descr,
            "link": link,
            "source": BillSource(source).value,
            "created_at": utc_now_iso(),
        }
        try:
            self.store.create(self.collection, record)
        except RecordStoreError as exc:
            logger.warning("bill-record-failed sender=%s error=%s", sender, exc)
        logger.info("bill-finalized sender=%s source=%s has_iban=%s", sender, record["source"], bool(fields.iban))
        return message_templates.build_summary_message(
            fields,
            link,
            from_document=BillSource(source) == BillSource.DOCUMENT,
        )
