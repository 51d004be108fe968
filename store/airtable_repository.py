from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any
from urllib import error, parse, request

from store.repository_interface import RecordConflictError, RecordStoreError, StoredRecord

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.airtable.com/v0"
META_FIELDS = ("version", "created_at", "updated_at")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AirtableRecordStore:
    """Airtable REST backend.

    Each collection maps to a table. ``version``, ``created_at`` and ``updated_at``
    are kept as ordinary columns. Compare-and-swap is read-compare-write, so two
    writers racing between the read and the PATCH can still both succeed.
    """

    def __init__(
        self,
        *,
        base_id: str,
        api_key: str,
        api_base_url: str = DEFAULT_API_BASE_URL,
        table_names: dict[str, str] | None = None,
        timeout_sec: float = 10.0,
    ) -> None:
        if not base_id or not api_key:
            raise RecordStoreError("airtable base_id and api_key are required")
        self.base_id = base_id
        self.api_key = api_key
        self.api_base_url = (api_base_url or DEFAULT_API_BASE_URL).rstrip("/")
        self.table_names = dict(table_names or {})
        self.timeout_sec = float(timeout_sec)

    def create(self, collection: str, fields: dict[str, Any]) -> str:
        now = _utc_now()
        payload_fields = _encode_fields(fields)
        payload_fields.update({"version": 1, "created_at": now, "updated_at": now})
        body = self._request("POST", self._table_url(collection), {"fields": payload_fields})
        record_id = str(body.get("id") or "")
        if not record_id:
            raise RecordStoreError(f"airtable create returned no id: collection={collection}")
        return record_id

    def update(
        self,
        collection: str,
        record_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> int:
        url = f"{self._table_url(collection)}/{parse.quote(record_id, safe='')}"
        try:
            current = self._request("GET", url)
        except RecordStoreError as exc:
            if expected_version is not None and getattr(exc, "status", None) == 404:
                raise RecordConflictError(collection, record_id, expected_version) from exc
            raise
        current_version = _as_int(current.get("fields", {}).get("version"), default=1)
        if expected_version is not None and current_version != int(expected_version):
            raise RecordConflictError(collection, record_id, expected_version)

        new_version = current_version + 1
        payload_fields = _encode_fields(fields)
        payload_fields.update({"version": new_version, "updated_at": _utc_now()})
        self._request("PATCH", url, {"fields": payload_fields})
        return new_version

    def delete(self, collection: str, record_id: str) -> None:
        url = f"{self._table_url(collection)}/{parse.quote(record_id, safe='')}"
        self._request("DELETE", url)

    def find_one_by_field(self, collection: str, field_name: str, value: Any) -> StoredRecord | None:
        query = parse.urlencode(
            [
                ("filterByFormula", build_equals_formula(field_name, value)),
                ("maxRecords", "1"),
                ("sort[0][field]", "updated_at"),
                ("sort[0][direction]", "desc"),
            ]
        )
        body = self._request("GET", f"{self._table_url(collection)}?{query}")
        records = body.get("records") or []
        if not records:
            return None
        record = records[0]
        raw_fields = record.get("fields") or {}
        return StoredRecord(
            record_id=str(record.get("id")),
            fields=_decode_fields(raw_fields),
            version=_as_int(raw_fields.get("version"), default=1),
            created_at=raw_fields.get("created_at") or record.get("createdTime"),
            updated_at=raw_fields.get("updated_at"),
        )

    def _table_url(self, collection: str) -> str:
        table = self.table_names.get(collection) or collection
        return f"{self.api_base_url}/{parse.quote(self.base_id, safe='')}/{parse.quote(table, safe='')}"

    def _request(self, method: str, url: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8") if payload is not None else None
        req = request.Request(url=url, data=data, method=method)
        req.add_header("Authorization", f"Bearer {self.api_key}")
        if data is not None:
            req.add_header("Content-Type", "application/json")
        try:
            with request.urlopen(req, timeout=self.timeout_sec) as resp:
                text = resp.read().decode("utf-8", errors="replace")
        except error.HTTPError as exc:
            body = ""
            try:
                body = exc.read().decode("utf-8", errors="ignore")
            except Exception:
                pass
            store_error = RecordStoreError(f"airtable api error: status={exc.code} body={body[:300]}")
            store_error.status = exc.code  # type: ignore[attr-defined]
            raise store_error from exc
        except (error.URLError, TimeoutError) as exc:
            raise RecordStoreError(f"airtable connection error: {exc}") from exc
        if not text.strip():
            return {}
        try:
            loaded = json.loads(text)
        except ValueError as exc:
            raise RecordStoreError("airtable returned non-JSON body") from exc
        return loaded if isinstance(loaded, dict) else {}


def build_equals_formula(field_name: str, value: Any) -> str:
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return "{" + field_name + "} = '" + escaped + "'"


def _encode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    encoded: dict[str, Any] = {}
    for key, value in fields.items():
        if key in META_FIELDS:
            continue
        if isinstance(value, (dict, list)):
            # Airtable has no object column type.
            encoded[key] = json.dumps(value, ensure_ascii=False)
        else:
            encoded[key] = value
    return encoded


def _decode_fields(raw_fields: dict[str, Any]) -> dict[str, Any]:
    decoded: dict[str, Any] = {}
    for key, value in raw_fields.items():
        if key in META_FIELDS:
            continue
        if isinstance(value, str) and value[:1] in {"{", "["}:
            try:
                decoded[key] = json.loads(value)
                continue
            except ValueError:
                logger.debug("airtable-field-not-json field=%s", key)
        decoded[key] = value
    return decoded


def _as_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
