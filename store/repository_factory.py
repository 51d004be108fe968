from __future__ import annotations

from typing import Any

from app.config import resolve_secret
from store.airtable_repository import AirtableRecordStore
from store.repository import SQLiteRecordStore
from store.repository_interface import RecordStoreError, RecordStoreProtocol


def create_record_store(config: dict[str, Any]) -> RecordStoreProtocol:
    store_conf = config.get("store", {})
    backend = str(store_conf.get("backend", "sqlite") or "sqlite").strip().lower()
    collections = store_conf.get("collections", {}) if isinstance(store_conf, dict) else {}
    table_names = {str(k): str(v) for k, v in collections.items() if v}

    if backend == "dynamodb":
        from store.dynamo_repository import DynamoRecordStore

        ddb_conf = store_conf.get("dynamodb", {}) if isinstance(store_conf, dict) else {}
        return DynamoRecordStore(
            region_name=_as_optional_str(ddb_conf.get("region")),
            table_prefix=str(ddb_conf.get("table_prefix", "billbot")),
            indexes=ddb_conf.get("indexes") or {},
        )

    if backend == "airtable":
        at_conf = store_conf.get("airtable", {}) if isinstance(store_conf, dict) else {}
        base_id = resolve_secret(at_conf, "base_id")
        api_key = resolve_secret(at_conf, "api_key")
        if not base_id or not api_key:
            raise RecordStoreError("airtable backend requires base_id and api_key")
        return AirtableRecordStore(
            base_id=base_id,
            api_key=api_key,
            api_base_url=str(at_conf.get("api_base_url") or "https://api.airtable.com/v0"),
            table_names=table_names,
            timeout_sec=float(at_conf.get("timeout_sec", 10)),
        )

    if backend != "sqlite":
        raise RecordStoreError(f"unsupported store backend: {backend}")
    sqlite_path = str(store_conf.get("sqlite_path", "data/store/records.db"))
    return SQLiteRecordStore(sqlite_path=sqlite_path)


def _as_optional_str(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None
