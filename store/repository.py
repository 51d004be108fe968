from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator
from uuid import uuid4

from store.repository_interface import RecordConflictError, RecordStoreError, StoredRecord


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteRecordStore:
    """All collections share one ``records`` table; fields are a JSON document per row."""

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = Path(sqlite_path)
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.sqlite_path, timeout=10)
        except sqlite3.Error as exc:
            raise RecordStoreError(f"sqlite connect failed: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as exc:
            raise RecordStoreError(f"sqlite error: {exc}") from exc
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS records (
                    collection TEXT NOT NULL,
                    record_id TEXT NOT NULL,
                    fields_json TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (collection, record_id)
                );
                CREATE INDEX IF NOT EXISTS idx_records_collection_updated
                    ON records(collection, updated_at DESC);
                """
            )
            conn.commit()

    def create(self, collection: str, fields: dict[str, Any]) -> str:
        record_id = uuid4().hex
        now = _utc_now()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO records (collection, record_id, fields_json, version, created_at, updated_at)
                VALUES (?, ?, ?, 1, ?, ?)
                """,
                (collection, record_id, _dump_fields(fields), now, now),
            )
            conn.commit()
        return record_id

    def update(
        self,
        collection: str,
        record_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> int:
        now = _utc_now()
        with self._connect() as conn:
            row = conn.execute(
                "SELECT fields_json, version FROM records WHERE collection = ? AND record_id = ?",
                (collection, record_id),
            ).fetchone()
            if row is None:
                if expected_version is not None:
                    raise RecordConflictError(collection, record_id, expected_version)
                raise RecordStoreError(f"record not found: collection={collection} record_id={record_id}")

            current_version = int(row["version"])
            if expected_version is not None and current_version != int(expected_version):
                raise RecordConflictError(collection, record_id, expected_version)

            merged = _load_fields(row["fields_json"])
            merged.update(fields)
            new_version = current_version + 1
            cursor = conn.execute(
                """
                UPDATE records
                SET fields_json = ?, version = ?, updated_at = ?
                WHERE collection = ? AND record_id = ? AND version = ?
                """,
                (_dump_fields(merged), new_version, now, collection, record_id, current_version),
            )
            if cursor.rowcount != 1:
                conn.rollback()
                raise RecordConflictError(collection, record_id, expected_version)
            conn.commit()
        return new_version

    def delete(self, collection: str, record_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM records WHERE collection = ? AND record_id = ?",
                (collection, record_id),
            )
            conn.commit()

    def find_one_by_field(self, collection: str, field_name: str, value: Any) -> StoredRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT record_id, fields_json, version, created_at, updated_at
                FROM records
                WHERE collection = ? AND json_extract(fields_json, ?) = ?
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                (collection, f'$."{field_name}"', value),
            ).fetchone()
        if row is None:
            return None
        return StoredRecord(
            record_id=str(row["record_id"]),
            fields=_load_fields(row["fields_json"]),
            version=int(row["version"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def _dump_fields(fields: dict[str, Any]) -> str:
    return json.dumps(fields, ensure_ascii=False, default=str)


def _load_fields(text: str | None) -> dict[str, Any]:
    if not text:
        return {}
    try:
        loaded = json.loads(text)
    except ValueError:
        return {}
    return loaded if isinstance(loaded, dict) else {}
