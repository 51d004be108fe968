from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(slots=True)
class StoredRecord:
    record_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    version: int = 1
    created_at: str | None = None
    updated_at: str | None = None


class RecordStoreError(RuntimeError):
    pass


class RecordConflictError(RecordStoreError):
    def __init__(self, collection: str, record_id: str, expected_version: int | None) -> None:
        super().__init__(
            f"record version conflict: collection={collection} record_id={record_id} expected={expected_version}"
        )
        self.collection = collection
        self.record_id = record_id
        self.expected_version = expected_version


class RecordStoreProtocol(Protocol):
    def create(self, collection: str, fields: dict[str, Any]) -> str: ...

    def update(
        self,
        collection: str,
        record_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> int: ...

    def delete(self, collection: str, record_id: str) -> None: ...

    def find_one_by_field(self, collection: str, field_name: str, value: Any) -> StoredRecord | None: ...
