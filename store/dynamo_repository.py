from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from store.repository_interface import RecordConflictError, RecordStoreError, StoredRecord

RESERVED_ATTRIBUTES = {"record_id", "version", "created_at", "updated_at"}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DynamoRecordStore:
    """One DynamoDB table per collection, hash key ``record_id``."""

    def __init__(
        self,
        *,
        region_name: str | None = None,
        table_prefix: str = "billbot",
        table_names: dict[str, str] | None = None,
        indexes: dict[str, dict[str, str]] | None = None,
        dynamodb_resource: Any | None = None,
    ) -> None:
        self.table_prefix = (table_prefix or "billbot").strip()
        self.table_names = dict(table_names or {})
        self.indexes = {str(k): dict(v) for k, v in (indexes or {}).items() if isinstance(v, dict)}
        self._ddb = dynamodb_resource or boto3.resource("dynamodb", region_name=region_name)
        self._tables: dict[str, Any] = {}

    def _table(self, collection: str) -> Any:
        table = self._tables.get(collection)
        if table is None:
            name = self.table_names.get(collection) or f"{self.table_prefix}-{collection}"
            table = self._ddb.Table(name)
            self._tables[collection] = table
        return table

    def create(self, collection: str, fields: dict[str, Any]) -> str:
        record_id = uuid4().hex
        now = _utc_now()
        item = {key: _to_ddb(value) for key, value in fields.items() if key not in RESERVED_ATTRIBUTES}
        item.update(
            {
                "record_id": record_id,
                "version": 1,
                "created_at": now,
                "updated_at": now,
            }
        )
        try:
            self._table(collection).put_item(
                Item=item,
                ConditionExpression="attribute_not_exists(record_id)",
            )
        except (ClientError, BotoCoreError) as exc:
            raise RecordStoreError(f"dynamodb put_item failed: collection={collection} error={exc}") from exc
        return record_id

    def update(
        self,
        collection: str,
        record_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> int:
        names: dict[str, str] = {"#version": "version", "#updated_at": "updated_at"}
        values: dict[str, Any] = {":one": 1, ":zero": 0, ":now": _utc_now()}
        assignments = [
            "#version = if_not_exists(#version, :zero) + :one",
            "#updated_at = :now",
        ]
        for index, (key, value) in enumerate(fields.items()):
            if key in RESERVED_ATTRIBUTES:
                continue
            names[f"#f{index}"] = key
            values[f":v{index}"] = _to_ddb(value)
            assignments.append(f"#f{index} = :v{index}")

        if expected_version is None:
            condition = "attribute_exists(record_id)"
        else:
            condition = "#version = :expected"
            values[":expected"] = int(expected_version)

        try:
            response = self._table(collection).update_item(
                Key={"record_id": record_id},
                UpdateExpression="SET " + ", ".join(assignments),
                ConditionExpression=condition,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues="UPDATED_NEW",
            )
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code == "ConditionalCheckFailedException":
                if expected_version is not None:
                    raise RecordConflictError(collection, record_id, expected_version) from exc
                raise RecordStoreError(
                    f"record not found: collection={collection} record_id={record_id}"
                ) from exc
            raise RecordStoreError(f"dynamodb update_item failed: collection={collection} error={exc}") from exc
        except BotoCoreError as exc:
            raise RecordStoreError(f"dynamodb update_item failed: collection={collection} error={exc}") from exc

        attributes = (response or {}).get("Attributes", {}) if isinstance(response, dict) else {}
        new_version = attributes.get("version")
        if new_version is None:
            return int(expected_version or 0) + 1
        return int(new_version)

    def delete(self, collection: str, record_id: str) -> None:
        try:
            self._table(collection).delete_item(Key={"record_id": record_id})
        except (ClientError, BotoCoreError) as exc:
            raise RecordStoreError(f"dynamodb delete_item failed: collection={collection} error={exc}") from exc

    def find_one_by_field(self, collection: str, field_name: str, value: Any) -> StoredRecord | None:
        table = self._table(collection)
        index_name = self.indexes.get(collection, {}).get(field_name)
        items: list[dict[str, Any]] = []
        try:
            if index_name:
                response = table.query(
                    IndexName=index_name,
                    KeyConditionExpression=Key(field_name).eq(_to_ddb(value)),
                )
                items.extend(response.get("Items", []))
            else:
                kwargs: dict[str, Any] = {"FilterExpression": Attr(field_name).eq(_to_ddb(value))}
                while True:
                    response = table.scan(**kwargs)
                    items.extend(response.get("Items", []))
                    last_key = response.get("LastEvaluatedKey")
                    if not last_key:
                        break
                    kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as exc:
            raise RecordStoreError(f"dynamodb lookup failed: collection={collection} error={exc}") from exc

        if not items:
            return None
        latest = max(items, key=lambda item: str(item.get("updated_at", "")))
        return _stored_record(latest)


def _stored_record(item: dict[str, Any]) -> StoredRecord:
    fields = {key: _from_ddb(value) for key, value in item.items() if key not in RESERVED_ATTRIBUTES}
    return StoredRecord(
        record_id=str(item["record_id"]),
        fields=fields,
        version=int(item.get("version", 1)),
        created_at=item.get("created_at"),
        updated_at=item.get("updated_at"),
    )


def _to_ddb(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {str(k): _to_ddb(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_ddb(v) for v in value]
    return value


def _from_ddb(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_ddb(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_ddb(v) for v in value]
    return value
