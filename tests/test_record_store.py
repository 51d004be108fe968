from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from store.repository import SQLiteRecordStore
from store.repository_factory import create_record_store
from store.repository_interface import RecordConflictError, RecordStoreError


class SQLiteRecordStoreTest(unittest.TestCase):
    def test_create_find_update_delete(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = SQLiteRecordStore(str(Path(tmp) / "records.db"))
            record_id = store.create("sessions", {"sender": "whatsapp:+391", "step": "ente", "collected": {}})

            found = store.find_one_by_field("sessions", "sender", "whatsapp:+391")
            self.assertIsNotNone(found)
            assert found is not None
            self.assertEqual(found.record_id, record_id)
            self.assertEqual(found.version, 1)
            self.assertEqual(found.fields["collected"], {})

            version = store.update("sessions", record_id, {"step": "importo", "collected": {"ente": "Acme"}})
            self.assertEqual(version, 2)
            found = store.find_one_by_field("sessions", "sender", "whatsapp:+391")
            assert found is not None
            self.assertEqual(found.fields["step"], "importo")
            self.assertEqual(found.fields["sender"], "whatsapp:+391")
            self.assertEqual(found.fields["collected"], {"ente": "Acme"})

            store.delete("sessions", record_id)
            self.assertIsNone(store.find_one_by_field("sessions", "sender", "whatsapp:+391"))

    def test_collections_are_isolated(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = SQLiteRecordStore(str(Path(tmp) / "records.db"))
            store.create("bills", {"sender": "whatsapp:+391"})
            self.assertIsNone(store.find_one_by_field("sessions", "sender", "whatsapp:+391"))
            self.assertIsNone(store.find_one_by_field("bills", "sender", "whatsapp:+392"))

    def test_update_with_stale_version_conflicts(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = SQLiteRecordStore(str(Path(tmp) / "records.db"))
            record_id = store.create("sessions", {"sender": "s", "step": "ente"})

            self.assertEqual(store.update("sessions", record_id, {"step": "importo"}, expected_version=1), 2)
            with self.assertRaises(RecordConflictError):
                store.update("sessions", record_id, {"step": "iban"}, expected_version=1)

            found = store.find_one_by_field("sessions", "sender", "s")
            assert found is not None
            self.assertEqual(found.fields["step"], "importo")

    def test_update_missing_record(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = SQLiteRecordStore(str(Path(tmp) / "records.db"))
            with self.assertRaises(RecordConflictError):
                store.update("sessions", "missing", {"step": "iban"}, expected_version=3)
            with self.assertRaises(RecordStoreError):
                store.update("sessions", "missing", {"step": "iban"})


class RecordStoreFactoryTest(unittest.TestCase):
    def test_default_backend_is_sqlite(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = create_record_store({"store": {"sqlite_path": str(Path(tmp) / "r.db")}})
            self.assertIsInstance(store, SQLiteRecordStore)

    def test_airtable_backend_requires_credentials(self) -> None:
        config = {"store": {"backend": "airtable", "airtable": {"base_id": None, "api_key": None}}}
        with self.assertRaises(RecordStoreError):
            create_record_store(config)

    def test_unknown_backend(self) -> None:
        with self.assertRaises(RecordStoreError):
            create_record_store({"store": {"backend": "mongo"}})


if __name__ == "__main__":
    unittest.main()
