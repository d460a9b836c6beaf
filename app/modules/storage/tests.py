"""
Tests para los almacenes clave-valor
"""

import pytest

from app.modules.storage.models import KeyValueRecord
from app.modules.storage.service import InMemoryKeyValueStore, SQLAlchemyKeyValueStore


class TestInMemoryKeyValueStore:

    def test_set_get_delete(self):
        store = InMemoryKeyValueStore()
        assert store.get("cashFlowData") is None
        store.set("cashFlowData", "{}")
        assert store.get("cashFlowData") == "{}"
        assert "cashFlowData" in store
        store.delete("cashFlowData")
        assert "cashFlowData" not in store

    def test_delete_missing_key(self):
        InMemoryKeyValueStore().delete("missing")

    def test_initial_data_is_copied(self):
        initial = {"company_config": "{}"}
        store = InMemoryKeyValueStore(initial)
        store.set("company_config", "[]")
        assert initial["company_config"] == "{}"


class TestSQLAlchemyKeyValueStore:

    @pytest.fixture
    def store(self, db_session):
        return SQLAlchemyKeyValueStore(db_session)

    def test_set_and_get(self, store, db_session):
        store.set("cashFlowData", '{"schema_version": 2}')
        assert store.get("cashFlowData") == '{"schema_version": 2}'
        assert db_session.query(KeyValueRecord).count() == 1

    def test_set_replaces_value(self, store, db_session):
        store.set("company_config", "a")
        store.set("company_config", "b")
        assert store.get("company_config") == "b"
        assert db_session.query(KeyValueRecord).count() == 1

    def test_delete(self, store):
        store.set("cashFlowData", "{}")
        store.delete("cashFlowData")
        assert store.get("cashFlowData") is None

    def test_delete_missing_key(self, store):
        store.delete("missing")
        assert store.get("missing") is None
