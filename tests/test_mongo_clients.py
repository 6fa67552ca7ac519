"""
Tests for storage/mongo_clients.py (MongoClient patched out).
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import PyMongoError

from storage.incident_store import IncidentStore
from storage.mongo_clients import MongoClientRegistry
from utils.errors import DataSourceUnavailable


class TestMongoClientRegistry:
    def test_missing_uri_is_data_source_unavailable(self, settings, monkeypatch):
        monkeypatch.delenv("TEST_MONGODB_URI_DEV", raising=False)
        with pytest.raises(DataSourceUnavailable, match="TEST_MONGODB_URI_DEV"):
            MongoClientRegistry(settings).client("DEV")

    def test_client_cached_per_environment(self, settings, monkeypatch):
        monkeypatch.setenv("TEST_MONGODB_URI_DEV", "mongodb://dev:27017")
        monkeypatch.setenv("TEST_MONGODB_URI_HOMOLOG", "mongodb://hml:27017")
        with patch("storage.mongo_clients.MongoClient") as mongo_client:
            mongo_client.side_effect = lambda *a, **kw: MagicMock()
            registry = MongoClientRegistry(settings)
            dev = registry.client("DEV")
            assert registry.client("dev") is dev
            assert registry.client("HOMOLOG") is not dev
            assert mongo_client.call_count == 2
            assert mongo_client.call_args_list[0].args[0] == "mongodb://dev:27017"
            assert mongo_client.call_args_list[0].kwargs["tz_aware"] is True

    def test_incident_store_uses_configured_collection(self, settings, monkeypatch):
        monkeypatch.setenv("TEST_MONGODB_URI_DEV", "mongodb://dev:27017")
        with patch("storage.mongo_clients.MongoClient") as mongo_client:
            client = MagicMock()
            mongo_client.return_value = client
            store = MongoClientRegistry(settings).incident_store("DEV")
        assert isinstance(store, IncidentStore)
        client.__getitem__.assert_called_with("connect_bank")
        client.__getitem__.return_value.__getitem__.assert_called_with("accidents")

    def test_close_releases_clients(self, settings, monkeypatch):
        monkeypatch.setenv("TEST_MONGODB_URI_DEV", "mongodb://dev:27017")
        with patch("storage.mongo_clients.MongoClient") as mongo_client:
            client = MagicMock()
            mongo_client.return_value = client
            registry = MongoClientRegistry(settings)
            registry.client("DEV")
            registry.close()
        client.close.assert_called_once()

    def test_indexes_ensured_once_per_environment(self, settings, monkeypatch):
        monkeypatch.setenv("TEST_MONGODB_URI_DEV", "mongodb://dev:27017")
        with patch("storage.mongo_clients.MongoClient") as mongo_client:
            client = MagicMock()
            mongo_client.return_value = client
            registry = MongoClientRegistry(settings)
            registry.incident_store("DEV")
            registry.incident_store("dev")
        collection = client.__getitem__.return_value.__getitem__.return_value
        assert collection.create_index.call_count == 2

    def test_index_failure_does_not_block_store(self, settings, monkeypatch):
        monkeypatch.setenv("TEST_MONGODB_URI_DEV", "mongodb://dev:27017")
        with patch("storage.mongo_clients.MongoClient") as mongo_client:
            client = MagicMock()
            collection = client.__getitem__.return_value.__getitem__.return_value
            collection.create_index.side_effect = PyMongoError("not authorized")
            mongo_client.return_value = client
            registry = MongoClientRegistry(settings)
            store = registry.incident_store("DEV")
            registry.incident_store("DEV")
        assert isinstance(store, IncidentStore)
        # retried on the next call since the first attempt failed
        assert collection.create_index.call_count == 2
