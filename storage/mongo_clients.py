"""
Per-environment MongoDB clients.

Each environment (DEV, HOMOLOG, PRODUCTION) has its own database server.
Clients are created lazily on first use and reused afterwards.
"""

from __future__ import annotations

import threading

from pymongo import MongoClient
from pymongo.errors import ConfigurationError

from storage.incident_store import IncidentStore
from utils.config import Settings
from utils.errors import DataSourceUnavailable, PersistenceError
from utils.logger import get_logger

log = get_logger(__name__)


class MongoClientRegistry:
    """Hands out one cached ``MongoClient`` per environment."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._clients: dict[str, MongoClient] = {}
        self._indexed: set[str] = set()
        self._lock = threading.Lock()

    def client(self, environment: str) -> MongoClient:
        env = self.settings.environment(environment)
        with self._lock:
            if env.name in self._clients:
                return self._clients[env.name]

            uri = env.mongo_uri()
            if not uri:
                raise DataSourceUnavailable(
                    f"MongoDB URI not configured for environment {env.name} "
                    f"(set one of: {', '.join(env.uri_env) or 'n/a'})"
                )
            try:
                client = MongoClient(
                    uri,
                    tz_aware=True,
                    serverSelectionTimeoutMS=self.settings.server_selection_timeout_ms,
                    socketTimeoutMS=self.settings.socket_timeout_ms,
                )
            except ConfigurationError as exc:
                raise DataSourceUnavailable(str(exc)) from exc

            log.info("MongoDB client created for %s", env.name)
            self._clients[env.name] = client
            return client

    def incident_store(self, environment: str) -> IncidentStore:
        """Store for the environment; indexes are ensured on first use."""
        env = self.settings.environment(environment)
        client = self.client(env.name)
        store = IncidentStore(client[self.settings.database][self.settings.collection])
        if env.name not in self._indexed:
            try:
                store.ensure_indexes()
            except PersistenceError as exc:
                log.warning("could not ensure indexes for %s: %s", env.name, exc)
            else:
                self._indexed.add(env.name)
        return store

    def close(self) -> None:
        with self._lock:
            for client in self._clients.values():
                client.close()
            self._clients.clear()
            self._indexed.clear()
