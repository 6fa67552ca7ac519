"""
Shared pytest fixtures for the 4pay monitor test suite.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml
from bson import ObjectId

from incidents.models import Incident
from utils.config import load_settings
from utils.errors import DataSourceUnavailable, IncidentNotFound

FIXED_NOW = datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_incident(
    start: datetime,
    end: datetime | None,
    type: str = "unavailability",
    services: list[str] | None = None,
    **kwargs,
) -> Incident:
    return Incident(
        type=type,
        start_date=start,
        end_date=end,
        description=kwargs.pop("description", "test incident"),
        affected_services=services or ["CBA"],
        **kwargs,
    )


# ── In-memory store ───────────────────────────────────────────────────────────

class InMemoryIncidentStore:
    """Honours the IncidentStore contract without a database."""

    def __init__(self, incidents: list[Incident] | None = None) -> None:
        self.incidents: dict[str, Incident] = {}
        self.queries: list[dict] = []
        for incident in incidents or []:
            self.insert(incident)

    def insert(self, incident: Incident) -> str:
        incident_id = str(ObjectId())
        self.incidents[incident_id] = replace(
            incident, id=incident_id, created_at=incident.created_at or FIXED_NOW
        )
        return incident_id

    def query(self, incident_type=None, overlaps=None) -> list[Incident]:
        self.queries.append({"incident_type": incident_type, "overlaps": overlaps})
        found = [
            i for i in self.incidents.values()
            if (incident_type is None or i.type == incident_type)
            and (overlaps is None or i.overlaps(*overlaps))
        ]
        return sorted(found, key=lambda i: i.start_date, reverse=True)

    def get(self, incident_id: str) -> Incident:
        try:
            return self.incidents[incident_id]
        except KeyError:
            raise IncidentNotFound(incident_id) from None

    def update(self, incident_id: str, changes: dict) -> None:
        current = self.get(incident_id)
        self.incidents[incident_id] = replace(current, **changes, updated_at=FIXED_NOW)

    def delete(self, incident_id: str) -> None:
        self.get(incident_id)
        del self.incidents[incident_id]


class UnreachableStore:
    """Every call fails as if the database were down."""

    def _fail(self, *args, **kwargs):
        raise DataSourceUnavailable("connection refused")

    query = insert = get = update = delete = _fail


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    cfg = {
        "default_environment": "PRODUCTION",
        "mongodb": {"database": "connect_bank", "collection": "accidents"},
        "environments": {
            "DEV": {
                "uri_env": ["TEST_MONGODB_URI_DEV"],
                "fallback": {
                    "availability": 97.5,
                    "last_month_availability": 96.8,
                    "difference": 0.7,
                },
            },
            "HOMOLOG": {"uri_env": "TEST_MONGODB_URI_HOMOLOG"},
            "PRODUCTION": {
                "uri_env": ["TEST_MONGODB_URI_PRODUCTION", "TEST_MONGODB_URI"],
                "fallback": {
                    "availability": 95.0,
                    "last_month_availability": 100.0,
                    "difference": -5.0,
                },
            },
        },
        "availability": {"overlap_policy": "sum", "concurrent_periods": True},
        "incidents": {
            "types": ["unavailability", "performance", "partial", "other"],
            "services": ["CBA", "CBG", "CBC", "CBS", "FPS"],
        },
    }
    p = tmp_path / "dashboard.yaml"
    p.write_text(yaml.dump(cfg))
    return p


@pytest.fixture()
def settings(config_path, monkeypatch):
    for var in ("MONITOR_DEFAULT_ENV", "AVAILABILITY_OVERLAP_POLICY"):
        monkeypatch.delenv(var, raising=False)
    return load_settings(config_path)


@pytest.fixture()
def store() -> InMemoryIncidentStore:
    return InMemoryIncidentStore()


@pytest.fixture()
def stores(store) -> dict:
    """One store per environment; PRODUCTION is the ``store`` fixture."""
    return {
        "DEV": UnreachableStore(),
        "HOMOLOG": InMemoryIncidentStore(),
        "PRODUCTION": store,
    }


@pytest.fixture()
def store_factory(stores):
    return lambda environment: stores[environment]


@pytest.fixture()
def fixed_now():
    return lambda: FIXED_NOW
