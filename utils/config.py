"""
Settings loader.

Reads ``config/dashboard.yaml`` (or the file named by ``MONITOR_CONFIG``)
and applies environment-variable overrides on top.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from utils.errors import UnknownEnvironment

ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG = ROOT / "config" / "dashboard.yaml"

OVERLAP_POLICIES = ("sum", "union")


# ── Settings dataclasses ──────────────────────────────────────────────────────

@dataclass
class FallbackPolicy:
    """Last-known figures served when an environment's store is down."""

    availability: float
    last_month_availability: float
    difference: float


@dataclass
class EnvironmentSettings:
    name: str
    uri_env: list[str]
    fallback: FallbackPolicy | None = None

    def mongo_uri(self) -> str | None:
        """First non-empty URI among the configured variables."""
        for var in self.uri_env:
            value = os.getenv(var, "")
            if value:
                return value
        return None


@dataclass
class Settings:
    default_environment: str
    environments: dict[str, EnvironmentSettings]
    database: str = "connect_bank"
    collection: str = "accidents"
    server_selection_timeout_ms: int = 5000
    socket_timeout_ms: int = 10000
    overlap_policy: str = "sum"
    concurrent_periods: bool = True
    incident_types: list[str] = field(
        default_factory=lambda: ["unavailability", "performance", "partial", "other"]
    )
    services: list[str] = field(
        default_factory=lambda: ["CBA", "CBG", "CBC", "CBS", "FPS"]
    )
    default_created_by: str = "system"

    def environment(self, name: str) -> EnvironmentSettings:
        try:
            return self.environments[name.upper()]
        except KeyError:
            raise UnknownEnvironment(f"unknown environment: {name}") from None

    def to_dict(self) -> dict[str, Any]:
        return {
            "default_environment": self.default_environment,
            "environments": sorted(self.environments),
            "incident_types": list(self.incident_types),
            "services": list(self.services),
            "overlap_policy": self.overlap_policy,
        }


# ── Loader ────────────────────────────────────────────────────────────────────

def _parse_environment(name: str, raw: dict) -> EnvironmentSettings:
    uri_env = raw.get("uri_env") or []
    if isinstance(uri_env, str):
        uri_env = [uri_env]

    fallback = None
    fb = raw.get("fallback")
    if fb:
        fallback = FallbackPolicy(
            availability=float(fb["availability"]),
            last_month_availability=float(fb["last_month_availability"]),
            difference=float(fb["difference"]),
        )
    return EnvironmentSettings(name=name, uri_env=list(uri_env), fallback=fallback)


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from YAML, then apply environment overrides."""
    path = Path(path or os.getenv("MONITOR_CONFIG", str(DEFAULT_CONFIG)))
    with path.open() as fh:
        data = yaml.safe_load(fh) or {}

    mongo = data.get("mongodb", {})
    avail = data.get("availability", {})
    inc   = data.get("incidents", {})

    environments = {
        name.upper(): _parse_environment(name.upper(), raw or {})
        for name, raw in data.get("environments", {}).items()
    }
    if not environments:
        raise ValueError(f"{path}: no environments configured")

    default_env = os.getenv(
        "MONITOR_DEFAULT_ENV", data.get("default_environment", "PRODUCTION")
    ).upper()
    if default_env not in environments:
        raise ValueError(f"default environment {default_env!r} is not configured")

    overlap_policy = os.getenv(
        "AVAILABILITY_OVERLAP_POLICY", avail.get("overlap_policy", "sum")
    ).lower()
    if overlap_policy not in OVERLAP_POLICIES:
        raise ValueError(
            f"overlap_policy must be one of {OVERLAP_POLICIES}, got {overlap_policy!r}"
        )

    settings = Settings(
        default_environment=default_env,
        environments=environments,
        database=mongo.get("database", "connect_bank"),
        collection=mongo.get("collection", "accidents"),
        server_selection_timeout_ms=int(mongo.get("server_selection_timeout_ms", 5000)),
        socket_timeout_ms=int(mongo.get("socket_timeout_ms", 10000)),
        overlap_policy=overlap_policy,
        concurrent_periods=bool(avail.get("concurrent_periods", True)),
        default_created_by=inc.get("default_created_by", "system"),
    )
    if inc.get("types"):
        settings.incident_types = list(inc["types"])
    if inc.get("services"):
        settings.services = list(inc["services"])
    return settings
