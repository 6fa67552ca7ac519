"""
Availability Service — the never-raising boundary around the engine.

``calculate_availability`` always returns an ``AvailabilityResponse``.
When the environment's store cannot be reached the response carries
``success=False`` plus that environment's configured fallback figures,
so the dashboard can keep rendering a (flagged) card.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable

from availability.availability_engine import AvailabilityEngine
from storage.incident_store import IncidentStore
from utils.config import Settings
from utils.errors import InvalidPeriod, MonitorError, UnknownEnvironment
from utils.logger import get_logger

log = get_logger(__name__)

StoreFactory = Callable[[str], IncidentStore]


@dataclass
class AvailabilityResponse:
    success: bool
    environment: str
    month: str | None = None
    availability: float | None = None
    last_month_availability: float | None = None
    difference: float | None = None
    downtime_minutes: int | None = None
    total_minutes: int | None = None
    error: str | None = None
    fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "success":               self.success,
            "environment":           self.environment,
            "month":                 self.month,
            "availability":          self.availability,
            "lastMonthAvailability": self.last_month_availability,
            "difference":            self.difference,
            "downtimeMinutes":       self.downtime_minutes,
            "totalMinutes":          self.total_minutes,
            "fallback":              self.fallback,
        }
        if self.error:
            d["error"] = self.error
        return d


class AvailabilityService:
    """Resolves the environment's store and runs the engine against it."""

    def __init__(self, store_factory: StoreFactory, settings: Settings, now=None) -> None:
        self.store_factory = store_factory
        self.settings = settings
        self._now = now

    def calculate_availability(
        self,
        environment: str,
        month: date | datetime | str | None = None,
    ) -> AvailabilityResponse:
        env_name = (environment or "").upper()
        try:
            env = self.settings.environment(env_name)
        except UnknownEnvironment as exc:
            return AvailabilityResponse(success=False, environment=env_name, error=str(exc))

        try:
            engine = AvailabilityEngine(
                self.store_factory(env.name),
                overlap_policy=self.settings.overlap_policy,
                now=self._now,
                concurrent=self.settings.concurrent_periods,
            )
            result = engine.calculate(month)
        except InvalidPeriod as exc:
            log.warning("invalid period for %s: %s", env.name, exc)
            return AvailabilityResponse(success=False, environment=env.name, error=str(exc))
        except MonitorError as exc:
            log.error("availability unavailable for %s, serving fallback: %s", env.name, exc)
            return self._fallback(env.name, str(exc))

        return AvailabilityResponse(
            success=True,
            environment=env.name,
            month=result.period.month,
            availability=result.availability_pct,
            last_month_availability=result.comparison_availability_pct,
            difference=result.difference_pct,
            downtime_minutes=result.downtime_minutes,
            total_minutes=result.total_minutes,
        )

    def _fallback(self, environment: str, error: str) -> AvailabilityResponse:
        policy = self.settings.environment(environment).fallback
        if policy is None:
            return AvailabilityResponse(success=False, environment=environment, error=error)
        return AvailabilityResponse(
            success=False,
            environment=environment,
            availability=policy.availability,
            last_month_availability=policy.last_month_availability,
            difference=policy.difference,
            error=error,
            fallback=True,
        )
