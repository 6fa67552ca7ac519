"""
Incident Service — report, list, update and delete incidents.

Every operation takes the environment explicitly and returns an
``OperationResult``; validation and store failures come back as
``success=False`` with a message fit to show to the user. Nothing is
retried.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Callable

from availability.periods import ensure_utc, month_window
from incidents.models import Incident, changes_from_payload, incident_from_payload
from storage.incident_store import IncidentStore
from utils.config import Settings
from utils.errors import (
    DataSourceUnavailable,
    IncidentNotFound,
    InvalidPeriod,
    PersistenceError,
    UnknownEnvironment,
    ValidationError,
)
from utils.logger import get_logger

log = get_logger(__name__)

StoreFactory = Callable[[str], IncidentStore]


@dataclass
class OperationResult:
    success: bool
    data: Any = None
    error: str | None = None
    not_found: bool = False
    unavailable: bool = False

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"success": self.success, "data": self.data}
        if self.error:
            d["error"] = self.error
        return d


class IncidentService:
    """Incident CRUD for one or more environments."""

    def __init__(self, store_factory: StoreFactory, settings: Settings) -> None:
        self.store_factory = store_factory
        self.settings = settings

    # ── Validation ────────────────────────────────────────────────────────────

    def _validate(self, incident: Incident) -> None:
        if incident.type not in self.settings.incident_types:
            raise ValidationError(
                f"type must be one of {', '.join(self.settings.incident_types)}"
            )
        if not incident.affected_services:
            raise ValidationError("at least one affected service is required")
        unknown = sorted(set(incident.affected_services) - set(self.settings.services))
        if unknown:
            raise ValidationError(f"unknown services: {', '.join(unknown)}")
        if incident.end_date is not None and (
            ensure_utc(incident.end_date) <= ensure_utc(incident.start_date)
        ):
            raise ValidationError("endDate must be after startDate")

    def _store(self, environment: str) -> IncidentStore:
        env = self.settings.environment(environment)
        return self.store_factory(env.name)

    # ── Operations ────────────────────────────────────────────────────────────

    def report_incident(self, environment: str, payload: dict[str, Any]) -> OperationResult:
        try:
            incident = incident_from_payload(payload, self.settings.default_created_by)
            self._validate(incident)
            incident_id = self._store(environment).insert(incident)
        except (ValidationError, UnknownEnvironment) as exc:
            return OperationResult(success=False, error=str(exc))
        except (PersistenceError, DataSourceUnavailable) as exc:
            log.error("failed to report incident (%s): %s", environment, exc)
            return OperationResult(
                success=False,
                unavailable=True,
                error="Could not record the incident. Please try again.",
            )

        log.info("incident %s reported in %s (%s)", incident_id, environment, incident.type)
        return OperationResult(success=True, data={"id": incident_id})

    def list_incidents(
        self,
        environment: str,
        month: date | datetime | str | None = None,
    ) -> OperationResult:
        """All incident types, newest start first; filtered by month if given."""
        try:
            overlaps = None
            if month is not None:
                window = month_window(month)
                overlaps = (window.start, window.end)
            incidents = self._store(environment).query(overlaps=overlaps)
        except InvalidPeriod as exc:
            return OperationResult(success=False, data=[], error=str(exc))
        except UnknownEnvironment as exc:
            return OperationResult(success=False, data=[], error=str(exc))
        except DataSourceUnavailable as exc:
            log.error("failed to list incidents (%s): %s", environment, exc)
            return OperationResult(success=False, data=[], error=str(exc), unavailable=True)

        return OperationResult(success=True, data=[i.to_dict() for i in incidents])

    def get_incident(self, environment: str, incident_id: str) -> OperationResult:
        try:
            incident = self._store(environment).get(incident_id)
        except IncidentNotFound:
            return OperationResult(success=False, error="incident not found", not_found=True)
        except UnknownEnvironment as exc:
            return OperationResult(success=False, error=str(exc))
        except DataSourceUnavailable as exc:
            return OperationResult(success=False, error=str(exc), unavailable=True)
        return OperationResult(success=True, data=incident.to_dict())

    def update_incident(
        self,
        environment: str,
        incident_id: str,
        payload: dict[str, Any],
    ) -> OperationResult:
        try:
            changes = changes_from_payload(payload)
            if not changes:
                raise ValidationError("nothing to update")
            store = self._store(environment)
            # validate the merged record, not just the changed fields
            self._validate(replace(store.get(incident_id), **changes))
            store.update(incident_id, changes)
        except IncidentNotFound:
            return OperationResult(success=False, error="incident not found", not_found=True)
        except (ValidationError, UnknownEnvironment) as exc:
            return OperationResult(success=False, error=str(exc))
        except (PersistenceError, DataSourceUnavailable) as exc:
            log.error("failed to update incident %s (%s): %s", incident_id, environment, exc)
            return OperationResult(
                success=False,
                unavailable=True,
                error="Could not update the incident. Please try again.",
            )

        log.info("incident %s updated in %s", incident_id, environment)
        return OperationResult(success=True, data={"id": incident_id})

    def delete_incident(self, environment: str, incident_id: str) -> OperationResult:
        try:
            self._store(environment).delete(incident_id)
        except IncidentNotFound:
            return OperationResult(success=False, error="incident not found", not_found=True)
        except UnknownEnvironment as exc:
            return OperationResult(success=False, error=str(exc))
        except (PersistenceError, DataSourceUnavailable) as exc:
            log.error("failed to delete incident %s (%s): %s", incident_id, environment, exc)
            return OperationResult(
                success=False,
                unavailable=True,
                error="Could not delete the incident. Please try again.",
            )

        log.info("incident %s deleted from %s", incident_id, environment)
        return OperationResult(success=True, data={"id": incident_id})
