"""
Error taxonomy shared by the engine, the incident store and the services.

The engine and the store raise these; the service layer turns them into
``success: false`` results so nothing escapes the public operations.
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for every error raised by this package."""


class DataSourceUnavailable(MonitorError):
    """The incident store could not be reached or queried."""


class InvalidPeriod(MonitorError):
    """Degenerate or malformed target month."""


class PersistenceError(MonitorError):
    """A write (report / update / delete) failed in the store."""


class IncidentNotFound(MonitorError):
    """No incident matches the requested id."""

    def __init__(self, incident_id: str) -> None:
        super().__init__(f"incident not found: {incident_id}")
        self.incident_id = incident_id


class ValidationError(MonitorError):
    """An incident payload failed validation."""


class UnknownEnvironment(MonitorError):
    """The requested deployment environment is not configured."""
