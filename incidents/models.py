"""
Incident model and the camelCase API adapter.

Attributes are snake_case in Python. The dashboard speaks camelCase JSON
(``startDate``, ``affectedServices``); the conversion lives here, next to
the dataclass, and nowhere else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from availability.periods import ensure_utc
from utils.errors import ValidationError

UNAVAILABILITY = "unavailability"
INCIDENT_TYPES = ("unavailability", "performance", "partial", "other")

# camelCase API key -> attribute name
API_FIELDS = {
    "type":             "type",
    "startDate":        "start_date",
    "endDate":          "end_date",
    "description":      "description",
    "affectedServices": "affected_services",
    "createdBy":        "created_by",
}
DATE_FIELDS = {"start_date", "end_date"}
TEXT_FIELDS = {"type", "description", "created_by"}


@dataclass
class Incident:
    """A recorded window during which some service condition held."""

    type: str
    start_date: datetime
    end_date: datetime | None
    description: str = ""
    affected_services: list[str] = field(default_factory=list)
    created_by: str = "system"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    id: str | None = None

    @property
    def ongoing(self) -> bool:
        return self.end_date is None

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Closed-interval overlap; an ongoing incident extends forever."""
        if ensure_utc(self.start_date) > end:
            return False
        return self.end_date is None or ensure_utc(self.end_date) >= start

    def to_dict(self) -> dict[str, Any]:
        return {
            "id":               self.id,
            "type":             self.type,
            "startDate":        _iso(self.start_date),
            "endDate":          _iso(self.end_date),
            "description":      self.description,
            "affectedServices": list(self.affected_services),
            "createdBy":        self.created_by,
            "createdAt":        _iso(self.created_at),
            "updatedAt":        _iso(self.updated_at),
        }


def _iso(value: datetime | None) -> str | None:
    return ensure_utc(value).isoformat() if value else None


# ── Payload parsing ───────────────────────────────────────────────────────────

def parse_timestamp(value: Any, field_name: str) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            pass
    raise ValidationError(f"{field_name}: invalid timestamp {value!r}")


def changes_from_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Map a camelCase payload onto attribute names, parsing dates.

    Unknown keys (including ``id`` and ``createdAt``) are ignored.
    """
    if not isinstance(payload, dict):
        raise ValidationError("payload must be a JSON object")

    changes: dict[str, Any] = {}
    for api_key, attr in API_FIELDS.items():
        if api_key not in payload:
            continue
        value = payload[api_key]
        if attr in DATE_FIELDS:
            if value is None and attr == "end_date":
                changes[attr] = None
                continue
            value = parse_timestamp(value, api_key)
        elif attr in TEXT_FIELDS:
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"{api_key}: expected a string")
        elif attr == "affected_services":
            if not isinstance(value, list) or not all(isinstance(s, str) for s in value):
                raise ValidationError(f"{api_key}: expected a list of service names")
        changes[attr] = value
    return changes


def incident_from_payload(
    payload: dict[str, Any],
    default_created_by: str = "system",
) -> Incident:
    """Build a new (unsaved) incident from a camelCase payload."""
    changes = changes_from_payload(payload)
    missing = [
        key for key, attr in API_FIELDS.items()
        if attr in ("type", "start_date", "end_date", "description", "affected_services")
        and changes.get(attr) in (None, "", [])
    ]
    if missing:
        raise ValidationError(f"missing required fields: {', '.join(missing)}")

    return Incident(
        type=changes["type"],
        start_date=changes["start_date"],
        end_date=changes["end_date"],
        description=changes["description"],
        affected_services=list(changes["affected_services"]),
        created_by=changes.get("created_by") or default_created_by,
    )
