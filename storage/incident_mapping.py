"""
Document adapter for the ``accidents`` collection.

Documents are stored with snake_case keys (``start_date``,
``affected_services``, ``created_by`` ...) and a Mongo ``_id``. These pure
functions are the only place that knows the persisted layout; the store
applies them on every read and write.
"""

from __future__ import annotations

from typing import Any

from availability.periods import ensure_utc
from incidents.models import Incident

# attribute -> document key
DOCUMENT_FIELDS = {
    "type":              "type",
    "start_date":        "start_date",
    "end_date":          "end_date",
    "description":       "description",
    "affected_services": "affected_services",
    "created_by":        "created_by",
    "created_at":        "created_at",
    "updated_at":        "updated_at",
}
IMMUTABLE_FIELDS = {"id", "created_at"}


def to_document(incident: Incident) -> dict[str, Any]:
    """Incident -> insertable document (no ``_id``; the store assigns one)."""
    doc: dict[str, Any] = {}
    for attr, key in DOCUMENT_FIELDS.items():
        value = getattr(incident, attr)
        if attr == "updated_at" and value is None:
            continue
        doc[key] = value
    doc["affected_services"] = list(incident.affected_services)
    return doc


def from_document(doc: dict[str, Any]) -> Incident:
    def _dt(key: str):
        value = doc.get(key)
        return ensure_utc(value) if value is not None else None

    return Incident(
        id=str(doc["_id"]) if doc.get("_id") is not None else None,
        type=doc.get("type", ""),
        start_date=_dt("start_date"),
        end_date=_dt("end_date"),
        description=doc.get("description", ""),
        affected_services=list(doc.get("affected_services") or []),
        created_by=doc.get("created_by", "system"),
        created_at=_dt("created_at"),
        updated_at=_dt("updated_at"),
    )


def to_update_fields(changes: dict[str, Any]) -> dict[str, Any]:
    """Partial attribute changes -> ``$set`` body. Drops id / created_at."""
    fields: dict[str, Any] = {}
    for attr, value in changes.items():
        if attr in IMMUTABLE_FIELDS:
            continue
        key = DOCUMENT_FIELDS.get(attr)
        if key is None:
            raise KeyError(f"unknown incident field: {attr}")
        fields[key] = list(value) if attr == "affected_services" else value
    return fields
