"""
Incident Store — MongoDB persistence for reported incidents.

One store wraps one environment's ``accidents`` collection. Read failures
surface as ``DataSourceUnavailable``, write failures as
``PersistenceError``; callers never see raw pymongo exceptions.

Usage::

    from storage.mongo_clients import MongoClientRegistry
    store = MongoClientRegistry(settings).incident_store("PRODUCTION")
    incidents = store.query(incident_type="unavailability",
                            overlaps=(window.start, window.end))
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from incidents.models import Incident
from storage.incident_mapping import from_document, to_document, to_update_fields
from utils.errors import DataSourceUnavailable, IncidentNotFound, PersistenceError
from utils.logger import get_logger

log = get_logger(__name__)


def overlap_filter(start: datetime, end: datetime) -> dict[str, Any]:
    """Mongo filter for incidents whose window touches ``[start, end]``."""
    return {
        "start_date": {"$lte": end},
        "$or": [
            {"end_date": {"$gte": start}},
            {"end_date": None},
        ],
    }


class IncidentStore:
    """CRUD and window queries over a pymongo collection."""

    def __init__(self, collection, clock=None) -> None:
        self.collection = collection
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))

    # ── Reads ─────────────────────────────────────────────────────────────────

    def query(
        self,
        incident_type: str | None = None,
        overlaps: tuple[datetime, datetime] | None = None,
    ) -> list[Incident]:
        """Incidents matching the filters, newest ``start_date`` first."""
        criteria: dict[str, Any] = {}
        if incident_type:
            criteria["type"] = incident_type
        if overlaps:
            criteria.update(overlap_filter(*overlaps))

        try:
            cursor = self.collection.find(criteria).sort("start_date", DESCENDING)
            return [from_document(doc) for doc in cursor]
        except PyMongoError as exc:
            log.error("incident query failed (%s): %s", criteria, exc)
            raise DataSourceUnavailable(str(exc)) from exc

    def get(self, incident_id: str) -> Incident:
        oid = self._object_id(incident_id)
        try:
            doc = self.collection.find_one({"_id": oid})
        except PyMongoError as exc:
            raise DataSourceUnavailable(str(exc)) from exc
        if doc is None:
            raise IncidentNotFound(incident_id)
        return from_document(doc)

    # ── Writes ────────────────────────────────────────────────────────────────

    def insert(self, incident: Incident) -> str:
        doc = to_document(incident)
        doc["created_at"] = self._clock()
        try:
            result = self.collection.insert_one(doc)
        except PyMongoError as exc:
            log.error("incident insert failed: %s", exc)
            raise PersistenceError(str(exc)) from exc
        return str(result.inserted_id)

    def update(self, incident_id: str, changes: dict[str, Any]) -> None:
        oid = self._object_id(incident_id)
        fields = to_update_fields(changes)
        fields["updated_at"] = self._clock()
        try:
            result = self.collection.update_one({"_id": oid}, {"$set": fields})
        except PyMongoError as exc:
            log.error("incident update failed (%s): %s", incident_id, exc)
            raise PersistenceError(str(exc)) from exc
        if result.matched_count == 0:
            raise IncidentNotFound(incident_id)

    def delete(self, incident_id: str) -> None:
        oid = self._object_id(incident_id)
        try:
            result = self.collection.delete_one({"_id": oid})
        except PyMongoError as exc:
            log.error("incident delete failed (%s): %s", incident_id, exc)
            raise PersistenceError(str(exc)) from exc
        if result.deleted_count == 0:
            raise IncidentNotFound(incident_id)

    def ensure_indexes(self) -> None:
        try:
            self.collection.create_index([("start_date", DESCENDING)])
            self.collection.create_index([("type", ASCENDING), ("start_date", DESCENDING)])
        except PyMongoError as exc:
            raise PersistenceError(str(exc)) from exc

    @staticmethod
    def _object_id(incident_id: str) -> ObjectId:
        try:
            return ObjectId(incident_id)
        except (InvalidId, TypeError):
            raise IncidentNotFound(incident_id) from None
