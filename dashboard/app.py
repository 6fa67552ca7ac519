"""
4pay Monitor — Web Dashboard API

Serves the JSON endpoints behind the monitoring dashboard:
  • Monthly availability vs. previous month (per environment)
  • Incident reporting, listing, editing and deletion
  • Prometheus metrics for the API itself

The environment (DEV / HOMOLOG / PRODUCTION) comes from the ``env`` query
parameter or the ``X-Environment`` header and is passed explicitly to
every service call.

Run:
    python -m dashboard.app
"""

from __future__ import annotations

import os
import time

from flask import Flask, g, jsonify, render_template, request
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

from availability.availability_service import AvailabilityService
from incidents.incident_service import IncidentService, OperationResult
from storage.mongo_clients import MongoClientRegistry
from utils.config import Settings, load_settings
from utils.logger import get_logger

log = get_logger(__name__)

# ── Prometheus instruments ────────────────────────────────────────────────────

REQUEST_COUNT = Counter(
    "monitor_http_requests_total",
    "Total HTTP requests served by the dashboard API",
    ["method", "endpoint", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "monitor_http_request_duration_seconds",
    "Dashboard API latency in seconds",
    ["endpoint"],
    buckets=[0.05, 0.1, 0.2, 0.3, 0.5, 0.75, 1.0, 2.5, 5.0],
)

AVAILABILITY_CALCULATIONS = Counter(
    "monitor_availability_calculations_total",
    "Availability calculations by environment and outcome",
    ["environment", "outcome"],   # outcome: ok | fallback | error
)


# ── App factory ───────────────────────────────────────────────────────────────

def create_app(settings: Settings | None = None, store_factory=None) -> Flask:
    settings = settings or load_settings()
    if store_factory is None:
        store_factory = MongoClientRegistry(settings).incident_store

    app = Flask(__name__, template_folder="templates")
    availability = AvailabilityService(store_factory, settings)
    incidents = IncidentService(store_factory, settings)

    def _environment() -> str:
        env = request.args.get("env") or request.headers.get("X-Environment")
        return (env or settings.default_environment).upper()

    def _respond(result: OperationResult, created: bool = False):
        if result.success:
            return jsonify({"ok": True, "data": result.data}), 201 if created else 200
        if result.not_found:
            status = 404
        elif result.unavailable:
            status = 503
        else:
            status = 400
        body = {"ok": False, "error": result.error}
        if result.data is not None:
            body["data"] = result.data
        return jsonify(body), status

    # ── Request tracking ──────────────────────────────────────────────────────

    @app.before_request
    def _start_timer():
        g.start = time.time()

    @app.after_request
    def _track(response):
        endpoint = request.url_rule.rule if request.url_rule else "unmatched"
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(time.time() - g.get("start", time.time()))
        return response

    # ── Availability ──────────────────────────────────────────────────────────

    @app.get("/api/availability")
    def api_availability():
        env = _environment()
        result = availability.calculate_availability(env, request.args.get("month"))
        if result.success:
            outcome = "ok"
        elif result.fallback:
            outcome = "fallback"
        else:
            outcome = "error"
        AVAILABILITY_CALCULATIONS.labels(environment=env, outcome=outcome).inc()

        body = {"ok": result.success, "data": result.to_dict()}
        if result.error:
            body["error"] = result.error
        return jsonify(body)

    # ── Incidents ─────────────────────────────────────────────────────────────

    @app.get("/api/incidents")
    def api_list_incidents():
        return _respond(incidents.list_incidents(_environment(), request.args.get("month")))

    @app.post("/api/incidents")
    def api_report_incident():
        payload = request.get_json(silent=True) or {}
        return _respond(incidents.report_incident(_environment(), payload), created=True)

    @app.get("/api/incidents/<incident_id>")
    def api_get_incident(incident_id: str):
        return _respond(incidents.get_incident(_environment(), incident_id))

    @app.patch("/api/incidents/<incident_id>")
    def api_update_incident(incident_id: str):
        payload = request.get_json(silent=True) or {}
        return _respond(incidents.update_incident(_environment(), incident_id, payload))

    @app.delete("/api/incidents/<incident_id>")
    def api_delete_incident(incident_id: str):
        return _respond(incidents.delete_incident(_environment(), incident_id))

    # ── Meta ──────────────────────────────────────────────────────────────────

    @app.get("/api/environments")
    def api_environments():
        return jsonify({"ok": True, "data": settings.to_dict()})

    @app.get("/health")
    def health():
        return jsonify({"status": "healthy", "version": "1.0.0"}), 200

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""
        return generate_latest(REGISTRY), 200, {"Content-Type": CONTENT_TYPE_LATEST}

    @app.get("/")
    def index():
        return render_template(
            "index.html",
            environments=sorted(settings.environments),
            default_environment=settings.default_environment,
        )

    return app


# ── Entry-point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    port = int(os.getenv("DASHBOARD_PORT", "5000"))
    debug = os.getenv("FLASK_DEBUG", "false").lower() == "true"
    log.info("Dashboard running at http://localhost:%d", port)
    create_app().run(host="0.0.0.0", port=port, debug=debug)
