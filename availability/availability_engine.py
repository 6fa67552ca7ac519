"""
Availability Engine — month-scoped availability from reported incidents.

Reads:
  • an incident source (``storage.incident_store.IncidentStore`` or any
    object exposing ``query(incident_type=..., overlaps=(start, end))``)

Produces:
  • AvailabilityResult dataclass for the target month and the month before
  • CLI report suitable for human review

Only ``unavailability`` incidents count. Each one is clipped to the month
and its minutes are added up; with the default ``"sum"`` policy
overlapping incidents are *not* merged, so two identical two-hour
incidents cost four hours. ``"union"`` merges overlapping windows first.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable

from availability.periods import (
    MonthWindow,
    ensure_utc,
    minutes_between,
    month_window,
    parse_month,
    previous_month,
)
from incidents.models import UNAVAILABILITY, Incident
from storage.mongo_clients import MongoClientRegistry
from utils.config import OVERLAP_POLICIES, load_settings
from utils.errors import InvalidPeriod, MonitorError
from utils.logger import get_logger

log = get_logger(__name__)


# ── Result dataclasses ────────────────────────────────────────────────────────

@dataclass
class PeriodAvailability:
    """Availability of a single calendar month."""

    month: str                       # "YYYY-MM"
    start: datetime
    end: datetime
    total_minutes: int
    downtime_minutes: int            # capped at total_minutes
    availability_pct: float          # unrounded
    incident_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "month":            self.month,
            "start":            self.start.isoformat(),
            "end":              self.end.isoformat(),
            "total_minutes":    self.total_minutes,
            "downtime_minutes": self.downtime_minutes,
            "availability_pct": round(self.availability_pct, 4),
            "incident_count":   self.incident_count,
        }


@dataclass
class AvailabilityResult:
    """Target month vs. previous month, rounded for display."""

    availability_pct: float              # 2 decimals
    comparison_availability_pct: float   # 2 decimals
    difference_pct: float                # 1 decimal, signed
    total_minutes: int
    downtime_minutes: int
    period: PeriodAvailability
    comparison_period: PeriodAvailability
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "availability_pct":            self.availability_pct,
            "comparison_availability_pct": self.comparison_availability_pct,
            "difference_pct":              self.difference_pct,
            "total_minutes":               self.total_minutes,
            "downtime_minutes":            self.downtime_minutes,
            "period":                      self.period.to_dict(),
            "comparison_period":           self.comparison_period.to_dict(),
            "details":                     self.details,
        }


# ── Engine ────────────────────────────────────────────────────────────────────

class AvailabilityEngine:
    """
    Computes system-wide availability for a calendar month.

    Usage::

        engine = AvailabilityEngine(store)
        result = engine.calculate("2024-03")
        print(engine.report("2024-03"))
    """

    def __init__(
        self,
        source,
        overlap_policy: str = "sum",
        now: Callable[[], datetime] | None = None,
        concurrent: bool = True,
    ) -> None:
        if overlap_policy not in OVERLAP_POLICIES:
            raise ValueError(f"unknown overlap policy: {overlap_policy!r}")
        self.source = source
        self.overlap_policy = overlap_policy
        self.concurrent = concurrent
        self._now = now or (lambda: datetime.now(tz=timezone.utc))

    # ── Single period ─────────────────────────────────────────────────────────

    def period(self, window: MonthWindow, now: datetime | None = None) -> PeriodAvailability:
        total = window.total_minutes
        if total <= 0:
            raise InvalidPeriod(f"empty period: {window.label}")

        now = ensure_utc(now or self._now())
        incidents: list[Incident] = self.source.query(
            incident_type=UNAVAILABILITY,
            overlaps=(window.start, window.end),
        )

        clipped = [self._clip(inc, window, now) for inc in incidents]
        if self.overlap_policy == "union":
            clipped = _merge(clipped)
        downtime = sum(minutes_between(start, end) for start, end in clipped)
        downtime = min(downtime, total)

        pct = (total - downtime) / total * 100
        pct = max(0.0, min(100.0, pct))

        return PeriodAvailability(
            month=window.label,
            start=window.start,
            end=window.end,
            total_minutes=total,
            downtime_minutes=downtime,
            availability_pct=pct,
            incident_count=len(incidents),
        )

    @staticmethod
    def _clip(incident: Incident, window: MonthWindow, now: datetime) -> tuple[datetime, datetime]:
        start = max(ensure_utc(incident.start_date), window.start)
        if incident.end_date is None:
            end = min(now, window.end_exclusive)
        else:
            # end_exclusive: a full-month outage equals total_minutes
            end = min(ensure_utc(incident.end_date), window.end_exclusive)
        return start, end

    # ── Month vs. previous month ──────────────────────────────────────────────

    def calculate(self, target_month: date | datetime | str | None = None) -> AvailabilityResult:
        now = ensure_utc(self._now())
        month = parse_month(target_month) if target_month is not None else parse_month(now)
        current_window = month_window(month)
        previous_window = month_window(previous_month(month))

        if self.concurrent:
            with ThreadPoolExecutor(max_workers=2) as pool:
                cur_future  = pool.submit(self.period, current_window, now)
                prev_future = pool.submit(self.period, previous_window, now)
                current, previous = cur_future.result(), prev_future.result()
        else:
            current  = self.period(current_window, now)
            previous = self.period(previous_window, now)

        log.debug(
            "availability %s: %d/%d min down, previous %s: %d/%d",
            current.month, current.downtime_minutes, current.total_minutes,
            previous.month, previous.downtime_minutes, previous.total_minutes,
        )

        return AvailabilityResult(
            availability_pct=round(current.availability_pct, 2),
            comparison_availability_pct=round(previous.availability_pct, 2),
            difference_pct=round(current.availability_pct - previous.availability_pct, 1),
            total_minutes=current.total_minutes,
            downtime_minutes=current.downtime_minutes,
            period=current,
            comparison_period=previous,
            details={
                "overlap_policy": self.overlap_policy,
                "calculated_at":  now.isoformat(),
            },
        )

    # ── CLI report ────────────────────────────────────────────────────────────

    def report(self, target_month: date | datetime | str | None = None) -> str:
        return self.render(self.calculate(target_month))

    def render(self, r: AvailabilityResult) -> str:
        arrow = "▲" if r.difference_pct > 0 else "▼" if r.difference_pct < 0 else "="

        lines = [
            "╔══════════════════════════════════════════════════╗",
            "║        AVAILABILITY ENGINE — MONTH REPORT        ║",
            "╠══════════════════════════════════════════════════╣",
            f"║  Month               {r.period.month:<28}║",
            f"║  Availability        {r.availability_pct:>6.2f}%                     ║",
            f"║  Previous ({r.comparison_period.month})  {r.comparison_availability_pct:>6.2f}%                     ║",
            f"║  Difference          {arrow} {r.difference_pct:+.1f} pp                     ║",
            "╠══════════════════════════════════════════════════╣",
            f"║  Downtime            {r.downtime_minutes:>6} of {r.total_minutes:<6} minutes      ║",
            f"║  Incidents           {r.period.incident_count:<28}║",
            f"║  Overlap policy      {self.overlap_policy:<28}║",
            "╚══════════════════════════════════════════════════╝",
        ]
        return "\n".join(lines)


def _merge(windows: list[tuple[datetime, datetime]]) -> list[tuple[datetime, datetime]]:
    """Union of closed intervals; empty or inverted windows are dropped."""
    merged: list[tuple[datetime, datetime]] = []
    for start, end in sorted(w for w in windows if w[1] > w[0]):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


# ── CLI entry-point ───────────────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> None:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="Monthly availability report")
    parser.add_argument(
        "--env",
        default=os.getenv("AVAILABILITY_ENV", settings.default_environment),
        help="environment to report on (default: $AVAILABILITY_ENV)",
    )
    parser.add_argument(
        "--month",
        default=os.getenv("AVAILABILITY_MONTH") or None,
        help="target month as YYYY-MM (default: current month)",
    )
    parser.add_argument("--json", action="store_true", help="also print the result as JSON")
    args = parser.parse_args(argv)

    registry = MongoClientRegistry(settings)
    try:
        environment = settings.environment(args.env).name
        engine = AvailabilityEngine(
            registry.incident_store(environment),
            overlap_policy=settings.overlap_policy,
            concurrent=settings.concurrent_periods,
        )
        result = engine.calculate(args.month)
        print(f"Environment: {environment}")
        print(engine.render(result))
        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
    except MonitorError as exc:
        print(f"availability calculation failed: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        registry.close()


if __name__ == "__main__":
    main()
