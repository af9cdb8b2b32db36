from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from fleetready.core.config import ScoringParams

FORMULA_VERSION = "v1"

OPEN_STATUSES = ("open", "deferred")


@dataclass(frozen=True)
class ScoredEvent:
    """The slice of a MaintenanceEvent the formula reads."""

    event_key: str
    event_type: str
    occurred_at: datetime
    status: str
    due_at: Optional[datetime] = None
    reported_at: Optional[datetime] = None
    ship_id: Optional[str] = None

    def fingerprint(self) -> list:
        return [
            self.event_key,
            self.event_type,
            self.occurred_at.isoformat(),
            self.status,
            self.due_at.isoformat() if self.due_at else None,
            self.reported_at.isoformat() if self.reported_at else None,
        ]


@dataclass(frozen=True)
class ComplianceComputed:
    score: float
    readiness_band: str
    event_count: int
    weighted_overdue_days: float
    mean_weighted_overdue_days: float
    overdue_events: int
    mttr_hours: Optional[float]
    overdue_penalty: float
    mttr_penalty: float
    inputs_hash: str
    formula_version: str = FORMULA_VERSION

    def components(self) -> dict:
        return {
            "weighted_overdue_days": self.weighted_overdue_days,
            "mean_weighted_overdue_days": self.mean_weighted_overdue_days,
            "overdue_events": self.overdue_events,
            "mttr_hours": self.mttr_hours,
            "overdue_penalty": self.overdue_penalty,
            "mttr_penalty": self.mttr_penalty,
        }


@dataclass(frozen=True)
class ComplianceIssue:
    kind: str  # overdue_open / completed_late
    event: ScoredEvent
    overdue_days: float


def _days(delta: timedelta) -> float:
    return delta.total_seconds() / 86400.0


def in_scope(ev: ScoredEvent, window_start: datetime, window_end: datetime) -> bool:
    if window_start <= ev.occurred_at < window_end:
        return True
    if ev.due_at is not None:
        if window_start <= ev.due_at < window_end:
            return True
        if ev.status in OPEN_STATUSES and ev.due_at < window_end:
            return True
    return False


def overdue_days(ev: ScoredEvent, as_of: datetime) -> float:
    """
    completed: days finished past due.
    open/deferred: days past due as of `as_of`.
    cancelled or no due date: 0.
    """
    if ev.due_at is None or ev.status == "cancelled":
        return 0.0
    if ev.status in OPEN_STATUSES:
        return max(0.0, _days(as_of - ev.due_at))
    return max(0.0, _days(ev.occurred_at - ev.due_at))


def mean_time_to_repair_hours(events: Iterable[ScoredEvent]) -> Optional[float]:
    durations = [
        (ev.occurred_at - ev.reported_at).total_seconds() / 3600.0
        for ev in events
        if ev.status == "completed" and ev.reported_at is not None and ev.occurred_at >= ev.reported_at
    ]
    if not durations:
        return None
    return sum(durations) / len(durations)


def readiness_band(score: float) -> str:
    if score >= 85.0:
        return "ready"
    if score >= 60.0:
        return "degraded"
    return "not_ready"


def inputs_hash(
    events: Sequence[ScoredEvent],
    window_start: datetime,
    window_end: datetime,
    params: ScoringParams,
) -> str:
    doc = {
        "version": FORMULA_VERSION,
        "window": [window_start.isoformat(), window_end.isoformat()],
        "params": params.as_dict(),
        "events": sorted(ev.fingerprint() for ev in events),
    }
    raw = json.dumps(doc, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def score_events(
    events: Iterable[ScoredEvent],
    *,
    window_start: datetime,
    window_end: datetime,
    params: ScoringParams,
) -> ComplianceComputed:
    """
    Formula v1:
      mean_weighted_overdue = sum(w_type * overdue_days) / sum(w_type)   (events with a due date)
      overdue_penalty = min(max_overdue_penalty, mean_weighted_overdue * overdue_day_penalty)
      mttr_penalty    = min(max_mttr_penalty, max(0, mttr - target) * mttr_hour_penalty)
      score           = clamp(100 - overdue_penalty - mttr_penalty, 0, 100), 2dp
    Open items are measured against window_end, so the result never depends on the clock.
    """
    if window_end <= window_start:
        raise ValueError("window_end must be after window_start")

    scoped = sorted(
        (ev for ev in events if in_scope(ev, window_start, window_end)),
        key=lambda ev: ev.event_key,
    )

    weighted = 0.0
    weight_total = 0.0
    n_overdue = 0
    for ev in scoped:
        if ev.due_at is None or ev.status == "cancelled":
            continue
        w = params.weight_for(ev.event_type)
        d = overdue_days(ev, window_end)
        weighted += w * d
        weight_total += w
        if d > 0:
            n_overdue += 1

    mean_weighted = weighted / weight_total if weight_total > 0 else 0.0
    overdue_penalty = min(params.max_overdue_penalty, mean_weighted * params.overdue_day_penalty)

    mttr = mean_time_to_repair_hours(scoped)
    mttr_penalty = 0.0
    if mttr is not None:
        mttr_penalty = min(
            params.max_mttr_penalty,
            max(0.0, mttr - params.mttr_target_hours) * params.mttr_hour_penalty,
        )

    score = round(100.0 - overdue_penalty - mttr_penalty, 2)
    score = max(0.0, min(100.0, score))

    return ComplianceComputed(
        score=score,
        readiness_band=readiness_band(score),
        event_count=len(scoped),
        weighted_overdue_days=round(weighted, 4),
        mean_weighted_overdue_days=round(mean_weighted, 4),
        overdue_events=n_overdue,
        mttr_hours=round(mttr, 4) if mttr is not None else None,
        overdue_penalty=round(overdue_penalty, 4),
        mttr_penalty=round(mttr_penalty, 4),
        inputs_hash=inputs_hash(scoped, window_start, window_end, params),
    )


def find_issues(
    events: Iterable[ScoredEvent],
    *,
    as_of: datetime,
    min_overdue_days: float = 0.0,
) -> list[ComplianceIssue]:
    issues: list[ComplianceIssue] = []
    for ev in events:
        d = overdue_days(ev, as_of)
        if d <= 0 or d < min_overdue_days:
            continue
        if ev.status in OPEN_STATUSES:
            kind = "overdue_open"
        else:
            kind = "completed_late"
        issues.append(ComplianceIssue(kind=kind, event=ev, overdue_days=round(d, 2)))
    issues.sort(key=lambda i: (-i.overdue_days, i.event.ship_id or "", i.event.event_key))
    return issues
