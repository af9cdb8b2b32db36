from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleetready.core.config import ScoringParams
from fleetready.core.errors import PersistenceError
from fleetready.jobs.runs import fail_job, finish_job, start_job
from fleetready.models.compliance_scores import ComplianceScore
from fleetready.models.maintenance_events import MaintenanceEvent
from fleetready.models.ships import Ship
from fleetready.scoring.v1.compliance import FORMULA_VERSION, ScoredEvent, score_events

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComputeComplianceResult:
    window_start: str
    window_end: str
    formula_version: str
    ships_scored: int
    scores_written: int
    scores_unchanged: int


def default_window(window_days: int, now: datetime) -> tuple[datetime, datetime]:
    """
    Trailing window ending at the most recent UTC midnight, so every run on the
    same day scores the same window.
    """
    end = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return end - timedelta(days=window_days), end


def scored_event(ev: MaintenanceEvent) -> ScoredEvent:
    return ScoredEvent(
        event_key=ev.event_key,
        event_type=ev.event_type,
        occurred_at=ev.occurred_at,
        status=ev.status,
        due_at=ev.due_at,
        reported_at=ev.reported_at,
        ship_id=ev.ship_id,
    )


def load_scored_events(
    db: Session, ship_id: str, window_start: datetime, window_end: datetime
) -> list[ScoredEvent]:
    # superset of the formula's scope; score_events applies the exact rule
    rows = db.execute(
        select(MaintenanceEvent).where(
            MaintenanceEvent.ship_id == ship_id,
            or_(
                MaintenanceEvent.occurred_at >= window_start,
                MaintenanceEvent.due_at.is_not(None),
            ),
            MaintenanceEvent.occurred_at < window_end,
        )
    ).scalars()
    events = [scored_event(ev) for ev in rows]

    # open items reported after window_end can still be due inside it
    late_rows = db.execute(
        select(MaintenanceEvent).where(
            MaintenanceEvent.ship_id == ship_id,
            MaintenanceEvent.occurred_at >= window_end,
            MaintenanceEvent.due_at.is_not(None),
            MaintenanceEvent.due_at < window_end,
        )
    ).scalars()
    events.extend(scored_event(ev) for ev in late_rows)
    return events


def latest_score(
    db: Session,
    ship_id: str,
    *,
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
    formula_version: Optional[str] = None,
) -> Optional[ComplianceScore]:
    q = select(ComplianceScore).where(ComplianceScore.ship_id == ship_id)
    if window_start is not None:
        q = q.where(ComplianceScore.window_start == window_start)
    if window_end is not None:
        q = q.where(ComplianceScore.window_end == window_end)
    if formula_version is not None:
        q = q.where(ComplianceScore.formula_version == formula_version)
    return db.execute(q.order_by(ComplianceScore.id.desc()).limit(1)).scalars().first()


def score_ship(
    db: Session,
    ship_id: str,
    *,
    window_start: datetime,
    window_end: datetime,
    params: ScoringParams,
) -> tuple[ComplianceScore, bool]:
    """
    Score one ship for one window. Returns (row, written). When the inputs hash
    matches the latest row for this (ship, window, version), that row is returned
    and nothing is written.
    """
    events = load_scored_events(db, ship_id, window_start, window_end)
    computed = score_events(events, window_start=window_start, window_end=window_end, params=params)

    prev = latest_score(
        db, ship_id, window_start=window_start, window_end=window_end, formula_version=FORMULA_VERSION
    )
    if prev is not None and prev.inputs_hash == computed.inputs_hash:
        return prev, False

    row = ComplianceScore(
        ship_id=ship_id,
        window_start=window_start,
        window_end=window_end,
        formula_version=computed.formula_version,
        inputs_hash=computed.inputs_hash,
        score=computed.score,
        readiness_band=computed.readiness_band,
        event_count=computed.event_count,
        components=computed.components(),
        params=params.as_dict(),
        supersedes_id=prev.id if prev is not None else None,
    )
    db.add(row)
    db.flush()
    logger.info(
        "Scored ship=%s window=%s..%s score=%.2f band=%s events=%d supersedes=%s",
        ship_id,
        window_start.date().isoformat(),
        window_end.date().isoformat(),
        computed.score,
        computed.readiness_band,
        computed.event_count,
        row.supersedes_id,
    )
    return row, True


def compute_compliance(
    db: Session,
    *,
    window_start: datetime,
    window_end: datetime,
    params: ScoringParams,
    ship_ids: Optional[list[str]] = None,
) -> ComputeComplianceResult:
    """Score every ship (or the given ships) for [window_start, window_end)."""
    run_id = start_job(
        db,
        "compute_compliance",
        {
            "window_start": window_start.isoformat(),
            "window_end": window_end.isoformat(),
            "formula_version": FORMULA_VERSION,
            "params": params.as_dict(),
            "ship_ids": ship_ids,
        },
    )

    try:
        if ship_ids is None:
            ship_ids = list(db.execute(select(Ship.ship_id).order_by(Ship.ship_id)).scalars())

        written = 0
        unchanged = 0
        for ship_id in sorted(set(ship_ids)):
            _, was_written = score_ship(
                db, ship_id, window_start=window_start, window_end=window_end, params=params
            )
            if was_written:
                written += 1
            else:
                unchanged += 1

        db.commit()
    except SQLAlchemyError as e:
        fail_job(db, run_id, e)
        raise PersistenceError(f"compliance run {run_id} not stored: {e}") from e
    except Exception as e:
        fail_job(db, run_id, e)
        raise

    result = ComputeComplianceResult(
        window_start=window_start.isoformat(),
        window_end=window_end.isoformat(),
        formula_version=FORMULA_VERSION,
        ships_scored=written + unchanged,
        scores_written=written,
        scores_unchanged=unchanged,
    )
    finish_job(db, run_id, "success", {"result": result.__dict__})
    return result
