"""
Deduplication & merge engine.

Records that describe the same real-world maintenance event (same ship, same
event type, timestamps within a tolerance window) are clustered and merged into
one event. A feed reporting two different job control numbers is reporting two
jobs. The most recently ingested value wins each field conflict; every conflict
is logged and kept on the event.

This module is pure: no database, no clock. Persistence lives in merge.apply.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from fleetready.core.errors import MergeConflictError
from fleetready.jobs.ingest.types import CanonicalRecord
from fleetready.jobs.ingest.utils.record_key import make_event_key

logger = logging.getLogger(__name__)

# Fields resolved by "latest ingested wins"
OVERRIDABLE_FIELDS = ("occurred_at", "reported_at", "due_at", "status", "ship_name", "ship_class")


@dataclass(frozen=True)
class FieldConflict:
    field: str
    kept: Optional[str]
    kept_source: str
    discarded: Optional[str]
    discarded_source: str

    def to_json(self) -> dict:
        return {
            "field": self.field,
            "kept": self.kept,
            "kept_source": self.kept_source,
            "discarded": self.discarded,
            "discarded_source": self.discarded_source,
        }


@dataclass(frozen=True)
class MergedEvent:
    event_key: str
    ship_id: str
    event_type: str
    occurred_at: datetime
    reported_at: Optional[datetime]
    due_at: Optional[datetime]
    status: str
    job_control_number: Optional[str]
    ship_name: Optional[str]
    ship_class: Optional[str]
    part_refs: tuple[str, ...]
    sources: tuple[str, ...]
    record_keys: tuple[str, ...]
    conflicts: tuple[FieldConflict, ...]


@dataclass(frozen=True)
class QuarantineDecision:
    record_key: str
    ship_id: str
    event_type: str
    reason: str
    detail: dict


@dataclass
class MergeResult:
    events: list[MergedEvent] = field(default_factory=list)
    quarantined: list[QuarantineDecision] = field(default_factory=list)

    @property
    def conflict_count(self) -> int:
        return sum(len(e.conflicts) for e in self.events)


@dataclass
class _Cluster:
    records: list[CanonicalRecord]
    last_ts: datetime
    standalone: bool = False

    @property
    def sources(self) -> set[str]:
        return {r.source for r in self.records}

    def admits(self, rec: CanonicalRecord, tolerance: timedelta) -> bool:
        if self.standalone or rec.standalone:
            return False
        if rec.occurred_at - self.last_ts > tolerance:
            return False
        if rec.source not in self.sources or not rec.job_control_number:
            return True
        # same feed, two different job control numbers: two jobs
        held = {r.job_control_number for r in self.records if r.source == rec.source and r.job_control_number}
        return not held or rec.job_control_number in held

    def add(self, rec: CanonicalRecord) -> None:
        self.records.append(rec)
        self.last_ts = max(self.last_ts, rec.occurred_at)


def dedup_key(rec: CanonicalRecord) -> tuple[str, str]:
    return rec.ship_id, rec.event_type


def _seq(rec: CanonicalRecord) -> int:
    if rec.ingest_seq is None or rec.record_key is None:
        raise ValueError("merge requires stored records (record_key and ingest_seq set)")
    return rec.ingest_seq


def _fmt(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def check_jcn_consistency(records: list[CanonicalRecord]) -> None:
    """Raise MergeConflictError when a cluster carries more than one job control number."""
    jcns = sorted({r.job_control_number for r in records if r.job_control_number})
    if len(jcns) > 1:
        raise MergeConflictError(
            "job_control_number",
            jcns,
            [r.record_key for r in records if r.job_control_number],
        )


def merge_cluster(records: list[CanonicalRecord]) -> MergedEvent:
    """Merge one cluster. Records must share ship_id and event_type."""
    check_jcn_consistency(records)

    ordered = sorted(records, key=_seq)
    anchor = ordered[0]
    newest_first = list(reversed(ordered))

    resolved: dict[str, object] = {}
    conflicts: list[FieldConflict] = []

    for name in OVERRIDABLE_FIELDS:
        winner: Optional[CanonicalRecord] = None
        for rec in newest_first:
            value = getattr(rec, name)
            if value is None:
                continue
            if winner is None:
                winner = rec
                resolved[name] = value
                continue
            if value != resolved[name]:
                conflicts.append(
                    FieldConflict(
                        field=name,
                        kept=_fmt(resolved[name]),
                        kept_source=winner.source,
                        discarded=_fmt(value),
                        discarded_source=rec.source,
                    )
                )
        resolved.setdefault(name, None)

    jcn = next((r.job_control_number for r in ordered if r.job_control_number), None)
    parts = sorted({p for r in ordered for p in r.part_refs})

    event = MergedEvent(
        event_key=make_event_key(anchor.record_key),
        ship_id=anchor.ship_id,
        event_type=anchor.event_type,
        occurred_at=resolved["occurred_at"],
        reported_at=resolved["reported_at"],
        due_at=resolved["due_at"],
        status=resolved["status"] or "completed",
        job_control_number=jcn,
        ship_name=resolved["ship_name"],
        ship_class=resolved["ship_class"],
        part_refs=tuple(parts),
        sources=tuple(sorted({r.source for r in ordered})),
        record_keys=tuple(r.record_key for r in ordered),
        conflicts=tuple(conflicts),
    )

    for c in conflicts:
        logger.warning(
            "Merge conflict ship=%s type=%s event=%s field=%s kept=%s (%s) discarded=%s (%s)",
            event.ship_id,
            event.event_type,
            event.event_key[:12],
            c.field,
            c.kept,
            c.kept_source,
            c.discarded,
            c.discarded_source,
        )
    return event


class MergeEngine:
    def __init__(self, tolerance: timedelta = timedelta(hours=48)):
        if tolerance < timedelta(0):
            raise ValueError("tolerance must be non-negative")
        self.tolerance = tolerance

    def cluster(self, records: Iterable[CanonicalRecord]) -> list[list[CanonicalRecord]]:
        """
        Group records of one or more identity groups. Deterministic: records are
        visited in (ship, type, occurred_at, ingest_seq) order and join the first
        open cluster that admits them.
        """
        by_group: dict[tuple[str, str], list[CanonicalRecord]] = {}
        for rec in records:
            by_group.setdefault(dedup_key(rec), []).append(rec)

        clusters: list[list[CanonicalRecord]] = []
        for key in sorted(by_group):
            group = sorted(by_group[key], key=lambda r: (r.occurred_at, _seq(r)))
            open_clusters: list[_Cluster] = []
            for rec in group:
                target = next((c for c in open_clusters if c.admits(rec, self.tolerance)), None)
                if target is None:
                    open_clusters.append(_Cluster(records=[rec], last_ts=rec.occurred_at, standalone=rec.standalone))
                else:
                    target.add(rec)
            clusters.extend(c.records for c in open_clusters)
        return clusters

    def merge(self, records: Iterable[CanonicalRecord]) -> MergeResult:
        result = MergeResult()
        for cluster in self.cluster(records):
            try:
                result.events.append(merge_cluster(cluster))
            except MergeConflictError as e:
                kept, rejected = self._split_on_conflict(cluster, e)
                result.quarantined.extend(rejected)
                if kept:
                    result.events.append(merge_cluster(kept))

        result.events.sort(key=lambda ev: (ev.ship_id, ev.event_type, ev.occurred_at, ev.event_key))
        return result

    def _split_on_conflict(
        self, cluster: list[CanonicalRecord], err: MergeConflictError
    ) -> tuple[list[CanonicalRecord], list[QuarantineDecision]]:
        """Keep the JCN of the earliest-ingested record; quarantine records contradicting it."""
        ordered = sorted(cluster, key=_seq)
        established = next(r.job_control_number for r in ordered if r.job_control_number)

        kept: list[CanonicalRecord] = []
        rejected: list[QuarantineDecision] = []
        for rec in ordered:
            if rec.job_control_number and rec.job_control_number != established:
                logger.warning(
                    "Quarantining record %s ship=%s type=%s: %s (established %s, got %s)",
                    rec.record_key[:12],
                    rec.ship_id,
                    rec.event_type,
                    err,
                    established,
                    rec.job_control_number,
                )
                rejected.append(
                    QuarantineDecision(
                        record_key=rec.record_key,
                        ship_id=rec.ship_id,
                        event_type=rec.event_type,
                        reason="contradictory_job_control_number",
                        detail={
                            "field": err.field,
                            "established": established,
                            "received": rec.job_control_number,
                            "source": rec.source,
                            "occurred_at": rec.occurred_at.isoformat(),
                        },
                    )
                )
            else:
                kept.append(rec)
        return kept, rejected


def count_out_of_order(records: Iterable[CanonicalRecord]) -> int:
    """
    Count records whose timestamp goes backwards relative to the previous record
    for the same ship within the same source feed, in arrival order.
    """
    last: dict[tuple[str, str], datetime] = {}
    violations = 0
    for rec in records:
        key = (rec.source, rec.ship_id)
        prev = last.get(key)
        if prev is not None and rec.occurred_at < prev:
            violations += 1
        last[key] = rec.occurred_at if prev is None else max(prev, rec.occurred_at)
    return violations
