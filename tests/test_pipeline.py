import json
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from conftest import utc
from fleetready.core.errors import PersistenceError
from fleetready.jobs.ingest import pipeline
from fleetready.jobs.ingest.pipeline import ingest_payloads
from fleetready.jobs.ingest.types import SourcePayload
from fleetready.jobs.merge.engine import MergeEngine
from fleetready.jobs.merge.quarantine import (
    QuarantineAlreadyResolved,
    QuarantineNotFound,
    list_quarantine,
    resolve_quarantine,
)
from fleetready.models.maintenance_events import EventSource, MaintenanceEvent
from fleetready.models.quarantine import QuarantinedRecord
from fleetready.models.ships import Ship
from fleetready.models.vendor_records import VendorRecord

VENDOR_A_CSV = (
    "hull_number,ship_name,ship_class,maintenance_type,completion_date,due_date,status,jcn\n"
    "DDG-51,USS Arleigh Burke,Arleigh Burke,Engine Overhaul,2024-03-01 12:00,2024-02-25,completed,J-100\n"
)

VENDOR_B_JSON = json.dumps(
    {"data": [{"vessel_id": "DDG-51", "job_type": "eng_overhaul", "completed_at": "2024-03-02T12:00:00Z"}]}
)

VENDOR_C_JSON = json.dumps(
    [{"hull": "DDG-51", "type": "engine overhaul", "date": "2024-03-01", "jcn": "J-999"}]
)


def payload_a():
    return SourcePayload(source="vendor_a", format_tag="csv", body=VENDOR_A_CSV)


def payload_b():
    return SourcePayload(source="vendor_b", format_tag="json", body=VENDOR_B_JSON)


def payload_c():
    return SourcePayload(source="vendor_c", format_tag="json", body=VENDOR_C_JSON)


def ingest(db, settings, *payloads):
    return ingest_payloads(db, list(payloads), uuid.uuid4(), settings)


def events(db):
    return list(db.execute(select(MaintenanceEvent).order_by(MaintenanceEvent.occurred_at)).scalars())


def count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_two_feeds_merge_into_one_event_latest_ingested_wins(db, settings):
    first = ingest(db, settings, payload_a())
    assert first["records_inserted"] == 1
    assert first["ships_created"] == 1
    assert first["merge_events_created"] == 1
    assert first["affected_ships"] == ["DDG-51"]

    second = ingest(db, settings, payload_b())
    assert second["merge_events_created"] == 0
    assert second["merge_events_updated"] == 1
    assert second["merge_conflicts"] == 1

    [ev] = events(db)
    assert ev.occurred_at == utc(2024, 3, 2, 12)
    assert ev.due_at == utc(2024, 2, 25)
    assert ev.job_control_number == "J-100"
    assert ev.sources == ["vendor_a", "vendor_b"]
    assert ev.source_count == 2
    assert ev.conflicts[0]["field"] == "occurred_at"
    assert ev.conflicts[0]["kept_source"] == "vendor_b"
    assert count(db, EventSource) == 2

    ship = db.get(Ship, "DDG-51")
    assert ship.name == "USS Arleigh Burke"
    assert ship.ship_class == "Arleigh Burke"


def test_reingesting_the_same_payloads_changes_nothing(db, settings):
    ingest(db, settings, payload_a(), payload_b())
    before = [(e.event_key, e.occurred_at, e.updated_at) for e in events(db)]

    again = ingest(db, settings, payload_a(), payload_b())
    assert again["records_total"] == 2
    assert again["records_duplicate"] == 2
    assert again["records_inserted"] == 0
    assert again["merge_groups"] == 0

    assert [(e.event_key, e.occurred_at, e.updated_at) for e in events(db)] == before
    assert count(db, VendorRecord) == 2


def test_resent_record_with_cosmetic_changes_stays_one_event(db, settings):
    def export(stamp):
        body = json.dumps(
            [
                {
                    "hull_number": "DDG-51",
                    "event_type": "engine_overhaul",
                    "completion_date": "2024-03-01",
                    "exported_at": stamp,
                }
            ]
        )
        return SourcePayload(source="vendor_a", format_tag="json", body=body)

    ingest(db, settings, export("2024-03-02"))
    again = ingest(db, settings, export("2024-03-03"))
    assert again["records_inserted"] == 1
    assert again["merge_events_created"] == 0

    reordered = SourcePayload(
        source="vendor_a",
        format_tag="csv",
        body="completion_date,hull_number,maintenance_type\n2024-03-01,DDG-51,Engine Overhaul\n",
    )
    ingest(db, settings, reordered)

    [ev] = events(db)
    assert ev.occurred_at == utc(2024, 3, 1)
    assert ev.sources == ["vendor_a"]
    assert count(db, VendorRecord) == 3


def test_same_feed_distinct_jcns_stay_two_events(db, settings):
    body = (
        "hull_number,maintenance_type,completion_date,jcn\n"
        "DDG-51,Engine Overhaul,2024-03-01 08:00,J-1\n"
        "DDG-51,Engine Overhaul,2024-03-01 16:00,J-2\n"
    )
    result = ingest(db, settings, SourcePayload(source="vendor_a", format_tag="csv", body=body))
    assert result["merge_events_created"] == 2
    assert count(db, QuarantinedRecord) == 0
    assert sorted(e.job_control_number for e in events(db)) == ["J-1", "J-2"]


def test_record_level_failures_do_not_fail_the_batch(db, settings):
    body = (
        "hull_number,maintenance_type,completion_date,status\n"
        "DDG-52,PMS,2024-01-05,closed\n"
        "DDG-52,,2024-01-06,closed\n"
        "DDG-53,CM,not a date,open\n"
    )
    out = ingest(db, settings, SourcePayload(source="vendor_a", format_tag="csv", body=body))
    assert out["records_total"] == 3
    assert out["records_inserted"] == 3
    assert out["records_accepted"] == 1
    assert out["records_schema_mismatch"] == 1
    assert out["records_format_error"] == 1

    rejected = db.execute(
        select(VendorRecord.error_kind).where(VendorRecord.canonical.is_(None)).order_by(VendorRecord.id)
    ).scalars().all()
    assert rejected == ["SchemaMismatchError", "FormatError"]
    assert db.get(Ship, "DDG-53") is None
    assert len(events(db)) == 1


def test_unparseable_payload_is_counted_and_skipped(db, settings):
    out = ingest(
        db,
        settings,
        SourcePayload(source="vendor_b", format_tag="json", body="{oops"),
        payload_a(),
    )
    assert out["payloads"] == 2
    assert out["payloads_failed"] == 1
    assert out["records_accepted"] == 1


def test_contradictory_jcn_goes_to_quarantine(db, settings):
    ingest(db, settings, payload_a(), payload_b())
    [before] = events(db)

    out = ingest(db, settings, payload_c())
    assert out["merge_quarantined"] == 1
    assert out["merge_events_updated"] == 0

    [after] = events(db)
    assert after.event_key == before.event_key
    assert after.job_control_number == "J-100"

    [q] = list_quarantine(db)
    assert q.ship_id == "DDG-51"
    assert q.event_type == "engine_overhaul"
    assert q.reason == "contradictory_job_control_number"
    assert q.detail["received"] == "J-999"

    # a later batch touching the group leaves the pending record alone
    more = ingest(
        db,
        settings,
        SourcePayload(
            source="vendor_d",
            format_tag="json",
            body='{"hull": "DDG-51", "type": "engine_overhaul", "date": "2024-03-02", "parts": "NSN-9"}',
        ),
    )
    assert more["merge_quarantined"] == 0
    assert count(db, QuarantinedRecord) == 1
    assert events(db)[0].part_refs == ["NSN-9"]


def test_resolve_quarantine_split_makes_a_separate_event(db, settings):
    ingest(db, settings, payload_a(), payload_b(), payload_c())
    [q] = list_quarantine(db)
    merge_engine = MergeEngine()

    row, stats = resolve_quarantine(db, q.id, "split", merge_engine)
    assert row.status == "split"
    assert row.resolved_at is not None
    assert stats.events_created == 1

    evs = events(db)
    assert len(evs) == 2
    assert {e.job_control_number for e in evs} == {"J-100", "J-999"}
    assert list_quarantine(db) == []

    with pytest.raises(QuarantineAlreadyResolved):
        resolve_quarantine(db, q.id, "discard", merge_engine)


def test_resolve_quarantine_discard_keeps_it_out(db, settings):
    ingest(db, settings, payload_a(), payload_c())
    [q] = list_quarantine(db)

    row, stats = resolve_quarantine(db, q.id, "discard", MergeEngine())
    assert row.status == "discarded"
    assert stats.events_created == 0
    assert len(events(db)) == 1
    assert [r.id for r in list_quarantine(db, status="discarded")] == [q.id]

    with pytest.raises(QuarantineNotFound):
        resolve_quarantine(db, 9999, "discard", MergeEngine())
    with pytest.raises(ValueError):
        resolve_quarantine(db, q.id, "merge", MergeEngine())


def test_storage_failure_rolls_back_the_whole_batch(db, settings, monkeypatch):
    def broken(*_args, **_kwargs):
        raise OperationalError("UPDATE maintenance_events", {}, Exception("disk I/O error"))

    monkeypatch.setattr(pipeline, "apply_merge", broken)

    with pytest.raises(PersistenceError):
        ingest(db, settings, payload_a(), payload_b())

    assert count(db, VendorRecord) == 0
    assert count(db, Ship) == 0
    assert count(db, MaintenanceEvent) == 0


def test_ship_details_refresh_but_id_is_stable(db, settings):
    ingest(db, settings, payload_a())
    renamed = VENDOR_A_CSV.replace("USS Arleigh Burke", "Arleigh Burke (DDG-51)").replace("2024-03-01", "2024-06-01")
    out = ingest(db, settings, SourcePayload(source="vendor_a", format_tag="csv", body=renamed))
    assert out["ships_created"] == 0
    assert db.get(Ship, "DDG-51").name == "Arleigh Burke (DDG-51)"
    assert count(db, Ship) == 1
