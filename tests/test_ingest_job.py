import uuid
from dataclasses import replace

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from conftest import utc
from fleetready.core.errors import PersistenceError
from fleetready.jobs import runs
from fleetready.jobs.compliance import compute_compliance as compute_module
from fleetready.jobs.compliance.compute_compliance import compute_compliance, default_window, latest_score
from fleetready.jobs.ingest import job as ingest_job
from fleetready.jobs.ingest.job import run_ingest_job
from fleetready.jobs.ingest.sources.file import FileSource
from fleetready.jobs.ingest.sources.upload import UploadSource
from fleetready.jobs.ingest.types import SourcePayload
from fleetready.models.compliance_scores import ComplianceScore
from fleetready.models.job_runs import JobRun

CSV = (
    "hull_number,maintenance_type,reported,completion_date,due_date,status\n"
    "DDG-51,PMS,2024-02-01,2024-02-10,2024-02-05,closed\n"
    "DDG-52,Hull Insp,2024-03-01,2024-03-02,2024-03-10,closed\n"
)


def write_drop(tmp_path, name="export.csv", body=CSV, feed="vendor_a"):
    folder = tmp_path / feed
    folder.mkdir(exist_ok=True)
    path = folder / name
    path.write_text(body, encoding="utf-8")
    return path


def test_file_source_infers_format_and_feed(tmp_path):
    write_drop(tmp_path)
    write_drop(tmp_path, name="more.csv")
    payloads = FileSource().fetch([str(tmp_path / "vendor_a" / "*.csv")])
    assert [p.source for p in payloads] == ["vendor_a", "vendor_a"]
    assert {p.format_tag for p in payloads} == {"csv"}
    assert payloads[0].origin.endswith("export.csv")


def test_file_source_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        FileSource().fetch([str(tmp_path / "nope.csv")])


def test_run_ingest_job_records_job_run(db, settings, tmp_path):
    path = write_drop(tmp_path)
    result = run_ingest_job(db, FileSource(), settings, paths=[str(path)])

    assert result["source"] == "file"
    assert result["records_accepted"] == 2
    assert "scoring" not in result

    run = db.get(JobRun, uuid.UUID(result["run_id"]))
    assert run.job_name == "ingest_file"
    assert run.status == "success"
    assert run.meta["records_accepted"] == 2
    assert run.ended_at is not None


def test_failed_fetch_marks_job_failed(db, settings, tmp_path):
    with pytest.raises(FileNotFoundError):
        run_ingest_job(db, FileSource(), settings, paths=[str(tmp_path / "missing.csv")])

    [run] = db.execute(select(JobRun)).scalars().all()
    assert run.status == "fail"
    assert "FileNotFoundError" in run.meta["error"]


def test_ingest_rescores_affected_ships(db, settings):
    settings = replace(settings, score_after_ingest=True)
    source = UploadSource([SourcePayload(source="vendor_a", format_tag="csv", body=CSV)])

    result = run_ingest_job(db, source, settings, now=utc(2024, 4, 1, 8))

    assert result["scoring"]["ships_scored"] == 2
    assert result["scoring"]["window_end"] == utc(2024, 4, 1).isoformat()
    score = latest_score(db, "DDG-51")
    assert score.window_start == utc(2024, 1, 2)
    assert score.window_end == utc(2024, 4, 1)
    # 5 days late -> 10 points; 216h repair -> 144h over target -> capped at 36 points
    assert score.score == pytest.approx(54.0)
    assert score.readiness_band == "not_ready"
    assert latest_score(db, "DDG-52").score == pytest.approx(100.0)


def test_recompute_is_idempotent_and_supersedes_on_change(db, settings):
    run_ingest_job(db, UploadSource([SourcePayload(source="vendor_a", format_tag="csv", body=CSV)]), settings)
    start, end = default_window(90, utc(2024, 4, 1, 8))

    first = compute_compliance(db, window_start=start, window_end=end, params=settings.scoring)
    again = compute_compliance(db, window_start=start, window_end=end, params=settings.scoring)
    assert first.scores_written == 2
    assert again.scores_written == 0
    assert again.scores_unchanged == 2
    assert len(db.execute(select(ComplianceScore)).scalars().all()) == 2

    late = (
        "hull_number,maintenance_type,completion_date,due_date,status\n"
        "DDG-52,CM,2024-03-20,2024-03-25,open\n"
    )
    run_ingest_job(db, UploadSource([SourcePayload(source="vendor_b", format_tag="csv", body=late)]), settings)
    changed = compute_compliance(db, window_start=start, window_end=end, params=settings.scoring, ship_ids=["DDG-52"])
    assert changed.scores_written == 1

    rows = db.execute(
        select(ComplianceScore).where(ComplianceScore.ship_id == "DDG-52").order_by(ComplianceScore.id)
    ).scalars().all()
    assert len(rows) == 2
    assert rows[1].supersedes_id == rows[0].id
    assert rows[1].score < rows[0].score

    jobs = db.execute(select(JobRun.job_name, JobRun.status)).all()
    assert ("compute_compliance", "success") in jobs


def test_default_window_ends_at_utc_midnight():
    start, end = default_window(30, utc(2024, 4, 1, 23, 59))
    assert end == utc(2024, 4, 1)
    assert start == utc(2024, 3, 2)


def test_unreachable_store_raises_persistence_error(settings, tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'missing_dir' / 'fleet.db'}")
    session = sessionmaker(bind=eng)()
    source = UploadSource([SourcePayload(source="vendor_a", format_tag="csv", body=CSV)])
    try:
        with pytest.raises(PersistenceError) as err:
            run_ingest_job(session, source, settings)
        assert isinstance(err.value.__cause__, OperationalError)
    finally:
        session.close()
        eng.dispose()


def test_original_error_survives_when_run_cannot_be_marked_failed(db, settings, tmp_path, monkeypatch):
    def broken(*_args, **_kwargs):
        raise PersistenceError("job_runs unavailable")

    monkeypatch.setattr(runs, "finish_job", broken)

    with pytest.raises(FileNotFoundError):
        run_ingest_job(db, FileSource(), settings, paths=[str(tmp_path / "missing.csv")])


def test_scoring_storage_failure_is_persistence_error(db, settings, monkeypatch):
    run_ingest_job(db, UploadSource([SourcePayload(source="vendor_a", format_tag="csv", body=CSV)]), settings)

    def broken(*_args, **_kwargs):
        raise OperationalError("INSERT INTO compliance_scores", {}, Exception("disk I/O error"))

    monkeypatch.setattr(compute_module, "score_ship", broken)
    start, end = default_window(90, utc(2024, 4, 1))

    with pytest.raises(PersistenceError):
        compute_compliance(db, window_start=start, window_end=end, params=settings.scoring)

    run = db.execute(select(JobRun).where(JobRun.job_name == "compute_compliance")).scalar_one()
    assert run.status == "fail"
    assert db.execute(select(ComplianceScore)).scalars().all() == []


def test_rescoring_failure_keeps_the_stored_ingest(db, settings, monkeypatch):
    settings = replace(settings, score_after_ingest=True)

    def broken(*_args, **_kwargs):
        raise PersistenceError("compliance_scores unavailable")

    monkeypatch.setattr(ingest_job, "compute_compliance", broken)
    source = UploadSource([SourcePayload(source="vendor_a", format_tag="csv", body=CSV)])

    result = run_ingest_job(db, source, settings, now=utc(2024, 4, 1, 8))

    assert "compliance_scores unavailable" in result["scoring"]["error"]
    assert result["records_accepted"] == 2
    assert db.get(JobRun, uuid.UUID(result["run_id"])).status == "success"


def test_compute_compliance_commits_its_scores(db, settings):
    run_ingest_job(db, UploadSource([SourcePayload(source="vendor_a", format_tag="csv", body=CSV)]), settings)
    start, end = default_window(90, utc(2024, 4, 1))

    compute_compliance(db, window_start=start, window_end=end, params=settings.scoring)
    db.rollback()

    assert len(db.execute(select(ComplianceScore)).scalars().all()) == 2