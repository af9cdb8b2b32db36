import os

# must be set before fleetready.core.db builds its module-level engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("FLEET_LOG_LEVEL", "WARNING")

from dataclasses import replace
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fleetready.core.config import load_settings
from fleetready.core.db import init_db
from fleetready.core.deps import get_db, get_settings, get_token_validator
from fleetready.core.security import StaticTokenValidator
from fleetready.jobs.ingest.types import CanonicalRecord

API_TOKEN = "test-token"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return replace(
        load_settings(),
        database_url="sqlite://",
        vendor_timezone="UTC",
        dedup_tolerance_hours=48.0,
        normalize_workers=2,
        score_window_days=90,
        score_after_ingest=False,
    )


@pytest.fixture
def client(session_factory, settings):
    from fleetready.main import app

    def _db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_token_validator] = lambda: StaticTokenValidator([f"ops:{API_TOKEN}"])
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth():
    return {"Authorization": f"Bearer {API_TOKEN}"}


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def canonical(
    *,
    source="vendor_a",
    ship_id="DDG-51",
    event_type="engine_overhaul",
    occurred_at=None,
    seq=1,
    key=None,
    **fields,
) -> CanonicalRecord:
    """A stored canonical record, for merge-engine tests."""
    rec = CanonicalRecord(
        source=source,
        ship_id=ship_id,
        event_type=event_type,
        occurred_at=occurred_at or utc(2024, 3, 1, 12),
        **fields,
    )
    return rec.stored(record_key=key or f"rk-{seq:04d}", ingest_seq=seq, standalone=rec.standalone)
