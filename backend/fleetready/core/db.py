import logging

from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from fleetready.core.config import load_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


engine = create_engine(load_settings().database_url, pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def dialect_insert(db: Session, model):
    """
    INSERT construct with ON CONFLICT support for the session's backend
    (PostgreSQL in production, SQLite in tests).
    """
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert(model)
    if name == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Unsupported database dialect for upserts: {name}")


def import_models() -> None:
    # Registers every table on Base.metadata
    from fleetready.models import (  # noqa: F401
        compliance_scores,
        job_runs,
        maintenance_events,
        part_dependencies,
        quarantine,
        ships,
        vendor_records,
    )


def init_db(bind: Engine | None = None) -> None:
    import_models()
    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info("Schema ensured on %s", target.url.render_as_string(hide_password=True))


if __name__ == "__main__":
    from fleetready.core.log import configure_logging_if_needed

    configure_logging_if_needed(load_settings().log_level)
    init_db()
