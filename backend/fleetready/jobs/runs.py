import logging
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleetready.core.errors import PersistenceError
from fleetready.core.types import utcnow
from fleetready.models.job_runs import JobRun

logger = logging.getLogger(__name__)


def start_job(db: Session, job_name: str, meta: dict, run_id: Optional[uuid.UUID] = None) -> uuid.UUID:
    run_id = run_id or uuid.uuid4()
    try:
        jr = JobRun(run_id=run_id, job_name=job_name, status="running", meta=meta, started_at=utcnow())
        db.add(jr)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"{job_name} run {run_id} not recorded: {e}") from e
    return run_id


def finish_job(db: Session, run_id: uuid.UUID, status: str, meta_updates: dict) -> None:
    try:
        jr = db.get(JobRun, run_id)
        jr.status = status
        jr.ended_at = utcnow()
        jr.meta = {**(jr.meta or {}), **meta_updates}
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"job run {run_id} not updated: {e}") from e


def fail_job(db: Session, run_id: uuid.UUID, error: BaseException) -> None:
    """
    Roll back the failed work and mark the run failed. If the store cannot take
    the failure either, that is logged and the caller re-raises its own error.
    """
    try:
        db.rollback()
        finish_job(db, run_id, "fail", {"error": repr(error)})
    except (SQLAlchemyError, PersistenceError) as e:
        logger.error("Could not mark job run %s failed (%r): %s", run_id, error, e)
