import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from fleetready.core.config import Settings
from fleetready.jobs.compliance.compute_compliance import compute_compliance, default_window
from fleetready.jobs.ingest.sources.base import BaseSource
from fleetready.jobs.runs import fail_job, finish_job, start_job

logger = logging.getLogger(__name__)


def run_ingest_job(
    db: Session,
    source: BaseSource,
    settings: Settings,
    *,
    now: Optional[datetime] = None,
    job_meta: Optional[dict] = None,
    **fetch_kwargs,
) -> dict:
    """
    One tracked ingest batch: job_runs row, atomic ingest, then (after the merge
    has committed) rescoring of the ships the batch touched.
    """
    run_id = uuid.uuid4()
    start_job(db, f"ingest_{source.name}", {"args": job_meta or {}}, run_id=run_id)

    try:
        result = source.ingest(db=db, run_id=run_id, settings=settings, **fetch_kwargs)
    except Exception as e:
        fail_job(db, run_id, e)
        raise

    result["run_id"] = str(run_id)
    finish_job(db, run_id, "success", result)
    logger.info("Ingest %s done run_id=%s result=%s", source.name, run_id, result)

    affected = result.get("affected_ships") or []
    if settings.score_after_ingest and affected:
        start, end = default_window(settings.score_window_days, now or datetime.now(timezone.utc))
        try:
            scoring = compute_compliance(
                db,
                window_start=start,
                window_end=end,
                params=settings.scoring,
                ship_ids=affected,
            )
        except Exception as e:
            # the batch itself is already committed
            logger.exception("Rescoring after ingest run_id=%s failed", run_id)
            result["scoring"] = {"error": repr(e)}
        else:
            result["scoring"] = scoring.__dict__
    return result
