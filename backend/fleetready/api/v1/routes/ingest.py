import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from fleetready.api.v1.schemas.operations import IngestResult, UploadIn
from fleetready.core.config import Settings
from fleetready.core.deps import get_db, get_settings, require_token
from fleetready.core.errors import PersistenceError
from fleetready.core.security import Principal
from fleetready.jobs.ingest.job import run_ingest_job
from fleetready.jobs.ingest.sources.upload import UploadSource
from fleetready.jobs.ingest.types import SourcePayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/ingest", tags=["ingest"])


@router.post("/upload", response_model=IngestResult)
def upload(
    body: UploadIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    principal: Principal = Depends(require_token),
):
    payload = SourcePayload(
        source=body.feed,
        format_tag=body.format,
        body=body.body,
        origin=f"upload:{principal.subject}",
        records_path=body.records_path,
    )
    try:
        result = run_ingest_job(
            db,
            UploadSource([payload]),
            settings,
            job_meta={"feed": body.feed, "format": body.format, "by": principal.subject},
        )
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if result["payloads_failed"]:
        raise HTTPException(status_code=400, detail=f"body is not valid {body.format}")
    return IngestResult(**{k: result[k] for k in IngestResult.model_fields})
