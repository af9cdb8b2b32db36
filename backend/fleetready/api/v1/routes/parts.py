from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from fleetready.api.v1.schemas.operations import DependencyIn, DependencyNode, DependencyTrace
from fleetready.core.deps import get_db, require_token
from fleetready.core.errors import DependencyCycleError
from fleetready.core.security import Principal
from fleetready.parts.dependencies import (
    add_dependency,
    normalize_part,
    trace_dependencies,
    trace_dependents,
)

router = APIRouter(prefix="/v1/parts", tags=["parts"])


@router.get("/{part_number}/dependencies", response_model=DependencyTrace)
def get_dependencies(
    part_number: str,
    max_depth: int | None = Query(None, ge=1, le=50),
    db: Session = Depends(get_db),
):
    return DependencyTrace(
        part_number=normalize_part(part_number),
        dependencies=[DependencyNode(**d) for d in trace_dependencies(db, part_number, max_depth=max_depth)],
        dependents=trace_dependents(db, part_number),
    )


@router.post("/dependencies", status_code=201)
def post_dependency(
    body: DependencyIn,
    db: Session = Depends(get_db),
    _principal: Principal = Depends(require_token),
):
    try:
        dep = add_dependency(db, body.part_number, body.depends_on)
        db.commit()
    except DependencyCycleError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail={"message": str(e), "path": list(e.path)})
    return {"part_number": dep.part_number, "depends_on": dep.depends_on}
