from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fleetready.api.v1.routes.compliance import router as compliance_router
from fleetready.api.v1.routes.compliance import write_router as compliance_write_router
from fleetready.api.v1.routes.fleet import router as fleet_router
from fleetready.api.v1.routes.health import router as health_router
from fleetready.api.v1.routes.ingest import router as ingest_router
from fleetready.api.v1.routes.parts import router as parts_router
from fleetready.api.v1.routes.quarantine import router as quarantine_router
from fleetready.api.v1.routes.status import router as status_router
from fleetready.core.config import load_settings
from fleetready.core.log import configure_logging_if_needed

configure_logging_if_needed(load_settings().log_level)

app = FastAPI(title="FleetReady API")

# Dev-friendly CORS policy: allow all origins/methods/headers so dashboards can call the API directly.
# Tighten this for production.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, prefix="/v1")

# read endpoints are served under /v1 and, unversioned, at the root
for read_router in (status_router, compliance_router, fleet_router):
    app.include_router(read_router, prefix="/v1")
    app.include_router(read_router, include_in_schema=False)

app.include_router(compliance_write_router)
app.include_router(parts_router)
app.include_router(quarantine_router)
app.include_router(ingest_router)
