"""Health check endpoint with database connectivity and catalog size."""

from typing import Annotated

from fastapi import APIRouter, Depends

from audit_intake.api.deps import get_catalog
from audit_intake.core.config import Settings, get_settings
from audit_intake.core.database import DatabaseManager, get_db_manager
from audit_intake.schemas.health import HealthResponse
from audit_intake.services.catalog import VulnerabilityCatalog

router = APIRouter()


@router.get("", response_model=HealthResponse)
def get_health(
    manager: Annotated[DatabaseManager, Depends(get_db_manager)],
    catalog: Annotated[VulnerabilityCatalog, Depends(get_catalog)],
    cfg: Annotated[Settings, Depends(get_settings)],
) -> HealthResponse:
    """
    Return service health status and database connectivity.
    Used by load balancers and monitoring.
    """
    db_status = "connected" if manager.check_connected() else "disconnected"

    return HealthResponse(
        status="ok",
        environment=cfg.APP_ENV,
        database=db_status,
        catalog_size=len(catalog),
        match_policy=cfg.TITLE_MATCH_POLICY,
    )
