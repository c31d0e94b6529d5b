"""Database bootstrap endpoint: create a database by name and seed its catalog."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.engine import make_url

from audit_intake.core.config import Settings, get_settings
from audit_intake.core.database import DatabaseManager, get_db_manager
from audit_intake.schemas.database import DatabaseInitResponse
from audit_intake.services.catalog import refresh_catalog
from audit_intake.services.initializer import initialize_database, validate_database_name

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/exists/{db_name}", response_model=DatabaseInitResponse)
def ensure_database(
    db_name: str,
    request: Request,
    manager: Annotated[DatabaseManager, Depends(get_db_manager)],
    cfg: Annotated[Settings, Depends(get_settings)],
) -> DatabaseInitResponse:
    """
    Make sure the named database exists with both tables and a seeded catalog.

    Uses the configured server and credentials; only the database name changes.
    Calling it again for a populated database changes nothing.
    """
    try:
        validate_database_name(db_name)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    is_app_database = make_url(cfg.DATABASE_URL).database == db_name
    result = initialize_database(
        cfg.DATABASE_URL,
        database=db_name,
        seed_file=cfg.CATALOG_SEED_FILE,
        created_by_id=cfg.DEFAULT_CREATED_BY_ID,
        engine=manager.engine if is_app_database else None,
    )
    if not result.ok:
        raise HTTPException(
            status_code=500,
            detail=f"Internal server error: {result.error}",
        )

    if result.database_created:
        message = f"Database '{db_name}' created and populated."
    elif result.seeded:
        message = f"Database '{db_name}' already exists. Catalog seeded."
    else:
        message = f"Database '{db_name}' already exists. Nothing to do."
    logger.info("%s", message)

    if is_app_database and result.seeded:
        request.app.state.catalog = refresh_catalog(manager)

    return DatabaseInitResponse(
        database=db_name,
        ok=True,
        database_created=result.database_created,
        tables_created=result.tables_created,
        seeded=result.seeded,
        message=message,
    )
