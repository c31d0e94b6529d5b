"""FastAPI application entrypoint. Wiring, middleware and startup initialization only."""

from dotenv import load_dotenv

load_dotenv()

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from audit_intake.api.routes import router
from audit_intake.core.config import settings
from audit_intake.core.database import db_manager
from audit_intake.core.log import configure_logging
from audit_intake.services.catalog import VulnerabilityCatalog, refresh_catalog
from audit_intake.services.initializer import initialize_database

configure_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Prepare the uploads directory, the schema and the catalog before serving."""
    Path(settings.UPLOADS_DIR).mkdir(parents=True, exist_ok=True)
    result = await run_in_threadpool(
        initialize_database,
        settings.DATABASE_URL,
        seed_file=settings.CATALOG_SEED_FILE,
        created_by_id=settings.DEFAULT_CREATED_BY_ID,
        engine=db_manager.engine,
    )
    if not result.ok:
        logger.error("Database initialization failed: %s", result.error)
    try:
        app.state.catalog = await run_in_threadpool(refresh_catalog, db_manager)
    except SQLAlchemyError as e:
        logger.error("Could not load the vulnerability catalog: %s", e)
        app.state.catalog = VulnerabilityCatalog(())
    logger.info("Serving with %s catalog entries", len(app.state.catalog))
    yield
    db_manager.engine.dispose()


app = FastAPI(
    title="Audit Intake",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)
app.state.catalog = VulnerabilityCatalog(())

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.APP_ENV == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
