"""HTTP routes."""

from fastapi import APIRouter

from audit_intake.api.routes import database, file, health, pages

router = APIRouter()
router.include_router(pages.router, tags=["pages"])
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(file.router, prefix="/file", tags=["file"])
router.include_router(database.router, prefix="/api/db", tags=["database"])
