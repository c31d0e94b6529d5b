"""Shared request dependencies: catalog injection, templates and connection recovery."""

import logging
from pathlib import Path

from fastapi import Request
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import SQLAlchemyError

from audit_intake.core.database import DatabaseManager
from audit_intake.services.catalog import VulnerabilityCatalog, refresh_catalog

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def get_catalog(request: Request) -> VulnerabilityCatalog:
    """The catalog loaded at startup (or by the latest refresh)."""
    catalog = getattr(request.app.state, "catalog", None)
    if catalog is None:
        return VulnerabilityCatalog(())
    return catalog


def recover_connection(request: Request, manager: DatabaseManager) -> None:
    """Reset the pool after a connection failure and reload the catalog if the database is back."""
    manager.reconnect()
    try:
        request.app.state.catalog = refresh_catalog(manager)
    except SQLAlchemyError as e:
        logger.error("Catalog refresh after reconnect failed: %s", e)
