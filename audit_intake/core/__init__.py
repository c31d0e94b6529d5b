"""Core app configuration and database."""

from audit_intake.core.config import get_settings, settings
from audit_intake.core.database import DatabaseManager, get_db, get_engine

__all__ = ["DatabaseManager", "get_settings", "settings", "get_db", "get_engine"]
