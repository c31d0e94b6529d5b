"""Startup initialization: create the database and tables, seed the issue catalog when empty."""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, func, inspect, insert, select, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from audit_intake.models import Base, IssueMaster
from audit_intake.services.catalog import DEFAULT_VULNERABILITIES

logger = logging.getLogger(__name__)

DATABASE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

_SEED_FIELDS = (
    "issue_master_key",
    "description",
    "impact",
    "recommendation",
    "owasp_ref_no",
    "cwe_cve_ref_no",
    "appl_type",
    "audit_methodology_type",
)

# Used only when metadata.create_all fails (PostgreSQL dialect).
_FALLBACK_DDL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS issue_master (
        issue_master_id SERIAL PRIMARY KEY,
        issue_master_key VARCHAR(30),
        issue_title VARCHAR(300) NOT NULL UNIQUE,
        description TEXT NOT NULL DEFAULT '',
        impact TEXT,
        recommendation TEXT,
        owasp_ref_no TEXT,
        cwe_cve_ref_no VARCHAR(255),
        appl_type INTEGER NOT NULL DEFAULT -1,
        audit_methodology_type INTEGER NOT NULL DEFAULT 200,
        created_by_id INTEGER NOT NULL,
        created_on TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
        updated_on TIMESTAMP WITH TIME ZONE,
        is_updated VARCHAR(1) DEFAULT '0' CHECK (is_updated IN ('1', '0')),
        updated_by_user VARCHAR(3) DEFAULT 'no' CHECK (updated_by_user IN ('yes', 'no')),
        deleted_on TIMESTAMP WITH TIME ZONE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vulnerabilities (
        vul_id SERIAL PRIMARY KEY,
        app_id INTEGER NOT NULL,
        vul_title VARCHAR(100) NOT NULL,
        affected_url TEXT,
        risk_rating VARCHAR(50),
        affected_parameters TEXT,
        description TEXT NOT NULL,
        impact TEXT,
        recommendation TEXT,
        reference TEXT,
        status VARCHAR(50) NOT NULL DEFAULT 'Open',
        created_on TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
        updated_on TIMESTAMP WITH TIME ZONE,
        deleted_on TIMESTAMP WITH TIME ZONE
    )
    """,
)


class InitializationError(Exception):
    """Raised when the database, tables or catalog seed cannot be prepared."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


@dataclass
class InitResult:
    """Outcome of one initialization run; ok is False when any step failed."""

    database: str
    ok: bool = True
    database_created: bool = False
    tables_created: list[str] = field(default_factory=list)
    seeded: int = 0
    error: str | None = None


def validate_database_name(name: str) -> str:
    """Return the name when it is a plain identifier; raise ValueError otherwise."""
    if not name or not DATABASE_NAME_PATTERN.fullmatch(name):
        raise ValueError(
            "Database name must start with a letter or underscore and contain only "
            "letters, digits and underscores (max 63 characters)."
        )
    return name


def url_for_database(url: str | URL, database: str | None) -> URL:
    """Swap the database component of url; None keeps the configured one."""
    parsed = make_url(url) if isinstance(url, str) else url
    if database is None or parsed.get_backend_name() == "sqlite":
        return parsed
    return parsed.set(database=validate_database_name(database))


def database_exists(url: URL) -> bool:
    """Check the server catalog for the database named in url (always True for SQLite)."""
    if url.get_backend_name() == "sqlite":
        return True
    maintenance = create_engine(url.set(database="postgres"), poolclass=NullPool)
    try:
        with maintenance.connect() as conn:
            found = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": url.database},
            ).first()
        return found is not None
    finally:
        maintenance.dispose()


def create_database(url: URL) -> bool:
    """Create the database named in url if it is absent. Returns True when created."""
    if url.get_backend_name() == "sqlite" or database_exists(url):
        return False
    name = validate_database_name(url.database or "")
    maintenance = create_engine(
        url.set(database="postgres"),
        poolclass=NullPool,
        isolation_level="AUTOCOMMIT",
    )
    try:
        with maintenance.connect() as conn:
            conn.execute(text(f'CREATE DATABASE "{name}"'))
    finally:
        maintenance.dispose()
    logger.info("Database %s created", name)
    return True


def ensure_tables(engine: Engine) -> list[str]:
    """
    Create missing tables from the ORM metadata; fall back to raw DDL when that fails.
    Returns the names of tables that did not exist before the call.
    """
    wanted = list(Base.metadata.tables)
    existing = set(inspect(engine).get_table_names())
    missing = [name for name in wanted if name not in existing]
    if not missing:
        return []
    try:
        Base.metadata.create_all(engine)
    except SQLAlchemyError as e:
        logger.warning("ORM table sync failed (%s); creating tables with raw SQL", e)
        with engine.begin() as conn:
            for ddl in _FALLBACK_DDL:
                conn.execute(text(ddl))
    logger.info("Tables created: %s", ", ".join(missing))
    return missing


def load_seed_entries(seed_file: str | Path | None) -> list[dict[str, Any]]:
    """
    Catalog seed rows: the JSON file when given (array of titles or of objects with
    "issue_title"/"title"), otherwise the built-in vulnerability list.
    """
    if seed_file is None:
        return [{"issue_title": title} for title in DEFAULT_VULNERABILITIES]
    path = Path(seed_file)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InitializationError(f"Cannot read catalog seed file {path}: {e!s}", e) from e
    if not isinstance(data, list):
        raise InitializationError(f"Catalog seed file {path} must contain a JSON array.")

    entries: list[dict[str, Any]] = []
    for i, item in enumerate(data):
        if isinstance(item, str):
            entry = {"issue_title": item}
        elif isinstance(item, dict):
            title = item.get("issue_title") or item.get("title")
            entry = {"issue_title": title}
            entry.update({k: item[k] for k in _SEED_FIELDS if item.get(k) is not None})
        else:
            raise InitializationError(
                f"Catalog seed entry at index {i} must be a string or an object."
            )
        if not isinstance(entry["issue_title"], str) or not entry["issue_title"].strip():
            raise InitializationError(f"Catalog seed entry at index {i} has no title.")
        entry["issue_title"] = entry["issue_title"].strip()
        entries.append(entry)
    return entries


def seed_catalog(
    engine: Engine,
    entries: list[dict[str, Any]],
    created_by_id: int,
) -> int:
    """
    Insert entries into issue_master when it is empty, in one transaction.
    Returns the number of rows inserted (0 when the catalog is already populated).
    """
    rows = [
        {
            "issue_master_key": None,
            "description": "",
            "impact": None,
            "recommendation": None,
            "owasp_ref_no": None,
            "cwe_cve_ref_no": None,
            "appl_type": -1,
            "audit_methodology_type": 200,
            **entry,
            "created_by_id": created_by_id,
        }
        for entry in entries
    ]
    try:
        with engine.begin() as conn:
            count = conn.execute(select(func.count()).select_from(IssueMaster)).scalar_one()
            if count > 0:
                logger.info("Catalog already contains %s entries; skipping seed", count)
                return 0
            if rows:
                conn.execute(insert(IssueMaster), rows)
    except SQLAlchemyError as e:
        logger.error("Catalog seed rolled back: %s", e)
        raise
    logger.info("Seeded catalog with %s entries", len(rows))
    return len(rows)


def initialize_database(
    url: str | URL,
    *,
    database: str | None = None,
    seed_file: str | Path | None = None,
    created_by_id: int = 1,
    engine: Engine | None = None,
) -> InitResult:
    """
    Make sure the database and both tables exist and the catalog is seeded.

    Safe to call on every startup. Failures are logged and reported in the result
    rather than raised, so the caller decides whether to keep running.
    """
    target_url = url_for_database(url, database)
    result = InitResult(database=target_url.database or "")
    own_engine = engine is None
    try:
        result.database_created = create_database(target_url)
        if engine is None:
            # in-memory SQLite lives only as long as its connection
            pool_kwargs = {} if target_url.get_backend_name() == "sqlite" else {"poolclass": NullPool}
            engine = create_engine(target_url, **pool_kwargs)
        result.tables_created = ensure_tables(engine)
        result.seeded = seed_catalog(engine, load_seed_entries(seed_file), created_by_id)
    except (SQLAlchemyError, InitializationError, ValueError) as e:
        result.ok = False
        result.error = getattr(e, "message", None) or str(e)
        logger.exception("Database initialization failed for %s", result.database)
    finally:
        if own_engine and engine is not None:
            engine.dispose()
    return result
