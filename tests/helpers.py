"""Shared fixtures: in-memory database, seeded catalog and workbook builders."""

import io
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from audit_intake.models import Base
from audit_intake.services.catalog import DEFAULT_VULNERABILITIES, VulnerabilityCatalog
from audit_intake.services.initializer import load_seed_entries, seed_catalog


def make_engine(create_tables: bool = True) -> Engine:
    """One shared in-memory SQLite connection so every session sees the same data."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    if create_tables:
        Base.metadata.create_all(engine)
    return engine


def make_seeded_engine() -> Engine:
    engine = make_engine()
    seed_catalog(engine, load_seed_entries(None), created_by_id=1)
    return engine


def make_session(engine: Engine) -> Session:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def default_catalog() -> VulnerabilityCatalog:
    return VulnerabilityCatalog(DEFAULT_VULNERABILITIES)


def build_workbook(header: Sequence[str], rows: Sequence[Sequence[Any]]) -> Workbook:
    workbook = Workbook()
    ws = workbook.active
    ws.append(list(header))
    for row in rows:
        ws.append(list(row))
    return workbook


def save_workbook(path: Path, header: Sequence[str], rows: Sequence[Sequence[Any]]) -> Path:
    build_workbook(header, rows).save(path)
    return path


def workbook_bytes(header: Sequence[str], rows: Sequence[Sequence[Any]]) -> bytes:
    buffer = io.BytesIO()
    build_workbook(header, rows).save(buffer)
    return buffer.getvalue()
