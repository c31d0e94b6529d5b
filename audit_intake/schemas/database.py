"""Schemas for the database initialization endpoint."""

from pydantic import BaseModel, Field


class DatabaseInitResponse(BaseModel):
    """What the initializer did for the requested database."""

    database: str
    ok: bool
    database_created: bool = False
    tables_created: list[str] = Field(default_factory=list)
    seeded: int = Field(default=0, ge=0, description="Catalog rows inserted by this call.")
    message: str
