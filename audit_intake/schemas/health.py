"""Health check response."""

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Liveness plus the state the upload path depends on."""

    status: Literal["ok"] = "ok"
    environment: str
    database: Literal["connected", "disconnected"]
    catalog_size: int = Field(..., ge=0, description="Vulnerability names loaded for title matching.")
    match_policy: Literal["exact", "lenient"]
