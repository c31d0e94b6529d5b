"""Pydantic request/response schemas."""

from audit_intake.schemas.database import DatabaseInitResponse
from audit_intake.schemas.health import HealthResponse
from audit_intake.schemas.records import FindingRecord, ImportRecord, IssueRecord
from audit_intake.schemas.upload import ColumnCheck, RowError, UploadRow

__all__ = [
    "ColumnCheck",
    "DatabaseInitResponse",
    "FindingRecord",
    "HealthResponse",
    "ImportRecord",
    "IssueRecord",
    "RowError",
    "UploadRow",
]
