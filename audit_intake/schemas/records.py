"""Typed per-table records that validated spreadsheet rows are mapped into before persistence."""

from datetime import datetime
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, field_validator

from audit_intake.services.cells import coerce_reference

# Bounds of a database INTEGER column
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


class FindingRecord(BaseModel):
    """A validated, defaulted row destined for the vulnerabilities table."""

    model_config = {"extra": "ignore"}

    table_name: ClassVar[str] = "vulnerabilities"
    kind: Literal["finding"] = "finding"

    app_id: int = Field(
        ...,
        ge=INT32_MIN,
        le=INT32_MAX,
        description="Application / asset the finding belongs to.",
    )
    vul_title: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Catalog title of the vulnerability.",
    )
    affected_url: str | None = None
    risk_rating: str | None = Field(default=None, max_length=50)
    affected_parameters: str | None = None
    description: str = Field(..., min_length=1)
    impact: str | None = None
    recommendation: str | None = None
    reference: str | None = Field(
        default=None,
        description="Free-text reference; hyperlinks are stored as their URL.",
    )
    status: str = Field(default="Open", min_length=1, max_length=50)
    created_on: datetime

    @field_validator("reference", mode="before")
    @classmethod
    def reference_to_text(cls, v: object) -> str | None:
        return coerce_reference(v)

    def to_row(self) -> dict[str, object]:
        """Column -> value mapping for inserts and exports (no tag)."""
        return self.model_dump(exclude={"kind"})


class IssueRecord(BaseModel):
    """A validated, defaulted row destined for the issue_master catalog table."""

    model_config = {"extra": "ignore"}

    table_name: ClassVar[str] = "issue_master"
    kind: Literal["issue"] = "issue"

    issue_master_key: str | None = Field(default=None, max_length=30)
    issue_title: str = Field(..., min_length=1, max_length=300)
    description: str = Field(..., min_length=1)
    impact: str | None = None
    recommendation: str | None = None
    owasp_ref_no: str | None = None
    cwe_cve_ref_no: str | None = Field(default=None, max_length=255)
    appl_type: int = Field(default=-1, ge=INT32_MIN, le=INT32_MAX)
    audit_methodology_type: int = Field(default=200, ge=INT32_MIN, le=INT32_MAX)
    created_by_id: int = Field(..., ge=INT32_MIN, le=INT32_MAX)
    created_on: datetime

    def to_row(self) -> dict[str, object]:
        return self.model_dump(exclude={"kind"})


ImportRecord = FindingRecord | IssueRecord
