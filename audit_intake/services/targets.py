"""Import targets: the tables an upload can feed and the column rules for each."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel
from sqlalchemy import Table

from audit_intake.models import IssueMaster, Vulnerability
from audit_intake.schemas.records import FindingRecord, IssueRecord


@dataclass(frozen=True)
class ImportTarget:
    """Schema-driven description of one importable table."""

    name: str
    table: Table
    record_type: type[BaseModel]
    title_column: str
    required_columns: tuple[str, ...]
    # Columns filled by the database or by defaults; accepted in uploads but never bound on insert
    generated_columns: tuple[str, ...]
    template_filename: str
    # Findings must name a catalog entry; catalog uploads must introduce new names
    titles_from_catalog: bool
    sample_row: dict[str, Any] = field(default_factory=dict)
    column_widths: dict[str, int] = field(default_factory=dict)

    @property
    def columns(self) -> list[str]:
        """Declared column names in table order."""
        return [c.name for c in self.table.columns]

    @property
    def insert_columns(self) -> list[str]:
        return [c for c in self.columns if c not in self.generated_columns]

    @property
    def title_max_length(self) -> int:
        return self.table.c[self.title_column].type.length

    def width_for(self, column: str) -> int:
        return self.column_widths.get(column, 15)


FINDINGS = ImportTarget(
    name="vulnerabilities",
    table=Vulnerability.__table__,
    record_type=FindingRecord,
    title_column="vul_title",
    required_columns=("app_id", "vul_title", "description"),
    generated_columns=("vul_id", "updated_on", "deleted_on"),
    template_filename="template_vulnerabilities.xlsx",
    titles_from_catalog=True,
    sample_row={
        "vul_id": "Auto-generated",
        "app_id": 1,
        "vul_title": "Cross-Site Scripting (XSS)",
        "affected_url": "https://example.com/vulnerable-page",
        "risk_rating": "High",
        "affected_parameters": "search, id",
        "description": "Detailed description of the security issue",
        "impact": "Potential impact of the vulnerability",
        "recommendation": "Recommendations to fix the issue",
        "reference": "OWASP Top 10 - A3:2021",
        "status": "Open",
    },
    column_widths={
        "vul_id": 10,
        "app_id": 10,
        "vul_title": 40,
        "affected_url": 50,
        "affected_parameters": 30,
        "description": 50,
        "impact": 30,
        "recommendation": 30,
        "reference": 30,
    },
)

ISSUES = ImportTarget(
    name="issue_master",
    table=IssueMaster.__table__,
    record_type=IssueRecord,
    title_column="issue_title",
    required_columns=("issue_title", "description"),
    generated_columns=(
        "issue_master_id",
        "updated_on",
        "is_updated",
        "updated_by_user",
        "deleted_on",
    ),
    template_filename="template_issue_master.xlsx",
    titles_from_catalog=False,
    sample_row={
        "issue_master_id": "Auto-generated",
        "issue_master_key": "TEST-001",
        "issue_title": "Cross-Site Scripting Vulnerability",
        "description": "Application does not properly sanitize user input before rendering it in HTML responses.",
        "impact": "Attackers could inject malicious scripts to steal user data or perform actions on behalf of victims.",
        "recommendation": "Implement input validation and output encoding to prevent XSS attacks.",
        "owasp_ref_no": "A7:2021",
        "cwe_cve_ref_no": "CWE-79",
        "appl_type": 1,
        "audit_methodology_type": 200,
        "created_by_id": 1,
    },
    column_widths={
        "issue_master_key": 15,
        "issue_title": 40,
        "description": 50,
        "impact": 40,
        "recommendation": 40,
        "owasp_ref_no": 20,
        "cwe_cve_ref_no": 20,
    },
)

TARGETS: dict[str, ImportTarget] = {t.name: t for t in (FINDINGS, ISSUES)}


def get_target(name: str | None) -> ImportTarget:
    """Resolve a target by table name; blank means findings. Raises KeyError when unknown."""
    if not name or not name.strip():
        return FINDINGS
    return TARGETS[name.strip().lower()]
