"""Create issue_master catalog and vulnerabilities findings tables.

Revision ID: 20261019000000
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "20261019000000"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "issue_master",
        sa.Column("issue_master_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("issue_master_key", sa.String(length=30), nullable=True),
        sa.Column("issue_title", sa.String(length=300), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("impact", sa.Text(), nullable=True),
        sa.Column("recommendation", sa.Text(), nullable=True),
        sa.Column("owasp_ref_no", sa.Text(), nullable=True),
        sa.Column("cwe_cve_ref_no", sa.String(length=255), nullable=True),
        sa.Column("appl_type", sa.Integer(), nullable=False, server_default=sa.text("-1")),
        sa.Column(
            "audit_methodology_type", sa.Integer(), nullable=False, server_default=sa.text("200")
        ),
        sa.Column("created_by_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_on",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "is_updated",
            sa.Enum("1", "0", name="issue_is_updated"),
            nullable=True,
            server_default="0",
        ),
        sa.Column(
            "updated_by_user",
            sa.Enum("yes", "no", name="issue_updated_by_user"),
            nullable=True,
            server_default="no",
        ),
        sa.Column("deleted_on", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("issue_master_id"),
        sa.UniqueConstraint("issue_title", name=op.f("uq_issue_master_issue_title")),
    )
    op.create_table(
        "vulnerabilities",
        sa.Column("vul_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("app_id", sa.Integer(), nullable=False),
        sa.Column("vul_title", sa.String(length=100), nullable=False),
        sa.Column("affected_url", sa.Text(), nullable=True),
        sa.Column("risk_rating", sa.String(length=50), nullable=True),
        sa.Column("affected_parameters", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("impact", sa.Text(), nullable=True),
        sa.Column("recommendation", sa.Text(), nullable=True),
        sa.Column("reference", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="Open"),
        sa.Column(
            "created_on",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_on", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("vul_id"),
    )
    op.create_index(op.f("ix_vulnerabilities_app_id"), "vulnerabilities", ["app_id"], unique=False)
    op.create_index(
        op.f("ix_vulnerabilities_vul_title"), "vulnerabilities", ["vul_title"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_vulnerabilities_vul_title"), table_name="vulnerabilities")
    op.drop_index(op.f("ix_vulnerabilities_app_id"), table_name="vulnerabilities")
    op.drop_table("vulnerabilities")
    op.drop_table("issue_master")
    sa.Enum(name="issue_updated_by_user").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="issue_is_updated").drop(op.get_bind(), checkfirst=True)
