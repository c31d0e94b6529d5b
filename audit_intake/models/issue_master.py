"""ORM model for the issue catalog (controlled vocabulary of vulnerability names)."""

from sqlalchemy import Column, DateTime, Enum, Integer, String, Text, func, text

from audit_intake.models.base import Base


class IssueMaster(Base):
    """
    One catalog entry. issue_title is the name uploaded findings are matched against.

    Seeded once from the built-in list or a JSON file; read-only while findings are imported.
    """

    __tablename__ = "issue_master"

    issue_master_id = Column(Integer, primary_key=True, autoincrement=True)
    issue_master_key = Column(String(30), nullable=True)
    issue_title = Column(String(300), nullable=False, unique=True)
    description = Column(Text, nullable=False, default="")
    impact = Column(Text, nullable=True)
    recommendation = Column(Text, nullable=True)
    owasp_ref_no = Column(Text, nullable=True)
    cwe_cve_ref_no = Column(String(255), nullable=True)
    appl_type = Column(Integer, nullable=False, default=-1, server_default=text("-1"))
    audit_methodology_type = Column(
        Integer, nullable=False, default=200, server_default=text("200")
    )
    created_by_id = Column(Integer, nullable=False)
    created_on = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_on = Column(DateTime(timezone=True), nullable=True)
    is_updated = Column(
        Enum("1", "0", name="issue_is_updated"),
        nullable=True,
        default="0",
        server_default="0",
    )
    updated_by_user = Column(
        Enum("yes", "no", name="issue_updated_by_user"),
        nullable=True,
        default="no",
        server_default="no",
    )
    deleted_on = Column(DateTime(timezone=True), nullable=True)
