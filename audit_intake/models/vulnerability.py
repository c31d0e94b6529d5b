"""ORM model for persisted audit findings."""

from sqlalchemy import Column, DateTime, Integer, String, Text, func

from audit_intake.models.base import Base


class Vulnerability(Base):
    """
    One finding per row, imported from uploaded spreadsheets.

    vul_title always holds a catalog title (see IssueMaster). Rows are never updated or
    deleted by the importer; deleted_on exists for other tooling.
    """

    __tablename__ = "vulnerabilities"

    vul_id = Column(Integer, primary_key=True, autoincrement=True)
    app_id = Column(Integer, nullable=False, index=True)
    vul_title = Column(String(100), nullable=False, index=True)
    affected_url = Column(Text, nullable=True)
    risk_rating = Column(String(50), nullable=True)
    affected_parameters = Column(Text, nullable=True)
    description = Column(Text, nullable=False)
    impact = Column(Text, nullable=True)
    recommendation = Column(Text, nullable=True)
    reference = Column(Text, nullable=True)
    status = Column(String(50), nullable=False, default="Open", server_default="Open")
    created_on = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_on = Column(DateTime(timezone=True), nullable=True)
    deleted_on = Column(DateTime(timezone=True), nullable=True)
