"""SQLAlchemy ORM models."""

from audit_intake.models.base import Base
from audit_intake.models.issue_master import IssueMaster
from audit_intake.models.vulnerability import Vulnerability

__all__ = ["Base", "IssueMaster", "Vulnerability"]
