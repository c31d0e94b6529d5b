"""Schemas for spreadsheet uploads: ingested rows, row-level errors and column checks."""

from typing import Any

from pydantic import BaseModel, Field


class UploadRow(BaseModel):
    """One spreadsheet data row keyed by header text; discarded after the request."""

    row_number: int = Field(..., ge=2, description="1-based sheet row (row 1 is the header).")
    data: dict[str, Any] = Field(default_factory=dict)


class RowError(BaseModel):
    """A rejected row with the reasons it was rejected."""

    row_number: int = Field(..., ge=2)
    data: dict[str, Any] = Field(default_factory=dict)
    errors: list[str] = Field(..., min_length=1)


class ColumnCheck(BaseModel):
    """Result of comparing uploaded columns with the live table schema."""

    invalid_columns: list[str] = Field(
        default_factory=list,
        description="Uploaded columns that do not exist in the table.",
    )
    missing_columns: list[str] = Field(
        default_factory=list,
        description="Required columns absent from the upload.",
    )

    @property
    def ok(self) -> bool:
        return not self.invalid_columns and not self.missing_columns

    def message(self) -> str:
        parts: list[str] = []
        if self.invalid_columns:
            parts.append(f"Invalid columns found: {', '.join(self.invalid_columns)}.")
        if self.missing_columns:
            parts.append(f"Missing required columns: {', '.join(self.missing_columns)}.")
        return " ".join(parts)
