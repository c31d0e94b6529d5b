"""Column and row validation for uploaded spreadsheets."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy import DateTime, Integer, inspect
from sqlalchemy.engine import Engine

from audit_intake.schemas.records import ImportRecord
from audit_intake.schemas.upload import ColumnCheck, RowError, UploadRow
from audit_intake.services.catalog import MatchPolicy, VulnerabilityCatalog, title_key
from audit_intake.services.cells import cell_to_datetime, cell_to_text, is_blank
from audit_intake.services.targets import ImportTarget

logger = logging.getLogger(__name__)


@dataclass
class RowValidationResult:
    """Valid rows as typed records (defaults applied) and every rejected row with its errors."""

    valid: list[ImportRecord] = field(default_factory=list)
    invalid: list[RowError] = field(default_factory=list)


def live_columns(engine: Engine, table_name: str) -> list[str]:
    """Column names of the table as it exists in the database, in table order."""
    return [col["name"] for col in inspect(engine).get_columns(table_name)]


def check_columns(
    uploaded: Sequence[str],
    table_columns: Sequence[str],
    required: Sequence[str],
) -> ColumnCheck:
    """Uploaded columns unknown to the table, and required columns the upload lacks."""
    known = set(table_columns)
    present = set(uploaded)
    return ColumnCheck(
        invalid_columns=[c for c in uploaded if c not in known],
        missing_columns=[c for c in required if c not in present],
    )


def _format_validation_error(err: dict[str, Any]) -> str:
    loc = ".".join(str(part) for part in err.get("loc", ()))
    return f"{loc}: {err.get('msg', 'invalid value')}" if loc else str(err.get("msg"))


def _record_payload(target: ImportTarget, data: dict[str, Any]) -> dict[str, Any]:
    """Convert raw cells to column-typed values; blanks are dropped so record defaults apply."""
    payload: dict[str, Any] = {}
    for name in target.insert_columns:
        raw = data.get(name)
        if is_blank(raw):
            continue
        column_type = target.table.c[name].type
        if isinstance(column_type, DateTime):
            value = cell_to_datetime(raw)
        elif isinstance(column_type, Integer):
            value = raw.strip() if isinstance(raw, str) else raw
        else:
            value = cell_to_text(raw)
        if value is not None:
            payload[name] = value
    return payload


def validate_rows(
    rows: Sequence[UploadRow],
    target: ImportTarget,
    catalog: VulnerabilityCatalog,
    *,
    policy: MatchPolicy = "lenient",
    default_app_id: int = 1,
    created_by_id: int = 1,
    now: datetime | None = None,
) -> RowValidationResult:
    """
    Partition rows into valid records and rejected rows.

    Every row needs a title and a description, and the title must fit the column.
    Finding titles must match a catalog entry under `policy` and are stored with the
    catalog's spelling; catalog titles must be new (not in the catalog nor repeated in
    the file). Valid rows get defaults: status "Open", app_id, created_by_id, created_on.
    """
    now = now or datetime.now(UTC)
    title_col = target.title_column
    limit = target.title_max_length
    result = RowValidationResult()
    seen_titles: dict[str, int] = {}

    for row in rows:
        errors: list[str] = []
        title = cell_to_text(row.data.get(title_col))
        if not title:
            errors.append(f"Missing {title_col}")
        if not cell_to_text(row.data.get("description")):
            errors.append("Missing description")

        if title and len(title) > limit:
            errors.append(f"{title_col} exceeds {limit} character limit")
        elif title and target.titles_from_catalog:
            canonical = catalog.match(title, policy)
            if canonical is None:
                errors.append(
                    f"{title_col} must match one of the predefined vulnerabilities "
                    f"({policy} match)"
                )
            else:
                title = canonical
        elif title:
            if catalog.has_title_like(title):
                errors.append(f"{title_col} already exists in the catalog")
            elif title_key(title) in seen_titles:
                errors.append(
                    f"{title_col} is repeated in this file (first on row {seen_titles[title_key(title)]})"
                )

        if errors:
            result.invalid.append(RowError(row_number=row.row_number, data=row.data, errors=errors))
            continue

        payload = _record_payload(target, row.data)
        payload[title_col] = title
        payload.setdefault("created_on", now)
        fields = target.record_type.model_fields
        if "app_id" in fields:
            payload.setdefault("app_id", default_app_id)
        if "created_by_id" in fields:
            payload.setdefault("created_by_id", created_by_id)

        try:
            record = target.record_type.model_validate(payload)
        except ValidationError as e:
            result.invalid.append(
                RowError(
                    row_number=row.row_number,
                    data=row.data,
                    errors=[_format_validation_error(err) for err in e.errors()],
                )
            )
            continue
        if not target.titles_from_catalog:
            seen_titles[title_key(title)] = row.row_number
        result.valid.append(record)

    logger.info(
        "Validated %s rows for %s: %s valid, %s rejected",
        len(rows),
        target.name,
        len(result.valid),
        len(result.invalid),
    )
    return result
