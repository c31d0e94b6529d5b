"""All-or-nothing batched inserts of validated records."""

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit_intake.schemas.records import ImportRecord
from audit_intake.services.cells import coerce_reference
from audit_intake.services.targets import ImportTarget

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


class BatchInsertError(Exception):
    """Raised when a batch fails; the whole call has been rolled back by then."""

    def __init__(
        self,
        message: str,
        batch_index: int,
        rows: list[dict[str, Any]],
        cause: Exception | None = None,
    ) -> None:
        self.message = message
        self.batch_index = batch_index
        self.rows = rows
        self.cause = cause
        super().__init__(message)


def bind_values(record: ImportRecord, columns: Sequence[str]) -> dict[str, Any]:
    """Insert parameters for one record; reference is always str or None by now."""
    row = record.to_row()
    values = {name: row.get(name) for name in columns}
    if "reference" in values:
        values["reference"] = coerce_reference(values["reference"])
    return values


def _identify(batch: list[dict[str, Any]], first_position: int, title_column: str) -> list[dict[str, Any]]:
    return [
        {
            "position": first_position + i,
            title_column: row.get(title_column),
            "app_id": row.get("app_id"),
            "reference_type": type(row.get("reference")).__name__,
        }
        for i, row in enumerate(batch)
    ]


def batch_insert(
    db: Session,
    target: ImportTarget,
    records: Sequence[ImportRecord],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> int:
    """
    Insert records into the target table in multi-row INSERT batches, one transaction.

    Commits once after the last batch and returns the inserted count. If any batch
    fails, everything inserted by this call is rolled back and BatchInsertError is
    raised with the batch index and the batch's identifying fields.
    """
    if not records:
        return 0
    columns = target.insert_columns
    rows = [bind_values(record, columns) for record in records]
    inserted = 0
    try:
        for batch_index, start in enumerate(range(0, len(rows), batch_size), start=1):
            batch = rows[start : start + batch_size]
            logger.info(
                "Processing batch %s with %s rows for %s", batch_index, len(batch), target.name
            )
            try:
                db.execute(insert(target.table).values(batch))
            except SQLAlchemyError as e:
                problem_rows = _identify(batch, start + 1, target.title_column)
                logger.error("Insert error in batch %s: %s", batch_index, e)
                logger.error("Problem batch data: %s", problem_rows)
                raise BatchInsertError(
                    f"Insert failed in batch {batch_index}: {e.__class__.__name__}",
                    batch_index,
                    problem_rows,
                    e,
                ) from e
            inserted += len(batch)
        db.commit()
    except Exception:
        db.rollback()
        logger.error("Batch insert into %s rolled back", target.name)
        raise
    logger.info("Successfully inserted %s rows into %s", inserted, target.name)
    return inserted
