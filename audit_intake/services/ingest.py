"""Spreadsheet ingestion: store the upload, read the first sheet into header-keyed rows."""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
from fastapi import UploadFile
from openpyxl import load_workbook
from openpyxl.cell.rich_text import CellRichText

from audit_intake.schemas.upload import UploadRow
from audit_intake.services.cells import is_blank

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({".xlsx", ".ods"})
UPLOAD_CHUNK_BYTES = 1024 * 1024


class IngestError(Exception):
    """Raised when an upload cannot be turned into rows (client error)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


@dataclass
class IngestedSheet:
    """Header names in sheet order plus the non-empty data rows."""

    columns: list[str]
    rows: list[UploadRow]


def check_extension(filename: str | None) -> str:
    """Return the lower-cased extension when it is .xlsx or .ods; raise IngestError otherwise."""
    ext = Path(filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise IngestError("Unsupported format: please upload .xlsx or .ods")
    return ext


def _size_error(max_bytes: int) -> IngestError:
    return IngestError(f"File size exceeds {max_bytes // (1024 * 1024)}MB limit")


async def save_upload(upload: UploadFile, dest_dir: str | Path, max_bytes: int) -> Path:
    """
    Stream an upload to a temporary file in dest_dir, aborting once it passes max_bytes.
    The caller owns (and must delete) the returned path.
    """
    ext = check_extension(upload.filename)
    Path(dest_dir).mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix="upload_", suffix=ext, dir=dest_dir)
    written = 0
    try:
        with os.fdopen(fd, "wb") as out:
            while chunk := await upload.read(UPLOAD_CHUNK_BYTES):
                written += len(chunk)
                if written > max_bytes:
                    raise _size_error(max_bytes)
                out.write(chunk)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info("Stored upload %s (%s bytes) as %s", upload.filename, written, tmp_name)
    return Path(tmp_name)


def normalize_cell(cell: Any) -> Any:
    """
    Reduce an openpyxl cell to a plain value: hyperlink cells give their URL, rich text
    gives the concatenated runs, everything else is returned unchanged.
    """
    link = getattr(cell, "hyperlink", None)
    if link is not None and (link.target or link.location):
        return link.target or link.location
    value = cell.value
    if isinstance(value, CellRichText):
        return "".join(block if isinstance(block, str) else block.text for block in value)
    return value


def _read_xlsx(path: Path) -> list[list[Any]]:
    try:
        workbook = load_workbook(path, data_only=True, rich_text=True)
    except Exception as e:
        raise IngestError(f"Error reading file: {e!s}") from e
    try:
        if not workbook.worksheets:
            raise IngestError("Uploaded file contains no worksheets.")
        sheet = workbook.worksheets[0]
        return [[normalize_cell(cell) for cell in row] for row in sheet.iter_rows()]
    finally:
        workbook.close()


def _ods_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, float) and pd.isna(value):
        return None
    return value


def _read_ods(path: Path) -> list[list[Any]]:
    try:
        frame = pd.read_excel(path, sheet_name=0, header=None, engine="odf", dtype=object)
    except Exception as e:
        raise IngestError(f"Error reading file: {e!s}") from e
    return [[_ods_value(v) for v in row] for row in frame.itertuples(index=False, name=None)]


def rows_from_grid(grid: list[list[Any]]) -> IngestedSheet:
    """Map a cell grid to rows keyed by the header row; blank headers and blank rows are skipped."""
    if not grid:
        raise IngestError("Uploaded file contains no data.")
    headers: list[tuple[int, str]] = []
    for idx, value in enumerate(grid[0]):
        if is_blank(value):
            continue
        name = value.strip() if isinstance(value, str) else str(value)
        headers.append((idx, name))
    if not headers:
        raise IngestError("Uploaded file has no header row.")

    rows: list[UploadRow] = []
    for row_number, values in enumerate(grid[1:], start=2):
        data = {name: (values[idx] if idx < len(values) else None) for idx, name in headers}
        if all(is_blank(v) for v in data.values()):
            continue
        rows.append(UploadRow(row_number=row_number, data=data))
    if not rows:
        raise IngestError("Uploaded file contains no data.")
    return IngestedSheet(columns=[name for _, name in headers], rows=rows)


def ingest_workbook(
    path: str | Path,
    extension: str,
    max_bytes: int | None = None,
) -> IngestedSheet:
    """
    Read the first worksheet of an .xlsx or .ods file into header-keyed rows.
    Raises IngestError for unsupported extensions, oversized or unreadable files,
    and sheets without data rows.
    """
    path = Path(path)
    ext = check_extension(f"file{extension}" if extension.startswith(".") else extension)
    if max_bytes is not None and path.stat().st_size > max_bytes:
        raise _size_error(max_bytes)
    grid = _read_xlsx(path) if ext == ".xlsx" else _read_ods(path)
    sheet = rows_from_grid(grid)
    logger.info("Ingested %s rows with columns %s", len(sheet.rows), sheet.columns)
    return sheet
