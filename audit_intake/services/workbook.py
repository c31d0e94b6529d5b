"""Generated workbooks: cleaned exports of valid rows and column templates."""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.datavalidation import DataValidation
from openpyxl.worksheet.worksheet import Worksheet

from audit_intake.schemas.records import ImportRecord
from audit_intake.services.catalog import VulnerabilityCatalog
from audit_intake.services.convert import ConversionError, convert_to_ods
from audit_intake.services.targets import ImportTarget

logger = logging.getLogger(__name__)

DATA_SHEET_TITLE = "Valid Rows"
TEMPLATE_SHEET_TITLE = "Template"
REFERENCE_SHEET_TITLE = "Vulnerabilities"

_HEADER_FONT = Font(bold=True)
_HEADER_FILL = PatternFill("solid", fgColor="FFD3D3D3")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")
_SPREADSHEET_SUFFIX = re.compile(r"\.(xlsx|ods)$", re.IGNORECASE)


@dataclass
class ExportResult:
    """Names (for download links) and paths of the files written for one upload."""

    download_name: str
    file_path: Path
    download_name_ods: str | None = None
    file_path_ods: Path | None = None


def output_basename(original_filename: str | None, now: datetime | None = None) -> str:
    """
    Sanitized base name for an export: basename of the upload, characters outside
    [A-Za-z0-9_.-] replaced by "_", spreadsheet suffix dropped, "_<minute>_<second>" appended.
    """
    name = (original_filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    safe = _SPREADSHEET_SUFFIX.sub("", _UNSAFE_FILENAME_CHARS.sub("_", name)) or "export"
    now = now or datetime.now()
    return f"{safe}_{now.minute}_{now.second}"


def _excel_value(value: Any) -> Any:
    # Excel has no timezone support
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


def _write_header(ws: Worksheet, columns: Sequence[str], target: ImportTarget | None = None) -> None:
    ws.append(list(columns))
    for idx, name in enumerate(columns, start=1):
        cell = ws.cell(row=1, column=idx)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        width = target.width_for(name) if target is not None else 15
        ws.column_dimensions[get_column_letter(idx)].width = width


def add_reference_sheet(workbook: Workbook, catalog: VulnerabilityCatalog) -> str:
    """Append the catalog sheet (S.No, Vulnerability); returns the absolute range of the names."""
    ws = workbook.create_sheet(title=REFERENCE_SHEET_TITLE)
    _write_header(ws, ["S.No", "Vulnerability"])
    ws.column_dimensions["A"].width = 6
    ws.column_dimensions["B"].width = 50
    for number, title in enumerate(catalog.titles, start=1):
        ws.append([number, title])
    last_row = max(len(catalog), 1) + 1
    return f"{REFERENCE_SHEET_TITLE}!$B$2:$B${last_row}"


def add_title_dropdown(ws: Worksheet, column_index: int, source_range: str, row_limit: int) -> DataValidation:
    """List validation on one column, rows 2..row_limit, sourced from source_range."""
    letter = get_column_letter(column_index)
    validation = DataValidation(
        type="list",
        formula1=source_range,
        allow_blank=True,
        showErrorMessage=True,
        errorTitle="Invalid Option",
        error="Please select a valid vulnerability.",
    )
    ws.add_data_validation(validation)
    validation.add(f"{letter}2:{letter}{row_limit}")
    return validation


def build_export_workbook(
    target: ImportTarget,
    records: Sequence[ImportRecord],
    catalog: VulnerabilityCatalog,
    row_limit: int = 100_000,
) -> Workbook:
    """Valid rows under the table's column headers, plus the catalog reference sheet."""
    workbook = Workbook()
    ws = workbook.active
    ws.title = DATA_SHEET_TITLE
    columns = target.columns
    _write_header(ws, columns, target)
    for record in records:
        row = record.to_row()
        ws.append([_excel_value(row.get(name)) for name in columns])

    source_range = add_reference_sheet(workbook, catalog)
    if target.titles_from_catalog:
        add_title_dropdown(ws, columns.index(target.title_column) + 1, source_range, row_limit)
    return workbook


def write_export(
    original_filename: str | None,
    target: ImportTarget,
    records: Sequence[ImportRecord],
    catalog: VulnerabilityCatalog,
    uploads_dir: str | Path,
    *,
    row_limit: int = 100_000,
    now: datetime | None = None,
) -> ExportResult:
    """Save the export workbook as <sanitized-base>_<minute>_<second>.xlsx in uploads_dir."""
    out_dir = Path(uploads_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    xlsx_path = out_dir / f"{output_basename(original_filename, now)}.xlsx"
    workbook = build_export_workbook(target, records, catalog, row_limit)
    workbook.save(xlsx_path)
    logger.info("Export written: %s (%s rows)", xlsx_path, len(records))
    return ExportResult(download_name=xlsx_path.name, file_path=xlsx_path)


async def export_rows(
    original_filename: str | None,
    target: ImportTarget,
    records: Sequence[ImportRecord],
    catalog: VulnerabilityCatalog,
    uploads_dir: str | Path,
    *,
    row_limit: int = 100_000,
    convert: bool = True,
    soffice: str = "soffice",
    conversion_timeout: float = 60.0,
) -> ExportResult:
    """
    Write the XLSX export, then try the ODS conversion. A failed conversion is
    logged and leaves the ODS fields empty; it never fails the export.
    """
    result = write_export(
        original_filename, target, records, catalog, uploads_dir, row_limit=row_limit
    )
    if not convert:
        return result
    try:
        ods_path = await convert_to_ods(result.file_path, soffice, conversion_timeout)
    except ConversionError as e:
        logger.warning("ODS conversion failed: %s", e.message)
        return result
    result.file_path_ods = ods_path
    result.download_name_ods = ods_path.name
    return result


def write_template(
    target: ImportTarget,
    table_columns: Sequence[str],
    catalog: VulnerabilityCatalog,
    uploads_dir: str | Path,
    row_limit: int = 100_000,
) -> Path:
    """
    Template workbook whose header equals the live table columns, with one sample row,
    the title dropdown and the catalog reference sheet. Overwrites the previous template.
    """
    out_dir = Path(uploads_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    workbook = Workbook()
    ws = workbook.active
    ws.title = TEMPLATE_SHEET_TITLE
    _write_header(ws, table_columns, target)

    sample: list[Any] = []
    for name in table_columns:
        if name == "created_on":
            sample.append(datetime.now().replace(microsecond=0))
        else:
            sample.append(target.sample_row.get(name, ""))
    ws.append(sample)

    source_range = add_reference_sheet(workbook, catalog)
    if target.titles_from_catalog and target.title_column in table_columns:
        add_title_dropdown(
            ws, list(table_columns).index(target.title_column) + 1, source_range, row_limit
        )
    path = out_dir / target.template_filename
    workbook.save(path)
    logger.info("Template written: %s", path)
    return path
