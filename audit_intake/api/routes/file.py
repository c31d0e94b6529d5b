"""Spreadsheet upload, generated-file download and preview endpoints."""

import json
import logging
from pathlib import Path
from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse, Response
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from audit_intake.api.deps import get_catalog, recover_connection, templates
from audit_intake.core.config import Settings, get_settings
from audit_intake.core.database import DatabaseManager, get_db, get_db_manager, get_engine
from audit_intake.schemas.upload import RowError
from audit_intake.services.batch_insert import BatchInsertError, batch_insert
from audit_intake.services.catalog import VulnerabilityCatalog, load_catalog
from audit_intake.services.ingest import IngestError, ingest_workbook, save_upload
from audit_intake.services.targets import get_target
from audit_intake.services.validation import check_columns, live_columns, validate_rows
from audit_intake.services.workbook import export_rows, write_template

logger = logging.getLogger(__name__)
router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
ODS_MEDIA_TYPE = "application/vnd.oasis.opendocument.spreadsheet"


def _columns_of(rows: list[dict[str, Any]]) -> list[str]:
    """Union of row keys in first-seen order."""
    columns: list[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return columns


def _preview_context(
    filename: str,
    rows: list[dict[str, Any]],
    *,
    rejected: list[RowError] | None = None,
    total_rows: int | None = None,
    columns: list[str] | None = None,
    download_name: str | None = None,
    download_name_ods: str | None = None,
    inserted: int | None = None,
) -> dict[str, Any]:
    rejected = rejected or []
    return {
        "filename": filename,
        "rows": rows,
        "columns": columns or _columns_of(rows),
        "rejected": rejected,
        "total_rows": total_rows if total_rows is not None else len(rows) + len(rejected),
        "inserted": inserted,
        "download_name": download_name,
        "download_name_ods": download_name_ods,
    }


@router.post("/submit", response_class=HTMLResponse)
async def submit_file(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    engine: Annotated[Engine, Depends(get_engine)],
    manager: Annotated[DatabaseManager, Depends(get_db_manager)],
    catalog: Annotated[VulnerabilityCatalog, Depends(get_catalog)],
    cfg: Annotated[Settings, Depends(get_settings)],
    file: Annotated[UploadFile | None, File()] = None,
    user_id: Annotated[int | None, Form(alias="userId")] = None,
    target: Annotated[str | None, Form()] = None,
) -> Response:
    """
    Import a spreadsheet of findings (or catalog entries with target=issue_master).

    - Columns must exist in the target table and include the required ones; otherwise
      a template workbook is generated and a 400 with its download link is returned.
    - Rows are validated against the catalog; rejected rows are listed in the preview.
    - Valid rows are exported to a cleaned workbook (plus ODS when conversion works)
      and inserted in batches inside one transaction.
    """
    if file is None or not file.filename:
        return PlainTextResponse("No file uploaded.", status_code=400)
    try:
        import_target = get_target(target)
    except KeyError:
        return PlainTextResponse(f"Unknown import target: {target}", status_code=400)

    tmp_path: Path | None = None
    try:
        tmp_path = await save_upload(file, cfg.UPLOADS_DIR, cfg.max_upload_bytes)
        sheet = ingest_workbook(tmp_path, tmp_path.suffix, cfg.max_upload_bytes)

        table_columns = live_columns(engine, import_target.name)
        column_check = check_columns(sheet.columns, table_columns, import_target.required_columns)
        if not column_check.ok:
            template_path = write_template(
                import_target, table_columns, catalog, cfg.UPLOADS_DIR, cfg.DROPDOWN_ROW_LIMIT
            )
            logger.info("Rejected %s: %s", file.filename, column_check.message())
            return templates.TemplateResponse(
                request,
                "column_error.html",
                {
                    "message": column_check.message(),
                    "check": column_check,
                    "template_name": template_path.name,
                    "columns": table_columns,
                },
                status_code=400,
            )

        validated = validate_rows(
            sheet.rows,
            import_target,
            catalog,
            policy=cfg.TITLE_MATCH_POLICY,
            default_app_id=cfg.DEFAULT_APP_ID,
            created_by_id=user_id if user_id is not None else cfg.DEFAULT_CREATED_BY_ID,
        )
        if not validated.valid:
            return templates.TemplateResponse(
                request,
                "preview.html",
                _preview_context(
                    file.filename,
                    [],
                    rejected=validated.invalid,
                    columns=import_target.columns,
                ),
                status_code=400,
            )

        export = await export_rows(
            file.filename,
            import_target,
            validated.valid,
            catalog,
            cfg.UPLOADS_DIR,
            row_limit=cfg.DROPDOWN_ROW_LIMIT,
            convert=cfg.ODS_CONVERSION_ENABLED,
            soffice=cfg.SOFFICE_BINARY,
            conversion_timeout=cfg.CONVERSION_TIMEOUT_SEC,
        )
        inserted = batch_insert(db, import_target, validated.valid, cfg.BATCH_SIZE)
        logger.info("Rows inserted: %s (user=%s)", inserted, user_id)
        if not import_target.titles_from_catalog:
            request.app.state.catalog = load_catalog(db)

        return templates.TemplateResponse(
            request,
            "preview.html",
            _preview_context(
                file.filename,
                [record.to_row() for record in validated.valid],
                rejected=validated.invalid,
                columns=import_target.columns,
                download_name=export.download_name,
                download_name_ods=export.download_name_ods,
                inserted=inserted,
            ),
        )
    except IngestError as e:
        return PlainTextResponse(e.message, status_code=400)
    except BatchInsertError as e:
        logger.error("Import of %s failed in batch %s: %s", file.filename, e.batch_index, e.message)
        return PlainTextResponse(f"Error importing rows: {e.message}. No rows were saved.", status_code=500)
    except OperationalError as e:
        logger.exception("Database connection error while importing %s", file.filename)
        await run_in_threadpool(recover_connection, request, manager)
        return PlainTextResponse(f"Database error: {e.__class__.__name__}", status_code=500)
    except SQLAlchemyError as e:
        logger.exception("Database error while importing %s", file.filename)
        return PlainTextResponse(f"Database error: {e.__class__.__name__}", status_code=500)
    finally:
        if tmp_path is not None:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError as e:
                logger.error("Error deleting temporary file %s: %s", tmp_path, e)


@router.get("/download/{filename}")
def download_file(
    filename: str,
    cfg: Annotated[Settings, Depends(get_settings)],
) -> Response:
    """Stream a generated export or template from the uploads directory."""
    safe_name = Path(filename).name
    file_path = Path(cfg.UPLOADS_DIR) / safe_name
    logger.info("Looking for file: %s", file_path)
    if not safe_name or not file_path.is_file():
        logger.warning("File not found: %s", file_path)
        return PlainTextResponse("File not found", status_code=404)
    media_type = ODS_MEDIA_TYPE if file_path.suffix.lower() == ".ods" else XLSX_MEDIA_TYPE
    return FileResponse(file_path, media_type=media_type, filename=safe_name)


async def _preview_params(request: Request) -> dict[str, Any]:
    """Preview fields from a JSON or form body when one is sent, else from the query string."""
    content_type = request.headers.get("content-type", "")
    body: Any = None
    if content_type.startswith("application/json"):
        body = await request.json()
        if body is not None and not isinstance(body, dict):
            raise ValueError("request body must be a JSON object")
    elif content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        body = dict(await request.form())
    return body if body else dict(request.query_params)


def _json_field(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


@router.api_route("/preview", methods=["GET", "POST"], response_class=HTMLResponse)
async def preview(request: Request) -> Response:
    """
    Re-render a preview from filename, rows (JSON), optional totalRows (JSON) and
    downloadNameOds (or downloadName), sent as a JSON/form body or as query parameters.
    """
    try:
        params = await _preview_params(request)
        filename = params.get("filename")
        rows = params.get("rows")
        if not filename or not rows:
            return PlainTextResponse("Missing filename or rows in request.", status_code=400)
        parsed_rows = _json_field(rows)
        parsed_total = _json_field(params.get("totalRows")) if params.get("totalRows") else []
    except (json.JSONDecodeError, ValueError) as e:
        return PlainTextResponse(f"Invalid JSON in preview request: {e!s}", status_code=400)
    if not isinstance(parsed_rows, list) or not all(isinstance(r, dict) for r in parsed_rows):
        return PlainTextResponse("rows must be a JSON array of objects.", status_code=400)

    total = len(parsed_total) if isinstance(parsed_total, list) and parsed_total else len(parsed_rows)
    download_name = params.get("downloadNameOds") or params.get("downloadName")
    download_is_ods = isinstance(download_name, str) and download_name.lower().endswith(".ods")
    return templates.TemplateResponse(
        request,
        "preview.html",
        _preview_context(
            str(filename),
            parsed_rows,
            total_rows=total,
            download_name=None if download_is_ods else download_name,
            download_name_ods=download_name if download_is_ods else None,
        ),
    )
