"""XLSX -> ODS conversion through a headless LibreOffice process."""

import logging
import subprocess
from pathlib import Path

from fastapi.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


class ConversionError(Exception):
    """Raised when the office converter cannot produce the ODS file."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


def convert_to_ods_sync(
    xlsx_path: str | Path,
    soffice: str = "soffice",
    timeout: float = 60.0,
) -> Path:
    """Convert next to the source file; returns the .ods path or raises ConversionError."""
    xlsx_path = Path(xlsx_path)
    out_dir = xlsx_path.parent
    ods_path = out_dir / f"{xlsx_path.stem}.ods"
    # soffice can exit 0 without writing; a leftover file must not pass as output
    ods_path.unlink(missing_ok=True)
    try:
        proc = subprocess.run(
            [
                soffice,
                "--headless",
                "--convert-to",
                "ods",
                str(xlsx_path),
                "--outdir",
                str(out_dir),
            ],
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise ConversionError(f"Converter binary not found: {soffice}", e) from e
    except subprocess.TimeoutExpired as e:
        raise ConversionError(f"Conversion timed out after {timeout:g}s", e) from e
    except OSError as e:
        raise ConversionError(f"Converter could not be started: {e!s}", e) from e

    if proc.returncode != 0:
        detail = (proc.stderr or proc.stdout or "").strip()
        raise ConversionError(f"Converter exited with status {proc.returncode}: {detail}")
    if not ods_path.exists():
        raise ConversionError("ODS file not created")
    logger.info("Successfully converted to ODS: %s", ods_path)
    return ods_path


async def convert_to_ods(
    xlsx_path: str | Path,
    soffice: str = "soffice",
    timeout: float = 60.0,
) -> Path:
    """Run the conversion off the event loop."""
    return await run_in_threadpool(convert_to_ods_sync, xlsx_path, soffice, timeout)
