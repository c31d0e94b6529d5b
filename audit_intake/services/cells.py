"""Conversions between raw spreadsheet cell values and database-bound text."""

import json
import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

logger = logging.getLogger(__name__)


def is_blank(value: Any) -> bool:
    """True for None and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def cell_to_text(value: Any) -> str | None:
    """
    Render a cell value as text for a free-text column.
    Integral floats lose their ".0" (spreadsheets store every number as float).
    """
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, dict):
        return coerce_reference(value)
    return str(value)


def coerce_reference(value: Any) -> str | None:
    """
    Reduce a reference cell to plain text or None; structured values never reach the driver.

    Dicts prefer their "hyperlink" then "text" entry, anything else structured is
    JSON-encoded, and values that cannot be encoded become None.
    """
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, dict):
        if value.get("hyperlink"):
            return str(value["hyperlink"])
        if value.get("text"):
            return str(value["text"])
        try:
            return json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning("Could not encode reference value, storing NULL: %s", e)
            return None
    if isinstance(value, (list, tuple)):
        try:
            return json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning("Could not encode reference value, storing NULL: %s", e)
            return None
    return cell_to_text(value)


def cell_to_datetime(value: Any) -> datetime | None:
    """Datetime cells as-is, ISO-8601 strings parsed, anything else None."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None
