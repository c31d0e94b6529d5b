"""Tests for upload storage and spreadsheet ingestion."""

import asyncio
import io
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

import pandas as pd
from fastapi import UploadFile
from openpyxl.cell.rich_text import CellRichText, TextBlock
from openpyxl.cell.text import InlineFont

from audit_intake.services.ingest import (
    IngestError,
    check_extension,
    ingest_workbook,
    rows_from_grid,
    save_upload,
)
from tests.helpers import build_workbook, save_workbook

HEADER = ["app_id", "vul_title", "description", "reference"]


class IngestTestCase(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.dir = Path(tmp.name)


class TestIngestXlsx(IngestTestCase):
    """First worksheet is read into header-keyed rows."""

    def test_rows_keyed_by_header_with_sheet_row_numbers(self) -> None:
        path = save_workbook(
            self.dir / "a.xlsx",
            HEADER,
            [
                [1, "Clickjacking", "desc", None],
                [None, None, None, None],
                [2, "Race Conditions", "other", "ref"],
            ],
        )
        sheet = ingest_workbook(path, ".xlsx")
        self.assertEqual(sheet.columns, HEADER)
        self.assertEqual([r.row_number for r in sheet.rows], [2, 4])
        self.assertEqual(sheet.rows[1].data["vul_title"], "Race Conditions")
        self.assertEqual(sheet.rows[0].data["app_id"], 1)

    def test_hyperlink_cell_yields_url(self) -> None:
        workbook = build_workbook(HEADER, [[1, "Clickjacking", "desc", "OWASP"]])
        workbook.active["D2"].hyperlink = "https://owasp.org/Top10"
        path = self.dir / "links.xlsx"
        workbook.save(path)
        sheet = ingest_workbook(path, ".xlsx")
        self.assertEqual(sheet.rows[0].data["reference"], "https://owasp.org/Top10")

    def test_rich_text_cell_yields_plain_text(self) -> None:
        workbook = build_workbook(HEADER, [[1, "Clickjacking", None, None]])
        workbook.active["C2"] = CellRichText(["plain", TextBlock(InlineFont(b=True), "Bold")])
        path = self.dir / "rich.xlsx"
        workbook.save(path)
        sheet = ingest_workbook(path, ".xlsx")
        self.assertEqual(sheet.rows[0].data["description"], "plainBold")

    def test_dates_are_preserved(self) -> None:
        stamp = datetime(2025, 5, 6, 7, 8, 9)
        path = save_workbook(self.dir / "d.xlsx", ["vul_title", "created_on"], [["Clickjacking", stamp]])
        sheet = ingest_workbook(path, ".xlsx")
        self.assertEqual(sheet.rows[0].data["created_on"], stamp)

    def test_header_only_sheet_has_no_data(self) -> None:
        path = save_workbook(self.dir / "empty.xlsx", HEADER, [])
        with self.assertRaises(IngestError) as ctx:
            ingest_workbook(path, ".xlsx")
        self.assertEqual(ctx.exception.message, "Uploaded file contains no data.")

    def test_size_limit(self) -> None:
        path = save_workbook(self.dir / "big.xlsx", HEADER, [[1, "Clickjacking", "d", None]])
        with self.assertRaises(IngestError) as ctx:
            ingest_workbook(path, ".xlsx", max_bytes=10)
        self.assertIn("File size exceeds", ctx.exception.message)

    def test_corrupt_file(self) -> None:
        path = self.dir / "broken.xlsx"
        path.write_bytes(b"not a zip archive")
        with self.assertRaises(IngestError) as ctx:
            ingest_workbook(path, ".xlsx")
        self.assertTrue(ctx.exception.message.startswith("Error reading file"))


class TestIngestOds(IngestTestCase):
    """OpenDocument sheets are read through pandas with the odf engine."""

    def test_rows_keyed_by_header(self) -> None:
        path = self.dir / "findings.ods"
        frame = pd.DataFrame(
            [
                [1, "sql   injection(sqli)", "Search box is injectable", None],
                [2, "Clickjacking", "Framing allowed", "https://owasp.org"],
            ],
            columns=HEADER,
        )
        frame.to_excel(path, engine="odf", index=False)
        sheet = ingest_workbook(path, ".ods")
        self.assertEqual(sheet.columns, HEADER)
        self.assertEqual([r.row_number for r in sheet.rows], [2, 3])
        self.assertEqual(sheet.rows[0].data["vul_title"], "sql   injection(sqli)")
        self.assertIsNone(sheet.rows[0].data["reference"])
        self.assertEqual(int(sheet.rows[1].data["app_id"]), 2)
        self.assertEqual(sheet.rows[1].data["reference"], "https://owasp.org")

    def test_unreadable_ods(self) -> None:
        path = self.dir / "broken.ods"
        path.write_bytes(b"not an archive")
        with self.assertRaises(IngestError):
            ingest_workbook(path, ".ods")


class TestExtensions(unittest.TestCase):
    def test_allowed_extensions_case_insensitive(self) -> None:
        self.assertEqual(check_extension("Report.XLSX"), ".xlsx")
        self.assertEqual(check_extension("report.ods"), ".ods")

    def test_other_formats_rejected(self) -> None:
        for name in ("report.csv", "report.xls", "report", None):
            with self.assertRaises(IngestError):
                check_extension(name)


class TestRowsFromGrid(unittest.TestCase):
    def test_blank_headers_are_skipped(self) -> None:
        sheet = rows_from_grid([["vul_title", None, " description "], ["X", "ignored", "d"]])
        self.assertEqual(sheet.columns, ["vul_title", "description"])
        self.assertEqual(sheet.rows[0].data, {"vul_title": "X", "description": "d"})

    def test_short_rows_are_padded(self) -> None:
        sheet = rows_from_grid([["a", "b"], ["x"]])
        self.assertEqual(sheet.rows[0].data, {"a": "x", "b": None})

    def test_empty_grid(self) -> None:
        with self.assertRaises(IngestError):
            rows_from_grid([])


class TestSaveUpload(IngestTestCase):
    """Uploads are streamed to a temp file and removed when they are too large."""

    def test_saves_content(self) -> None:
        upload = UploadFile(file=io.BytesIO(b"abc"), filename="a.xlsx")
        path = asyncio.run(save_upload(upload, self.dir, max_bytes=100))
        self.assertEqual(path.read_bytes(), b"abc")
        self.assertEqual(path.suffix, ".xlsx")
        self.assertEqual(path.parent, self.dir)

    def test_oversized_upload_leaves_nothing_behind(self) -> None:
        upload = UploadFile(file=io.BytesIO(b"x" * 200), filename="a.xlsx")
        with self.assertRaises(IngestError):
            asyncio.run(save_upload(upload, self.dir, max_bytes=100))
        self.assertEqual(list(self.dir.iterdir()), [])

    def test_unsupported_extension_not_saved(self) -> None:
        upload = UploadFile(file=io.BytesIO(b"a,b"), filename="a.csv")
        with self.assertRaises(IngestError):
            asyncio.run(save_upload(upload, self.dir, max_bytes=100))
        self.assertEqual(list(self.dir.iterdir()), [])
