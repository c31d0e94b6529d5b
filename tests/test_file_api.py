"""End-to-end tests for the upload, download, preview, health and database endpoints."""

import json
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from audit_intake.api.deps import get_catalog
from audit_intake.core.config import Settings, get_settings
from audit_intake.core.database import get_db, get_db_manager, get_engine
from audit_intake.main import app
from audit_intake.models import IssueMaster, Vulnerability
from audit_intake.services.batch_insert import BatchInsertError
from tests.helpers import default_catalog, make_seeded_engine, make_session, workbook_bytes

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ApiTestCase(unittest.TestCase):
    """TestClient over an in-memory database with the default catalog seeded."""

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.uploads = Path(tmp.name)
        self.engine = make_seeded_engine()
        self.settings = Settings(
            DATABASE_URL="sqlite://",
            UPLOADS_DIR=str(self.uploads),
            ODS_CONVERSION_ENABLED=False,
        )
        self.manager = MagicMock()
        self.manager.check_connected.return_value = True

        def override_db():
            db = make_session(self.engine)
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_db
        app.dependency_overrides[get_engine] = lambda: self.engine
        app.dependency_overrides[get_db_manager] = lambda: self.manager
        app.dependency_overrides[get_settings] = lambda: self.settings
        app.dependency_overrides[get_catalog] = default_catalog
        self.addCleanup(app.dependency_overrides.clear)
        self.addCleanup(setattr, app.state, "catalog", app.state.catalog)
        self.client = TestClient(app)

    def count(self, model) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(model)).scalar_one()

    def upload(self, header, rows, filename: str = "findings.xlsx", **form: str):
        return self.client.post(
            "/file/submit",
            files={"file": (filename, workbook_bytes(header, rows), XLSX)},
            data=form,
        )

    def assert_no_temp_uploads(self) -> None:
        self.assertEqual([p.name for p in self.uploads.iterdir() if p.name.startswith("upload_")], [])


class TestSubmit(ApiTestCase):
    def test_valid_rows_saved_and_invalid_rows_reported(self) -> None:
        response = self.upload(
            ["app_id", "vul_title", "description"],
            [
                [1, "SQL Injection (SQLi)", "Login form is injectable"],
                [1, "sql   injection(sqli)", "Search box is injectable"],
                [1, "Not A Real Vuln", "Made up"],
            ],
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertIn("2 of 3 rows accepted, 2 saved", response.text)
        self.assertEqual(response.text.count('class="accepted-row"'), 2)
        self.assertEqual(response.text.count('class="rejected-row"'), 1)
        self.assertIn("Not A Real Vuln", response.text)
        self.assertIn("must match one of the predefined vulnerabilities", response.text)
        self.assertIn("/file/download/findings_", response.text)
        self.assertEqual(self.count(Vulnerability), 2)

        with self.engine.connect() as conn:
            titles = conn.execute(select(Vulnerability.vul_title).order_by(Vulnerability.vul_id)).scalars().all()
        self.assertEqual(titles, ["SQL Injection (SQLi)", "SQL Injection (SQLi)"])

        exports = [p for p in self.uploads.iterdir() if p.name.startswith("findings_")]
        self.assertEqual(len(exports), 1)
        self.assert_no_temp_uploads()

        download = self.client.get(f"/file/download/{exports[0].name}")
        self.assertEqual(download.status_code, 200)
        self.assertEqual(download.headers["content-type"], XLSX)

    def test_misspelled_column_returns_template_link(self) -> None:
        response = self.upload(["appid", "vul_title", "description"], [[1, "Clickjacking", "d"]])
        self.assertEqual(response.status_code, 400)
        self.assertIn("Invalid columns found: appid.", response.text)
        self.assertIn("Missing required columns: app_id.", response.text)
        self.assertIn("/file/download/template_vulnerabilities.xlsx", response.text)
        self.assertIn("Download Template", response.text)
        self.assertTrue((self.uploads / "template_vulnerabilities.xlsx").is_file())
        self.assertEqual(self.count(Vulnerability), 0)
        self.assert_no_temp_uploads()

    def test_no_valid_rows(self) -> None:
        response = self.upload(["app_id", "vul_title", "description"], [[1, "Not A Real Vuln", "d"]])
        self.assertEqual(response.status_code, 400)
        self.assertIn("0 of 1 rows accepted", response.text)
        self.assertEqual(self.count(Vulnerability), 0)
        self.assert_no_temp_uploads()

    def test_failed_insert_saves_nothing_and_cleans_up(self) -> None:
        failure = BatchInsertError("Insert failed in batch 1: IntegrityError", 1, [])
        with patch("audit_intake.api.routes.file.batch_insert", side_effect=failure):
            response = self.upload(["app_id", "vul_title", "description"], [[1, "Clickjacking", "d"]])
        self.assertEqual(response.status_code, 500)
        self.assertIn("No rows were saved.", response.text)
        self.assertEqual(self.count(Vulnerability), 0)
        self.assert_no_temp_uploads()

    def test_app_id_outside_integer_range_is_rejected(self) -> None:
        response = self.upload(["app_id", "vul_title", "description"], [[3_000_000_000, "Clickjacking", "d"]])
        self.assertEqual(response.status_code, 400)
        self.assertIn("app_id:", response.text)
        self.assertEqual(self.count(Vulnerability), 0)

    def test_connection_recovery_runs_off_the_event_loop(self) -> None:
        threads: dict[str, int] = {}

        def lost_connection(*args, **kwargs):
            threads["handler"] = threading.get_ident()
            raise OperationalError("INSERT", {}, Exception("server closed the connection"))

        def recover(request, manager):
            threads["recover"] = threading.get_ident()

        with (
            patch("audit_intake.api.routes.file.batch_insert", side_effect=lost_connection),
            patch("audit_intake.api.routes.file.recover_connection", side_effect=recover),
        ):
            response = self.upload(["app_id", "vul_title", "description"], [[1, "Clickjacking", "d"]])
        self.assertEqual(response.status_code, 500)
        self.assertIn("recover", threads)
        self.assertNotEqual(threads["recover"], threads["handler"])
        self.assert_no_temp_uploads()

    def test_unsupported_format(self) -> None:
        response = self.client.post(
            "/file/submit",
            files={"file": ("findings.csv", b"app_id,vul_title\n1,x\n", "text/csv")},
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("Unsupported format", response.text)

    def test_missing_file(self) -> None:
        response = self.client.post("/file/submit", data={"target": "vulnerabilities"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.text, "No file uploaded.")

    def test_unknown_target(self) -> None:
        response = self.upload(["app_id", "vul_title", "description"], [[1, "Clickjacking", "d"]], target="users")
        self.assertEqual(response.status_code, 400)

    def test_catalog_upload_extends_catalog(self) -> None:
        before = self.count(IssueMaster)
        response = self.upload(
            ["issue_title", "description", "cwe_cve_ref_no"],
            [["Prototype Pollution", "Object prototype modified", "CWE-1321"], ["Clickjacking", "dup", None]],
            filename="catalog.xlsx",
            target="issue_master",
            userId="42",
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertIn("already exists in the catalog", response.text)
        self.assertEqual(self.count(IssueMaster), before + 1)
        with self.engine.connect() as conn:
            created_by = conn.execute(
                select(IssueMaster.created_by_id).where(IssueMaster.issue_title == "Prototype Pollution")
            ).scalar_one()
        self.assertEqual(created_by, 42)
        self.assertIn("Prototype Pollution", app.state.catalog.titles)


class TestDownloadAndPreview(ApiTestCase):
    def test_download_missing_file(self) -> None:
        response = self.client.get("/file/download/nothing.xlsx")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.text, "File not found")

    def test_preview_renders_rows(self) -> None:
        rows = json.dumps([{"vul_title": "Clickjacking", "description": "d"}])
        response = self.client.get(
            "/file/preview",
            params={"filename": "a.xlsx", "rows": rows, "downloadName": "a_1_2.xlsx"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn("Clickjacking", response.text)
        self.assertIn("/file/download/a_1_2.xlsx", response.text)

    def test_preview_requires_fields(self) -> None:
        self.assertEqual(self.client.get("/file/preview", params={"filename": "a.xlsx"}).status_code, 400)

    def test_preview_bad_json(self) -> None:
        response = self.client.get("/file/preview", params={"filename": "a.xlsx", "rows": "[{"})
        self.assertEqual(response.status_code, 400)

    def test_preview_from_json_body(self) -> None:
        response = self.client.post(
            "/file/preview",
            json={
                "filename": "a.xlsx",
                "rows": [{"vul_title": "Race Conditions"}],
                "totalRows": json.dumps([{}, {}, {}]),
                "downloadNameOds": "a_1_2.ods",
            },
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertIn("Race Conditions", response.text)
        self.assertIn("1 of 3 rows accepted", response.text)
        self.assertIn("/file/download/a_1_2.ods", response.text)

    def test_preview_from_form_body(self) -> None:
        response = self.client.post(
            "/file/preview",
            data={
                "filename": "a.xlsx",
                "rows": json.dumps([{"vul_title": "Clickjacking"}]),
                "downloadNameOds": "a_1_2.ods",
            },
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertIn("Clickjacking", response.text)
        self.assertIn("/file/download/a_1_2.ods", response.text)

    def test_preview_body_missing_rows(self) -> None:
        response = self.client.post("/file/preview", json={"filename": "a.xlsx"})
        self.assertEqual(response.status_code, 400)


class TestPagesAndHealth(ApiTestCase):
    def test_index_lists_catalog(self) -> None:
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertIn("Insecure Deserialization", response.text)
        self.assertIn('action="/file/submit"', response.text)

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["database"], "connected")
        self.assertEqual(body["catalog_size"], 30)
        self.assertEqual(body["match_policy"], "lenient")


class TestDatabaseEndpoint(ApiTestCase):
    def test_invalid_name(self) -> None:
        response = self.client.get("/api/db/exists/bad-name")
        self.assertEqual(response.status_code, 422)

    def test_initializes_named_database(self) -> None:
        response = self.client.get("/api/db/exists/audit_copy")
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["seeded"], 30)
        self.assertEqual(set(body["tables_created"]), {"issue_master", "vulnerabilities"})
        self.assertEqual(body["message"], "Database 'audit_copy' already exists. Catalog seeded.")
