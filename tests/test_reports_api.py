import unittest
import sys
import os
import csv
import io
import tempfile
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from dateutil import tz
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from partmon.api.dependencies import get_report_store, get_settings
from partmon.core.config import Settings
from partmon.core.exceptions import StorageError
from partmon.database.connection import create_sqlite_engine
from partmon.database.report_store import ReportStore
from partmon.main import create_app
from partmon.models.alert import AlertRecord
from partmon.models.interval import IntervalRecord

class ReportApiTestCase(unittest.TestCase):
    report_kind = "alert"

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "api.db")
        self.settings = Settings(database_path=db_path, timezone="UTC", report_kind=self.report_kind)
        self.store = ReportStore(create_sqlite_engine(db_path), tz.UTC)

        self.app = create_app(self.settings, start_ingestion=False)
        self.app.dependency_overrides[get_report_store] = lambda: self.store
        self.app.dependency_overrides[get_settings] = lambda: self.settings
        # Lifespan is not entered: no broker and no second store
        self.client = TestClient(self.app)
        self.base = datetime(2026, 10, 19, 14, 15, 0)

    def tearDown(self):
        self.store.close()
        self.tmpdir.cleanup()

    def write_alert(self, alert_id, minutes, resolved_after=None):
        initiated = self.base + timedelta(minutes=minutes)
        self.store.write(AlertRecord(
            alert_id=alert_id,
            alert="Machine breakdown",
            alert_type="maintenance",
            location="Line 2",
            initiated_by="op-9",
            initiate_time=initiated,
            resolved_time=initiated + timedelta(minutes=resolved_after) if resolved_after else None,
            sla_level=1,
            is_active=resolved_after is None,
        ))

class TestGetReport(ReportApiTestCase):
    """GET /api/v1/getreport"""

    def test_missing_parameters(self):
        self.assertEqual(self.client.get("/api/v1/getreport").status_code, 422)
        self.assertEqual(self.client.get("/api/v1/getreport?limit=10").status_code, 422)
        self.assertEqual(self.client.get("/api/v1/getreport?limit=&offset=").status_code, 422)

    def test_invalid_parameters(self):
        for query in ("limit=abc&offset=0", "limit=-1&offset=0", "limit=10&offset=70000", "limit=1.5&offset=0"):
            response = self.client.get(f"/api/v1/getreport?{query}")
            self.assertEqual(response.status_code, 422, query)

    def test_non_ascii_digits_are_invalid(self):
        for limit in ("²", "١٠", "１０"):
            response = self.client.get("/api/v1/getreport", params={"limit": limit, "offset": "0"})
            self.assertEqual(response.status_code, 422, repr(limit))

    def test_limit_too_high(self):
        response = self.client.get("/api/v1/getreport?limit=101&offset=0")
        self.assertEqual(response.status_code, 413)

    def test_empty_result_is_empty_object(self):
        response = self.client.get("/api/v1/getreport?limit=100&offset=0")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {})

    def test_empty_result_without_legacy_payload(self):
        self.settings.legacy_empty_payload = False
        response = self.client.get("/api/v1/getreport?limit=10&offset=0")
        self.assertEqual(response.json(), [])

    def test_returns_newest_first(self):
        self.write_alert("A-1", 0, resolved_after=30)
        self.write_alert("A-2", 10)
        self.write_alert("A-3", 20)

        response = self.client.get("/api/v1/getreport?limit=2&offset=0")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual([r["AlertId"] for r in body], ["A-3", "A-2"])
        self.assertTrue(body[0]["IsActive"])
        self.assertEqual(body[0]["Location"], "Line 2")
        self.assertEqual(sorted(body[0]), sorted([
            "AlertId", "Alert", "AlertType", "Location", "InitiatedBy", "AcknowledgeBy", "ResolvedBy",
            "InitiateTime", "IsActive", "AcknowledgeTime", "ResolvedTime", "SlaLevel",
        ]))

    def test_storage_failure(self):
        failing = MagicMock()
        failing.read_recent.side_effect = StorageError("locked", operation="read_recent")
        self.app.dependency_overrides[get_report_store] = lambda: failing
        response = self.client.get("/api/v1/getreport?limit=10&offset=0")
        self.assertEqual(response.status_code, 500)

class TestGetTimeReport(ReportApiTestCase):
    """GET /api/v1/getTimereport"""

    def test_missing_parameters(self):
        self.assertEqual(self.client.get("/api/v1/getTimereport").status_code, 422)
        self.assertEqual(
            self.client.get("/api/v1/getTimereport?from=2026-10-19").status_code, 422
        )

    def test_csv_export(self):
        self.write_alert("A-1", 0, resolved_after=45)
        self.write_alert("A-2", 10)
        self.write_alert("A-3", 120)

        response = self.client.get(
            "/api/v1/getTimereport",
            params={"from": "2026-10-19 14:00:00", "to": "2026-10-19 15:00:00"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/csv"))
        rows = list(csv.DictReader(io.StringIO(response.text)))
        self.assertEqual([r["AlertId"] for r in rows], ["A-2", "A-1"])
        self.assertEqual(rows[1]["Duration"], "00:45")
        self.assertEqual(rows[1]["InitiateTime"], "2026-10-19 02:15:00 PM")
        self.assertEqual(rows[0]["ResolvedTime"], "")
        self.assertEqual(rows[0]["Duration"], "")

    def test_empty_window(self):
        response = self.client.get(
            "/api/v1/getTimereport", params={"from": "2020-01-01", "to": "2020-01-02"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {})

    def test_unparseable_bounds_are_server_errors(self):
        response = self.client.get("/api/v1/getTimereport", params={"from": "soon", "to": "later"})
        self.assertEqual(response.status_code, 500)

class TestIntervalReports(ReportApiTestCase):
    report_kind = "interval"

    def test_interval_records_are_served(self):
        self.store.write(IntervalRecord(name="Station 1", category="dio", start_time=self.base, duration=90.0))

        body = self.client.get("/api/v1/getreport?limit=5&offset=0").json()
        self.assertEqual(len(body), 1)
        self.assertEqual(body[0]["Name"], "Station 1")
        self.assertEqual(body[0]["Duration"], 90.0)

        response = self.client.get(
            "/api/v1/getTimereport", params={"from": "2026-10-19", "to": "2026-10-20"}
        )
        rows = list(csv.DictReader(io.StringIO(response.text)))
        self.assertEqual(rows[0]["Name"], "Station 1")
        self.assertEqual(rows[0]["Duration"], "90.0")

class TestHealth(ReportApiTestCase):

    def test_health(self):
        self.assertEqual(self.client.get("/api/v1/health").json()["status"], "healthy")

    def test_detailed_health(self):
        body = self.client.get("/api/v1/health/detailed").json()
        self.assertEqual(body["database"], "connected")

if __name__ == '__main__':
    unittest.main()
