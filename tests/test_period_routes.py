"""
Accounting period endpoint tests.
"""

from fastapi.testclient import TestClient

from taxengine.main import app

client = TestClient(app)


class TestListPeriods:

    def test_latest_end_date_first(self, fake_db, as_processor, company):
        fake_db.seed(
            "AccountingPeriods",
            {"uuid": "p-old", "clientCompanyUuid": "company-1", "endDate": "2022-03-31"},
            {"uuid": "p-new", "clientCompanyUuid": "company-1", "endDate": "2024-03-31"},
            {"uuid": "p-other", "clientCompanyUuid": "company-2", "endDate": "2025-03-31"},
        )
        response = client.get("/api/accounting-periods?clientCompanyUuid=company-1")
        assert response.status_code == 200
        assert [p["uuid"] for p in response.json()["periods"]] == ["p-new", "p-old"]

    def test_company_uuid_required(self, fake_db, as_admin):
        response = client.get("/api/accounting-periods")
        assert response.status_code == 400


class TestCreatePeriod:

    def test_create(self, fake_db, as_admin, company):
        response = client.post("/api/accounting-periods", json={
            "clientCompanyUuid": "company-1",
            "startDate": "2024-04-01",
            "endDate": "2025-03-31T00:00:00Z",
        })
        assert response.status_code == 200
        period = response.json()["period"]
        assert period["clientCompanyId"] == company["id"]
        assert period["endDate"] == "2025-03-31"
        assert period["status"] == "NOT_STARTED"
        assert fake_db.rows("AuditLog")[0]["action"] == "Accounting period created"

    def test_fields_required(self, fake_db, as_admin):
        response = client.post("/api/accounting-periods", json={"clientCompanyUuid": "company-1"})
        assert response.status_code == 400
        assert response.json() == {"error": "Client company UUID, start date, and end date are required"}

    def test_bad_dates(self, fake_db, as_admin, company):
        response = client.post("/api/accounting-periods", json={
            "clientCompanyUuid": "company-1", "startDate": "01/04/2024", "endDate": "2025-03-31",
        })
        assert response.status_code == 400

    def test_end_before_start(self, fake_db, as_admin, company):
        response = client.post("/api/accounting-periods", json={
            "clientCompanyUuid": "company-1", "startDate": "2025-04-01", "endDate": "2025-03-31",
        })
        assert response.status_code == 400
        assert response.json() == {"error": "End date must not be before start date"}

    def test_unknown_company(self, fake_db, as_admin):
        response = client.post("/api/accounting-periods", json={
            "clientCompanyUuid": "nope", "startDate": "2024-04-01", "endDate": "2025-03-31",
        })
        assert response.status_code == 404
        assert response.json() == {"error": "Client company not found"}


class TestPeriodStatus:

    def test_forward_move(self, fake_db, as_admin, period):
        response = client.patch("/api/accounting-periods/period-1/status", json={"status": "PROOFING"})
        assert response.status_code == 200
        assert response.json()["period"]["status"] == "PROOFING"
        audit = fake_db.rows("AuditLog")[0]
        assert audit["action"] == "Period status changed"
        assert audit["details"] == "NOT_STARTED -> PROOFING"

    def test_backward_move_rejected(self, fake_db, as_admin, period):
        client.patch("/api/accounting-periods/period-1/status", json={"status": "SIGNED"})
        response = client.patch("/api/accounting-periods/period-1/status", json={"status": "IN_PROGRESS"})
        assert response.status_code == 409
        assert fake_db.rows("AccountingPeriods")[0]["status"] == "SIGNED"

    def test_invalid_status(self, fake_db, as_admin, period):
        response = client.patch("/api/accounting-periods/period-1/status", json={"status": "DONE"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid period status: DONE"}

    def test_missing_period(self, fake_db, as_admin):
        response = client.patch("/api/accounting-periods/nope/status", json={"status": "SIGNED"})
        assert response.status_code == 404
