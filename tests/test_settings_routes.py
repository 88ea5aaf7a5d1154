"""
Workspace settings tests: users, permissions, templates and the
Government Gateway record.
"""

import pytest
from fastapi.testclient import TestClient

from taxengine.main import app

client = TestClient(app)


@pytest.fixture
def users(fake_db):
    return fake_db.seed(
        "TaxEngineUsers",
        {"uuid": "admin-1", "email": "admin@practice.test", "role": "ADMINISTRATOR",
         "status": "ACTIVE", "createdAt": "2024-01-01T00:00:00+00:00"},
        {"uuid": "proc-1", "email": "proc@practice.test", "role": "CLAIM_PROCESSOR",
         "status": "ACTIVE", "createdAt": "2024-02-01T00:00:00+00:00"},
    )


@pytest.fixture
def gateway(fake_db):
    return fake_db.seed("GovernmentGateway", {
        "uuid": "gw-1", "name": "Practice gateway", "isDefault": True,
        "status": "DISCONNECTED", "ct600Authorised": False,
    })


# =============================================================================
# USERS
# =============================================================================

class TestUsers:

    def test_list_newest_first(self, fake_db, as_admin, users):
        response = client.get("/api/settings/users")
        assert response.status_code == 200
        assert [u["uuid"] for u in response.json()["users"]] == ["proc-1", "admin-1"]

    def test_processor_cannot_manage_users(self, fake_db, as_processor, users):
        assert client.get("/api/settings/users").status_code == 403

    def test_promote_user(self, fake_db, as_admin, users):
        response = client.patch("/api/settings/users/proc-1", json={"role": "ADMINISTRATOR", "firstName": "Pat"})
        assert response.status_code == 200
        stored = fake_db.rows("TaxEngineUsers")[1]
        assert stored["role"] == "ADMINISTRATOR"
        assert stored["firstName"] == "Pat"
        audit = fake_db.rows("AuditLog")[0]
        assert audit["action"] == "User updated"
        assert audit["details"] == "proc@practice.test: firstName, role"

    def test_last_admin_cannot_be_demoted(self, fake_db, as_admin, users):
        response = client.patch("/api/settings/users/admin-1", json={"role": "CLAIM_PROCESSOR"})
        assert response.status_code == 409
        assert response.json() == {"error": "Cannot remove the last active administrator"}
        assert fake_db.rows("TaxEngineUsers")[0]["role"] == "ADMINISTRATOR"

    def test_last_admin_cannot_be_deactivated(self, fake_db, as_admin, users):
        response = client.patch("/api/settings/users/admin-1", json={"status": "INACTIVE"})
        assert response.status_code == 409

    def test_admin_can_step_down_when_another_exists(self, fake_db, as_admin, users):
        client.patch("/api/settings/users/proc-1", json={"role": "ADMINISTRATOR"})
        response = client.patch("/api/settings/users/admin-1", json={"role": "CLAIM_PROCESSOR"})
        assert response.status_code == 200

    def test_invalid_role(self, fake_db, as_admin, users):
        assert client.patch("/api/settings/users/proc-1", json={"role": "OWNER"}).status_code == 400

    def test_unknown_user(self, fake_db, as_admin):
        assert client.patch("/api/settings/users/nope", json={"firstName": "X"}).status_code == 404


# =============================================================================
# PERMISSIONS
# =============================================================================

class TestPermissions:

    def test_default_matrix(self, fake_db, as_admin):
        response = client.get("/api/settings/permissions")
        assert response.status_code == 200
        permissions = {p["code"]: p for p in response.json()["permissions"]}
        assert permissions["audit.view"]["administrator"] is True
        assert permissions["audit.view"]["claimProcessor"] is False
        assert permissions["claims.edit"]["claimProcessor"] is True
        assert permissions["claims.submit"]["claimProcessor"] is False

    def test_stored_rows_override_defaults(self, fake_db, as_admin):
        fake_db.seed("Permissions", {"code": "claims.submit", "name": "Submit claims",
                                     "description": "Send claims to HMRC",
                                     "administrator": True, "claimProcessor": True})
        permissions = {p["code"]: p for p in client.get("/api/settings/permissions").json()["permissions"]}
        assert permissions["claims.submit"]["claimProcessor"] is True
        assert permissions["claims.submit"]["name"] == "Submit claims"


# =============================================================================
# TEMPLATES
# =============================================================================

class TestTemplates:

    def test_create_and_list(self, fake_db, as_admin):
        response = client.post("/api/settings/templates", json={
            "name": "HMRC cover letter", "category": "LETTER", "isDefault": True,
        })
        assert response.status_code == 200
        template = response.json()["template"]
        assert template["version"] == "1.0"
        assert template["isDefault"] is True
        assert template["isActive"] is True
        assert template["lastModifiedById"] == 1

        listed = client.get("/api/settings/templates").json()["templates"]
        assert [t["name"] for t in listed] == ["HMRC cover letter"]
        assert fake_db.rows("AuditLog")[0]["details"] == "HMRC cover letter (LETTER v1.0)"

    def test_invalid_category(self, fake_db, as_admin):
        response = client.post("/api/settings/templates", json={"name": "X", "category": "INVOICE"})
        assert response.status_code == 400

    def test_retire_template(self, fake_db, as_admin):
        fake_db.seed("Templates", {"uuid": "tpl-1", "name": "Old", "category": "EXPORT", "isActive": True})
        response = client.patch("/api/settings/templates/tpl-1", json={"isActive": False})
        assert response.status_code == 200
        assert client.get("/api/settings/templates").json()["templates"] == []

    def test_update_unknown_template(self, fake_db, as_admin):
        assert client.patch("/api/settings/templates/nope", json={"name": "X"}).status_code == 404

    def test_processor_cannot_manage_templates(self, fake_db, as_processor):
        response = client.post("/api/settings/templates", json={"name": "X", "category": "REPORT"})
        assert response.status_code == 403


# =============================================================================
# GOVERNMENT GATEWAY
# =============================================================================

class TestGateway:

    def test_not_configured(self, fake_db, as_admin):
        response = client.get("/api/settings/gateway")
        assert response.status_code == 404
        assert response.json() == {"error": "Government Gateway not configured"}

    def test_connect_stamps_times(self, fake_db, as_admin, gateway):
        response = client.patch("/api/settings/gateway", json={"status": "CONNECTED", "ct600Authorised": True})
        assert response.status_code == 200
        stored = fake_db.rows("GovernmentGateway")[0]
        assert stored["status"] == "CONNECTED"
        assert stored["ct600Authorised"] is True
        assert stored["connectedAt"] == stored["lastVerifiedAt"]
        assert fake_db.rows("AuditLog")[0]["action"] == "Gateway CONNECTED"

    def test_disconnect(self, fake_db, as_admin, gateway):
        client.patch("/api/settings/gateway", json={"status": "DISCONNECTED"})
        assert fake_db.rows("GovernmentGateway")[0]["disconnectedAt"]

    def test_rename_only(self, fake_db, as_admin, gateway):
        response = client.patch("/api/settings/gateway", json={"name": "Main gateway"})
        assert response.json()["gateway"]["name"] == "Main gateway"
        assert fake_db.rows("AuditLog")[0]["action"] == "Gateway updated"

    def test_processor_cannot_read_gateway(self, fake_db, as_processor, gateway):
        assert client.get("/api/settings/gateway").status_code == 403

    def test_processor_cannot_manage_gateway(self, fake_db, as_processor, gateway):
        assert client.patch("/api/settings/gateway", json={"status": "CONNECTED"}).status_code == 403
