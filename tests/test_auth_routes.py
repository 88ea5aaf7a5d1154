"""
Profile creation and login tracking tests.
"""

import json

import pytest
from fastapi.testclient import TestClient

from taxengine.auth_permissions import get_current_user
from taxengine.main import app

client = TestClient(app)


@pytest.fixture
def signed_in():
    """Token verified as belonging to auth user user-1."""
    app.dependency_overrides[get_current_user] = lambda: {"id": "user-1", "email": "first@practice.test"}
    yield
    app.dependency_overrides.clear()


def sign_in_as(user_id, email):
    app.dependency_overrides[get_current_user] = lambda: {"id": user_id, "email": email}


# =============================================================================
# CREATE PROFILE
# =============================================================================

class TestCreateProfile:

    def test_first_user_becomes_administrator(self, fake_db, signed_in):
        response = client.post("/api/auth/create-profile", json={
            "userId": "user-1", "userEmail": "first@practice.test",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["created"] is True
        assert data["profile"]["role"] == "ADMINISTRATOR"
        assert data["profile"]["status"] == "ACTIVE"

        audit = fake_db.rows("AuditLog")[0]
        assert audit["action"] == "User account created"
        assert audit["category"] == "USER"
        assert json.loads(audit["details"]) == {"email": "first@practice.test", "role": "ADMINISTRATOR"}

    def test_later_users_are_claim_processors(self, fake_db, signed_in):
        fake_db.seed("TaxEngineUsers", {"uuid": "admin", "email": "a@practice.test",
                                         "role": "ADMINISTRATOR", "status": "ACTIVE"})
        response = client.post("/api/auth/create-profile", json={
            "userId": "user-1", "userEmail": "first@practice.test",
        })
        assert response.json()["profile"]["role"] == "CLAIM_PROCESSOR"

    def test_existing_profile_returned(self, fake_db, signed_in):
        fake_db.seed("TaxEngineUsers", {"uuid": "user-1", "email": "first@practice.test",
                                         "role": "CLAIM_PROCESSOR", "status": "ACTIVE"})
        response = client.post("/api/auth/create-profile", json={
            "userId": "user-1", "userEmail": "first@practice.test",
        })
        assert response.status_code == 200
        assert response.json()["created"] is False
        assert len(fake_db.rows("TaxEngineUsers")) == 1
        assert fake_db.rows("AuditLog") == []

    def test_missing_fields(self, fake_db, signed_in):
        response = client.post("/api/auth/create-profile", json={"userId": "user-1"})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing userId or userEmail"}

    def test_token_must_match_user(self, fake_db, signed_in):
        response = client.post("/api/auth/create-profile", json={
            "userId": "someone-else", "userEmail": "x@practice.test",
        })
        assert response.status_code == 403
        assert fake_db.rows("TaxEngineUsers") == []

    def test_requires_token(self, fake_db):
        response = client.post("/api/auth/create-profile", json={
            "userId": "user-1", "userEmail": "first@practice.test",
        })
        assert response.status_code == 401


# =============================================================================
# TRACK LOGIN
# =============================================================================

class TestTrackLogin:

    def test_stamps_last_login_and_audits(self, fake_db, signed_in):
        fake_db.seed("TaxEngineUsers", {"uuid": "user-1", "email": "first@practice.test",
                                         "role": "ADMINISTRATOR", "status": "ACTIVE"})
        response = client.post("/api/auth/track-login", json={"userId": "user-1"})
        assert response.status_code == 200
        assert response.json() == {"success": True}

        user = fake_db.rows("TaxEngineUsers")[0]
        assert user["lastLoginAt"]
        audit = fake_db.rows("AuditLog")[0]
        assert audit["action"] == "User logged in"
        assert audit["category"] == "AUTH"
        assert audit["userId"] == user["id"]
        assert audit["details"] == "User first@practice.test logged in"

    def test_bookkeeping_failures_still_succeed(self, fake_db, signed_in):
        fake_db.fail("TaxEngineUsers", "update")
        fake_db.fail("AuditLog", "insert")
        response = client.post("/api/auth/track-login", json={"userId": "user-1", "userEmail": "first@practice.test"})
        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_user_id_required(self, fake_db, signed_in):
        response = client.post("/api/auth/track-login", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "User ID is required"}

    def test_other_user_rejected(self, fake_db):
        sign_in_as("user-2", "second@practice.test")
        try:
            response = client.post("/api/auth/track-login", json={"userId": "user-1"})
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 403
