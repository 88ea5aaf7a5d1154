"""
Companies House passthrough tests. httpx.AsyncClient is replaced with a
recording fake so no network calls are made.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from taxengine import companies_house
from taxengine.companies_house import shape_company
from taxengine.main import app

client = TestClient(app)

SEARCH_PAYLOAD = {
    "items": [
        {
            "title": "ACME WIDGETS LIMITED",
            "company_number": "01234567",
            "company_status": "active",
            "company_type": "ltd",
            "date_of_creation": "2001-05-04",
            "registered_office_address": {
                "address_line_1": "1 High Street",
                "locality": "London",
                "postal_code": "EC1A 1AA",
            },
        }
    ]
}

COMPANY_PAYLOAD = {
    "company_name": "ACME WIDGETS LIMITED",
    "company_number": "01234567",
    "company_status": "active",
    "type": "ltd",
    "date_of_creation": "2001-05-04",
    "accounts": {"accounting_reference_date": {"day": "31", "month": "03"}},
    "registered_office_address": {"address_line_1": "1 High Street", "postal_code": "EC1A 1AA"},
    "sic_codes": ["72190"],
}


class FakeAsyncClient:
    """Stands in for httpx.AsyncClient; records every GET."""

    calls = []
    response = None
    error = None

    def __init__(self, *args, **kwargs):
        self.timeout = kwargs.get("timeout")

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def get(self, url, params=None, auth=None):
        FakeAsyncClient.calls.append({"url": url, "params": params, "auth": auth, "timeout": self.timeout})
        if FakeAsyncClient.error:
            raise FakeAsyncClient.error
        return FakeAsyncClient.response


def respond(status_code, payload=None):
    FakeAsyncClient.response = httpx.Response(
        status_code,
        json=payload if payload is not None else {},
        request=httpx.Request("GET", "https://api.company-information.service.gov.uk"),
    )


@pytest.fixture
def upstream(monkeypatch):
    monkeypatch.setenv("COMPANIES_HOUSE_API_KEY", "ch-key")
    monkeypatch.delenv("COMPANIES_HOUSE_API_URL", raising=False)
    monkeypatch.setattr(companies_house.httpx, "AsyncClient", FakeAsyncClient)
    FakeAsyncClient.calls = []
    FakeAsyncClient.response = None
    FakeAsyncClient.error = None
    yield FakeAsyncClient


# =============================================================================
# SEARCH
# =============================================================================

class TestSearch:

    def test_search_reshapes_items(self, upstream, as_admin):
        respond(200, SEARCH_PAYLOAD)
        response = client.get("/api/companies-house/search?q=acme")
        assert response.status_code == 200
        assert response.json() == {"items": [{
            "name": "ACME WIDGETS LIMITED",
            "number": "01234567",
            "status": "active",
            "type": "ltd",
            "dateOfCreation": "2001-05-04",
            "address": "1 High Street, London, EC1A 1AA",
        }]}

        call = upstream.calls[0]
        assert call["url"] == "https://api.company-information.service.gov.uk/search/companies"
        assert call["params"] == {"q": "acme", "items_per_page": 10}
        assert call["auth"] == ("ch-key", "")
        assert call["timeout"] == 10.0

    def test_short_query_makes_no_call(self, upstream, as_admin):
        response = client.get("/api/companies-house/search?q=a")
        assert response.status_code == 200
        assert response.json() == {"items": []}
        assert upstream.calls == []

    def test_upstream_status_passed_through(self, upstream, as_admin):
        respond(429)
        response = client.get("/api/companies-house/search?q=acme")
        assert response.status_code == 429
        assert response.json() == {"error": "Failed to search Companies House"}

    def test_network_error(self, upstream, as_admin):
        upstream.error = httpx.ConnectError("connection refused")
        response = client.get("/api/companies-house/search?q=acme")
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to search Companies House"}

    def test_not_configured(self, upstream, as_admin, monkeypatch):
        monkeypatch.delenv("COMPANIES_HOUSE_API_KEY")
        response = client.get("/api/companies-house/search?q=acme")
        assert response.status_code == 500
        assert response.json() == {"error": "Companies House API not configured"}
        assert upstream.calls == []


# =============================================================================
# COMPANY PROFILE
# =============================================================================

class TestCompanyProfile:

    def test_profile_with_year_end(self, upstream, as_processor):
        respond(200, COMPANY_PAYLOAD)
        response = client.get("/api/companies-house/company/01234567")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "ACME WIDGETS LIMITED"
        assert data["yearEndMonth"] == 3
        assert data["yearEndDay"] == 31
        assert data["sicCodes"] == ["72190"]
        assert data["registeredAddress"]["postalCode"] == "EC1A 1AA"
        assert upstream.calls[0]["url"].endswith("/company/01234567")

    def test_unknown_company(self, upstream, as_admin):
        respond(404, {"errors": [{"error": "company-profile-not-found"}]})
        response = client.get("/api/companies-house/company/99999999")
        assert response.status_code == 404
        assert response.json() == {"error": "Failed to fetch company details"}


def test_shape_company_without_accounts():
    shaped = shape_company({"company_name": "NEW CO LTD", "company_number": "1"})
    assert shaped["yearEndMonth"] is None
    assert shaped["yearEndDay"] is None
    assert shaped["registeredAddress"] is None
    assert shaped["sicCodes"] == []
