"""
Companies House Client

Thin async client for the Companies House public data API. Responses are
reshaped into the camelCase structures the client screens consume.

Auth is HTTP basic with the API key as username and an empty password.
No caching and no retries; every call is a single request with a fixed
timeout.
"""

import os
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.company-information.service.gov.uk"
REQUEST_TIMEOUT = 10.0
SEARCH_PAGE_SIZE = 10
MIN_QUERY_LENGTH = 2

SEARCH_ERROR = "Failed to search Companies House"
COMPANY_ERROR = "Failed to fetch company details"


class CompaniesHouseError(Exception):
    """Upstream call failed. status_code is passed through to the caller."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class CompaniesHouseNotConfigured(CompaniesHouseError):
    def __init__(self):
        super().__init__(500, "Companies House API not configured")


def _format_address(address: Optional[Dict[str, Any]]) -> Optional[str]:
    if not address:
        return None
    parts = [
        address.get("address_line_1"),
        address.get("address_line_2"),
        address.get("locality"),
        address.get("region"),
        address.get("postal_code"),
    ]
    return ", ".join(p for p in parts if p)


def _parse_int(value: Any) -> Optional[int]:
    # accounting_reference_date parts arrive as strings like "03"
    if value in (None, ""):
        return None
    try:
        return int(str(value))
    except ValueError:
        return None


def shape_search_item(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": item.get("title"),
        "number": item.get("company_number"),
        "status": item.get("company_status"),
        "type": item.get("company_type"),
        "dateOfCreation": item.get("date_of_creation"),
        "address": _format_address(item.get("registered_office_address")),
    }


def shape_company(company: Dict[str, Any]) -> Dict[str, Any]:
    reference_date = (company.get("accounts") or {}).get("accounting_reference_date") or {}
    office = company.get("registered_office_address")

    registered_address = None
    if office:
        registered_address = {
            "line1": office.get("address_line_1"),
            "line2": office.get("address_line_2"),
            "locality": office.get("locality"),
            "region": office.get("region"),
            "postalCode": office.get("postal_code"),
            "country": office.get("country"),
        }

    return {
        "name": company.get("company_name"),
        "number": company.get("company_number"),
        "status": company.get("company_status"),
        "type": company.get("type"),
        "dateOfCreation": company.get("date_of_creation"),
        "yearEndMonth": _parse_int(reference_date.get("month")),
        "yearEndDay": _parse_int(reference_date.get("day")),
        "registeredAddress": registered_address,
        "sicCodes": company.get("sic_codes") or [],
    }


class CompaniesHouseClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.api_key = api_key if api_key is not None else os.environ.get("COMPANIES_HOUSE_API_KEY")
        self.base_url = (base_url or os.environ.get("COMPANIES_HOUSE_API_URL") or DEFAULT_API_URL).rstrip("/")
        self.timeout = timeout

    async def _get(self, path: str, params: Optional[Dict[str, Any]], error_message: str) -> Dict[str, Any]:
        if not self.api_key:
            logger.error("COMPANIES_HOUSE_API_KEY not configured")
            raise CompaniesHouseNotConfigured()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.base_url}{path}",
                    params=params,
                    auth=(self.api_key, ""),
                )
        except httpx.RequestError as e:
            logger.error(f"Companies House request to {path} failed: {e}")
            raise CompaniesHouseError(500, error_message)

        if response.status_code < 200 or response.status_code >= 300:
            logger.error(f"Companies House API error: {response.status_code} {response.reason_phrase}")
            raise CompaniesHouseError(response.status_code, error_message)

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Companies House returned invalid JSON for {path}: {e}")
            raise CompaniesHouseError(500, error_message)

    async def search_companies(self, query: Optional[str]) -> Dict[str, List[Dict[str, Any]]]:
        """Search by name or number. Short queries return no items without a call."""
        if not query or len(query) < MIN_QUERY_LENGTH:
            return {"items": []}

        data = await self._get(
            "/search/companies",
            {"q": query, "items_per_page": SEARCH_PAGE_SIZE},
            SEARCH_ERROR,
        )
        items = data.get("items") or []
        return {"items": [shape_search_item(item) for item in items[:SEARCH_PAGE_SIZE]]}

    async def get_company(self, number: str) -> Dict[str, Any]:
        """Company profile including the accounting reference date (year-end)."""
        if not number:
            raise CompaniesHouseError(400, "Company number is required")

        company = await self._get(f"/company/{quote(number, safe='')}", None, COMPANY_ERROR)
        logger.info(
            f"Company {company.get('company_name')} year end: "
            f"{(company.get('accounts') or {}).get('accounting_reference_date')}"
        )
        return shape_company(company)
