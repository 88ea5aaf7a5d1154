"""
Companies House passthrough.

The API key stays server-side; the browser only sees the reshaped results.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from taxengine.auth_permissions import AuthContext, Permission, get_auth_context
from taxengine.companies_house import CompaniesHouseClient, CompaniesHouseError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/companies-house", tags=["companies-house"])


@router.get("/search")
async def search_companies(
    q: Optional[str] = Query(None),
    auth: AuthContext = Depends(get_auth_context)
):
    auth.require_permission(Permission.VIEW_CLIENTS)
    try:
        return await CompaniesHouseClient().search_companies(q)
    except CompaniesHouseError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/company/{number}")
async def get_company(
    number: str,
    auth: AuthContext = Depends(get_auth_context)
):
    auth.require_permission(Permission.VIEW_CLIENTS)
    try:
        return await CompaniesHouseClient().get_company(number)
    except CompaniesHouseError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
