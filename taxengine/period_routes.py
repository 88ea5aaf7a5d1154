import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from taxengine.accounting_periods import build_period_row, can_transition, parse_period_date
from taxengine.auth_permissions import AuthContext, Permission, get_auth_context, request_metadata
from taxengine.data import AccountingPeriodRepository, AuditLogRepository, ClientCompanyRepository
from taxengine.models import AuditCategory, PeriodStatus
from taxengine.router_utils import internal_error, require_supabase
from taxengine.schemas import AccountingPeriodCreate, PeriodStatusUpdate
from taxengine.utils import utc_now_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounting-periods", tags=["accounting-periods"])


@router.get("")
async def list_periods(
    client_company_uuid: str = Query(..., alias="clientCompanyUuid"),
    auth: AuthContext = Depends(get_auth_context)
):
    """Periods for one company, latest end date first."""
    auth.require_permission(Permission.VIEW_CLIENTS)
    supabase = require_supabase()

    try:
        periods = AccountingPeriodRepository(supabase).list_for_company(client_company_uuid)
    except Exception as e:
        internal_error("fetching accounting periods", e)
    return {"periods": periods}


@router.post("")
async def create_period(
    body: AccountingPeriodCreate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context)
):
    auth.require_permission(Permission.EDIT_CLIENTS)
    supabase = require_supabase()

    if not body.client_company_uuid or not body.start_date or not body.end_date:
        raise HTTPException(
            status_code=400,
            detail="Client company UUID, start date, and end date are required"
        )

    try:
        start = parse_period_date(body.start_date)
        end = parse_period_date(body.end_date)
    except ValueError:
        raise HTTPException(status_code=400, detail="Dates must be ISO formatted (YYYY-MM-DD)")

    if end < start:
        raise HTTPException(status_code=400, detail="End date must not be before start date")

    try:
        company = ClientCompanyRepository(supabase).get_by_uuid(body.client_company_uuid)
        if not company:
            raise HTTPException(status_code=404, detail="Client company not found")

        period = AccountingPeriodRepository(supabase).insert(
            build_period_row(company, start, end, utc_now_iso())
        )

        AuditLogRepository(supabase).record(
            action="Accounting period created",
            category=AuditCategory.CLIENT,
            details=f"{company.get('companyName')}: {start.isoformat()} to {end.isoformat()}",
            user_id=auth.profile_id,
            client_company_id=company.get("id"),
            **request_metadata(request),
        )
        return {"success": True, "period": period}
    except HTTPException:
        raise
    except Exception as e:
        internal_error("creating accounting period", e)


@router.patch("/{period_uuid}/status")
async def update_period_status(
    period_uuid: str,
    body: PeriodStatusUpdate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context)
):
    """Move a period forward in its lifecycle. Backward moves are rejected."""
    auth.require_permission(Permission.EDIT_CLAIMS)
    supabase = require_supabase()

    try:
        target = PeriodStatus(body.status)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid period status: {body.status}")

    periods = AccountingPeriodRepository(supabase)
    try:
        period = periods.get_by_uuid(period_uuid)
        if not period:
            raise HTTPException(status_code=404, detail="Accounting period not found")

        current = period.get("status")
        if not can_transition(current, target.value):
            raise HTTPException(
                status_code=409,
                detail=f"Cannot move period from {current} to {target.value}"
            )

        updated = periods.update_status(period_uuid, target.value) or {**period, "status": target.value}

        AuditLogRepository(supabase).record(
            action="Period status changed",
            category=AuditCategory.CLAIM,
            details=f"{current} -> {target.value}",
            user_id=auth.profile_id,
            client_company_id=period.get("clientCompanyId"),
            **request_metadata(request),
        )
        return {"success": True, "period": updated}
    except HTTPException:
        raise
    except Exception as e:
        internal_error(f"updating period {period_uuid}", e)
