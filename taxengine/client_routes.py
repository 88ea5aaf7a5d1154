"""
Client Company Routes

CRUD for client companies plus the two bulk import paths (JSON rows and
CSV upload). Companies are never deleted; PATCH isActive=false retires one.
Every mutation invalidates the process-local client list cache.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile

from taxengine.accounting_periods import build_period_rows, generate_default_periods
from taxengine.auth_permissions import AuthContext, Permission, get_auth_context, request_metadata
from taxengine.client_cache import get_client_cache
from taxengine.client_import import CSVImportError, bulk_import_clients, parse_clients_csv
from taxengine.data import AccountingPeriodRepository, AuditLogRepository, ClientCompanyRepository
from taxengine.models import AuditCategory
from taxengine.router_utils import internal_error, is_duplicate_key_error, require_supabase
from taxengine.schemas import BulkImportRequest, ClientCreate, ClientUpdate, to_columns
from taxengine.utils import blank_to_none, utc_now_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clients", tags=["clients"])

DUPLICATE_NUMBER_MESSAGE = "A client with this company number already exists"
NULLABLE_CLIENT_FIELDS = ("utr", "payeReference", "email", "phone")


def _client_summary(client: Dict[str, Any], contact_email=None, contact_phone=None) -> Dict[str, Any]:
    return {
        "id": client.get("uuid"),
        "name": client.get("companyName"),
        "number": client.get("companyNumber"),
        "utr": client.get("utr"),
        "payeReference": client.get("payeReference"),
        "contactEmail": client.get("email", contact_email),
        "contactPhone": client.get("phone", contact_phone),
        "yearEndMonth": client.get("companyYearEndMonth"),
        "yearEndDay": client.get("companyYearEndDay"),
    }


# =============================================================================
# READS
# =============================================================================

@router.get("")
async def list_clients(
    refresh: bool = Query(False),
    auth: AuthContext = Depends(get_auth_context)
):
    """Active clients ordered by name, served from the client cache."""
    auth.require_permission(Permission.VIEW_CLIENTS)
    require_supabase()

    cache = get_client_cache()
    try:
        clients = cache.refresh() if refresh else cache.get()
    except Exception as e:
        internal_error("fetching clients", e)

    return {"clients": clients}


@router.get("/{client_uuid}")
async def get_client(
    client_uuid: str,
    auth: AuthContext = Depends(get_auth_context)
):
    auth.require_permission(Permission.VIEW_CLIENTS)
    supabase = require_supabase()

    try:
        client = ClientCompanyRepository(supabase).get_by_uuid(client_uuid)
    except Exception as e:
        internal_error(f"fetching client {client_uuid}", e)

    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return {"client": client}


# =============================================================================
# MUTATIONS
# =============================================================================

@router.post("")
async def create_client(
    body: ClientCreate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context)
):
    """
    Create a client company.

    With a known year-end, the upcoming and two most recent accounting
    periods are generated as well. A failure there is logged but does not
    fail the request.
    """
    auth.require_permission(Permission.EDIT_CLIENTS)
    supabase = require_supabase()

    company_name = (body.company_name or "").strip()
    company_number = (body.company_number or "").strip()
    if not company_name or not company_number:
        raise HTTPException(status_code=400, detail="Company name and number are required")

    clients = ClientCompanyRepository(supabase)

    try:
        if clients.find_by_company_number(company_number):
            raise HTTPException(status_code=409, detail=DUPLICATE_NUMBER_MESSAGE)

        try:
            client = clients.create(
                company_name=company_name,
                company_number=company_number,
                utr=body.utr,
                paye_reference=body.paye_reference,
                email=body.contact_email,
                phone=body.contact_phone,
                contact_name=body.contact_name,
                year_end_month=body.company_year_end_month,
                year_end_day=body.company_year_end_day,
            )
        except Exception as e:
            if is_duplicate_key_error(e):
                raise HTTPException(status_code=409, detail=DUPLICATE_NUMBER_MESSAGE)
            raise

        get_client_cache().invalidate()

        period_count = 0
        periods = generate_default_periods(body.company_year_end_month, body.company_year_end_day)
        if periods:
            try:
                created = AccountingPeriodRepository(supabase).insert_many(
                    build_period_rows(client, periods, utc_now_iso())
                )
                period_count = len(created)
                logger.info(f"Created {period_count} accounting periods for client {client.get('uuid')}")
            except Exception as e:
                logger.error(f"Error creating accounting periods for {company_number}: {e}")

        AuditLogRepository(supabase).record(
            action="Client created",
            category=AuditCategory.CLIENT,
            details=f"Created client: {company_name} ({company_number})",
            user_id=auth.profile_id,
            client_company_id=client.get("id"),
            **request_metadata(request),
        )

        return {
            "success": True,
            "client": _client_summary(client, body.contact_email, body.contact_phone),
            "accountingPeriods": period_count,
        }
    except HTTPException:
        raise
    except Exception as e:
        internal_error("creating client", e)


@router.put("")
async def bulk_import(
    body: BulkImportRequest,
    request: Request,
    auth: AuthContext = Depends(get_auth_context)
):
    """Bulk import from JSON rows. Existing company numbers are skipped."""
    auth.require_permission(Permission.EDIT_CLIENTS)
    supabase = require_supabase()

    if not body.clients:
        raise HTTPException(status_code=400, detail="Clients array is required")

    rows = [row.model_dump(by_alias=True) for row in body.clients]

    try:
        outcome = bulk_import_clients(
            ClientCompanyRepository(supabase),
            AccountingPeriodRepository(supabase),
            AuditLogRepository(supabase),
            rows,
            user_id=auth.profile_id,
            **request_metadata(request),
        )
    except Exception as e:
        internal_error("importing clients", e)
    finally:
        get_client_cache().invalidate()

    return {"success": True, **outcome}


@router.post("/import-csv")
async def import_csv(
    request: Request,
    file: UploadFile = File(...),
    auth: AuthContext = Depends(get_auth_context)
):
    """Bulk import from a CSV upload with the standard client headers."""
    auth.require_permission(Permission.EDIT_CLIENTS)
    supabase = require_supabase()

    content = await file.read()
    logger.info(f"Processing client CSV {file.filename}, size: {len(content)} bytes")

    try:
        rows, row_errors = parse_clients_csv(content)
    except CSVImportError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not rows:
        return {"success": True, "created": 0, "skipped": 0, "errors": row_errors}

    try:
        outcome = bulk_import_clients(
            ClientCompanyRepository(supabase),
            AccountingPeriodRepository(supabase),
            AuditLogRepository(supabase),
            rows,
            user_id=auth.profile_id,
            **request_metadata(request),
        )
    except Exception as e:
        internal_error("importing client CSV", e)
    finally:
        get_client_cache().invalidate()

    return {
        "success": True,
        "created": outcome["created"],
        "skipped": outcome["skipped"],
        "errors": row_errors + outcome["errors"],
    }


@router.patch("/{client_uuid}")
async def update_client(
    client_uuid: str,
    body: ClientUpdate,
    request: Request,
    auth: AuthContext = Depends(get_auth_context)
):
    """
    Partial update. Empty strings clear the nullable fields; updatedAt is
    always stamped, so an empty body still succeeds.
    """
    auth.require_permission(Permission.EDIT_CLIENTS)
    supabase = require_supabase()

    updates = to_columns(body)
    for field in NULLABLE_CLIENT_FIELDS:
        if field in updates:
            updates[field] = blank_to_none(updates[field])

    if "companyName" in updates:
        name = (updates["companyName"] or "").strip()
        if not name:
            raise HTTPException(status_code=400, detail="Company name cannot be empty")
        updates["companyName"] = name

    updates["updatedAt"] = utc_now_iso()

    clients = ClientCompanyRepository(supabase)
    try:
        existing = clients.get_by_uuid(client_uuid)
        if not existing:
            raise HTTPException(status_code=404, detail="Client not found")

        client = clients.update_by_uuid(client_uuid, updates) or {**existing, **updates}
        get_client_cache().invalidate()

        changed = sorted(k for k in updates if k != "updatedAt")
        AuditLogRepository(supabase).record(
            action="Client updated",
            category=AuditCategory.CLIENT,
            details=f"Updated {existing.get('companyName')}: {', '.join(changed) or 'no field changes'}",
            user_id=auth.profile_id,
            client_company_id=existing.get("id"),
            **request_metadata(request),
        )
        return {"success": True, "client": client}
    except HTTPException:
        raise
    except Exception as e:
        internal_error(f"updating client {client_uuid}", e)
