"""
System Routes

Public health check, served at /api/system/health and at /health for
load balancers.
"""

import os
import logging

from fastapi import APIRouter

from taxengine import __version__
from taxengine.schemas import HealthResponse
from taxengine.supabase_client import get_supabase
from taxengine.utils import utc_now_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])


def _health() -> HealthResponse:
    services = {}

    try:
        supabase = get_supabase()
        if supabase:
            supabase.table("TaxEngineUsers").select("id").limit(1).execute()
            services["database"] = "healthy"
        else:
            services["database"] = "unavailable"
    except Exception as e:
        logger.warning(f"Health check database query failed: {e}")
        services["database"] = f"error: {str(e)[:50]}"

    services["companies_house"] = "configured" if os.environ.get("COMPANIES_HOUSE_API_KEY") else "not_configured"

    status = "healthy" if services["database"] == "healthy" else "degraded"

    return HealthResponse(
        status=status,
        timestamp=utc_now_iso(),
        version=__version__,
        environment=os.getenv("ENVIRONMENT", "development"),
        services=services
    )


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Basic health check endpoint.
    Public - no auth required.
    """
    return _health()
