import os
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from taxengine import __version__
from taxengine.supabase_client import get_supabase
from taxengine.router_utils import INTERNAL_ERROR_MESSAGE

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="TaxEngine API",
    description="UK R&D Tax Credit Claim Processing API",
    version=__version__
)

# CORS configuration
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

# Get additional allowed origins from environment
extra_origins = os.environ.get("CORS_ORIGINS", "")
if extra_origins:
    allowed_origins.extend([o.strip() for o in extra_origins.split(",") if o.strip()])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error responses: every error body is {"error": "<message>"} ---

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Pydantic validation errors become 400 with the first failing field."""
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"] if loc != "body")
        errors.append(f"{field}: {error['msg']}" if field else error["msg"])
    return JSONResponse(status_code=400, content={"error": errors[0] if errors else "Invalid request data"})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {exc}\n{traceback.format_exc()}")
    return JSONResponse(status_code=500, content={"error": INTERNAL_ERROR_MESSAGE})


@app.on_event("startup")
async def startup_event():
    """Log startup information."""
    port = os.environ.get("PORT", "8000")
    logger.info(f"TaxEngine API starting on port {port}")
    logger.info(f"Supabase connected: {get_supabase() is not None}")
    logger.info(
        f"Companies House: {'Configured' if os.environ.get('COMPANIES_HOUSE_API_KEY') else 'NOT CONFIGURED - set COMPANIES_HOUSE_API_KEY'}"
    )
    if not os.environ.get("SUPABASE_JWT_SECRET"):
        logger.warning(
            "SUPABASE_JWT_SECRET not set - bearer tokens are read without signature or expiry checks"
        )


# --- Routers ---
from taxengine.client_routes import router as client_router
from taxengine.period_routes import router as period_router
from taxengine.audit_routes import router as audit_router
from taxengine.companies_house_routes import router as companies_house_router
from taxengine.auth_routes import router as auth_router
from taxengine.claim_routes import router as claim_router, submissions_router
from taxengine.settings_routes import router as settings_router
from taxengine.jobs_routes import router as jobs_router
from taxengine.system_routes import router as system_router, _health

app.include_router(client_router)
app.include_router(period_router)
app.include_router(audit_router)
app.include_router(companies_house_router)
app.include_router(auth_router)
app.include_router(claim_router)
app.include_router(submissions_router)
app.include_router(settings_router)
app.include_router(jobs_router)
app.include_router(system_router)


@app.get("/health")
async def health():
    return _health()
