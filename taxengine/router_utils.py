import logging
from typing import NoReturn

from fastapi import HTTPException

from taxengine.supabase_client import CONFIG_ERROR_MESSAGE, get_supabase

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


def require_supabase():
    """The Supabase client, or a 500 when credentials are missing."""
    supabase = get_supabase()
    if supabase is None:
        logger.error("Missing Supabase environment variables")
        raise HTTPException(status_code=500, detail=CONFIG_ERROR_MESSAGE)
    return supabase


def internal_error(action: str, error: Exception) -> NoReturn:
    """Log the cause server-side and hand the client a generic 500."""
    logger.error(f"Error {action}: {error}", exc_info=True)
    raise HTTPException(status_code=500, detail=INTERNAL_ERROR_MESSAGE)


def is_duplicate_key_error(error: Exception) -> bool:
    message = str(error).lower()
    return "duplicate key" in message or "23505" in message
