import os
import logging
from typing import Optional

from supabase import create_client, Client
from dotenv import load_dotenv
from jose import jwt, JWTError

load_dotenv()

logger = logging.getLogger(__name__)

CONFIG_ERROR_MESSAGE = "Server configuration error - missing database credentials"

_client: Client | None = None


def get_supabase_url() -> Optional[str]:
    return os.environ.get("SUPABASE_URL") or os.environ.get("NEXT_PUBLIC_SUPABASE_URL")


def get_service_role_key() -> Optional[str]:
    # Service role bypasses RLS; the backend never falls back to the anon key for writes
    return os.environ.get("SUPABASE_SERVICE_ROLE_KEY")


def is_configured() -> bool:
    return bool(get_supabase_url() and get_service_role_key())


def get_supabase() -> Client | None:
    """
    Get the Supabase client instance.

    The client is created on first use so that missing credentials surface
    as a per-request configuration error instead of an import-time crash.
    """
    global _client
    if _client is not None:
        return _client

    if not is_configured():
        logger.warning("Supabase URL or service role key not set. Database features are disabled.")
        return None

    _client = create_client(get_supabase_url(), get_service_role_key())
    return _client


def verify_supabase_token(token: str) -> Optional[dict]:
    """
    Verify a Supabase JWT and return the user claims.
    Returns None if verification fails.

    When SUPABASE_JWT_SECRET is set the signature, expiry and audience are
    checked. Without it the claims are read unverified, which is only
    acceptable behind a trusted gateway.
    """
    if not token:
        return None

    secret = os.environ.get("SUPABASE_JWT_SECRET")
    try:
        if secret:
            decoded = jwt.decode(token, secret, algorithms=["HS256"], audience="authenticated")
        else:
            decoded = jwt.get_unverified_claims(token)
    except JWTError as e:
        logger.info(f"[Auth] JWT rejected: {e}")
        return None

    user_id = decoded.get("sub")
    if not user_id:
        logger.info("[Auth] No subject in token")
        return None

    return {
        "id": user_id,
        "email": decoded.get("email"),
        "role": decoded.get("role", "authenticated"),
    }


def get_user_profile(supabase: Client, user_id: str) -> dict | None:
    """
    Get the TaxEngine user profile linked to an auth identity.
    Query errors propagate so callers can tell a missing profile from an
    unreachable database.
    """
    response = supabase.table("TaxEngineUsers").select("*").eq("uuid", user_id).limit(1).execute()
    return response.data[0] if response.data else None
