import hmac
import os

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader
from starlette.status import HTTP_401_UNAUTHORIZED

# Expected header: X-API-Key
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_api_key(api_key: str | None = Security(api_key_header)) -> str | None:
    """
    Validates the X-API-Key header against the API_KEY_SECRET environment variable.

    The round monitor is read-only, so the guard is opt-in: with no secret
    configured every request is let through.
    """
    secret = os.getenv("API_KEY_SECRET")
    if not secret:
        return None

    if not api_key or not hmac.compare_digest(api_key, secret):
        raise HTTPException(
            status_code=HTTP_401_UNAUTHORIZED,
            detail="Invalid API Key",
        )

    return api_key
