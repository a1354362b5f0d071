import secrets

from fastapi import HTTPException, Header
from booking_engine.core.config import settings

async def verify_admin_token(x_admin_token: str = Header(None)):
    """
    Guard for administrative routes. The X-Admin-Token header must match
    ADMIN_TOKEN; with no ADMIN_TOKEN configured the admin routes are closed.
    """
    if not settings.ADMIN_TOKEN:
        raise HTTPException(status_code=403, detail="Admin API disabled (ADMIN_TOKEN not set)")

    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.ADMIN_TOKEN):
        raise HTTPException(status_code=403, detail="Invalid admin token")
    return True
