"""Sign-in endpoints backed by the AuthService and SessionStore."""

import asyncio

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from assessment_portal.dependencies import Portal, get_portal
from assessment_portal.middleware.route_guard import require_user
from assessment_portal.schemas.auth import Credentials
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/auth")


@router.post("/login")
async def login(credentials: Credentials, portal: Portal = Depends(get_portal)):
    """Sign in with email and password.

    Returns 200 with the user's admin flag, or 401 with a user-facing error.
    """
    result = await asyncio.to_thread(portal.auth.login, credentials.email, credentials.password)
    if not result.success:
        return JSONResponse(status_code=401, content={"error": result.error})
    return {
        "email": portal.store.user.email,
        "is_admin": portal.store.is_admin,
    }


@router.post("/logout")
async def logout(portal: Portal = Depends(get_portal)) -> dict:
    await asyncio.to_thread(portal.auth.logout)
    return {"status": "logged_out"}


@router.get("/me")
async def me(portal: Portal = Depends(require_user)) -> dict:
    """Current user, or a redirect to the login page."""
    user = portal.store.user
    return {"id": user.id, "email": user.email, "is_admin": user.is_admin}
