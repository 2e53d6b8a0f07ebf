"""Route guard for authenticated and admin-only pages.

The guard itself is a pure decision over the current session flags; the
FastAPI dependencies below apply it per request and answer with a
``303 See Other`` redirect when access is refused.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request

from assessment_portal.dependencies import Portal, get_portal
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GuardDecision:
    """Outcome of a guard check.

    Attributes:
        allowed: Whether the page may be shown
        redirect_to: Path to send the user to when not allowed
    """
    allowed: bool
    redirect_to: Optional[str] = None


class RouteGuard:
    """Decides whether a navigation may proceed.

    Example:
        guard = RouteGuard(login_path="/login", default_path="/")
        guard.check(is_authenticated=True, is_admin=False, require_admin=True)
        # GuardDecision(allowed=False, redirect_to="/")
    """

    def __init__(self, login_path: str = "/login", default_path: str = "/"):
        self.login_path = login_path
        self.default_path = default_path

    def check(self, is_authenticated: bool, is_admin: bool, require_admin: bool = False) -> GuardDecision:
        if not is_authenticated:
            return GuardDecision(allowed=False, redirect_to=self.login_path)
        if require_admin and not is_admin:
            return GuardDecision(allowed=False, redirect_to=self.default_path)
        return GuardDecision(allowed=True)


def _enforce(request: Request, portal: Portal, require_admin: bool) -> None:
    guard = RouteGuard(
        login_path=portal.settings.login_path,
        default_path=portal.settings.default_path,
    )
    decision = guard.check(
        is_authenticated=portal.store.is_authenticated,
        is_admin=portal.store.is_admin,
        require_admin=require_admin,
    )
    if decision.allowed:
        return

    logger.info(f"Redirecting {request.method} {request.url.path} to {decision.redirect_to}")
    raise HTTPException(
        status_code=303,
        detail="Redirect",
        headers={"Location": decision.redirect_to},
    )


async def require_user(request: Request, portal: Portal = Depends(get_portal)) -> Portal:
    """Dependency: the user must be signed in."""
    _enforce(request, portal, require_admin=False)
    return portal


async def require_admin(request: Request, portal: Portal = Depends(get_portal)) -> Portal:
    """Dependency: the user must be signed in with admin rights."""
    _enforce(request, portal, require_admin=True)
    return portal
