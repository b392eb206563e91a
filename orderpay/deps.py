"""Shared FastAPI dependencies."""

from dataclasses import dataclass

from fastapi import Request

from orderpay.core.exceptions import ForbiddenError, UnauthorizedError
from orderpay.core.security import load_session_cookie
from orderpay.services.container import Services

SESSION_COOKIE_NAME = "orderpay_session"
GUEST_SESSION_HEADER = "X-Guest-Session"
ADMIN_ROLES = {"admin", "super_admin"}


@dataclass
class Caller:
    user_id: str | None = None
    guest_token: str | None = None
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def identified(self) -> bool:
        return bool(self.user_id or self.guest_token)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_caller(request: Request) -> Caller:
    """Dependency: signed session cookie, else guest header, else anonymous."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if cookie:
        payload = load_session_cookie(cookie)
        if not payload:
            raise UnauthorizedError("Invalid or expired session")
        user_id = payload.get("user_id")
        if not user_id:
            raise UnauthorizedError("Invalid session")
        return Caller(user_id=str(user_id), role=payload.get("role") or "customer")
    guest = (request.headers.get(GUEST_SESSION_HEADER) or "").strip()
    return Caller(guest_token=guest or None)


async def require_caller(request: Request) -> Caller:
    """Dependency: a signed-in user or a guest session."""
    caller = await get_caller(request)
    if not caller.identified:
        raise UnauthorizedError("Not authenticated")
    return caller


async def require_admin(request: Request) -> Caller:
    """Dependency: require current user to have role admin or super_admin."""
    caller = await get_caller(request)
    if not caller.user_id:
        raise UnauthorizedError("Not authenticated")
    if not caller.is_admin:
        raise ForbiddenError("Admin only")
    return caller
