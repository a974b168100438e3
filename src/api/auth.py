"""Bearer-token authentication and role gating for the HTTP API.

Tokens are issued by the auth service (``POST /auth/login``) and resolved
back to an account with its roles on every request. Admin routes declare the
area they belong to and are gated with the same rules as the back-office UI.

Example:
    from src.api.auth import require_area

    @router.get("/admin/projetos")
    async def list_projetos(user: AuthUser = Depends(require_area("projetos"))):
        ...
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.api.dependencies import get_session_provider
from src.api.errors import backend_call
from src.core.authz import ADMIN_PREFIX, AREA_ROLES, AccessOutcome, check_access
from src.core.logging import bind_contextvars, get_logger
from src.ports.backend import AuthUser, SessionProvider

logger = get_logger(__name__)

# Security scheme for OpenAPI docs
security = HTTPBearer(auto_error=False)


def _unauthorized(message: str, code: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": message, "code": code},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    sessions: Annotated[SessionProvider, Depends(get_session_provider)],
) -> AuthUser:
    """FastAPI dependency for routes that need a signed-in user.

    Raises:
        HTTPException: 401 if no token is sent or it does not resolve.
    """
    if credentials is None:
        raise _unauthorized("Authentication required", "AUTH_REQUIRED")

    with backend_call("get_user"):
        user = await sessions.get_user(credentials.credentials)
    if user is None:
        logger.warning("authentication_failed", code="INVALID_TOKEN")
        raise _unauthorized("Invalid or expired session", "INVALID_TOKEN")

    bind_contextvars(user_id=user.id)
    logger.debug("user_authenticated", user_id=user.id, roles=user.roles)
    return user


def authorize_area(area: str, user: AuthUser) -> AuthUser:
    """Check ``user`` against the roles of an admin area ("" for the root).

    Raises:
        HTTPException: 401 when the user holds no role at all, 403 when the
            roles do not cover the area, 404 for unknown areas.
    """
    if area and area not in AREA_ROLES:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": f"Unknown admin area: {area}", "code": "NOT_FOUND"},
        )
    path = f"{ADMIN_PREFIX}/{area}" if area else ADMIN_PREFIX

    decision = check_access(path, authenticated=True, roles=user.roles)
    if decision.outcome is AccessOutcome.LOGIN:
        # Signed in but without any role: same as anonymous for the admin
        raise _unauthorized("No admin role assigned", "NO_ROLES")
    if decision.outcome is AccessOutcome.FORBIDDEN:
        logger.warning("access_denied", user_id=user.id, area=area, roles=user.roles)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "Insufficient role for this area",
                "code": "FORBIDDEN",
                "required": sorted(r.value for r in decision.required),
            },
        )
    return user


def require_area(area: str) -> Callable[..., Awaitable[AuthUser]]:
    """Dependency factory gating a route to the roles of one admin area.

    Raises:
        ValueError: If ``area`` is not a known admin area.
    """
    if area and area not in AREA_ROLES:
        raise ValueError(f"Unknown admin area: {area}")

    async def dependency(
        user: Annotated[AuthUser, Depends(get_current_user)],
    ) -> AuthUser:
        return authorize_area(area, user)

    return dependency


async def require_area_param(
    area: str,
    user: Annotated[AuthUser, Depends(get_current_user)],
) -> AuthUser:
    """Gate routes whose ``{area}`` path parameter names the admin area."""
    return authorize_area(area, user)
