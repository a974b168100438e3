"""Authentication routes for the HTTP API.

Sign-in exchanges e-mail and password for a bearer token issued by the auth
service. The token is then sent as ``Authorization: Bearer <token>``.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials

from src.api.auth import get_current_user, security
from src.api.dependencies import get_session_provider
from src.api.errors import backend_call
from src.api.schemas import ErrorResponse, LoginRequest, SessionResponse, UserResponse
from src.core.logging import get_logger
from src.ports.backend import AuthUser, SessionProvider

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/login",
    response_model=SessionResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
)
async def login(
    request: LoginRequest,
    sessions: Annotated[SessionProvider, Depends(get_session_provider)],
) -> SessionResponse:
    """Sign in with e-mail and password."""
    with backend_call("sign_in"):
        session = await sessions.sign_in(request.email, request.password)

    return SessionResponse(
        access_token=session.access_token,
        expires_at=session.expires_at,
        user=UserResponse(
            id=session.user.id,
            email=session.user.email,
            roles=session.user.roles,
        ),
    )


@router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"model": ErrorResponse, "description": "Authentication required"}},
)
async def me(user: Annotated[AuthUser, Depends(get_current_user)]) -> UserResponse:
    """The signed-in account and its roles."""
    return UserResponse(id=user.id, email=user.email, roles=user.roles)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    user: Annotated[AuthUser, Depends(get_current_user)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    sessions: Annotated[SessionProvider, Depends(get_session_provider)],
) -> None:
    """Revoke the current token."""
    if credentials is not None:
        with backend_call("sign_out"):
            await sessions.sign_out(credentials.credentials)
    logger.info("signed_out", user_id=user.id)
