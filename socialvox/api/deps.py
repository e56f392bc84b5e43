import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from ..errors import (
    AuthenticationError,
    ConflictError,
    DeviceError,
    NetworkError,
    NotFoundError,
    PermissionDenied,
    SocialVoxError,
    ValidationError,
)
from ..permissions import Area, ensure_access
from ..schemas import AuthSession
from ..state import AppState

logger = logging.getLogger(__name__)


def get_state(request: Request) -> AppState:
    return request.app.state.socialvox


def to_http_exception(exc: SocialVoxError) -> HTTPException:
    """Translates a service error into the HTTP error the client expects."""
    detail = {"message": exc.message}
    headers = None
    if isinstance(exc, ValidationError):
        code = 422
        detail["fields"] = exc.fields
    elif isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ConflictError):
        code = status.HTTP_409_CONFLICT
        detail["field"] = exc.field
    elif isinstance(exc, NetworkError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
        detail["retryable"] = True
    elif isinstance(exc, PermissionDenied):
        code = status.HTTP_403_FORBIDDEN
        detail["redirect_to"] = exc.redirect_to
    elif isinstance(exc, DeviceError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, AuthenticationError):
        code = (
            status.HTTP_429_TOO_MANY_REQUESTS if exc.locked else status.HTTP_401_UNAUTHORIZED
        )
        headers = {"WWW-Authenticate": "Bearer"}
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=detail, headers=headers)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def bearer_token(authorization: Optional[str] = Header(None)) -> str:
    if authorization is None:
        raise _unauthorized("No autorizado: se requiere un token.")
    parts = authorization.split()
    # Expected format: "Bearer <token>"
    if len(parts) != 2 or parts[0].lower() != "bearer":
        logger.info("Rejected malformed Authorization header")
        raise _unauthorized("Formato de token inválido. Se espera 'Bearer <token>'")
    return parts[1]


async def get_current_session(
    token: str = Depends(bearer_token), state: AppState = Depends(get_state)
) -> AuthSession:
    session = state.auth.current_session(token)
    if session is None:
        raise _unauthorized("Sesión expirada o inválida. Inicie sesión nuevamente.")
    return session


def require_area(area: Area):
    async def dependency(session: AuthSession = Depends(get_current_session)) -> AuthSession:
        try:
            ensure_access(session.user.role, area)
        except PermissionDenied as exc:
            logger.info("%s denied access to %s", session.user.username, area.value)
            raise to_http_exception(exc)
        return session

    return dependency


require_admin = require_area(Area.ADMIN)
require_surveyor = require_area(Area.SURVEYOR)
require_user_management = require_area(Area.USER_MANAGEMENT)
