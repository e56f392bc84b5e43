import logging

from fastapi import APIRouter, Depends

from ...errors import AuthenticationError
from ...permissions import home_path
from ...schemas import AuthSession, LoginRequest, Token, UserPublic
from ...state import AppState
from ..deps import bearer_token, get_current_session, get_state, to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _token(session: AuthSession) -> Token:
    return Token(
        access_token=session.token,
        expires_at=session.expires_at,
        user=session.user,
        home=home_path(session.user.role),
    )


@router.post("/login", response_model=Token)
async def login(credentials: LoginRequest, state: AppState = Depends(get_state)):
    try:
        session = state.auth.login(credentials.username, credentials.password)
    except AuthenticationError as exc:
        await state.save()
        raise to_http_exception(exc)
    await state.save()
    return _token(session)


@router.post("/logout")
async def logout(token: str = Depends(bearer_token), state: AppState = Depends(get_state)):
    closed = state.auth.logout(token)
    await state.save()
    return {"message": "Sesión cerrada", "closed": closed}


@router.get("/me", response_model=UserPublic)
async def me(session: AuthSession = Depends(get_current_session)):
    return session.user


@router.post("/refresh", response_model=Token)
async def refresh(
    session: AuthSession = Depends(get_current_session),
    state: AppState = Depends(get_state),
):
    refreshed = state.auth.refresh_session(session.token)
    await state.save()
    return _token(refreshed or session)
