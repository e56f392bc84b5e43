from typing import List

from fastapi import APIRouter, Depends, status

from ...errors import PermissionDenied, SocialVoxError
from ...permissions import Area, can_access, home_path
from ...schemas import (
    AuthSession,
    DeleteResponse,
    PasswordChange,
    UserCreate,
    UserPublic,
    UserUpdate,
)
from ...state import AppState
from ..deps import (
    get_current_session,
    get_state,
    require_admin,
    require_user_management,
    to_http_exception,
)

router = APIRouter(prefix="/api/users", tags=["users"])


def _public(user) -> UserPublic:
    return UserPublic.model_validate(user)


@router.get("", response_model=List[UserPublic])
async def list_users(
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_user_management),
):
    return [_public(u) for u in state.users.list_users()]


@router.get("/surveyors", response_model=List[UserPublic])
async def list_surveyors(
    state: AppState = Depends(get_state), _: AuthSession = Depends(require_admin)
):
    """Active surveyors, for assignment pickers."""
    return [_public(u) for u in state.users.active_surveyors()]


@router.post("", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_in: UserCreate,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_user_management),
):
    try:
        user = await state.users.create_user(user_in)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return _public(user)


@router.get("/{user_id}", response_model=UserPublic)
async def get_user(
    user_id: str,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_user_management),
):
    try:
        return _public(state.users.get_user(user_id))
    except SocialVoxError as exc:
        raise to_http_exception(exc)


@router.put("/{user_id}", response_model=UserPublic)
async def update_user(
    user_id: str,
    user_in: UserUpdate,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_user_management),
):
    try:
        user = await state.users.update_user(user_id, user_in)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return _public(user)


@router.delete("/{user_id}", response_model=DeleteResponse)
async def delete_user(
    user_id: str,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_user_management),
):
    try:
        await state.users.delete_user(user_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return DeleteResponse(id=user_id, message="Usuario eliminado correctamente.")


@router.put("/{user_id}/password", response_model=UserPublic)
async def change_password(
    user_id: str,
    body: PasswordChange,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(get_current_session),
):
    """Users change their own password; user managers may change anyone's."""
    try:
        if user_id != session.user.id and not can_access(
            session.user.role, Area.USER_MANAGEMENT
        ):
            raise PermissionDenied(
                "No puede cambiar la contraseña de otro usuario",
                redirect_to=home_path(session.user.role),
            )
        user = await state.users.change_password(user_id, body.new_password)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return _public(user)
