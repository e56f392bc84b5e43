from typing import List

from fastapi import APIRouter, Depends, status

from ...errors import SocialVoxError
from ...schemas import (
    AssignRequest,
    AuthSession,
    Folder,
    FolderCreate,
    FolderDeleteResponse,
    FolderUpdate,
    Survey,
)
from ...state import AppState
from ..deps import get_state, require_admin, to_http_exception
from .surveys import check_surveyors

router = APIRouter(prefix="/api/folders", tags=["folders"])


@router.get("", response_model=List[Folder])
async def list_folders(
    state: AppState = Depends(get_state), _: AuthSession = Depends(require_admin)
):
    return state.store.list_folders()


@router.post("", response_model=Folder, status_code=status.HTTP_201_CREATED)
async def create_folder(
    folder_in: FolderCreate,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_admin),
):
    try:
        folder = await state.store.create_folder(folder_in, created_by=session.user.id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return folder


@router.get("/{folder_id}/surveys", response_model=List[Survey])
async def folder_surveys(
    folder_id: str,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_admin),
):
    try:
        state.store.get_folder(folder_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    return state.store.surveys_in_folder(folder_id)


@router.put("/{folder_id}", response_model=Folder)
async def update_folder(
    folder_id: str,
    folder_in: FolderUpdate,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_admin),
):
    try:
        folder = await state.store.update_folder(folder_id, folder_in)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return folder


@router.delete("/{folder_id}", response_model=FolderDeleteResponse)
async def delete_folder(
    folder_id: str,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_admin),
):
    try:
        removed, detached = await state.store.delete_folder(folder_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return FolderDeleteResponse(removed_folder_ids=removed, detached_survey_ids=detached)


@router.put("/{folder_id}/assign", response_model=List[Survey])
async def assign_folder(
    folder_id: str,
    body: AssignRequest,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_admin),
):
    try:
        check_surveyors(state, body.surveyor_ids)
        surveys = await state.store.assign_folder_to_surveyors(folder_id, body.surveyor_ids)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return surveys
