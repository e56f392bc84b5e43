from fastapi import APIRouter, Depends

from ...schemas import AuthSession, ConnectivityUpdate, SyncNowResponse, SyncStatus
from ...state import AppState
from ..deps import get_current_session, get_state

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.get("/status", response_model=SyncStatus)
async def sync_status(
    state: AppState = Depends(get_state), _: AuthSession = Depends(get_current_session)
):
    return state.coordinator.status()


@router.post("/now", response_model=SyncNowResponse)
async def sync_now(
    state: AppState = Depends(get_state), _: AuthSession = Depends(get_current_session)
):
    outcome = await state.coordinator.sync_now()
    await state.save()
    return SyncNowResponse(
        outcome=outcome.outcome.value,
        synced=outcome.synced,
        message=outcome.message,
        status=state.coordinator.status(),
    )


@router.put("/connectivity", response_model=SyncStatus)
async def set_connectivity(
    body: ConnectivityUpdate,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(get_current_session),
):
    """Client reports its online/offline transitions here."""
    state.connectivity.set_online(body.online)
    return state.coordinator.status()
