import logging

from fastapi import APIRouter, Depends, Query, Request, status

from ...audio import AudioCaptureSession
from ...errors import SocialVoxError
from ...schemas import AuthSession, RecordingResult, RecordingStatus
from ...state import AppState
from ..deps import get_state, require_surveyor, to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/recordings", tags=["recordings"])


def _status(session: AudioCaptureSession) -> RecordingStatus:
    return RecordingStatus(
        recording_id=session.id,
        state=session.state.value,
        elapsed_seconds=session.elapsed_seconds,
        formatted_time=session.formatted_time,
    )


@router.post("", response_model=RecordingStatus, status_code=status.HTTP_201_CREATED)
async def start_recording(
    permission_granted: bool = Query(True),
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_surveyor),
):
    try:
        recording = state.recordings.start(session.user.id, permission_granted)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    return _status(recording)


@router.get("/{recording_id}", response_model=RecordingStatus)
async def recording_status(
    recording_id: str,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_surveyor),
):
    try:
        return _status(state.recordings.get(session.user.id, recording_id))
    except SocialVoxError as exc:
        raise to_http_exception(exc)


@router.post("/{recording_id}/chunks", response_model=RecordingStatus)
async def append_chunk(
    recording_id: str,
    request: Request,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_surveyor),
):
    """Raw audio bytes from the client's recorder; ignored while paused."""
    chunk = await request.body()
    try:
        accepted = state.recordings.write(session.user.id, recording_id, chunk)
        recording = state.recordings.get(session.user.id, recording_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    if not accepted:
        logger.debug("Chunk for %s dropped (%s)", recording_id, recording.state.value)
    return _status(recording)


@router.post("/{recording_id}/pause", response_model=RecordingStatus)
async def pause_recording(
    recording_id: str,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_surveyor),
):
    try:
        recording = state.recordings.get(session.user.id, recording_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    recording.pause()
    return _status(recording)


@router.post("/{recording_id}/resume", response_model=RecordingStatus)
async def resume_recording(
    recording_id: str,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_surveyor),
):
    try:
        recording = state.recordings.get(session.user.id, recording_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    recording.resume()
    return _status(recording)


@router.post("/{recording_id}/stop", response_model=RecordingResult)
async def stop_recording(
    recording_id: str,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_surveyor),
):
    """Finishes the recording and hands back the audio; the id is gone afterwards."""
    try:
        recording, artifact = state.recordings.stop(session.user.id, recording_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    return RecordingResult(
        **_status(recording).model_dump(),
        content_type=artifact.content_type if artifact else None,
        audio_recording=artifact.to_data_url() if artifact else None,
    )


@router.delete("/{recording_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_recording(
    recording_id: str,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_surveyor),
):
    try:
        state.recordings.discard(session.user.id, recording_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
