import logging
from typing import List

from fastapi import APIRouter, Depends, status

from ...errors import PermissionDenied, SocialVoxError
from ...permissions import home_path
from ...schemas import AuthSession, ResponseCreate, ResponseCreated, SurveyResponse
from ...state import AppState
from ..deps import get_state, require_surveyor, to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/responses", tags=["responses"])


@router.post("", response_model=ResponseCreated, status_code=status.HTTP_201_CREATED)
async def submit_response(
    response_in: ResponseCreate,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_surveyor),
):
    try:
        survey = state.store.get_survey(response_in.survey_id)
        if session.user.id not in survey.assigned_to:
            raise PermissionDenied(
                "Esta encuesta no está asignada a usted",
                redirect_to=home_path(session.user.role),
            )
        response = await state.store.submit_response(
            session.user.id, response_in, require_audio=state.settings.require_audio
        )
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return ResponseCreated(
        response_id=response.id,
        synced_to_server=response.synced_to_server,
        message="Encuesta completada exitosamente."
        if response.synced_to_server
        else "Encuesta guardada localmente. Se sincronizará al recuperar la conexión.",
    )


@router.get("/mine", response_model=List[SurveyResponse])
async def my_responses(
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_surveyor),
):
    return state.store.responses_for_surveyor(session.user.id)
