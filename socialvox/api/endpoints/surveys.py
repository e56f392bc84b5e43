import io
import logging
from typing import List

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import Response, StreamingResponse

from ... import spreadsheet
from ...conditions import authoring_warnings, visible_questions
from ...errors import PermissionDenied, SocialVoxError, ValidationError
from ...permissions import Area, can_access, home_path
from ...schemas import (
    AssignRequest,
    AuthSession,
    DeleteResponse,
    FolderAssignment,
    Question,
    QuestionImportResponse,
    Survey,
    SurveyCreate,
    SurveyListItem,
    SurveyResponse,
    SurveyUpdate,
    VisibleQuestionsRequest,
    WarningsResponse,
    utcnow,
)
from ...state import AppState
from ..deps import (
    get_current_session,
    get_state,
    require_admin,
    require_surveyor,
    to_http_exception,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/surveys", tags=["surveys"])


def _readable_survey(state: AppState, session: AuthSession, survey_id: str) -> Survey:
    """Admins see every survey, surveyors only the active ones assigned to them."""
    survey = state.store.get_survey(survey_id)
    if can_access(session.user.role, Area.ADMIN):
        return survey
    if survey.is_active and session.user.id in survey.assigned_to:
        return survey
    raise PermissionDenied(
        "Esta encuesta no está asignada a usted", redirect_to=home_path(session.user.role)
    )


def check_surveyors(state: AppState, surveyor_ids: List[str]) -> None:
    # Deactivated accounts drop out of the assignment pool.
    surveyors = {u.id for u in state.users.active_surveyors()}
    unknown = [i for i in surveyor_ids if i not in surveyors]
    if unknown:
        raise ValidationError(
            "Solo se pueden asignar encuestadores activos",
            fields={"surveyor_ids": ", ".join(unknown)},
        )


@router.get("", response_model=List[SurveyListItem])
async def list_surveys(
    state: AppState = Depends(get_state), _: AuthSession = Depends(require_admin)
):
    return [
        SurveyListItem(
            id=s.id,
            title=s.title,
            description=s.description,
            is_active=s.is_active,
            created_at=s.created_at,
            question_count=len(s.questions),
            assigned_to=s.assigned_to,
            folder_id=s.folder_id,
            response_count=len(state.store.responses_for_survey(s.id)),
        )
        for s in state.store.list_surveys()
    ]


@router.get("/assigned", response_model=List[Survey])
async def assigned_surveys(
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_surveyor),
):
    return state.store.surveys_for_surveyor(session.user.id)


@router.post("", response_model=Survey, status_code=status.HTTP_201_CREATED)
async def create_survey(
    survey_in: SurveyCreate,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_admin),
):
    try:
        check_surveyors(state, survey_in.assigned_to)
        survey = await state.store.create_survey(survey_in, created_by=session.user.id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return survey


@router.get("/template")
async def download_template(
    format: str = Query("xlsx", pattern="^(xlsx|csv)$"),
    _: AuthSession = Depends(require_admin),
):
    if format == "csv":
        return Response(
            content=spreadsheet.template_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="plantilla_encuesta.csv"'},
        )
    return Response(
        content=spreadsheet.template_xlsx(),
        media_type=spreadsheet.XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="plantilla_encuesta.xlsx"'},
    )


@router.post("/import", response_model=QuestionImportResponse)
async def import_questions(
    file: UploadFile = File(...), _: AuthSession = Depends(require_admin)
):
    data = await file.read()
    try:
        questions, warnings = spreadsheet.import_questions(file.filename, data)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    return QuestionImportResponse(
        questions=questions,
        warnings=warnings,
        message=f"{len(questions)} preguntas importadas correctamente",
    )


@router.get("/{survey_id}", response_model=Survey)
async def get_survey(
    survey_id: str,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(get_current_session),
):
    try:
        return _readable_survey(state, session, survey_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)


@router.put("/{survey_id}", response_model=Survey)
async def update_survey(
    survey_id: str,
    survey_in: SurveyUpdate,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_admin),
):
    try:
        survey = await state.store.update_survey(survey_id, survey_in)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return survey


@router.delete("/{survey_id}", response_model=DeleteResponse)
async def delete_survey(
    survey_id: str,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_admin),
):
    try:
        await state.store.delete_survey(survey_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return DeleteResponse(id=survey_id, message="Encuesta eliminada correctamente.")


@router.delete("/{survey_id}/questions/{question_id}", response_model=Survey)
async def delete_question(
    survey_id: str,
    question_id: str,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_admin),
):
    try:
        survey = await state.store.delete_question(survey_id, question_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return survey


@router.put("/{survey_id}/assign", response_model=Survey)
async def assign_survey(
    survey_id: str,
    body: AssignRequest,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_admin),
):
    try:
        check_surveyors(state, body.surveyor_ids)
        survey = await state.store.assign_survey(survey_id, body.surveyor_ids)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return survey


@router.put("/{survey_id}/folder", response_model=Survey)
async def move_to_folder(
    survey_id: str,
    body: FolderAssignment,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_admin),
):
    try:
        survey = await state.store.assign_survey_to_folder(survey_id, body.folder_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    await state.save()
    return survey


@router.get("/{survey_id}/warnings", response_model=WarningsResponse)
async def survey_warnings(
    survey_id: str,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_admin),
):
    try:
        survey = state.store.get_survey(survey_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    return WarningsResponse(survey_id=survey_id, warnings=authoring_warnings(survey.questions))


@router.post("/{survey_id}/visible-questions", response_model=List[Question])
async def survey_visible_questions(
    survey_id: str,
    body: VisibleQuestionsRequest,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(get_current_session),
):
    try:
        survey = _readable_survey(state, session, survey_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    return visible_questions(survey.questions, body.answers)


@router.get("/{survey_id}/responses", response_model=List[SurveyResponse])
async def survey_responses(
    survey_id: str,
    state: AppState = Depends(get_state),
    _: AuthSession = Depends(require_admin),
):
    try:
        state.store.get_survey(survey_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    return state.store.responses_for_survey(survey_id)


@router.get("/{survey_id}/export/csv", response_description="CSV file of survey results")
async def export_results_csv(
    survey_id: str,
    state: AppState = Depends(get_state),
    session: AuthSession = Depends(require_admin),
):
    try:
        survey = state.store.get_survey(survey_id)
    except SocialVoxError as exc:
        raise to_http_exception(exc)
    responses = state.store.responses_for_survey(survey_id)
    logger.info(
        "%s exported %d responses of survey %s", session.user.username, len(responses), survey_id
    )
    content = spreadsheet.results_csv(survey, responses)
    filename = spreadsheet.results_filename(survey, utcnow().date().isoformat())
    return StreamingResponse(
        io.StringIO(content),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
