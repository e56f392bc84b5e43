"""
Entity store for surveys, folders and responses.

Collections live in memory (`SurveyCollections`) and are persisted by the
application state after each request. Every mutation follows the same
shape: validate and build the new entity, await one simulated round-trip,
then apply the change in a single synchronous step. A failed round-trip
therefore never leaves an entity half-updated, and concurrent updates of
the same id are applied one after the other against the current value.
"""
import logging
from collections import deque
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError

from .conditions import (
    prune_conditions,
    remove_question,
    validate_answers,
    validate_questions,
)
from .errors import NetworkError, NotFoundError, ValidationError
from .network import ConnectivityMonitor, SimulatedNetwork
from .schemas import (
    Folder,
    FolderCreate,
    FolderUpdate,
    ResponseCreate,
    Survey,
    SurveyCollections,
    SurveyCreate,
    SurveyResponse,
    SurveyUpdate,
)
from .uplink import ResponseUplink

logger = logging.getLogger(__name__)

PendingListener = Callable[[int], None]


def _unique(ids: Sequence[str]) -> List[str]:
    return list(dict.fromkeys(ids))


class EntityStore:
    def __init__(
        self,
        network: SimulatedNetwork,
        connectivity: ConnectivityMonitor,
        uplink: ResponseUplink,
        collections: Optional[SurveyCollections] = None,
    ):
        self._network = network
        self._connectivity = connectivity
        self._uplink = uplink
        self._data = collections or SurveyCollections()
        self._listeners: List[PendingListener] = []
        self.revision = 0

    # --- State handling ---

    def snapshot(self) -> SurveyCollections:
        return self._data.model_copy(deep=True)

    def load(self, collections: SurveyCollections) -> None:
        self._data = collections
        self._notify_pending()

    def subscribe(self, listener: PendingListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, responses_changed: bool = False) -> None:
        self.revision += 1
        if responses_changed:
            self._notify_pending()

    def _notify_pending(self) -> None:
        count = self.pending_count
        for listener in list(self._listeners):
            listener(count)

    # --- Lookups ---

    def list_surveys(self) -> List[Survey]:
        return list(self._data.surveys)

    def get_survey(self, survey_id: str) -> Survey:
        survey = next((s for s in self._data.surveys if s.id == survey_id), None)
        if survey is None:
            raise NotFoundError("Encuesta", survey_id)
        return survey

    def surveys_for_surveyor(self, user_id: str) -> List[Survey]:
        return [
            s for s in self._data.surveys if s.is_active and user_id in s.assigned_to
        ]

    def surveys_in_folder(self, folder_id: Optional[str]) -> List[Survey]:
        return [s for s in self._data.surveys if s.folder_id == folder_id]

    def list_folders(self) -> List[Folder]:
        return list(self._data.folders)

    def get_folder(self, folder_id: str) -> Folder:
        folder = next((f for f in self._data.folders if f.id == folder_id), None)
        if folder is None:
            raise NotFoundError("Carpeta", folder_id)
        return folder

    def responses_for_survey(self, survey_id: str) -> List[SurveyResponse]:
        return [r for r in self._data.responses if r.survey_id == survey_id]

    def responses_for_surveyor(self, user_id: str) -> List[SurveyResponse]:
        return [r for r in self._data.responses if r.respondent_id == user_id]

    def pending_responses(self) -> List[SurveyResponse]:
        return [r for r in self._data.responses if not r.synced_to_server]

    @property
    def pending_count(self) -> int:
        return sum(1 for r in self._data.responses if not r.synced_to_server)

    def _replace_survey(self, survey_id: str, changes: Dict[str, Any]) -> Survey:
        for index, current in enumerate(self._data.surveys):
            if current.id == survey_id:
                updated = current.model_copy(update=changes)
                self._data.surveys[index] = updated
                return updated
        raise NotFoundError("Encuesta", survey_id)

    # --- Surveys ---

    async def create_survey(self, data: SurveyCreate, created_by: str) -> Survey:
        questions = prune_conditions(data.questions)
        validate_questions(questions)
        if data.folder_id is not None:
            self.get_folder(data.folder_id)

        survey = Survey(
            title=data.title,
            description=data.description,
            questions=questions,
            is_active=data.is_active,
            created_by=created_by,
            assigned_to=_unique(data.assigned_to),
            folder_id=data.folder_id,
            collect_demographics=data.collect_demographics,
        )
        await self._network.round_trip("create_survey")

        self._data.surveys.append(survey)
        self._commit()
        logger.info("Survey %s created by %s: '%s'", survey.id, created_by, survey.title)
        return survey

    async def update_survey(self, survey_id: str, updates: SurveyUpdate) -> Survey:
        self.get_survey(survey_id)
        changes = updates.model_dump(exclude_unset=True, exclude={"questions"})
        if changes.get("title") is not None:
            changes["title"] = changes["title"].strip()
        for key in ("title", "description", "is_active", "collect_demographics"):
            if key in changes and changes[key] is None:
                del changes[key]
        if updates.questions is not None:
            questions = prune_conditions(updates.questions)
            validate_questions(questions)
            changes["questions"] = questions

        await self._network.round_trip("update_survey")

        survey = self._replace_survey(survey_id, changes)
        self._commit()
        logger.info("Survey %s updated (%s)", survey_id, ", ".join(sorted(changes)))
        return survey

    async def delete_survey(self, survey_id: str) -> None:
        self.get_survey(survey_id)
        await self._network.round_trip("delete_survey")

        before = len(self._data.surveys)
        self._data.surveys = [s for s in self._data.surveys if s.id != survey_id]
        if len(self._data.surveys) == before:
            raise NotFoundError("Encuesta", survey_id)
        self._commit()
        logger.info("Survey %s deleted", survey_id)

    async def delete_question(self, survey_id: str, question_id: str) -> Survey:
        survey = self.get_survey(survey_id)
        if survey.question(question_id) is None:
            raise NotFoundError("Pregunta", question_id)

        await self._network.round_trip("delete_question")

        # Recomputed against the survey as it is now, not the pre-await copy.
        current = self.get_survey(survey_id)
        survey = self._replace_survey(
            survey_id, {"questions": remove_question(current.questions, question_id)}
        )
        self._commit()
        logger.info("Question %s removed from survey %s", question_id, survey_id)
        return survey

    async def assign_survey(self, survey_id: str, surveyor_ids: Sequence[str]) -> Survey:
        self.get_survey(survey_id)
        assigned = _unique(surveyor_ids)
        await self._network.round_trip("assign_survey")

        survey = self._replace_survey(survey_id, {"assigned_to": assigned})
        self._commit()
        logger.info("Survey %s assigned to %d surveyors", survey_id, len(assigned))
        return survey

    async def assign_survey_to_folder(
        self, survey_id: str, folder_id: Optional[str]
    ) -> Survey:
        self.get_survey(survey_id)
        if folder_id is not None:
            self.get_folder(folder_id)
        await self._network.round_trip("assign_survey_to_folder")

        if folder_id is not None:
            # The folder may have been deleted while we were waiting.
            self.get_folder(folder_id)
        survey = self._replace_survey(survey_id, {"folder_id": folder_id})
        self._commit()
        logger.info("Survey %s moved to folder %s", survey_id, folder_id)
        return survey

    # --- Folders ---

    def _child_index(self) -> Dict[Optional[str], List[str]]:
        children: Dict[Optional[str], List[str]] = {}
        for folder in self._data.folders:
            children.setdefault(folder.parent_id, []).append(folder.id)
        return children

    def descendant_closure(self, folder_id: str) -> List[str]:
        """`folder_id` plus every folder below it, breadth first."""
        children = self._child_index()
        closure: List[str] = []
        seen = set()
        queue = deque([folder_id])
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            closure.append(current)
            queue.extend(children.get(current, []))
        return closure

    async def create_folder(self, data: FolderCreate, created_by: str) -> Folder:
        if data.parent_id is not None:
            self.get_folder(data.parent_id)
        folder = Folder(
            name=data.name.strip(),
            description=data.description,
            created_by=created_by,
            parent_id=data.parent_id,
        )
        await self._network.round_trip("create_folder")

        self._data.folders.append(folder)
        self._commit()
        logger.info("Folder %s created: '%s'", folder.id, folder.name)
        return folder

    def _check_parent(self, folder_id: str, parent_id: str) -> None:
        self.get_folder(parent_id)
        if parent_id in self.descendant_closure(folder_id):
            raise ValidationError(
                "Una carpeta no puede estar dentro de sí misma",
                fields={"parent_id": parent_id},
            )

    async def update_folder(self, folder_id: str, updates: FolderUpdate) -> Folder:
        self.get_folder(folder_id)
        changes = updates.model_dump(exclude_unset=True)
        if changes.get("name") is not None:
            changes["name"] = changes["name"].strip()
        for key in ("name", "description"):
            if key in changes and changes[key] is None:
                del changes[key]
        if changes.get("parent_id") is not None:
            self._check_parent(folder_id, changes["parent_id"])

        await self._network.round_trip("update_folder")

        if changes.get("parent_id") is not None:
            # Another request may have re-parented folders in the meantime.
            self._check_parent(folder_id, changes["parent_id"])
        for index, current in enumerate(self._data.folders):
            if current.id == folder_id:
                updated = current.model_copy(update=changes)
                self._data.folders[index] = updated
                self._commit()
                logger.info("Folder %s updated", folder_id)
                return updated
        raise NotFoundError("Carpeta", folder_id)

    async def delete_folder(self, folder_id: str) -> Tuple[List[str], List[str]]:
        """
        Deletes a folder and all of its descendants.

        Surveys that lived anywhere in the removed subtree stay, with
        `folder_id` reset to None. Returns (removed folder ids, detached
        survey ids).
        """
        self.get_folder(folder_id)
        await self._network.round_trip("delete_folder")

        self.get_folder(folder_id)
        removed_ids = self.descendant_closure(folder_id)
        removed = set(removed_ids)
        self._data.folders = [f for f in self._data.folders if f.id not in removed]

        detached: List[str] = []
        for index, survey in enumerate(self._data.surveys):
            if survey.folder_id in removed:
                self._data.surveys[index] = survey.model_copy(update={"folder_id": None})
                detached.append(survey.id)

        self._commit()
        logger.info(
            "Folder %s deleted with %d descendants, %d surveys detached",
            folder_id,
            len(removed) - 1,
            len(detached),
        )
        return removed_ids, detached

    async def assign_folder_to_surveyors(
        self, folder_id: str, surveyor_ids: Sequence[str]
    ) -> List[Survey]:
        """Overwrites `assigned_to` of every survey directly inside the folder."""
        self.get_folder(folder_id)
        assigned = _unique(surveyor_ids)
        await self._network.round_trip("assign_folder_to_surveyors")

        self.get_folder(folder_id)
        updated: List[Survey] = []
        for index, survey in enumerate(self._data.surveys):
            if survey.folder_id == folder_id:
                survey = survey.model_copy(update={"assigned_to": list(assigned)})
                self._data.surveys[index] = survey
                updated.append(survey)
        self._commit()
        logger.info(
            "Folder %s assigned to %d surveyors (%d surveys)",
            folder_id,
            len(assigned),
            len(updated),
        )
        return updated

    # --- Responses ---

    async def submit_response(
        self,
        respondent_id: str,
        data: ResponseCreate,
        require_audio: bool = True,
    ) -> SurveyResponse:
        survey = self.get_survey(data.survey_id)
        if not survey.is_active:
            raise ValidationError(
                "La encuesta no está activa", fields={"survey_id": data.survey_id}
            )
        answers = validate_answers(survey, data.answers)
        if require_audio and not data.audio_recording:
            raise ValidationError(
                "Es necesario grabar audio para completar la encuesta",
                fields={"audio_recording": "requerido"},
            )
        if survey.collect_demographics and data.respondent_info is None:
            raise ValidationError(
                "Faltan los datos del encuestado",
                fields={"respondent_info": "requerido"},
            )

        response = SurveyResponse(
            survey_id=survey.id,
            respondent_id=respondent_id,
            answers=answers,
            audio_recording=data.audio_recording,
            respondent_info=data.respondent_info,
            synced_to_server=False,
        )
        if self._connectivity.is_online:
            try:
                await self._network.round_trip("submit_response")
                await self._push([response])
            except NetworkError as exc:
                # A completed interview is never lost: keep it for the next sync.
                logger.warning(
                    "Push of response %s failed, queued for sync: %s", response.id, exc.message
                )
            else:
                response = response.model_copy(update={"synced_to_server": True})

        self._data.responses.append(response)
        self._commit(responses_changed=True)
        logger.info(
            "Response %s stored for survey %s (%s)",
            response.id,
            survey.id,
            "synced" if response.synced_to_server else "queued for sync",
        )
        return response

    async def _push(self, responses: Sequence[SurveyResponse]) -> List[str]:
        try:
            return await self._uplink.push(responses)
        except SQLAlchemyError as exc:
            logger.error("Uplink failed: %s", exc)
            raise NetworkError("Error al sincronizar respuestas") from exc

    async def sync_responses(self) -> int:
        """
        Pushes every unsynced response in one batch.

        Returns how many responses were flipped to synced. Nothing changes
        when the round-trip or the push fails.
        """
        if not self._connectivity.is_online:
            logger.info("Sync skipped: offline")
            return 0
        pending = self.pending_responses()
        if not pending:
            return 0

        await self._network.round_trip("sync_responses")
        acknowledged = set(await self._push(pending))

        flipped = 0
        for index, response in enumerate(self._data.responses):
            if response.id in acknowledged and not response.synced_to_server:
                self._data.responses[index] = response.model_copy(
                    update={"synced_to_server": True}
                )
                flipped += 1
        self._commit(responses_changed=True)
        logger.info("%d responses synced", flipped)
        return flipped
