import logging
from typing import List, Protocol, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from . import models
from .database import session_scope
from .schemas import SurveyResponse

logger = logging.getLogger(__name__)


class ResponseUplink(Protocol):
    async def push(self, responses: Sequence[SurveyResponse]) -> List[str]:
        """Delivers a batch; returns the ids the remote side acknowledged."""
        ...


class DatabaseUplink:
    """
    Remote side of the sync: upserts each response into `synced_responses`.

    Rows are keyed by the response id, so pushing the same batch twice
    leaves exactly one row per response.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def push(self, responses: Sequence[SurveyResponse]) -> List[str]:
        if not responses:
            return []
        async with session_scope(self._session_factory) as session:
            for response in responses:
                row = models.SyncedResponse(
                    id=response.id,
                    survey_id=response.survey_id,
                    respondent_id=response.respondent_id,
                    answers=[a.model_dump() for a in response.answers],
                    audio_recording=response.audio_recording,
                    respondent_info=response.respondent_info.model_dump()
                    if response.respondent_info
                    else None,
                    completed_at=response.completed_at,
                )
                await session.merge(row)
        logger.info("%d responses delivered to the server.", len(responses))
        return [r.id for r in responses]

    async def count(self) -> int:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(func.count(models.SyncedResponse.id))
            )
            return result.scalar_one()
