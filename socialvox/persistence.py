import logging
from typing import Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from . import models
from .database import session_scope

logger = logging.getLogger(__name__)

AUTH_KEY = "socialvox-auth"
SURVEYS_KEY = "socialvox-surveys"
USERS_KEY = "socialvox-users"

M = TypeVar("M", bound=BaseModel)


class StatePersistence:
    """Namespaced JSON partitions stored in the `client_state` table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def save(self, key: str, model: BaseModel) -> int:
        payload = model.model_dump(mode="json")
        async with session_scope(self._session_factory) as session:
            row = await session.get(models.ClientState, key)
            if row is None:
                row = models.ClientState(key=key, payload=payload, revision=1)
                session.add(row)
            else:
                row.payload = payload
                row.revision = (row.revision or 0) + 1
            revision = row.revision
        logger.debug("Partition '%s' saved (revision %d)", key, revision)
        return revision

    async def load(self, key: str, model_cls: Type[M]) -> Optional[M]:
        """Returns None when nothing was stored under `key` yet."""
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(models.ClientState.payload).where(models.ClientState.key == key)
            )
            payload = result.scalar_one_or_none()
        if payload is None:
            return None
        try:
            return model_cls.model_validate(payload)
        except PydanticValidationError:
            logger.error("Stored partition '%s' does not match %s", key, model_cls.__name__)
            raise
