"""
Application state shared by all requests.

`AppState` owns the store, the user directory, auth, connectivity, the sync
coordinator and live recordings. It hydrates the three persisted
partitions on startup and writes back only the partitions whose revision
moved since the last save.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from .audio import RecordingRegistry
from .auth import AuthService
from .config import Settings
from .database import build_engine, build_session_factory, create_db_and_tables
from .network import ConnectivityMonitor, SimulatedNetwork
from .persistence import AUTH_KEY, SURVEYS_KEY, USERS_KEY, StatePersistence
from .schemas import AuthPartition, SurveyCollections, UserCollections
from .seed import demo_surveys, demo_users
from .store import EntityStore
from .sync import OfflineSyncCoordinator
from .uplink import DatabaseUplink
from .users import UserDirectory

logger = logging.getLogger(__name__)


class AppState:
    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        session_factory: async_sessionmaker,
        network: Optional[SimulatedNetwork] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
    ):
        self.settings = settings
        self.engine = engine
        self.session_factory = session_factory
        self.network = network or SimulatedNetwork(
            min_delay=settings.network_min_delay_ms / 1000,
            max_delay=settings.network_max_delay_ms / 1000,
            failure_rate=settings.network_failure_rate,
        )
        self.connectivity = connectivity or ConnectivityMonitor(online=True)
        self.persistence = StatePersistence(session_factory)
        self.uplink = DatabaseUplink(session_factory)

        self.store = EntityStore(self.network, self.connectivity, self.uplink)
        self.users = UserDirectory(self.network)
        self.auth = AuthService(
            self.users,
            session_timeout=timedelta(minutes=settings.session_timeout_minutes),
            max_attempts=settings.max_login_attempts,
            lockout=timedelta(minutes=settings.lockout_minutes),
        )
        self.recordings = RecordingRegistry(
            tick_interval=settings.recording_tick_seconds or None
        )
        self.coordinator = OfflineSyncCoordinator(
            self.store,
            self.connectivity,
            session_provider=self.auth.has_valid_session,
            debounce=settings.sync_debounce_seconds,
            cooldown=settings.sync_cooldown_seconds,
            after_sync=self.save,
        )
        self._saved: Dict[str, int] = {}
        self._save_lock = asyncio.Lock()

    @classmethod
    async def create(
        cls,
        settings: Settings,
        network: Optional[SimulatedNetwork] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
    ) -> "AppState":
        engine = build_engine(settings.database_url, echo=settings.sql_echo)
        await create_db_and_tables(engine)
        state = cls(
            settings,
            engine,
            build_session_factory(engine),
            network=network,
            connectivity=connectivity,
        )
        await state.hydrate()
        return state

    def _partitions(self):
        return {
            AUTH_KEY: self.auth,
            SURVEYS_KEY: self.store,
            USERS_KEY: self.users,
        }

    async def hydrate(self) -> None:
        users = await self.persistence.load(USERS_KEY, UserCollections)
        surveys = await self.persistence.load(SURVEYS_KEY, SurveyCollections)
        auth = await self.persistence.load(AUTH_KEY, AuthPartition)

        seeded = False
        if users is None and self.settings.seed_demo_data:
            users = demo_users()
            seeded = True
        if surveys is None and self.settings.seed_demo_data:
            surveys = demo_surveys(users or UserCollections())
            seeded = True

        self.users.load(users or UserCollections())
        self.auth.load(auth or AuthPartition())
        self.store.load(surveys or SurveyCollections())

        for key, component in self._partitions().items():
            self._saved[key] = component.revision
        if seeded:
            logger.info("Empty database, demo data seeded")
            await self.save(force=True)
        logger.info(
            "State hydrated: %d users, %d surveys, %d pending responses",
            len(self.users.list_users()),
            len(self.store.list_surveys()),
            self.store.pending_count,
        )

    async def save(self, force: bool = False) -> None:
        async with self._save_lock:
            for key, component in self._partitions().items():
                revision = component.revision
                if not force and self._saved.get(key) == revision:
                    continue
                await self.persistence.save(key, component.snapshot())
                self._saved[key] = revision

    async def close(self) -> None:
        self.coordinator.close()
        self.recordings.close_all()
        try:
            await self.save()
        finally:
            await self.engine.dispose()
        logger.info("Application state closed")
