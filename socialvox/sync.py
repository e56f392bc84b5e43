"""
Offline sync coordination.

The coordinator watches connectivity and the store's pending count and
pushes unsynced responses once the device is back online. It never runs
two syncs at once: a trigger that arrives while a sync is in flight is
dropped, and the gate only reopens after a cooldown that follows every
attempt, successful or not. There is no automatic retry after a failure;
the next trigger (a new response, reconnecting, or a manual sync) starts
the next attempt.
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Deque, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .errors import NetworkError
from .network import ConnectivityMonitor
from .scheduling import SingleSlotTask
from .schemas import Notice, NoticeLevel, SyncStatus, utcnow
from .store import EntityStore

logger = logging.getLogger(__name__)

SessionProvider = Callable[[], bool]

SAVE_FAILED_MESSAGE = (
    "Datos sincronizados, pero no se pudieron guardar localmente. "
    "Se guardarán en el próximo cambio."
)


class Outcome(str, Enum):
    SYNCED = "synced"
    FAILED = "failed"
    OFFLINE = "offline"
    NOTHING_PENDING = "nothing-pending"
    NO_SESSION = "no-session"
    BUSY = "busy"
    CLOSED = "closed"
    SAVE_FAILED = "save-failed"


@dataclass
class SyncOutcome:
    outcome: Outcome
    synced: int = 0
    message: str = ""

    @property
    def ok(self) -> bool:
        # The server has the responses even when the local save failed.
        return self.outcome in (Outcome.SYNCED, Outcome.SAVE_FAILED)


def _synced_message(count: int) -> str:
    if count == 1:
        return "Sincronización completa: 1 encuesta sincronizada"
    return f"Sincronización completa: {count} encuestas sincronizadas"


class OfflineSyncCoordinator:
    def __init__(
        self,
        store: EntityStore,
        connectivity: ConnectivityMonitor,
        session_provider: SessionProvider,
        debounce: float = 2.0,
        cooldown: float = 3.0,
        max_notices: int = 50,
        after_sync: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self._store = store
        self._connectivity = connectivity
        self._session_provider = session_provider
        self.debounce = debounce
        self.cooldown = cooldown
        self._after_sync = after_sync

        self._debounce_task = SingleSlotTask("sync-debounce")
        self._cooldown_task = SingleSlotTask("sync-cooldown")
        self._syncing = False
        self._alive = True
        self.last_sync_time: Optional[datetime] = None
        self.notices: Deque[Notice] = deque(maxlen=max_notices)

        self._unsubscribers: List[Callable[[], None]] = [
            connectivity.subscribe(self._on_connectivity),
            store.subscribe(self._on_pending_changed),
        ]

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def alive(self) -> bool:
        return self._alive

    def status(self) -> SyncStatus:
        return SyncStatus(
            is_online=self._connectivity.is_online,
            is_syncing=self._syncing,
            pending_count=self._store.pending_count,
            last_sync_time=self.last_sync_time,
            notices=list(self.notices),
        )

    def _notify(self, level: NoticeLevel, message: str) -> None:
        if self._alive:
            self.notices.append(Notice(level=level, message=message))

    # --- Triggers ---

    def _on_connectivity(self, online: bool) -> None:
        if not self._alive:
            return
        if online:
            self._notify(NoticeLevel.SUCCESS, "Conexión reestablecida")
            self._schedule_if_ready()
        else:
            self._notify(
                NoticeLevel.WARNING,
                "Conexión perdida. Los datos se guardarán localmente.",
            )
            self._debounce_task.cancel()

    def _on_pending_changed(self, pending: int) -> None:
        if self._alive and pending > 0:
            self._schedule_if_ready()

    def _schedule_if_ready(self) -> None:
        if self._syncing or not self._connectivity.is_online:
            return
        if self._store.pending_count == 0 or not self._session_provider():
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, automatic sync not scheduled")
            return
        self._debounce_task.schedule(self.debounce, self._auto_sync)
        logger.debug("Automatic sync scheduled in %.1fs", self.debounce)

    async def _auto_sync(self) -> None:
        outcome = await self.sync_now()
        logger.info("Automatic sync finished: %s", outcome.outcome.value)

    # --- Sync ---

    async def sync_now(self) -> SyncOutcome:
        if not self._alive:
            return SyncOutcome(Outcome.CLOSED)
        if self._syncing:
            logger.info("Sync trigger dropped: another sync is in flight")
            return SyncOutcome(Outcome.BUSY, message="Sincronización en curso")
        if not self._connectivity.is_online:
            message = "No hay conexión a internet. Intente más tarde."
            self._notify(NoticeLevel.ERROR, message)
            return SyncOutcome(Outcome.OFFLINE, message=message)
        if self._store.pending_count == 0:
            message = "No hay datos pendientes de sincronización."
            self._notify(NoticeLevel.INFO, message)
            return SyncOutcome(Outcome.NOTHING_PENDING, message=message)
        if not self._session_provider():
            message = "Sesión expirada. Inicie sesión para sincronizar."
            self._notify(NoticeLevel.WARNING, message)
            return SyncOutcome(Outcome.NO_SESSION, message=message)

        # A manual sync supersedes a pending automatic one.
        self._debounce_task.cancel()
        self._syncing = True
        logger.info("Sync started (%d pending)", self._store.pending_count)
        try:
            count = await self._store.sync_responses()
        except NetworkError as exc:
            logger.error("Sync failed: %s", exc.message)
            message = "Error al sincronizar datos. Intente nuevamente."
            self._notify(NoticeLevel.ERROR, message)
            return SyncOutcome(Outcome.FAILED, message=message)
        else:
            message = _synced_message(count)
            if self._alive:
                self.last_sync_time = utcnow()
            self._notify(NoticeLevel.SUCCESS, message)
            if self._alive and self._after_sync is not None:
                try:
                    await self._after_sync()
                except SQLAlchemyError as exc:
                    # Responses already reached the server; only the local copy is stale.
                    logger.error("Saving state after sync failed: %s", exc)
                    self._notify(NoticeLevel.WARNING, SAVE_FAILED_MESSAGE)
                    return SyncOutcome(
                        Outcome.SAVE_FAILED, synced=count, message=SAVE_FAILED_MESSAGE
                    )
            return SyncOutcome(Outcome.SYNCED, synced=count, message=message)
        finally:
            self._start_cooldown()

    def _start_cooldown(self) -> None:
        if not self._alive:
            self._syncing = False
            return
        self._cooldown_task.schedule(self.cooldown, self._release_gate)

    async def _release_gate(self) -> None:
        self._syncing = False
        logger.debug("Sync gate released")

    async def wait_idle(self) -> None:
        """Waits for a scheduled sync and the cooldown after it."""
        await self._debounce_task.wait()
        await self._cooldown_task.wait()

    def close(self) -> None:
        if not self._alive:
            return
        self._alive = False
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._debounce_task.cancel()
        self._cooldown_task.cancel()
        logger.info("Sync coordinator closed")
