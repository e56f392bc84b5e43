import asyncio
import logging
import random
from typing import Callable, List, Optional

from .errors import NetworkError

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class SimulatedNetwork:
    """Latency and failure model for the store's remote-facing calls."""

    def __init__(
        self,
        min_delay: float = 0.3,
        max_delay: float = 1.2,
        failure_rate: float = 0.0,
        rng: Optional[random.Random] = None,
    ):
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError("invalid latency range")
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()

    @classmethod
    def instant(cls) -> "SimulatedNetwork":
        return cls(0.0, 0.0, 0.0)

    async def round_trip(self, operation: str) -> None:
        delay = self._rng.uniform(self.min_delay, self.max_delay)
        if delay > 0:
            await asyncio.sleep(delay)
        if self.failure_rate > 0 and self._rng.random() < self.failure_rate:
            logger.warning("Simulated network failure during '%s'", operation)
            raise NetworkError("Error de red simulado")


class ConnectivityMonitor:
    """Online/offline flag fed by the client's connectivity events."""

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: List[ConnectivityListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_online(self, online: bool) -> bool:
        """Returns True when this was an actual transition."""
        if online == self._online:
            return False
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            listener(online)
        return True
