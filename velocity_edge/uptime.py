"""
Sincronizador de uptime: un contador local que avanza cada segundo y se
reconcilia periódicamente con el uptime autoritativo del origen.
"""
import asyncio
import math
import logging
from contextlib import suppress
from typing import Awaitable, Callable, List, Optional

from velocity_edge.errors import UpstreamUnreachable
from velocity_edge.metrics import MetricsAggregator

logger = logging.getLogger(__name__)


class UptimeSynchronizer:
    """
    Dos tareas independientes sobre el mismo agregador:
    un tick local y un resync contra /health.
    """

    def __init__(
        self,
        aggregator: MetricsAggregator,
        fetch_uptime: Callable[[], Awaitable[float]],
        tick_interval: float = 1.0,
        resync_interval: float = 10.0,
    ):
        self._aggregator = aggregator
        self._fetch_uptime = fetch_uptime
        self.tick_interval = tick_interval
        self.resync_interval = resync_interval
        self._tasks: List[asyncio.Task] = []

    @property
    def uptime_seconds(self) -> int:
        return self._aggregator.state.uptime_seconds

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def tick(self) -> None:
        self._aggregator.tick(1)

    async def resync(self) -> bool:
        """Reemplaza el contador local por el uptime del servidor"""
        try:
            server_uptime = await self._fetch_uptime()
        except UpstreamUnreachable as exc:
            # El origen caído no es un error visible; el tick local sigue
            logger.debug(f"Uptime resync skipped: {exc}")
            return False

        try:
            seconds = math.floor(server_uptime)
        except (TypeError, ValueError, OverflowError):
            logger.debug(f"Uptime resync skipped: invalid uptime {server_uptime!r}")
            return False

        self._aggregator.sync_uptime(seconds)
        return True

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.tick()

    async def _resync_loop(self) -> None:
        while True:
            try:
                await self.resync()
            except Exception:
                logger.exception("Uptime resync failed")
            await asyncio.sleep(self.resync_interval)

    def start(self) -> None:
        """Arranca ambas tareas (sin efecto si ya corren)"""
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._resync_loop(), name='uptime-resync'),
            asyncio.create_task(self._tick_loop(), name='uptime-tick'),
        ]

    async def stop(self) -> None:
        """Cancela ambas tareas; idempotente"""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    async def __aenter__(self) -> 'UptimeSynchronizer':
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> Optional[bool]:
        await self.stop()
        return None
