"""
Sesión del dashboard: acciones de prueba, stress burst y sincronización de
uptime sobre un único MetricsAggregator.
"""
import asyncio
import logging
from typing import Optional

from velocity_edge.app import DYNAMIC_DATA_PATH, FAST_DATA_PATH
from velocity_edge.client import ProbeClient, ProbeResult
from velocity_edge.config import ClientConfig
from velocity_edge.errors import UpstreamUnreachable
from velocity_edge.metrics import MetricsAggregator
from velocity_edge.uptime import UptimeSynchronizer

logger = logging.getLogger(__name__)


class Dashboard:
    """Composición de probe client, agregador y sincronizador de uptime"""

    def __init__(self, client: ProbeClient, settings: Optional[ClientConfig] = None):
        self.settings = settings or ClientConfig()
        self.client = client
        self.aggregator = MetricsAggregator(self.settings.history_limit)
        self.uptime = UptimeSynchronizer(
            self.aggregator,
            client.server_uptime,
            tick_interval=self.settings.tick_interval,
            resync_interval=self.settings.resync_interval,
        )

    @classmethod
    def from_config(cls, settings: ClientConfig) -> 'Dashboard':
        client = ProbeClient(
            settings.base_url,
            cache_status_header=settings.cache_status_header,
            timeout=settings.request_timeout,
        )
        return cls(client, settings)

    @property
    def metrics(self):
        return self.aggregator.state

    @property
    def history(self):
        return self.aggregator.history.entries()

    async def _probe(self, path: str, cacheable: bool, bust: bool) -> ProbeResult:
        try:
            result = await self.client.probe(path, cacheable=cacheable, bust=bust)
        except UpstreamUnreachable as exc:
            logger.warning(f"Probe to {path} failed: {exc}")
            result = ProbeResult.from_failure(path, cacheable, exc)
        self.aggregator.record(result)
        return result

    async def test_cacheable_endpoint(self) -> ProbeResult:
        return await self._probe(FAST_DATA_PATH, cacheable=True, bust=False)

    async def test_dynamic_endpoint(self) -> ProbeResult:
        # Query param único para que ningún intermediario agrupe requests
        return await self._probe(DYNAMIC_DATA_PATH, cacheable=False, bust=True)

    async def clear_cache(self) -> Optional[ProbeResult]:
        """PURGE de /fast-data; queda en el historial sin tocar contadores"""
        try:
            await self.client.purge(FAST_DATA_PATH)
        except UpstreamUnreachable as exc:
            logger.error(f"Failed to purge: {exc}")
            return None
        result = ProbeResult.purged()
        self.aggregator.record(result)
        return result

    async def run_burst(self, n: Optional[int] = None, spacing_ms: Optional[int] = None) -> int:
        """
        Lanza n probes cacheables, estrictamente en secuencia.

        Cada probe espera spacing_ms antes del siguiente. Un probe fallido se
        registra y se continúa; el burst siempre termina.

        Returns:
            Número de resultados incorporados al agregador
        """
        n = self.settings.burst_size if n is None else n
        spacing_ms = self.settings.burst_spacing_ms if spacing_ms is None else spacing_ms

        folded = 0
        for i in range(n):
            result = await self.test_cacheable_endpoint()
            folded += 1
            logger.info(f"Burst {i + 1}/{n}: {result.cache_status.value} in {result.response_time_ms}ms")
            await asyncio.sleep(spacing_ms / 1000)
        return folded

    def start(self) -> None:
        self.uptime.start()

    async def stop(self) -> None:
        await self.uptime.stop()

    async def aclose(self) -> None:
        await self.stop()
        await self.client.aclose()

    async def __aenter__(self) -> 'Dashboard':
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def summary(self) -> str:
        return self.aggregator.get_metrics_summary()
