"""
Cliente de probes: consulta el origen a través del caché externo y clasifica
cada respuesta como HIT / MISS / BYPASSED / UNKNOWN según sus headers.
"""
import json
import time
import uuid
import logging
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from velocity_edge.errors import UpstreamUnreachable

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 50
SYSTEM_ENDPOINT = 'SYSTEM'


class CacheStatus(str, Enum):
    HIT = 'HIT'
    MISS = 'MISS'
    BYPASSED = 'BYPASSED'
    PURGED = 'PURGED'
    UNKNOWN = 'UNKNOWN'


# Valores que Varnish / Nginx usan para un request que no pasó por el store
_BYPASS_VALUES = {'BYPASS', 'BYPASSED', 'PASS'}


def classify(header_value: Optional[str], cacheable: bool) -> CacheStatus:
    """
    Clasifica el header de estado de caché.

    Args:
        header_value: Valor del header (None si no vino)
        cacheable: Si el endpoint consultado es cacheable

    Returns:
        CacheStatus correspondiente; nunca adivina HIT o MISS
    """
    if header_value is None or not header_value.strip():
        return CacheStatus.UNKNOWN if cacheable else CacheStatus.BYPASSED

    # Varnish puede encadenar valores ("HIT, HIT"); manda el primero
    token = header_value.split(',')[0].strip().upper()
    if token == 'HIT':
        return CacheStatus.HIT
    if token == 'MISS':
        return CacheStatus.MISS
    if token in _BYPASS_VALUES:
        return CacheStatus.BYPASSED
    return CacheStatus.UNKNOWN


def preview(payload: Any) -> str:
    """Primeros caracteres del payload serializado"""
    text = payload if isinstance(payload, str) else json.dumps(payload, separators=(',', ':'))
    return text[:PREVIEW_LENGTH] + '...'


@dataclass(frozen=True)
class ProbeResult:
    """Resultado observado de un probe"""
    endpoint: str
    cache_status: CacheStatus
    response_time_ms: int
    payload_preview: str
    cacheable: bool = True
    system: bool = False
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def failed(self) -> bool:
        return self.error is not None

    @classmethod
    def from_failure(cls, endpoint: str, cacheable: bool, error: Exception) -> 'ProbeResult':
        return cls(
            endpoint=endpoint,
            cache_status=CacheStatus.UNKNOWN,
            response_time_ms=0,
            payload_preview='',
            cacheable=cacheable,
            error=str(error),
        )

    @classmethod
    def purged(cls, message: str = 'Cache cleared successfully') -> 'ProbeResult':
        return cls(
            endpoint=SYSTEM_ENDPOINT,
            cache_status=CacheStatus.PURGED,
            response_time_ms=0,
            payload_preview=message,
            cacheable=False,
            system=True,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data['cache_status'] = self.cache_status.value
        data['timestamp'] = self.timestamp.isoformat()
        return data


class ProbeClient:
    """Cliente HTTP asíncrono hacia el edge"""

    def __init__(
        self,
        base_url: str,
        cache_status_header: str = 'X-Cache',
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.cache_status_header = cache_status_header
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _request(self, method: str, path: str, params: Optional[Dict[str, str]] = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._http.request(method, url, params=params)
            if response.status_code >= 500:
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpstreamUnreachable(url, f"{exc.__class__.__name__}: {exc}") from exc
        return response

    async def probe(self, path: str, *, cacheable: bool = True, bust: bool = False) -> ProbeResult:
        """
        Lanza un probe y mide el tiempo hasta recibir el body completo.

        Args:
            path: Ruta del endpoint (ej. "/fast-data")
            cacheable: Si el endpoint tiene política cacheable
            bust: Agrega un query param único para evitar coalescing

        Returns:
            ProbeResult clasificado

        Raises:
            UpstreamUnreachable: Error de red o 5xx del edge
        """
        params = {'t': f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"} if bust else None

        start = time.perf_counter()
        response = await self._request('GET', path, params=params)
        elapsed_ms = round((time.perf_counter() - start) * 1000)

        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        status = classify(response.headers.get(self.cache_status_header), cacheable)
        logger.debug(f"Probe {path} -> {status.value} in {elapsed_ms}ms")

        return ProbeResult(
            endpoint=path,
            cache_status=status,
            response_time_ms=elapsed_ms,
            payload_preview=preview(payload),
            cacheable=cacheable,
        )

    async def purge(self, path: str) -> None:
        """Pide al caché externo que desaloje la entrada de `path`"""
        await self._request('PURGE', path)

    async def _json(self, path: str) -> Dict[str, Any]:
        response = await self._request('GET', path)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamUnreachable(f"{self.base_url}{path}", "invalid JSON body") from exc

    async def health(self) -> Dict[str, Any]:
        return await self._json('/health')

    async def analytics(self) -> Dict[str, Any]:
        return await self._json('/analytics')

    async def server_uptime(self) -> float:
        """Uptime autoritativo reportado por /health"""
        data = await self.health()
        try:
            return float(data['uptime'])
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamUnreachable(f"{self.base_url}/health", "missing uptime") from exc
