"""
Contador de requests del origen (total y por endpoint).
"""
import threading
from dataclasses import dataclass, field
from typing import Dict


@dataclass(frozen=True)
class AnalyticsSnapshot:
    """Copia consistente del contador en un instante"""
    total_requests: int = 0
    by_endpoint: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'totalRequests': self.total_requests,
            'requestsByEndpoint': dict(self.by_endpoint),
        }


class RequestAnalytics:
    """
    Contador compartido entre requests concurrentes.

    Cada incremento y cada snapshot toman el mismo lock, así que nunca se
    pierden updates ni se observa un estado a medio actualizar.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._total = 0
        self._by_endpoint: Dict[str, int] = {}

    def record(self, path: str) -> None:
        """Registra un request entrante (total primero, luego la ruta)"""
        with self._lock:
            self._total += 1
            self._by_endpoint[path] = self._by_endpoint.get(path, 0) + 1

    def snapshot(self) -> AnalyticsSnapshot:
        with self._lock:
            return AnalyticsSnapshot(
                total_requests=self._total,
                by_endpoint=dict(self._by_endpoint),
            )
