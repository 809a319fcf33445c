"""
Métricas de caché del lado cliente: reducción acumulada de ProbeResults y
log acotado de los últimos resultados.
"""
from collections import deque
from dataclasses import dataclass, replace, asdict
from typing import Deque, Iterator, List, Optional

from velocity_edge.client import CacheStatus, ProbeResult

HISTORY_LIMIT = 10


def hit_rate(cache_hits: int, total_requests: int) -> float:
    """Porcentaje de hits; 0 cuando no hubo requests"""
    if total_requests == 0:
        return 0.0
    return cache_hits / total_requests * 100


@dataclass(frozen=True)
class MetricsState:
    """Métricas de caché acumuladas"""
    cache_hits: int = 0
    cache_misses: int = 0
    total_requests: int = 0
    last_hit_time_ms: Optional[int] = None
    last_miss_time_ms: Optional[int] = None
    uptime_seconds: int = 0

    @property
    def hit_rate(self) -> float:
        return hit_rate(self.cache_hits, self.total_requests)

    @property
    def speedup(self) -> Optional[float]:
        """Cuántas veces más rápido fue el último HIT frente al último MISS"""
        if not self.last_hit_time_ms or not self.last_miss_time_ms:
            return None
        return self.last_miss_time_ms / self.last_hit_time_ms

    def to_dict(self) -> dict:
        """Convierte a diccionario para serialización"""
        data = asdict(self)
        data['hit_rate'] = self.hit_rate
        data['speedup'] = self.speedup
        return data


def fold(result: ProbeResult, state: MetricsState) -> MetricsState:
    """
    Incorpora un ProbeResult al estado y devuelve el estado nuevo.

    Reglas:
        - Los resultados de sistema (PURGE) no tocan ningún contador.
        - Todo otro probe suma uno al total, incluso si falló.
        - HIT actualiza hits y la latencia del último hit.
        - MISS actualiza misses y la latencia del último miss.
        - Un probe a un endpoint no cacheable siempre actualiza la latencia
          del último miss como línea base, aunque el edge responda HIT.
          BYPASSED no cuenta como miss.
    """
    if result.system:
        return state

    state = replace(state, total_requests=state.total_requests + 1)
    if result.failed:
        return state

    if result.cache_status is CacheStatus.HIT:
        state = replace(
            state,
            cache_hits=state.cache_hits + 1,
            last_hit_time_ms=result.response_time_ms,
        )
    elif result.cache_status is CacheStatus.MISS:
        state = replace(state, cache_misses=state.cache_misses + 1)

    if (
        result.cache_status in (CacheStatus.MISS, CacheStatus.BYPASSED)
        or not result.cacheable
    ):
        state = replace(state, last_miss_time_ms=result.response_time_ms)

    return state


class HistoryLog:
    """Últimos resultados, el más reciente primero"""

    def __init__(self, limit: int = HISTORY_LIMIT):
        self._entries: Deque[ProbeResult] = deque(maxlen=limit)

    def add(self, result: ProbeResult) -> None:
        # appendleft sobre deque acotado descarta el más antiguo
        self._entries.appendleft(result)

    def entries(self) -> List[ProbeResult]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ProbeResult]:
        return iter(list(self._entries))


class MetricsAggregator:
    """
    Dueño único de MetricsState y HistoryLog en una sesión del dashboard.

    Toda mutación pasa por record / tick / sync_uptime, así que el estado y
    el historial siempre reflejan la misma secuencia de resultados.
    """

    def __init__(self, history_limit: int = HISTORY_LIMIT):
        self.state = MetricsState()
        self.history = HistoryLog(history_limit)

    def record(self, result: ProbeResult) -> MetricsState:
        self.state = fold(result, self.state)
        self.history.add(result)
        return self.state

    def tick(self, seconds: int = 1) -> None:
        self.state = replace(self.state, uptime_seconds=self.state.uptime_seconds + seconds)

    def sync_uptime(self, seconds: int) -> None:
        self.state = replace(self.state, uptime_seconds=seconds)

    def get_metrics_summary(self) -> str:
        """Retorna un resumen de las métricas en texto"""
        m = self.state
        last_hit = f"{m.last_hit_time_ms}ms" if m.last_hit_time_ms is not None else '---'
        last_miss = f"{m.last_miss_time_ms}ms" if m.last_miss_time_ms is not None else '---'
        speedup = f"{m.speedup:.1f}x" if m.speedup else '---'

        lines = [
            "",
            "Cache Metrics Summary",
            "=====================",
            f"Uptime:         {format_uptime(m.uptime_seconds)}",
            f"Total Requests: {m.total_requests}",
            f"Cache Hits:     {m.cache_hits} ({m.hit_rate:.1f}%)",
            f"Cache Misses:   {m.cache_misses}",
            "",
            "Performance:",
            f"  Without cache (MISS): {last_miss}",
            f"  With cache (HIT):     {last_hit}",
            f"  Speedup:              {speedup}",
            "",
            "Recent probes:",
        ]
        for entry in self.history:
            lines.append(
                f"  {entry.timestamp.strftime('%H:%M:%S')}  {entry.endpoint:<14} "
                f"{entry.cache_status.value:<8} {entry.response_time_ms:>6}ms  "
                f"{entry.error or entry.payload_preview}"
            )
        return "\n".join(lines) + "\n"


def format_uptime(seconds: int) -> str:
    """Formatea segundos como HH:MM:SS"""
    hrs, rest = divmod(int(seconds), 3600)
    mins, secs = divmod(rest, 60)
    return f"{hrs:02d}:{mins:02d}:{secs:02d}"
