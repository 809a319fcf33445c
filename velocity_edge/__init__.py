"""
VelocityEdge - demostración de caché en el edge

Origen con contratos Cache-Control y dashboard cliente que mide HIT/MISS.

Componentes principales:
- app: Backend Flask con políticas de caché y latencia simulada
- analytics: Contador de requests del origen
- config: Configuración 12-Factor
- client: Probes y clasificación de respuestas
- metrics: Agregado de métricas e historial
- uptime: Sincronización del uptime con el origen
- dashboard: Sesión que compone todo lo anterior
"""

__version__ = "1.0.0"
__author__ = "VelocityEdge Team"

# Imports principales
from velocity_edge.app import create_app, EndpointPolicy, CacheConfig, build_headers
from velocity_edge.analytics import RequestAnalytics, AnalyticsSnapshot
from velocity_edge.config import ConfigFacade, AppConfig, ClientConfig
from velocity_edge.client import CacheStatus, ProbeClient, ProbeResult, classify
from velocity_edge.metrics import MetricsAggregator, MetricsState, HistoryLog, fold, hit_rate
from velocity_edge.uptime import UptimeSynchronizer
from velocity_edge.dashboard import Dashboard
from velocity_edge.errors import ConfigurationWarning, UpstreamUnreachable

__all__ = [
    "create_app",
    "EndpointPolicy",
    "CacheConfig",
    "build_headers",
    "RequestAnalytics",
    "AnalyticsSnapshot",
    "ConfigFacade",
    "AppConfig",
    "ClientConfig",
    "CacheStatus",
    "ProbeClient",
    "ProbeResult",
    "classify",
    "MetricsAggregator",
    "MetricsState",
    "HistoryLog",
    "fold",
    "hit_rate",
    "UptimeSynchronizer",
    "Dashboard",
    "ConfigurationWarning",
    "UpstreamUnreachable",
]
