"""
Configuración 12-Factor: toda la config viene de variables de entorno.
Implementa patrón Facade para acceso centralizado a configuración.
"""
import os
import logging
import warnings
from typing import Optional, Dict, Any
from dataclasses import dataclass

from velocity_edge.errors import ConfigurationWarning

logger = logging.getLogger(__name__)


def env_int(name: str, default: int, minimum: int = 0) -> int:
    """
    Lee un entero de ENV.

    Un valor ausente usa el default sin aviso. Un valor no numérico o menor
    que ``minimum`` también usa el default, pero emite ConfigurationWarning.
    """
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default

    try:
        value = int(raw.strip())
    except ValueError:
        value = None

    if value is None or value < minimum:
        message = f"Invalid value for {name}={raw!r}; using default {default}"
        logger.warning(message)
        warnings.warn(message, ConfigurationWarning, stacklevel=2)
        return default

    return value


@dataclass
class AppConfig:
    """Configuración del origen"""
    host: str = "0.0.0.0"
    port: int = 3000
    simulated_delay_ms: int = 5000
    debug: bool = False
    version: str = "1.0.0"
    log_level: str = "INFO"


@dataclass
class ClientConfig:
    """Configuración del dashboard cliente"""
    base_url: str = "http://localhost:8081"
    cache_status_header: str = "X-Cache"
    request_timeout: float = 30.0
    tick_interval: float = 1.0
    resync_interval: float = 10.0
    burst_size: int = 10
    burst_spacing_ms: int = 100
    history_limit: int = 10


class ConfigFacade:
    """
    Facade para acceso unificado a toda la configuración.
    Implementa 12-Factor: configuración por variables de entorno.
    """

    def __init__(self):
        self._app: Optional[AppConfig] = None
        self._client: Optional[ClientConfig] = None

    @property
    def app(self) -> AppConfig:
        """Configuración del origen"""
        if self._app is None:
            defaults = AppConfig()
            self._app = AppConfig(
                host=os.getenv('BACKEND_HOST', defaults.host),
                port=env_int('PORT', defaults.port, minimum=1),
                simulated_delay_ms=env_int('SIMULATED_DELAY', defaults.simulated_delay_ms),
                debug=os.getenv('FLASK_DEBUG', 'false').lower() == 'true',
                version=os.getenv('APP_VERSION', defaults.version),
                log_level=os.getenv('LOG_LEVEL', defaults.log_level),
            )
        return self._app

    @property
    def client(self) -> ClientConfig:
        """Configuración del cliente"""
        if self._client is None:
            defaults = ClientConfig()
            self._client = ClientConfig(
                base_url=os.getenv('EDGE_URL', defaults.base_url).rstrip('/'),
                cache_status_header=os.getenv('CACHE_STATUS_HEADER', defaults.cache_status_header),
                request_timeout=float(env_int('PROBE_TIMEOUT', int(defaults.request_timeout), minimum=1)),
                resync_interval=float(
                    env_int('UPTIME_RESYNC_INTERVAL', int(defaults.resync_interval), minimum=1)
                ),
                burst_size=env_int('BURST_SIZE', defaults.burst_size, minimum=1),
                burst_spacing_ms=env_int('BURST_SPACING_MS', defaults.burst_spacing_ms),
            )
        return self._client

    def to_dict(self) -> Dict[str, Any]:
        """Exporta toda la configuración como diccionario"""
        return {
            'app': {
                'host': self.app.host,
                'port': self.app.port,
                'simulated_delay_ms': self.app.simulated_delay_ms,
                'debug': self.app.debug,
                'version': self.app.version,
                'log_level': self.app.log_level,
            },
            'client': {
                'base_url': self.client.base_url,
                'cache_status_header': self.client.cache_status_header,
                'request_timeout': self.client.request_timeout,
                'tick_interval': self.client.tick_interval,
                'resync_interval': self.client.resync_interval,
                'burst_size': self.client.burst_size,
                'burst_spacing_ms': self.client.burst_spacing_ms,
                'history_limit': self.client.history_limit,
            }
        }

    def validate(self) -> bool:
        """Valida que la configuración sea válida"""
        errors = []

        if not (1 <= self.app.port <= 65535):
            errors.append(f"Invalid app port: {self.app.port}")

        if self.app.simulated_delay_ms < 0:
            errors.append(f"Invalid simulated delay: {self.app.simulated_delay_ms}")

        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if self.app.log_level.upper() not in valid_levels:
            errors.append(f"Invalid log level: {self.app.log_level}")

        if not self.client.base_url.startswith(('http://', 'https://')):
            errors.append(f"Invalid edge url: {self.client.base_url}")

        if self.client.tick_interval <= 0 or self.client.resync_interval <= 0:
            errors.append("Timer intervals must be positive")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

        return True


# Instancia global del facade (singleton)
config = ConfigFacade()
