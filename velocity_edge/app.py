"""
Backend origen con contratos de caché, latencia simulada y analytics.

El caché externo (Varnish/Nginx) se sitúa delante de este servicio y decide
qué almacenar leyendo únicamente los headers Cache-Control que emitimos aquí.
"""
import asyncio
import time
import uuid
import random
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Callable
from flask import Flask, Response, request, jsonify
from werkzeug.exceptions import HTTPException, ServiceUnavailable
from dataclasses import dataclass

from velocity_edge.analytics import RequestAnalytics
from velocity_edge import config as config_module

# Configuración de logging para métricas
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

FAST_DATA_PATH = '/fast-data'
DYNAMIC_DATA_PATH = '/dynamic-data'
ANALYTICS_PATH = '/analytics'
HEALTH_PATH = '/health'

NO_STORE_DIRECTIVES = "no-cache, no-store, must-revalidate"


@dataclass(frozen=True)
class EndpointPolicy:
    """Política de caché estática de un endpoint"""
    path: str
    cacheable: bool
    ttl_seconds: int = 0

    def to_header(self) -> str:
        """Convierte la política a header Cache-Control"""
        if not self.cacheable:
            return NO_STORE_DIRECTIVES
        # s-maxage va dirigido al caché compartido (edge)
        return f"public, max-age={self.ttl_seconds}, s-maxage={self.ttl_seconds}"


def build_headers(policy: EndpointPolicy, processing_time_ms: int, request_id: str) -> Dict[str, str]:
    """
    Construye el set de headers de un endpoint.

    Depende solo de la política y de los diagnósticos del request, nunca del
    payload, para que el caché decida sin mirar el body.

    Args:
        policy: Política del endpoint
        processing_time_ms: Tiempo de procesamiento en el servidor
        request_id: Identificador del request

    Returns:
        Diccionario de headers HTTP
    """
    headers = {'Cache-Control': policy.to_header()}

    if not policy.cacheable:
        headers['Pragma'] = 'no-cache'
        headers['Expires'] = '0'

    headers['X-Backend-Response-Time'] = f"{processing_time_ms}ms"
    headers['X-Request-ID'] = request_id
    headers['Content-Type'] = 'application/json'
    return headers


class CacheConfig:
    """Configuración de políticas de caché por ruta"""
    POLICIES: Dict[str, EndpointPolicy] = {
        FAST_DATA_PATH: EndpointPolicy(FAST_DATA_PATH, cacheable=True, ttl_seconds=60),
        DYNAMIC_DATA_PATH: EndpointPolicy(DYNAMIC_DATA_PATH, cacheable=False),
        ANALYTICS_PATH: EndpointPolicy(ANALYTICS_PATH, cacheable=False),
        HEALTH_PATH: EndpointPolicy(HEALTH_PATH, cacheable=False),
    }

    @classmethod
    def get_policy(cls, path: str) -> Optional[EndpointPolicy]:
        """Obtiene política para una ruta"""
        return cls.POLICIES.get(path)


@dataclass(frozen=True)
class ResponseEnvelope:
    """Valor que produce un handler del origen"""
    payload: Any
    server_processing_time_ms: int
    generated_at_epoch_ms: int
    cache_headers: Dict[str, str]

    def to_response(self) -> Response:
        response = jsonify(self.payload)
        response.headers.update(self.cache_headers)
        return response


def epoch_ms() -> int:
    return int(time.time() * 1000)


def new_request_id() -> str:
    return f"req-{epoch_ms()}-{uuid.uuid4().hex[:8]}"


async def simulate_latency(duration_ms: int) -> None:
    """
    Suspende el handler actual durante duration_ms.

    Solo cede el control del request en curso; el resto de conexiones se
    siguen atendiendo. Si la espera se cancela el request falla con 503.
    """
    if duration_ms <= 0:
        return
    try:
        await asyncio.sleep(duration_ms / 1000)
    except asyncio.CancelledError:
        logger.warning(f"Simulated delay of {duration_ms}ms interrupted")
        raise ServiceUnavailable("Simulated delay interrupted")


def build_envelope(
    policy: EndpointPolicy,
    payload_factory: Callable[[int], Any],
    started: float,
) -> ResponseEnvelope:
    """Arma headers y payload a partir de la política (en ese orden)"""
    processing_ms = int((time.perf_counter() - started) * 1000)
    headers = build_headers(policy, processing_ms, new_request_id())
    return ResponseEnvelope(
        payload=payload_factory(processing_ms),
        server_processing_time_ms=processing_ms,
        generated_at_epoch_ms=epoch_ms(),
        cache_headers=headers,
    )


def _fast_payload(processing_ms: int, policy: EndpointPolicy) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        'data': 'This is cached content from VelocityEdge',
        'timestamp': int(now.timestamp() * 1000),
        'isoTimestamp': now.isoformat(),
        'responseTime': f"{processing_ms}ms",
        'message': 'Backend processed this request (should be cached)',
        'metadata': {
            'endpoint': policy.path,
            'cacheable': policy.cacheable,
            'ttl': policy.ttl_seconds,
        },
    }


def _dynamic_payload(processing_ms: int) -> Dict[str, Any]:
    return {
        'data': 'This is always fresh, never cached',
        'timestamp': epoch_ms(),
        'randomValue': random.random(),
        'responseTime': f"{processing_ms}ms",
        'message': 'This endpoint bypasses the cache',
    }


def _error_response(body: Dict[str, Any], status: int) -> Response:
    response = jsonify(body)
    response.status_code = status
    # Un error nunca debe quedar almacenado en el edge
    response.headers['Cache-Control'] = 'no-store'
    return response


def create_app(
    config: Optional[Dict[str, Any]] = None,
    analytics: Optional[RequestAnalytics] = None,
) -> Flask:
    """Factory para crear la aplicación Flask"""
    app = Flask(__name__)

    # Configuración 12-Factor desde ENV
    settings = config_module.config.app
    app.config.update({
        'PORT': settings.port,
        'HOST': settings.host,
        'DEBUG': settings.debug,
        'VERSION': settings.version,
        'SIMULATED_DELAY_MS': settings.simulated_delay_ms,
        'STARTED_AT': time.monotonic(),
    })

    if config:
        app.config.update(config)

    app.extensions['analytics'] = analytics if analytics is not None else RequestAnalytics()

    def uptime() -> float:
        return time.monotonic() - app.config['STARTED_AT']

    @app.before_request
    def count_request():
        """Cuenta el request antes de despacharlo al handler"""
        request.start_time = time.time()
        app.extensions['analytics'].record(request.path)
        logger.info(
            "REQUEST",
            extra={
                'method': request.method,
                'path': request.path,
                'remote_addr': request.remote_addr,
                'user_agent': request.user_agent.string,
            }
        )

    @app.after_request
    def log_response(response: Response) -> Response:
        """Log de respuesta con timing y headers de caché"""
        duration = time.time() - getattr(request, 'start_time', time.time())

        response.headers['X-Response-Time'] = f"{duration:.4f}"
        response.headers['X-Backend-Server'] = app.config['VERSION']

        logger.info(
            "RESPONSE",
            extra={
                'method': request.method,
                'path': request.path,
                'status': response.status_code,
                'duration_ms': duration * 1000,
                'cache_control': response.headers.get('Cache-Control', 'none'),
            }
        )

        return response

    @app.route('/', methods=['GET'])
    def index():
        """Directorio del servicio"""
        delay = app.config['SIMULATED_DELAY_MS']
        return jsonify({
            'service': 'VelocityEdge Backend API',
            'version': app.config['VERSION'],
            'endpoints': {
                FAST_DATA_PATH: f'Cacheable endpoint ({delay}ms delay)',
                DYNAMIC_DATA_PATH: f'Non-cacheable endpoint ({delay}ms delay)',
                ANALYTICS_PATH: 'Request analytics',
                HEALTH_PATH: 'Health check',
            },
            'simulatedDelay': f'{delay}ms',
        })

    @app.route(FAST_DATA_PATH, methods=['GET'])
    async def fast_data():
        """Endpoint lento cacheable (TTL 60s)"""
        started = time.perf_counter()
        policy = CacheConfig.get_policy(FAST_DATA_PATH)
        logger.info(f"Cacheable request received at {datetime.now(timezone.utc).isoformat()}")

        await simulate_latency(app.config['SIMULATED_DELAY_MS'])

        envelope = build_envelope(policy, lambda ms: _fast_payload(ms, policy), started)
        logger.info(f"Cacheable response built in {envelope.server_processing_time_ms}ms")
        return envelope.to_response()

    @app.route(DYNAMIC_DATA_PATH, methods=['GET'])
    async def dynamic_data():
        """Endpoint que nunca debe cachearse (mismo delay para comparar)"""
        started = time.perf_counter()
        policy = CacheConfig.get_policy(DYNAMIC_DATA_PATH)

        await simulate_latency(app.config['SIMULATED_DELAY_MS'])

        envelope = build_envelope(policy, lambda ms: _dynamic_payload(ms), started)
        return envelope.to_response()

    @app.route(FAST_DATA_PATH, methods=['PURGE'])
    def purge_fast_data():
        """El caché externo hace la evicción; el origen solo confirma"""
        logger.info(f"CACHE_PURGE target={request.path}")
        return jsonify({
            'status': 'purged',
            'target': request.path,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }), 200

    @app.route(ANALYTICS_PATH, methods=['GET'])
    def analytics_report():
        """Snapshot del contador de requests"""
        started = time.perf_counter()
        snapshot = app.extensions['analytics'].snapshot()

        def payload(_ms: int) -> Dict[str, Any]:
            data = snapshot.to_dict()
            data['uptime'] = uptime()
            data['timestamp'] = epoch_ms()
            return data

        return build_envelope(CacheConfig.get_policy(ANALYTICS_PATH), payload, started).to_response()

    @app.route(HEALTH_PATH, methods=['GET'])
    def health():
        """Health check; fuente autoritativa del uptime"""
        started = time.perf_counter()
        current = uptime()
        payload = {
            'status': 'healthy',
            'service': 'velocity-edge-backend',
            'uptime': current,
            'uptimeSeconds': int(current),
            'timestamp': epoch_ms(),
        }
        return build_envelope(CacheConfig.get_policy(HEALTH_PATH), lambda _ms: payload, started).to_response()

    @app.errorhandler(404)
    def not_found(error):
        """Handler para 404"""
        return _error_response({
            'error': 'Not Found',
            'path': request.path
        }, 404)

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        """Resto de errores HTTP (405, 503...)"""
        return _error_response({'error': error.name}, error.code or 500)

    @app.errorhandler(Exception)
    def internal_error(error: Exception):
        """Fallo inesperado dentro de un handler: detalle solo en el log"""
        logger.exception(f"Internal error on {request.method} {request.path}")
        return _error_response({
            'error': 'Internal Server Error'
        }, 500)

    return app


def main():
    """Punto de entrada principal"""
    config_module.config.validate()
    logging.getLogger().setLevel(config_module.config.app.log_level.upper())
    app = create_app()
    port = app.config['PORT']
    host = app.config['HOST']

    logger.info(
        f"Starting VelocityEdge backend on {host}:{port} "
        f"(simulated delay {app.config['SIMULATED_DELAY_MS']}ms)"
    )
    app.run(host=host, port=port, debug=app.config['DEBUG'], threaded=True)


if __name__ == '__main__':
    main()
