"""
Fixtures compartidas para todos los tests.
Usa scopes optimizados y fixtures anidadas según las reglas.
"""
import pytest
import os
import threading
from typing import Callable, Generator, Dict

import httpx

from velocity_edge.client import ProbeClient


EDGE_TEST_URL = "http://edge.test"
LIVE_DELAY_MS = 300


@pytest.fixture
def clean_env(monkeypatch) -> Generator[None, None, None]:
    """
    Limpia variables de entorno antes de cada test.
    Scope: function (se ejecuta para cada test).
    """
    original_env = os.environ.copy()

    env_vars = [
        'BACKEND_HOST', 'PORT', 'SIMULATED_DELAY', 'FLASK_DEBUG', 'APP_VERSION',
        'LOG_LEVEL', 'EDGE_URL', 'CACHE_STATUS_HEADER', 'PROBE_TIMEOUT',
        'UPTIME_RESYNC_INTERVAL', 'BURST_SIZE', 'BURST_SPACING_MS',
    ]

    for var in env_vars:
        monkeypatch.delenv(var, raising=False)

    yield

    # Restaurar ENV (cleanup)
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_env(monkeypatch) -> Dict[str, str]:
    """Configuración de entorno mock para tests"""
    env_config = {
        'BACKEND_HOST': '127.0.0.1',
        'PORT': '3001',
        'SIMULATED_DELAY': '250',
        'FLASK_DEBUG': 'false',
        'APP_VERSION': 'test-1.0.0',
        'LOG_LEVEL': 'DEBUG',
        'EDGE_URL': 'http://varnish:8081/',
        'CACHE_STATUS_HEADER': 'X-Cache-Status',
    }

    for key, value in env_config.items():
        monkeypatch.setenv(key, value)

    return env_config


@pytest.fixture
def flask_app(clean_env):
    """
    Crea una instancia de Flask app para tests, sin latencia simulada.
    Scope: function (nueva instancia por test).
    """
    from velocity_edge.app import create_app

    app = create_app({
        'TESTING': True,
        'SIMULATED_DELAY_MS': 0,
    })

    return app


@pytest.fixture
def flask_client(flask_app):
    """Cliente de test de Flask (anidada: depende de flask_app)"""
    return flask_app.test_client()


@pytest.fixture
def analytics(flask_app):
    """Contador de requests de la app de test"""
    return flask_app.extensions['analytics']


@pytest.fixture
def live_origin(clean_env) -> Generator[str, None, None]:
    """
    Origen real sobre el servidor threaded de werkzeug en un puerto libre,
    con 300ms de latencia simulada. Retorna la URL base.
    """
    from werkzeug.serving import make_server
    from velocity_edge.app import create_app

    app = create_app({'SIMULATED_DELAY_MS': LIVE_DELAY_MS})
    server = make_server('127.0.0.1', 0, app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield f"http://127.0.0.1:{server.server_port}"

    server.shutdown()
    thread.join(timeout=5)


@pytest.fixture
def make_probe_client() -> Callable[..., ProbeClient]:
    """
    Factory de ProbeClient sobre httpx.MockTransport.
    El handler recibe el httpx.Request y retorna httpx.Response.
    """
    def factory(handler, header: str = 'X-Cache') -> ProbeClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ProbeClient(EDGE_TEST_URL, cache_status_header=header, http_client=http)

    return factory


@pytest.fixture(autouse=True)
def reset_singletons():
    """
    Fixture autouse para resetear singletons entre tests.
    Scope: function (se ejecuta automáticamente para cada test).
    """
    from velocity_edge.config import config
    config._app = None
    config._client = None

    yield


# Parametrización común para políticas de endpoints
ENDPOINT_POLICIES = [
    ('/fast-data', True, 60),
    ('/dynamic-data', False, 0),
    ('/analytics', False, 0),
    ('/health', False, 0),
]


@pytest.fixture(params=ENDPOINT_POLICIES, ids=['fast-data', 'dynamic-data', 'analytics', 'health'])
def endpoint_policy_params(request):
    """Parametrización de políticas por endpoint"""
    return {
        'path': request.param[0],
        'cacheable': request.param[1],
        'ttl_seconds': request.param[2],
    }
