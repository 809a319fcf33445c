"""
Tests unitarios del backend Flask.
Usa @pytest.mark.parametrize para casos límite.
"""
import asyncio
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests
from werkzeug.exceptions import ServiceUnavailable

import velocity_edge.app as app_module
from velocity_edge.analytics import RequestAnalytics
from velocity_edge.app import create_app, simulate_latency


class TestAppEndpoints:
    """Tests de endpoints de la aplicación"""

    def test_health_endpoint(self, flask_client):
        """Test del endpoint de health check"""
        response = flask_client.get('/health')

        assert response.status_code == 200
        data = response.get_json()

        assert data['status'] == 'healthy'
        assert data['uptime'] >= 0
        assert data['uptimeSeconds'] == int(data['uptime'])
        assert 'timestamp' in data

    def test_health_is_not_cacheable(self, flask_client):
        """Health nunca debe quedar en el caché"""
        response = flask_client.get('/health')
        assert 'no-store' in response.headers['Cache-Control']

    def test_fast_data_payload(self, flask_client):
        """Payload del endpoint cacheable"""
        response = flask_client.get('/fast-data')

        assert response.status_code == 200
        data = response.get_json()
        assert data['data'] == 'This is cached content from VelocityEdge'
        assert data['responseTime'].endswith('ms')
        assert isinstance(data['timestamp'], int)
        assert data['metadata'] == {'endpoint': '/fast-data', 'cacheable': True, 'ttl': 60}

    def test_dynamic_data_payload(self, flask_client):
        """Payload del endpoint dinámico"""
        response = flask_client.get('/dynamic-data')

        assert response.status_code == 200
        data = response.get_json()
        assert 0 <= data['randomValue'] < 1
        assert data['responseTime'].endswith('ms')

    def test_dynamic_data_is_fresh_each_call(self, flask_client):
        """Dos llamadas consecutivas no repiten randomValue"""
        first = flask_client.get('/dynamic-data').get_json()
        second = flask_client.get('/dynamic-data').get_json()

        assert first['randomValue'] != second['randomValue']

    def test_root_lists_endpoints(self, flask_client):
        """La raíz es el directorio del servicio"""
        response = flask_client.get('/')

        assert response.status_code == 200
        data = response.get_json()
        assert set(data['endpoints']) == {'/fast-data', '/dynamic-data', '/analytics', '/health'}
        assert data['simulatedDelay'] == '0ms'
        assert 'Cache-Control' not in response.headers

    def test_purge_always_succeeds(self, flask_client):
        """PURGE solo confirma; la evicción es del caché externo"""
        response = flask_client.open('/fast-data', method='PURGE')

        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'purged'
        assert data['target'] == '/fast-data'


class TestResponseHeaders:
    """Tests del contrato de headers"""

    @pytest.mark.parametrize("attempt", range(3))
    def test_fast_data_cache_control(self, flask_client, attempt):
        """/fast-data siempre lleva max-age=60 y s-maxage=60"""
        cache_control = flask_client.get('/fast-data').headers['Cache-Control']

        assert 'public' in cache_control
        assert 'max-age=60' in cache_control
        assert 's-maxage=60' in cache_control

    @pytest.mark.parametrize("attempt", range(3))
    def test_dynamic_data_no_store(self, flask_client, attempt):
        """/dynamic-data siempre lleva no-store"""
        response = flask_client.get('/dynamic-data')

        assert 'no-store' in response.headers['Cache-Control']
        assert response.headers['Pragma'] == 'no-cache'
        assert response.headers['Expires'] == '0'

    def test_analytics_no_cache(self, flask_client):
        """/analytics nunca se cachea"""
        response = flask_client.get('/analytics')
        assert 'no-cache' in response.headers['Cache-Control']

    def test_diagnostic_headers(self, flask_client):
        """Diagnósticos de procesamiento y request id"""
        response = flask_client.get('/fast-data')

        assert response.headers['X-Backend-Response-Time'].endswith('ms')
        assert response.headers['X-Request-ID'].startswith('req-')
        assert response.headers['Content-Type'] == 'application/json'
        assert float(response.headers['X-Response-Time']) >= 0

    def test_request_ids_are_unique(self, flask_client):
        """Cada request tiene su propio id"""
        ids = {flask_client.get('/fast-data').headers['X-Request-ID'] for _ in range(5)}
        assert len(ids) == 5

    def test_simulated_delay_is_observable(self, clean_env):
        """El delay configurado aparece en el tiempo de procesamiento"""
        app = create_app({'TESTING': True, 'SIMULATED_DELAY_MS': 50})
        response = app.test_client().get('/fast-data')

        processing = int(response.headers['X-Backend-Response-Time'].rstrip('ms'))
        assert processing >= 40


class TestAnalytics:
    """Tests del contador de requests"""

    def test_analytics_counts_itself(self, flask_client):
        """El request a /analytics se cuenta antes de responder"""
        flask_client.get('/health')
        flask_client.get('/health')
        data = flask_client.get('/analytics').get_json()

        assert data['totalRequests'] == 3
        assert data['requestsByEndpoint'] == {'/health': 2, '/analytics': 1}
        assert data['uptime'] >= 0
        assert 'timestamp' in data

    def test_errors_are_counted(self, flask_client, analytics):
        """404 y 405 también cuentan"""
        flask_client.get('/nonexistent')
        flask_client.post('/health')

        snapshot = analytics.snapshot()
        assert snapshot.total_requests == 2
        assert snapshot.by_endpoint == {'/nonexistent': 1, '/health': 1}

    def test_purge_is_counted_under_path(self, flask_client, analytics):
        """PURGE cuenta sobre /fast-data"""
        flask_client.open('/fast-data', method='PURGE')
        flask_client.get('/fast-data')

        assert analytics.snapshot().by_endpoint == {'/fast-data': 2}

    def test_concurrent_requests_are_not_lost(self, flask_app, analytics):
        """N requests concurrentes suman exactamente N"""
        paths = ['/health', '/fast-data', '/dynamic-data', '/analytics'] * 15

        def call(path):
            return flask_app.test_client().get(path).status_code

        with ThreadPoolExecutor(max_workers=8) as pool:
            statuses = list(pool.map(call, paths))

        assert all(status == 200 for status in statuses)
        snapshot = analytics.snapshot()
        assert snapshot.total_requests == len(paths)
        assert snapshot.by_endpoint == {path: 15 for path in set(paths)}

    def test_injected_analytics_is_used(self, clean_env):
        """El contador se pasa explícitamente a la app"""
        counter = RequestAnalytics()
        app = create_app({'TESTING': True, 'SIMULATED_DELAY_MS': 0}, analytics=counter)

        app.test_client().get('/health')

        assert counter.snapshot().total_requests == 1


class TestLatencySimulator:
    """Tests del simulador de latencia"""

    def test_waits_duration(self):
        """Suspende aproximadamente duration_ms"""
        start = time.perf_counter()
        asyncio.run(simulate_latency(30))
        assert time.perf_counter() - start >= 0.025

    @pytest.mark.parametrize("duration", [0, -10])
    def test_non_positive_returns_immediately(self, duration):
        """0 o negativo no espera"""
        start = time.perf_counter()
        asyncio.run(simulate_latency(duration))
        assert time.perf_counter() - start < 0.05

    def test_does_not_block_other_waits(self):
        """Dos delays concurrentes se solapan"""
        async def scenario():
            await asyncio.gather(simulate_latency(100), simulate_latency(100))

        start = time.perf_counter()
        asyncio.run(scenario())
        assert time.perf_counter() - start < 0.19

    def test_interrupted_delay_is_service_unavailable(self):
        """Cancelar la espera produce 503, sin reintento"""
        async def scenario():
            task = asyncio.create_task(simulate_latency(1000))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(ServiceUnavailable):
                await task

        asyncio.run(scenario())


class TestConcurrentServing:
    """Tests del origen real: un delay no bloquea otras conexiones"""

    def test_health_answers_during_delay(self, live_origin):
        """/health responde mientras dos /fast-data esperan su delay"""
        def timed_get(path):
            start = time.perf_counter()
            response = requests.get(f"{live_origin}{path}", timeout=5)
            return response.status_code, time.perf_counter() - start

        start = time.perf_counter()
        with ThreadPoolExecutor(max_workers=2) as pool:
            delayed = [pool.submit(timed_get, '/fast-data') for _ in range(2)]
            time.sleep(0.05)
            health_status, health_elapsed = timed_get('/health')
            results = [future.result() for future in delayed]
        total = time.perf_counter() - start

        assert health_status == 200
        assert health_elapsed < 0.15
        assert all(status == 200 for status, _ in results)
        assert all(elapsed >= 0.28 for _, elapsed in results)
        # Los dos delays se solapan en lugar de sumarse
        assert total < 0.6

    def test_delayed_requests_are_counted_before_dispatch(self, live_origin):
        """El request en espera ya figura en /analytics"""
        with ThreadPoolExecutor(max_workers=1) as pool:
            pending = pool.submit(requests.get, f"{live_origin}/fast-data", timeout=5)
            time.sleep(0.1)
            data = requests.get(f"{live_origin}/analytics", timeout=5).json()
            assert pending.result().status_code == 200

        assert data['requestsByEndpoint'].get('/fast-data') == 1


class TestErrorHandling:
    """Tests de manejo de errores"""

    def test_404_returns_json(self, flask_client):
        """404 debe retornar JSON con error"""
        response = flask_client.get('/nonexistent')

        assert response.status_code == 404
        data = response.get_json()
        assert data['error'] == 'Not Found'
        assert data['path'] == '/nonexistent'
        assert response.headers['Cache-Control'] == 'no-store'

    @pytest.mark.parametrize("method", ['POST', 'PUT', 'DELETE'])
    def test_health_only_accepts_get(self, flask_client, method):
        """Health check solo acepta GET"""
        response = flask_client.open('/health', method=method)

        assert response.status_code == 405
        assert response.get_json()['error'] == 'Method Not Allowed'

    def test_handler_fault_returns_generic_500(self, flask_client, analytics, monkeypatch):
        """Un fallo en el handler no filtra detalles al cliente"""
        def explode(processing_ms):
            raise RuntimeError("database exploded")

        monkeypatch.setattr(app_module, '_dynamic_payload', explode)
        response = flask_client.get('/dynamic-data')

        assert response.status_code == 500
        assert response.get_json() == {'error': 'Internal Server Error'}
        assert b'database exploded' not in response.data
        assert analytics.snapshot().by_endpoint == {'/dynamic-data': 1}

    def test_app_keeps_serving_after_fault(self, flask_client, monkeypatch):
        """El proceso sigue atendiendo tras un 500"""
        monkeypatch.setattr(app_module, '_dynamic_payload', lambda ms: 1 / 0)
        assert flask_client.get('/dynamic-data').status_code == 500

        monkeypatch.undo()
        assert flask_client.get('/health').status_code == 200


class TestAppFactory:
    """Tests de la factory create_app"""

    def test_create_app_with_custom_config(self, clean_env):
        """create_app acepta configuración personalizada"""
        app = create_app({'PORT': 9000, 'DEBUG': True, 'VERSION': '2.0.0'})

        assert app.config['PORT'] == 9000
        assert app.config['DEBUG'] is True
        assert app.config['VERSION'] == '2.0.0'

    def test_create_app_reads_env_vars(self, mock_env):
        """create_app lee variables de entorno"""
        app = create_app()

        assert app.config['PORT'] == 3001
        assert app.config['HOST'] == '127.0.0.1'
        assert app.config['SIMULATED_DELAY_MS'] == 250

    def test_create_app_defaults(self, clean_env):
        """create_app usa valores por defecto si no hay ENV"""
        app = create_app()

        assert app.config['PORT'] == 3000
        assert app.config['HOST'] == '0.0.0.0'
        assert app.config['SIMULATED_DELAY_MS'] == 5000
        assert app.config['DEBUG'] is False

    def test_each_app_has_its_own_counter(self, clean_env):
        """Dos apps no comparten analytics"""
        first = create_app({'TESTING': True})
        second = create_app({'TESTING': True})

        assert first.extensions['analytics'] is not second.extensions['analytics']
