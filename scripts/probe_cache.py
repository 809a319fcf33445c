#!/usr/bin/env python3
"""
Dashboard de consola: lanza probes contra el edge y muestra métricas de caché.

Uso:
    python3 scripts/probe_cache.py fast --url http://localhost:8081
    python3 scripts/probe_cache.py burst --count 10 --spacing-ms 100
    python3 scripts/probe_cache.py purge
    python3 scripts/probe_cache.py watch --interval 5
"""
import sys
import json
import asyncio
import argparse
from pathlib import Path
from datetime import datetime, timezone

# Agregar la raíz del repo al path para importar módulos
sys.path.insert(0, str(Path(__file__).parent.parent))

from velocity_edge.config import config
from velocity_edge.dashboard import Dashboard
from velocity_edge.errors import UpstreamUnreachable
from velocity_edge.metrics import MetricsState


def parse_args(argv=None):
    """Parse argumentos de línea de comandos"""
    parser = argparse.ArgumentParser(
        description='Mide el comportamiento del caché edge frente al origen'
    )
    parser.add_argument(
        'action',
        choices=['fast', 'dynamic', 'burst', 'purge', 'analytics', 'watch'],
        help='Acción a ejecutar'
    )
    parser.add_argument(
        '--url',
        '-u',
        type=str,
        default=None,
        help='URL base del edge (default: EDGE_URL o http://localhost:8081)'
    )
    parser.add_argument(
        '--count',
        '-n',
        type=int,
        default=None,
        help='Número de probes del burst (default: BURST_SIZE o 10)'
    )
    parser.add_argument(
        '--spacing-ms',
        type=int,
        default=None,
        help='Pausa entre probes del burst en ms (default: BURST_SPACING_MS o 100)'
    )
    parser.add_argument(
        '--format',
        '-f',
        choices=['summary', 'json', 'prometheus'],
        default='summary',
        help='Formato de salida'
    )
    parser.add_argument(
        '--interval',
        '-i',
        type=int,
        default=5,
        help='Intervalo en segundos para modo watch (default: 5)'
    )
    parser.add_argument(
        '--min-hit-rate',
        type=float,
        default=None,
        help='Hit rate mínimo esperado en %% (exit 1 si no se alcanza)'
    )

    return parser.parse_args(argv)


def format_prometheus_metrics(metrics: MetricsState) -> str:
    """Formatea métricas en formato Prometheus"""
    timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    lines = [
        "# HELP velocity_edge_hit_rate Cache hit rate (percent)",
        "# TYPE velocity_edge_hit_rate gauge",
        f"velocity_edge_hit_rate {metrics.hit_rate} {timestamp}",
        "# HELP velocity_edge_cache_hits_total Total cache hits",
        "# TYPE velocity_edge_cache_hits_total counter",
        f"velocity_edge_cache_hits_total {metrics.cache_hits} {timestamp}",
        "# HELP velocity_edge_cache_misses_total Total cache misses",
        "# TYPE velocity_edge_cache_misses_total counter",
        f"velocity_edge_cache_misses_total {metrics.cache_misses} {timestamp}",
        "# HELP velocity_edge_requests_total Total probes",
        "# TYPE velocity_edge_requests_total counter",
        f"velocity_edge_requests_total {metrics.total_requests} {timestamp}",
    ]
    if metrics.last_hit_time_ms is not None:
        lines += [
            "# HELP velocity_edge_last_hit_ms Latency of the last HIT",
            "# TYPE velocity_edge_last_hit_ms gauge",
            f"velocity_edge_last_hit_ms {metrics.last_hit_time_ms} {timestamp}",
        ]
    if metrics.last_miss_time_ms is not None:
        lines += [
            "# HELP velocity_edge_last_miss_ms Latency of the last MISS",
            "# TYPE velocity_edge_last_miss_ms gauge",
            f"velocity_edge_last_miss_ms {metrics.last_miss_time_ms} {timestamp}",
        ]
    return "\n".join(lines) + "\n"


def render(dashboard: Dashboard, fmt: str) -> str:
    """Genera salida según formato"""
    if fmt == 'json':
        return json.dumps({
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'edge': dashboard.client.base_url,
            'metrics': dashboard.metrics.to_dict(),
            'history': [entry.to_dict() for entry in dashboard.history],
        }, indent=2)
    if fmt == 'prometheus':
        return format_prometheus_metrics(dashboard.metrics)
    return dashboard.summary()


async def run_action(args, dashboard: Dashboard) -> bool:
    """Ejecuta una acción; True si terminó bien"""
    if args.action == 'fast':
        await dashboard.test_cacheable_endpoint()
    elif args.action == 'dynamic':
        await dashboard.test_dynamic_endpoint()
    elif args.action == 'purge':
        if await dashboard.clear_cache() is None:
            print("Error: no se pudo purgar el caché", file=sys.stderr)
            return False
    elif args.action == 'burst':
        await dashboard.run_burst(args.count, args.spacing_ms)
    elif args.action == 'analytics':
        try:
            data = await dashboard.client.analytics()
        except UpstreamUnreachable as e:
            print(f"Error al leer analytics: {e}", file=sys.stderr)
            return False
        print(json.dumps(data, indent=2))
        return True

    print(render(dashboard, args.format))

    # Verificar alertas
    if args.min_hit_rate is not None and dashboard.metrics.hit_rate < args.min_hit_rate:
        print(
            f"\n⚠️  ALERTA: Hit rate ({dashboard.metrics.hit_rate:.1f}%) "
            f"está por debajo del mínimo ({args.min_hit_rate:.1f}%)",
            file=sys.stderr
        )
        return False
    return True


async def watch(args, dashboard: Dashboard) -> None:
    """Modo watch: probe cacheable + resumen cada N segundos"""
    print(f"Modo watch activado. Probe cada {args.interval}s...", file=sys.stderr)
    print("Presiona Ctrl+C para detener\n", file=sys.stderr)
    dashboard.start()
    while True:
        await dashboard.test_cacheable_endpoint()
        print(render(dashboard, args.format))
        await asyncio.sleep(args.interval)


async def amain(args) -> bool:
    settings = config.client
    if args.url:
        settings.base_url = args.url.rstrip('/')

    dashboard = Dashboard.from_config(settings)
    try:
        if args.action == 'watch':
            await watch(args, dashboard)
            return True
        return await run_action(args, dashboard)
    finally:
        await dashboard.aclose()


def main():
    """Función principal"""
    args = parse_args()
    try:
        success = asyncio.run(amain(args))
    except KeyboardInterrupt:
        print("\n\n✓ Probes detenidos", file=sys.stderr)
        sys.exit(0)
    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
