import time
from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from fastapi import Request, Response

# HTTP
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"]
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"]
)

# Canary deployments
CANARY_DEPLOYMENTS_STARTED = Counter(
    "canary_deployments_started_total",
    "Canary deployments started",
    ["environment"]
)

CANARY_DEPLOYMENTS_FINISHED = Counter(
    "canary_deployments_finished_total",
    "Canary deployments that reached a terminal status",
    ["environment", "status"]
)

CANARY_ROLLBACKS = Counter(
    "canary_rollbacks_total",
    "Canary rollbacks by trigger",
    ["trigger"]  # auto, manual
)

CANARY_ACTIVE_DEPLOYMENTS = Gauge(
    "canary_active_deployments",
    "Canary deployments currently running"
)

CANARY_HEALTH_CHECKS = Counter(
    "canary_health_checks_total",
    "Canary stage health check evaluations",
    ["check", "status"]
)

# Config validation
CONFIG_VALIDATIONS = Counter(
    "config_validations_total",
    "Strategy config validations by outcome",
    ["outcome"]  # valid, invalid
)

# Connectivity
ENDPOINT_CHECKS = Counter(
    "endpoint_checks_total",
    "Simulated endpoint connectivity checks",
    ["endpoint", "success"]
)


# Probes and scrapes are not counted as traffic
UNTRACKED_PATHS = frozenset({"/api/healthz", "/api/ready", "/metrics"})


def _route_template(request: Request) -> str:
    """Route path template, so ids in the URL do not explode label cardinality."""
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class PrometheusMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            status_code = 500
            raise
        finally:
            process_time = time.time() - start_time

            if request.url.path not in UNTRACKED_PATHS:
                endpoint = _route_template(request)
                REQUEST_COUNT.labels(
                    method=request.method,
                    endpoint=endpoint,
                    status_code=status_code
                ).inc()

                REQUEST_LATENCY.labels(
                    method=request.method,
                    endpoint=endpoint
                ).observe(process_time)

        return response

def metrics_endpoint(request: Request):
    """Endpoint for Prometheus scraping."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
