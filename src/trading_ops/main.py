"""Main FastAPI application."""
import asyncio
import signal
import threading
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from loguru import logger

from src.trading_ops.core.config import settings
from src.trading_ops.core.middleware import RequestContextMiddleware
from src.trading_ops.monitoring.metrics import PrometheusMiddleware, metrics_endpoint
from src.trading_ops.monitoring.tracing import setup_tracing
from src.trading_ops.api import api_router
from src.trading_ops.api.health import router as health_router
from src.trading_ops.core.limiter import limiter
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from src.trading_ops.core.logging import setup_logging
from src.trading_ops.connectivity.health_checker import HealthChecker
from src.trading_ops.deployment.canary_engine import CanaryEngine
from src.trading_ops.flags.flag_manager import FeatureFlagManager
from src.trading_ops.validation.presets import ConfigPresetStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle: start the canary scheduler, then shut down gracefully."""
    logger.info("🚀 Starting {} v{} ({})", settings.PROJECT_NAME, settings.VERSION, settings.ENV)

    app.state.canary_engine.scheduler.start()

    def shutdown_handler(signum, frame):
        logger.warning(f"⚠️  Received signal {signum}, initiating graceful shutdown...")
        app.state.shutting_down = True

    # Signal handlers can only be installed from the main thread
    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, shutdown_handler)
        signal.signal(signal.SIGINT, shutdown_handler)

    logger.info("✅ Service is ready to accept requests")

    yield

    logger.info("🛑 Shutting down gracefully...")
    app.state.shutting_down = True
    if settings.SHUTDOWN_GRACE_SECONDS > 0:
        await asyncio.sleep(settings.SHUTDOWN_GRACE_SECONDS)
    app.state.canary_engine.scheduler.shutdown()
    logger.info("✅ Shutdown complete")


def create_app(canary_engine: Optional[CanaryEngine] = None) -> FastAPI:
    """Create the FastAPI application with middleware, routes and service objects.

    The canary engine, health checker, flag store and presets are built
    once here and shared through ``app.state``; pass ``canary_engine`` to
    run the API against a custom scheduler or sampler.
    """
    setup_logging()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        lifespan=lifespan,
    )

    app.state.shutting_down = False
    app.state.canary_engine = canary_engine or CanaryEngine()
    app.state.health_checker = HealthChecker()
    app.state.flag_manager = FeatureFlagManager()
    app.state.config_presets = ConfigPresetStore()

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # last added = first executed
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(PrometheusMiddleware)

    setup_tracing(app)

    app.include_router(health_router, prefix="/api", tags=["health"])
    app.include_router(api_router, prefix=settings.API_V1_STR)

    app.add_route("/metrics", metrics_endpoint)

    logger.info("📦 Application configured successfully")

    return app


app = create_app()
