"""
FastAPI application entry point.

Run with:
    uvicorn floodwatch.main:app --reload --port 8000
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from floodwatch.core.config import settings
from floodwatch.core.logging_config import setup_logging, get_logger
from floodwatch.core.errors import register_error_handlers
from floodwatch.core.middleware import RequestLoggingMiddleware
from floodwatch.core.health import HealthStatus, run_health_check
from floodwatch.core.cache import close_redis, invalidate_area_cache
from floodwatch.core.database import close_db, init_db

# ── Domain services ──
from floodwatch.areas.repository import AreaRepository, SqlAreaRepository
from floodwatch.ingestion.weather_service import OpenWeatherClient
from floodwatch.monitor.feed import ChangeFeed
from floodwatch.monitor.scheduler import RiskMonitor, WeatherFetcher

# ── API routers ──
from floodwatch.api.v1.areas import router as areas_router
from floodwatch.api.v1.monitor import router as monitor_router
from floodwatch.api.v1.risk import router as risk_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


def create_app(
    repository: Optional[AreaRepository] = None,
    fetcher: Optional[WeatherFetcher] = None,
    autostart: Optional[bool] = None,
) -> FastAPI:
    """
    Build the application.

    ``repository`` and ``fetcher`` default to the SQL area store and the
    OpenWeather client from settings; tests inject in-memory doubles.
    Injected objects are not closed on shutdown.
    """
    should_autostart = settings.MONITOR_AUTOSTART if autostart is None else autostart

    # ── Application lifespan (startup / shutdown) ──

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )
        owns_store = repository is None
        owns_fetcher = fetcher is None

        if owns_store:
            await init_db()
        repo = repository if repository is not None else SqlAreaRepository()
        weather = fetcher if fetcher is not None else OpenWeatherClient()

        monitor = RiskMonitor(repo, weather)
        feed = ChangeFeed()
        monitor.on_risk_change(feed.record)
        monitor.on_risk_change(invalidate_area_cache)

        app.state.repository = repo
        app.state.monitor = monitor
        app.state.change_feed = feed

        if should_autostart and not await monitor.start():
            logger.warning("Monitoring not started: set a valid OPENWEATHER_API_KEY")

        yield

        logger.info("Shutting down %s", settings.APP_NAME)
        await monitor.stop()
        if owns_fetcher:
            await weather.close()
        if owns_store:
            await close_db()
        await close_redis()

    # ── Create application ──

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Live flood risk monitoring for mapped areas. "
            "Periodically pulls current and forecast weather from OpenWeather, "
            "scores each area's flood risk and writes back level changes."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── Middleware stack (order matters, outermost first) ──

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ── Error handlers ──
    register_error_handlers(app)

    # ── Register routers ──
    app.include_router(monitor_router)
    app.include_router(areas_router)
    app.include_router(risk_router)

    # ── Root & health endpoints ──

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "modules": [
                "area-store",
                "weather-ingestion",
                "risk-classification",
                "live-monitor",
            ],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Deep health probe: weather credential, area store, monitor, cache."""
        report = await run_health_check(app.state.monitor, app.state.repository)
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Kubernetes liveness probe: is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness():
        """Kubernetes readiness probe: can we serve traffic?"""
        report = await run_health_check(app.state.monitor, app.state.repository)
        if report.status is HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


app = create_app()
