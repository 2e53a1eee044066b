# main.py
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config.logging_config import configure_logging
from config.settings import Settings
from middleware.rate_limit import limiter
from middleware.request_logging import RequestLoggingMiddleware
from middleware.security_headers import SecurityHeadersMiddleware
from routers.alert_routes import router as alert_router
from routers.crypto_routes import router as crypto_router
from routers.portfolio_routes import router as portfolio_router
from services.trading_service import TradingService, build_trading_service, run_periodic_sweeps

logger = logging.getLogger(__name__)


def create_app(
    service: Optional[TradingService] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API. Pass `service` to run against pre-wired collaborators
    (tests); otherwise one is built from the environment at startup.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.trading_service = service or build_trading_service(settings)

        sweeper = None
        if settings.alert_sweep_interval_sec > 0:
            sweeper = asyncio.create_task(
                run_periodic_sweeps(app.state.trading_service, settings.alert_sweep_interval_sec)
            )
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweeper

    app = FastAPI(title="Kong Bot Backend", lifespan=lifespan)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    # Include routers
    app.include_router(portfolio_router, prefix="/api/portfolio")
    app.include_router(alert_router, prefix="/api/alerts")
    app.include_router(crypto_router, prefix="/api/crypto")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


configure_logging()
app = create_app()
