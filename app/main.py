import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import atomic_swap, health
from .api.errors import register_exception_handlers
from .config import Settings, settings as default_settings
from .core.routing import AssetCatalog, RouteResolver
from .core.swap import SwapOrchestrator, TimeoutPolicy
from .logging_config import setup_logging
from .middleware import RateLimitMiddleware, RequestLoggingMiddleware, build_rate_limiter
from .providers.base import LedgerAccount, SwapExecutionProvider
from .providers.starknet import StarknetAccount
from .providers.swap_service import SwapServiceProvider

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(
    config: Optional[Settings] = None,
    provider: Optional[SwapExecutionProvider] = None,
    ledger: Optional[LedgerAccount] = None,
) -> FastAPI:
    """Build the application; tests pass fakes for the provider and ledger."""
    config = config or default_settings
    provider = provider or SwapServiceProvider(config)
    ledger = ledger or StarknetAccount(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(config=config)
        # Raises ConfigurationError, which aborts startup.
        config.validate_for_startup()

        try:
            catalog = await AssetCatalog.load(provider)
        except Exception as e:
            # Requests answer LIGHTNING_NOT_AVAILABLE until restart.
            logger.error(f"Failed to load asset catalog: {e}")
            catalog = None
        app.state.resolver = RouteResolver(catalog, lightning_enabled=config.lightning_enabled)

        logger.info(
            f"Atomic swap gateway ready (network={config.bitcoin_network}, "
            f"environment={config.environment})"
        )
        try:
            yield
        finally:
            await provider.close()

    app = FastAPI(
        title="Atomic Swap Gateway",
        description="Starknet token to Lightning atomic swaps",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.provider = provider
    app.state.ledger = ledger
    app.state.resolver = RouteResolver(None)
    app.state.orchestrator = SwapOrchestrator(
        provider,
        check_balance_before_commit=config.check_balance_before_commit,
    )
    app.state.timeout_policy = TimeoutPolicy(payment_timeout_seconds=float(config.payment_timeout_seconds))
    app.state.rate_limiter = build_rate_limiter(config)

    # Last added runs first: logging binds the request id before anything else.
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in config.cors_origin.split(",") if o.strip()] or ["*"],
        allow_credentials=config.cors_origin != "*",
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["x-request-id", "Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(atomic_swap.router, tags=["Atomic Swap"])

    @app.get("/")
    async def root():
        """Root endpoint with basic info"""
        return {
            "name": "Atomic Swap Gateway",
            "version": VERSION,
            "network": config.bitcoin_network,
            "docs": "/docs",
            "health": "/healthz",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=default_settings.host,
        port=default_settings.port,
        log_level=default_settings.log_level.lower()
    )
