"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cypherx import __version__
from cypherx.config import get_settings
from cypherx.core import get_core
from cypherx.errors import (
    BroadcastFailed,
    InsufficientBalance,
    InvalidBackupFormat,
    InvalidInput,
    InvalidPassword,
    NoWallet,
    ProviderUnavailable,
    QuoteExpired,
    QuoteUnavailable,
    StaleQuote,
    VaultError,
    WalletError,
)
from cypherx.storage.database import close_db, init_db

logger = logging.getLogger(__name__)

# First match wins, so subclasses come before their parents
ERROR_STATUS = [
    (InvalidPassword, 401),
    (InvalidBackupFormat, 400),
    (NoWallet, 404),
    (VaultError, 409),
    (QuoteExpired, 409),
    (StaleQuote, 400),
    (InvalidInput, 400),
    (InsufficientBalance, 422),
    (QuoteUnavailable, 422),
    (BroadcastFailed, 502),
    (ProviderUnavailable, 503),
]


def status_for(exc: WalletError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 400


async def wallet_error_handler(request: Request, exc: WalletError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
    body = exc.to_dict()
    if exc.retryable:
        body["retryable"] = True
    return JSONResponse(status_code=status, content=body)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()
    core = get_core()
    await core.start()
    yield
    # Shutdown
    await core.close()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="CypherX Wallet API",
        description="Self-custodial wallet and swap engine",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(WalletError, wallet_error_handler)

    # Register routes
    from cypherx.api.routes import health
    from cypherx.web.controllers import (
        balances_router,
        charts_router,
        swaps_router,
        tokens_router,
        transactions_router,
        wallet_router,
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(wallet_router)
    app.include_router(balances_router)
    app.include_router(tokens_router)
    app.include_router(transactions_router)
    app.include_router(swaps_router)
    app.include_router(charts_router)

    return app


# Default app instance
app = create_app()
