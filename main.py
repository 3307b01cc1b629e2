"""
CryptoPay - Main Application Entry Point

This module initializes the FastAPI application for the payment confirmation
and notification engine: customers' submitted transactions are watched until
mined, validated against the payment button, and merchants are notified with
a signed webhook.
"""

import structlog
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from api import routes
from api.middleware import log_api_entry
from core.dependencies import clear_settings, get_settings, init_settings
from core.errors import CryptoPayError
from core.logging import configure_logging
from core.metrics import add_metrics_auth_middleware, init_metrics
from core.settings import Settings
from core.tracing import init_tracer
from db.session import get_engine, init_db
from db.store import PaymentIntentStore
from notifications.mailer import PaymentRequestMailer
from payments.chain_client import ChainClientPool
from payments.monitor import MonitoringRegistry, TransactionMonitor
from webhooks.sender import WebhookDispatcher

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI application startup and shutdown events."""
    # Startup
    init_settings()
    settings = get_settings()

    init_tracer(settings.OTEL_SERVICE_NAME)
    init_db(settings)

    store = PaymentIntentStore.from_engine(get_engine(settings))
    dispatcher = WebhookDispatcher(store, settings)
    monitor = TransactionMonitor.from_settings(
        settings,
        pool=ChainClientPool.from_rpc_urls(settings.CHAIN_RPC_URLS),
        store=store,
        dispatcher=dispatcher,
        registry=MonitoringRegistry(),
    )
    app.state.store = store
    app.state.monitor = monitor
    app.state.mailer = PaymentRequestMailer(settings)

    yield
    # Shutdown: no watcher may write to the store after this point
    await monitor.stop_all()
    await monitor.pool.close()
    clear_settings()


app = FastAPI(
    title="CryptoPay",
    description="""
    ## Crypto Checkout Confirmation Engine

    Watches customer payments on EVM chains and notifies merchants once they land.

    ### Key Features:
    - **Transaction Monitoring**: per-payment watchers poll the chain until the submitted hash is mined
    - **Receipt Validation**: native and ERC-20 transfers checked against recipient, asset and amount
    - **Signed Webhooks**: HMAC-SHA256 signed `payment.confirmed` / `payment.failed` events
    - **Pull Flow Expiry**: stale pending pull transactions are failed on read
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Initialize FastAPI instrumentation
FastAPIInstrumentor.instrument_app(app)

# Initialize Prometheus metrics
init_metrics(app)

# Add metrics authentication middleware (for production)
add_metrics_auth_middleware(app)

# Add logging middleware
app.middleware("http")(log_api_entry)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.exception_handler(CryptoPayError)
async def cryptopay_exception_handler(request: Request, exc: CryptoPayError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc)},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log.error("api.unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


@app.get("/")
async def root():
    """Root endpoint providing API information."""
    return {
        "name": "CryptoPay",
        "version": "1.0.0",
        "description": "Payment confirmation and merchant notification engine",
        "api_documentation": {
            "swagger_ui": "/docs",
            "redoc": "/redoc",
            "openapi_spec": "/openapi.json",
        },
        "endpoints": {
            "payments": "/api/v1/payments/ - Payment intent init and status",
            "monitor": "/api/v1/transactions/monitor - Start watching a submitted transaction",
            "pull_transactions": "/api/v1/pull-transactions/ - Legacy pull flow",
            "webhook_example": "/api/v1/webhooks/example - Reference webhook receiver",
            "health": "/health - Health check endpoint",
            "metrics": "/metrics - Prometheus metrics (requires auth in production)",
        },
    }


@app.get("/health")
async def health(request: Request, settings: Settings = Depends(get_settings)):
    """Health check endpoint alias."""
    return await health_check(request, settings)


@app.get("/healthz")
async def health_check(request: Request, settings: Settings = Depends(get_settings)):
    """Health check endpoint to verify API status."""
    db_type = (
        "PostgreSQL" if settings.DATABASE_URL.startswith("postgresql") else "SQLite"
    )
    monitor = request.app.state.monitor
    return {
        "status": "ok",
        "app_name": settings.APP_NAME,
        "database": db_type,
        "environment": settings.ENVIRONMENT,
        "chains": monitor.pool.chain_ids,
        "monitoring": len(monitor.registry),
    }


API_PREFIX = "/api/v1"

app.include_router(routes.router, prefix=API_PREFIX)


def main():
    configure_logging()
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
