"""
Prometheus metrics instrumentation for CryptoPay.

This module sets up FastAPI instrumentation to expose metrics in Prometheus format
at the /metrics endpoint with optional authentication, and defines the counters
the confirmation engine updates as payments resolve.
"""

from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_client import Counter, Gauge, Histogram
from fastapi import Request, status
from fastapi.responses import JSONResponse
import os

payments_total = Counter(
    "cryptopay_payments_total",
    "Payment intents that reached a terminal state",
    ["outcome"],  # confirmed / failed
)

webhook_deliveries = Counter(
    "cryptopay_webhook_deliveries_total",
    "Webhook delivery attempts by outcome",
    ["outcome"],  # delivered / failed / skipped
)

monitoring_tasks_active = Gauge(
    "cryptopay_monitoring_tasks_active",
    "Transactions currently being watched for a receipt",
)

confirmation_latency = Histogram(
    "cryptopay_confirmation_latency_seconds",
    "Time from monitoring start until a receipt was found",
    buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 300.0, 900.0],
)


def init_metrics(app):
    """
    Initialize Prometheus metrics instrumentation for the FastAPI app.

    Args:
        app: FastAPI application instance

    Returns:
        Instrumentator instance
    """
    inst = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
    )

    inst.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    return inst


def add_metrics_auth_middleware(app):
    """
    Add middleware to protect the /metrics endpoint in production.
    For production use, set METRICS_AUTH_TOKEN environment variable.
    """

    @app.middleware("http")
    async def metrics_auth_middleware(request: Request, call_next):
        if request.url.path == "/metrics":
            if os.getenv("ENVIRONMENT", "development") != "production":
                return await call_next(request)

            auth_header = request.headers.get("X-Metrics-Auth")
            expected_token = os.getenv("METRICS_AUTH_TOKEN")

            if expected_token and auth_header == expected_token:
                return await call_next(request)

            # Allow internal network access (VPN/private networks)
            client_ip = request.client.host if request.client else None
            if client_ip and (
                client_ip.startswith("10.")
                or client_ip.startswith("192.168.")
                or client_ip.startswith("172.")
            ):
                return await call_next(request)

            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Metrics endpoint access denied"},
            )

        return await call_next(request)
