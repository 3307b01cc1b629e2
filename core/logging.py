import logging
import sys
import structlog
import os
from opentelemetry.instrumentation.logging import LoggingInstrumentor


def get_log_level():
    """Get log level from environment or default to INFO"""
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_log_renderer():
    """Get log renderer based on environment"""
    env = os.getenv("ENVIRONMENT", "development")
    # Use JSON format for tests and production
    if env in ["test", "production"]:
        return structlog.processors.JSONRenderer()
    # Pretty printing for local development
    return structlog.dev.ConsoleRenderer(colors=True, sort_keys=False)


def configure_logging():
    """Set up structlog + OTEL context injection."""
    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.ExceptionPrettyPrinter(),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            get_log_renderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    env = os.getenv("ENVIRONMENT", "development")
    if env == "test":
        # In test mode, write to stdout for easier capture
        handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]  # Replace any existing handlers
    root_logger.setLevel(get_log_level())

    # Silence Uvicorn noise but keep access logs routed through structlog
    logging.getLogger("uvicorn.error").handlers.clear()
    logging.getLogger("uvicorn.access").handlers.clear()

    # SQL echo is never useful next to the monitor's poll logs
    logging.getLogger("sqlalchemy.engine").setLevel(logging.ERROR)
    # web3 logs every failed receipt lookup while a tx is unmined
    logging.getLogger("web3").setLevel(logging.WARNING)

    # Initialize OpenTelemetry logging instrumentation AFTER configuring logging
    LoggingInstrumentor().instrument(set_logging_format=False)


# Business Event Log Names
class BusinessEvents:
    """Standard names for business event logs"""

    API_ENTRY = "api.request"
    API_EXIT = "api.response"
    PAYMENT_INITIALIZED = "payment.initialized"
    MONITOR_STARTED = "monitor.started"
    MONITOR_STOPPED = "monitor.stopped"
    MONITOR_PENDING = "monitor.pending"
    RECEIPT_FOUND = "monitor.receipt_found"
    PAYMENT_CONFIRMED = "payment.confirmed"
    PAYMENT_FAILED = "payment.failed"
    WEBHOOK_SKIPPED = "webhook.skipped"
    WEBHOOK_DELIVERED = "webhook.delivered"
    WEBHOOK_DELIVERY_FAILED = "webhook.delivery_failed"
    PULL_TRANSACTION_CREATED = "pull_transaction.created"
    PULL_TRANSACTION_EXPIRED = "pull_transaction.expired"
    PAYMENT_REQUEST_SENT = "payment_request.sent"
    PAYMENT_REQUEST_SKIPPED = "payment_request.skipped"
    PAYMENT_REQUEST_FAILED = "payment_request.failed"


# Configure logging when module is imported
configure_logging()
