import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

# Load .env file automatically
load_dotenv()

# Public RPC endpoints for the chains buttons can be created on
DEFAULT_CHAIN_RPC_URLS = {
    1: "https://eth.llamarpc.com",
    137: "https://polygon-rpc.com",
    10: "https://mainnet.optimism.io",
    42161: "https://arb1.arbitrum.io/rpc",
    8453: "https://mainnet.base.org",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_POOL_RECYCLE: int = 3600

    # App settings
    APP_NAME: str = "CryptoPay"
    DEBUG: bool = False
    ENVIRONMENT: Literal["development", "production", "test"] = "development"

    # Webhooks
    WEBHOOK_SECRET: str | None = None
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    # Chains (JSON object in the environment, e.g. {"1": "https://..."})
    CHAIN_RPC_URLS: dict[int, str] = DEFAULT_CHAIN_RPC_URLS
    CHAIN_RPC_TIMEOUT_SECONDS: float = 10.0

    # Transaction monitor
    MONITOR_POLL_INTERVAL_SECONDS: float = 5.0
    MONITOR_FIRST_POLL_DELAY_SECONDS: float = 1.0

    # Legacy pull flow
    PULL_TRANSACTION_TTL_SECONDS: int = 600

    # Payment request emails (pull flow); unset SMTP_HOST disables sending
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 465
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_TIMEOUT_SECONDS: float = 10.0
    MAIL_FROM: str = "CryptoPay <no-reply@cryptopay.local>"
    PAY_URL_BASE: str = "http://localhost:3000"

    # Observability (Optional)
    OTEL_EXPORTER_OTLP_ENDPOINT: str = "http://localhost:4317"
    OTEL_SERVICE_NAME: str = "cryptopay"

    # Metrics (Optional)
    METRICS_ENABLED: bool = True

    model_config = ConfigDict(env_file=".env", case_sensitive=True)

    def __init__(self, **kwargs):
        # Check for DATABASE_URL before calling parent constructor
        if not kwargs.get("DATABASE_URL") and not os.getenv("DATABASE_URL"):
            raise RuntimeError(
                "DATABASE_URL not set; create .env or export the variable"
            )
        super().__init__(**kwargs)
