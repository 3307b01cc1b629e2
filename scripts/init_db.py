#!/usr/bin/env python3
"""
Database initialization script that runs migrations and seeds demo data.
This runs automatically when the API container starts up.
"""

import sys
import os
import time
import subprocess

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine, text  # noqa: E402
from sqlalchemy.exc import OperationalError  # noqa: E402
from core.dependencies import get_settings, init_settings  # noqa: E402
from db.models import Button, Merchant  # noqa: E402
from db.store import PaymentIntentStore  # noqa: E402

DEMO_MERCHANT_ID = "merchant_demo"
DEMO_MERCHANT_ADDRESS = "0x000000000000000000000000000000000000dEaD"
# USDC on Base
DEMO_TOKEN_ADDRESS = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


def wait_for_db(max_attempts=30, delay=2):
    """Wait for database to be ready."""
    settings = get_settings()

    for attempt in range(max_attempts):
        try:
            engine = create_engine(settings.DATABASE_URL)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            print(f"✅ Database ready after {attempt + 1} attempts")
            engine.dispose()
            return True
        except OperationalError:
            print(f"⏳ Database not ready, attempt {attempt + 1}/{max_attempts}...")
            time.sleep(delay)

    print(f"❌ Database not ready after {max_attempts} attempts")
    return False


def run_migrations():
    """Run Alembic migrations."""
    print("🔄 Running database migrations...")
    result = subprocess.run(
        ["alembic", "upgrade", "head"],
        capture_output=True,
        text=True,
    )
    if result.returncode == 0:
        print("✅ Migrations completed successfully")
        return True
    print(f"❌ Migration failed: {result.stderr}")
    return False


def seed_demo_data():
    """Seed a demo merchant with a native and a token button if missing."""
    settings = get_settings()
    engine = create_engine(settings.DATABASE_URL)
    store = PaymentIntentStore.from_engine(engine)

    try:
        if store.get_merchant(DEMO_MERCHANT_ID) is not None:
            print("✅ Demo merchant already present")
            return True

        print("🌱 Seeding demo merchant and buttons...")
        store.add_merchant(
            Merchant(
                id=DEMO_MERCHANT_ID,
                email="merchant@cryptopay.demo",
                name="Demo Merchant",
                wallet_address=DEMO_MERCHANT_ADDRESS,
                webhook_url=os.getenv("DEMO_WEBHOOK_URL"),
            )
        )
        store.add_button(
            Button(
                id="btn_demo_eth",
                merchant_id=DEMO_MERCHANT_ID,
                name="Coffee (ETH)",
                amount=str(10**15),  # 0.001 ETH
                chain_id=8453,
                merchant_address=DEMO_MERCHANT_ADDRESS,
            )
        )
        store.add_button(
            Button(
                id="btn_demo_usdc",
                merchant_id=DEMO_MERCHANT_ID,
                name="Coffee (USDC)",
                amount=str(5 * 10**6),  # 5 USDC
                token_address=DEMO_TOKEN_ADDRESS,
                chain_id=8453,
                merchant_address=DEMO_MERCHANT_ADDRESS,
            )
        )
        print("✅ Demo data seeded")
        return True
    finally:
        engine.dispose()


def init_database():
    """Initialize database with migrations and demo data."""
    print("🚀 Initializing database...")

    init_settings()

    if not wait_for_db():
        print("❌ Database initialization failed - database not ready")
        sys.exit(1)

    if not run_migrations():
        print("❌ Database initialization failed - migration error")
        sys.exit(1)

    if os.getenv("DEMO_MODE", "").lower() in {"1", "true", "yes"}:
        seed_demo_data()

    print("🎉 Database initialization completed successfully!")


if __name__ == "__main__":
    init_database()
