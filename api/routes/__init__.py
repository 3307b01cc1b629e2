"""
API Routes Package

This module consolidates all API routes for the CryptoPay confirmation service.
"""

from fastapi import APIRouter

from . import payments
from . import pull_transactions
from . import transactions
from . import webhooks

# Create main router
router = APIRouter()

# Include all route modules
router.include_router(payments.router, prefix="/payments", tags=["payments"])
router.include_router(transactions.router, prefix="/transactions", tags=["transactions"])
router.include_router(
    pull_transactions.router, prefix="/pull-transactions", tags=["pull-transactions"]
)
router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

# Export for use in main application
__all__ = ["router"]
