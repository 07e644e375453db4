"""
API module containing FastAPI routes and endpoints.

This module provides the main API router that includes all sub-routers
for the crypto billing domains (wallets, payments, transactions, exchange
rates, subscriptions, webhooks).
"""

from fastapi import APIRouter

from src.api.routes import (
    exchange_rates,
    payments,
    subscriptions,
    transactions,
    wallet,
    webhooks,
)

router = APIRouter()

# Include all route modules
router.include_router(wallet.router, prefix="/crypto", tags=["Wallets"])
router.include_router(payments.router, prefix="/crypto", tags=["Payments"])
router.include_router(transactions.router, prefix="/crypto", tags=["Transactions"])
router.include_router(exchange_rates.router, prefix="/crypto", tags=["Exchange Rates"])
router.include_router(subscriptions.router, prefix="/crypto", tags=["Subscriptions"])
router.include_router(webhooks.router, prefix="/crypto", tags=["Webhooks"])

__all__ = ["router"]
