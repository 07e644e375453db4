"""
API routes package.

This package contains all FastAPI route modules organized by domain.
"""

from . import exchange_rates, payments, subscriptions, transactions, wallet, webhooks

__all__ = ["exchange_rates", "payments", "subscriptions", "transactions", "wallet", "webhooks"]
