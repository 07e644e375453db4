"""
Database models package.

This package contains SQLAlchemy ORM models for the billing service.
"""

from src.core.database import Base
from src.models.payments import Payment
from src.models.subscriptions import Subscription, SubscriptionPlan
from src.models.transactions import Transaction
from src.models.wallets import ExchangeRate, Wallet

__all__ = [
    "Base",
    "ExchangeRate",
    "Payment",
    "Subscription",
    "SubscriptionPlan",
    "Transaction",
    "Wallet",
]
