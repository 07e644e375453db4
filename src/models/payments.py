"""
Payment models.

This module defines the SQLAlchemy model for crypto payment requests.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base, utcnow


class Payment(Base):
    """A quoted crypto payment for a subscription plan."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    plan_id: Mapped[int] = mapped_column(ForeignKey("subscription_plans.id"), nullable=False)
    subscription_id: Mapped[int | None] = mapped_column(ForeignKey("user_subscriptions.id"))
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)  # USD
    currency: Mapped[str] = mapped_column(String(10), default="USD")
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, completed, expired, failed
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)  # crypto_<chain>
    chain: Mapped[str] = mapped_column(String(20), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    amount_crypto: Mapped[Decimal] = mapped_column(Numeric(28, 8), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(128), nullable=False)
    gateway_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    gateway_response: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    # Links at most one transaction to at most one payment
    transaction_hash: Mapped[str | None] = mapped_column(String(128), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, amount={self.amount}, status='{self.status}')>"
