"""
On-chain transaction model.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base, utcnow


class Transaction(Base):
    """A blockchain transaction submitted as payment into a user's wallet."""

    __tablename__ = "crypto_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    wallet_id: Mapped[int] = mapped_column(ForeignKey("crypto_wallets.id"), nullable=False)
    subscription_id: Mapped[int | None] = mapped_column(ForeignKey("user_subscriptions.id"))
    chain: Mapped[str] = mapped_column(String(20), nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    sender_address: Mapped[str | None] = mapped_column(String(128))
    recipient_address: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(28, 8), default=Decimal("0"), nullable=False)
    amount_usd: Mapped[Decimal | None] = mapped_column(Numeric(18, 2))
    fee_amount: Mapped[Decimal | None] = mapped_column(Numeric(28, 8))
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, confirmed, failed
    confirmations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    block_height: Mapped[int | None] = mapped_column(Integer)
    block_time: Mapped[datetime | None] = mapped_column(DateTime)
    raw_data: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, chain='{self.chain}', status='{self.status}')>"
