"""
Crypto wallet and exchange rate models.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base, utcnow


class Wallet(Base):
    """HD wallet provisioned for one user on one chain."""

    __tablename__ = "crypto_wallets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    chain: Mapped[str] = mapped_column(String(20), nullable=False)  # bitcoin, solana, usdt_erc20, usdt_trc20
    wallet_address: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    public_key: Mapped[str] = mapped_column(Text, nullable=False)
    private_key: Mapped[str] = mapped_column(Text, nullable=False)  # Fernet token
    seed_phrase: Mapped[str | None] = mapped_column(Text)  # Fernet token
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(28, 8), default=Decimal("0"), nullable=False)
    last_checked: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Wallet(id={self.id}, user_id={self.user_id}, chain='{self.chain}')>"


class ExchangeRate(Base):
    """Latest USD rate for a chain's asset. One row per chain."""

    __tablename__ = "crypto_exchange_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    rate_usd: Mapped[Decimal] = mapped_column(Numeric(28, 8), nullable=False)
    source: Mapped[str] = mapped_column(String(50), default="coingecko")
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<ExchangeRate(chain='{self.chain}', rate_usd={self.rate_usd})>"
