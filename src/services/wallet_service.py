"""
Wallet service for user crypto wallets, transactions and exchange rates.

Wallets are derived deterministically from the user id, the chain and the
server seed secret, so provisioning the same wallet twice yields the same
address.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.blockchain.chains import CHAIN_CONFIGS, Chain
from src.blockchain.wallet_derivation import (
    WalletDerivationError,
    derive_user_seed_phrase,
    generate_wallet,
)
from src.core.config import settings
from src.core.database import utcnow
from src.core.errors import (
    TransactionNotFoundError,
    UpstreamServiceError,
    WalletNotFoundError,
    WalletProvisioningError,
)
from src.models.transactions import Transaction
from src.models.wallets import ExchangeRate, Wallet
from src.services.price_service import PriceService

logger = logging.getLogger(__name__)


class WalletService:
    """Service for wallet provisioning and wallet-scoped records."""

    def __init__(self, db: AsyncSession, price_service: PriceService | None = None):
        """
        Initialize the wallet service.

        Args:
            db: Database session
            price_service: Price source for exchange rate refreshes
        """
        self.db = db
        self.price_service = price_service

    async def create_wallet_for_user(self, user_id: int, chain: Chain | str) -> Wallet:
        """
        Return the user's active wallet for ``chain``, creating it if needed.

        Args:
            user_id: Owner of the wallet
            chain: Chain to provision

        Returns:
            The active wallet

        Raises:
            WalletProvisioningError: If key derivation or storage fails
        """
        chain = Chain(chain)
        existing = await self.get_wallet_by_chain(user_id, chain)
        if existing:
            return existing

        try:
            seed_phrase = derive_user_seed_phrase(user_id, chain, settings.wallet_seed_secret)
            generated = generate_wallet(
                chain, user_id, settings.wallet_encryption_key, seed_phrase=seed_phrase
            )
        except WalletDerivationError as e:
            raise WalletProvisioningError(
                "Failed to create wallet", f"Could not derive {chain.value} wallet"
            ) from e

        # A deactivated wallet for the same derivation is reactivated rather
        # than inserted again
        inactive = await self.get_wallet_by_address(generated.address)
        if inactive:
            inactive.is_active = True
            await self.db.commit()
            logger.info(f"Reactivated {chain.value} wallet {inactive.id} for user {user_id}")
            return inactive

        wallet = Wallet(
            user_id=user_id,
            chain=chain.value,
            wallet_address=generated.address,
            public_key=generated.public_key,
            private_key=generated.private_key,
            seed_phrase=generated.seed_phrase,
            is_active=True,
        )
        self.db.add(wallet)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            # Another request provisioned the same wallet concurrently
            existing = await self.get_wallet_by_chain(user_id, chain)
            if existing:
                return existing
            raise WalletProvisioningError("Failed to create wallet") from e

        await self.db.refresh(wallet)
        logger.info(f"Created {chain.value} wallet {wallet.id} for user {user_id}")
        return wallet

    async def get_wallets_for_user(self, user_id: int) -> list[Wallet]:
        """All active wallets of a user."""
        stmt = (
            select(Wallet)
            .where(Wallet.user_id == user_id, Wallet.is_active.is_(True))
            .order_by(Wallet.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_wallet_by_id(self, wallet_id: int, user_id: int) -> Wallet:
        """
        Get a wallet owned by ``user_id``.

        Raises:
            WalletNotFoundError: If no such wallet belongs to the user
        """
        stmt = select(Wallet).where(Wallet.id == wallet_id, Wallet.user_id == user_id)
        result = await self.db.execute(stmt)
        wallet = result.scalar_one_or_none()
        if wallet is None:
            raise WalletNotFoundError(f"Wallet {wallet_id} not found")
        return wallet

    async def get_wallet_by_chain(self, user_id: int, chain: Chain | str) -> Wallet | None:
        """The user's active wallet on ``chain``, if any."""
        stmt = select(Wallet).where(
            Wallet.user_id == user_id,
            Wallet.chain == Chain(chain).value,
            Wallet.is_active.is_(True),
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_wallet_by_address(
        self, address: str, chain: Chain | str | None = None
    ) -> Wallet | None:
        """Look up a wallet by its address, optionally restricted to a chain."""
        stmt = select(Wallet).where(Wallet.wallet_address == address)
        if chain is not None:
            stmt = stmt.where(Wallet.chain == Chain(chain).value)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def deactivate_wallet(self, wallet_id: int, user_id: int) -> Wallet:
        """Mark a wallet inactive. Wallets are never deleted."""
        wallet = await self.get_wallet_by_id(wallet_id, user_id)
        wallet.is_active = False
        await self.db.commit()
        logger.info(f"Deactivated wallet {wallet_id} for user {user_id}")
        return wallet

    async def ensure_user_has_all_wallets(self, user_id: int) -> list[Wallet]:
        """
        Provision a wallet on every supported chain.

        A chain that fails is logged and skipped; the others are still
        returned.

        Args:
            user_id: Owner of the wallets

        Returns:
            The wallets that exist after provisioning
        """
        for chain in CHAIN_CONFIGS:
            try:
                await self.create_wallet_for_user(user_id, chain)
            except WalletProvisioningError as e:
                logger.error(f"Error ensuring {chain.value} wallet for user {user_id}: {e.detail or e.message}")
        return await self.get_wallets_for_user(user_id)

    async def create_transaction(self, **fields: Any) -> Transaction:
        """
        Persist a transaction record.

        Raises:
            IntegrityError: If the transaction hash is already recorded
        """
        transaction = Transaction(**fields)
        self.db.add(transaction)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise
        return transaction

    async def get_transactions_for_user(
        self, user_id: int, limit: int = 10, offset: int = 0
    ) -> list[Transaction]:
        """Most recent transactions of a user, newest first."""
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_transaction_by_id(self, transaction_id: int, user_id: int) -> Transaction:
        """
        Get a transaction owned by ``user_id``.

        Raises:
            TransactionNotFoundError: If no such transaction belongs to the user
        """
        stmt = select(Transaction).where(
            Transaction.id == transaction_id, Transaction.user_id == user_id
        )
        result = await self.db.execute(stmt)
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    async def get_transaction_by_hash(self, tx_hash: str) -> Transaction | None:
        stmt = select(Transaction).where(Transaction.transaction_hash == tx_hash)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def update_transaction_status(
        self,
        transaction: Transaction,
        status: str,
        confirmations: int,
        block_height: int | None = None,
        block_time: datetime | None = None,
    ) -> Transaction:
        """Refresh the confirmation state of a recorded transaction."""
        transaction.status = status
        transaction.confirmations = confirmations
        if block_height is not None:
            transaction.block_height = block_height
        if block_time is not None:
            transaction.block_time = block_time
        await self.db.flush()
        return transaction

    async def update_exchange_rates(self) -> list[ExchangeRate]:
        """
        Refresh the stored USD rate of every chain in one transaction.

        Chains whose price could not be fetched keep their previous row.

        Returns:
            The stored rates after the refresh

        Raises:
            UpstreamServiceError: If no price could be fetched at all
        """
        if self.price_service is None:
            raise UpstreamServiceError("Price service not configured")

        prices = await self.price_service.get_current_prices(allow_fallback=False)

        existing = {
            rate.chain: rate
            for rate in (await self.db.execute(select(ExchangeRate))).scalars().all()
        }
        now = utcnow()
        for chain, config in CHAIN_CONFIGS.items():
            price = prices.get(config.price_id)
            if price is None:
                logger.warning(f"No price for {chain.value}, keeping previous rate")
                continue
            row = existing.get(chain.value)
            if row is None:
                row = ExchangeRate(chain=chain.value)
                self.db.add(row)
            row.rate_usd = price
            row.source = "coingecko"
            row.last_updated = now

        await self.db.commit()
        logger.info(f"Updated exchange rates: {prices}")
        return await self.get_stored_exchange_rates()

    async def get_stored_exchange_rates(self) -> list[ExchangeRate]:
        result = await self.db.execute(select(ExchangeRate).order_by(ExchangeRate.chain))
        return list(result.scalars().all())

    async def get_stored_exchange_rate(self, chain: Chain | str) -> ExchangeRate | None:
        """The stored USD rate for ``chain``, if one has been recorded."""
        stmt = select(ExchangeRate).where(ExchangeRate.chain == Chain(chain).value)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
