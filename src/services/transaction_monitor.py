"""
Background monitor for pending crypto transactions.

Periodically re-checks every pending transaction on chain, completes the
payment of those that reached their confirmation threshold, and expires
pending payments past their deadline.
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config import settings
from src.core.errors import PaymentExpiredError
from src.models.transactions import Transaction
from src.services.blockchain_service import BlockchainService, ConfirmationStatus
from src.services.crypto_payment_service import CryptoPaymentService

logger = logging.getLogger(__name__)


async def process_pending_transactions(
    session_maker: async_sessionmaker[AsyncSession],
    blockchain: BlockchainService,
) -> int:
    """
    Advance every pending transaction by one chain lookup.

    Each transaction is handled in its own session so one failure does not
    roll back the others.

    Args:
        session_maker: Factory for database sessions
        blockchain: Confirmation lookups against the chains

    Returns:
        Number of transactions that became confirmed
    """
    async with session_maker() as session:
        result = await session.execute(
            select(Transaction.id).where(Transaction.status == ConfirmationStatus.PENDING.value)
        )
        pending_ids = list(result.scalars().all())

    confirmed = 0
    for transaction_id in pending_ids:
        async with session_maker() as session:
            transaction = await session.get(Transaction, transaction_id)
            if transaction is None or transaction.status != ConfirmationStatus.PENDING.value:
                continue
            tx_hash = transaction.transaction_hash
            service = CryptoPaymentService(session, blockchain)
            try:
                status = await service.refresh_pending_transaction(transaction)
            except PaymentExpiredError as e:
                logger.warning(f"Transaction {tx_hash} confirmed after payment expired: {e.detail}")
                confirmed += 1
                continue
            except Exception as e:
                await session.rollback()
                logger.error(f"Error processing pending transaction {tx_hash}: {e}", exc_info=True)
                continue

            if status == ConfirmationStatus.CONFIRMED:
                confirmed += 1
            elif status == ConfirmationStatus.UNKNOWN:
                logger.debug(f"Skipping transaction {tx_hash}, chain lookup failed")

    async with session_maker() as session:
        await CryptoPaymentService(session, blockchain).expire_stale_payments()

    if pending_ids:
        logger.info(f"Processed {len(pending_ids)} pending transactions, {confirmed} confirmed")
    return confirmed


class TransactionMonitor:
    """Runs :func:`process_pending_transactions` on a fixed interval."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        blockchain: BlockchainService,
        interval_seconds: int | None = None,
    ):
        self.session_maker = session_maker
        self.blockchain = blockchain
        self.interval_seconds = interval_seconds or settings.transaction_monitor_interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the monitor loop as a background task."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Transaction monitor started, interval {self.interval_seconds}s")

    async def stop(self) -> None:
        """Cancel the monitor loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Transaction monitor stopped")

    async def _run(self) -> None:
        while True:
            try:
                await process_pending_transactions(self.session_maker, self.blockchain)
            except Exception as e:
                logger.error(f"Transaction monitor iteration failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)
