"""
Tests for the background monitor of pending transactions.
"""

import asyncio
from datetime import timedelta

import pytest

from src.blockchain.chains import Chain
from src.core.database import utcnow
from src.models.payments import Payment
from src.models.subscriptions import Subscription
from src.models.transactions import Transaction
from src.services.blockchain_service import ConfirmationStatus
from src.services.crypto_payment_service import CryptoPaymentService
from src.services.transaction_monitor import TransactionMonitor, process_pending_transactions

TX_HASH = "9c1f" * 16


class BrokenBlockchain:
    async def is_transaction_confirmed(self, chain, tx_hash, min_confirmations=None):
        raise RuntimeError("explorer exploded")


@pytest.fixture
async def pending(db_session, fake_blockchain, plan, exchange_rates):
    """A pending payment with a recorded, not yet confirmed transaction."""
    service = CryptoPaymentService(db_session, fake_blockchain)
    quote = await service.create_crypto_payment_request(1, plan.id, Chain.BITCOIN)
    fake_blockchain.set_result(TX_HASH, ConfirmationStatus.PENDING, confirmations=1)
    result = await service.verify_crypto_payment(1, TX_HASH, Chain.BITCOIN, quote.wallet.id)
    fake_blockchain.calls.clear()
    return quote.payment.id, result.transaction.id


async def load(session_maker, model, pk):
    async with session_maker() as session:
        return await session.get(model, pk)


class TestProcessPendingTransactions:
    """One monitor pass."""

    @pytest.mark.asyncio
    async def test_confirmation_completes_payment(self, session_maker, fake_blockchain, pending):
        payment_id, transaction_id = pending
        fake_blockchain.set_result(TX_HASH, ConfirmationStatus.CONFIRMED, confirmations=3)

        confirmed = await process_pending_transactions(session_maker, fake_blockchain)

        assert confirmed == 1
        transaction = await load(session_maker, Transaction, transaction_id)
        payment = await load(session_maker, Payment, payment_id)
        assert transaction.status == "confirmed"
        assert transaction.confirmations == 3
        assert payment.status == "completed"
        assert payment.transaction_hash == TX_HASH
        assert (await load(session_maker, Subscription, payment.subscription_id)).user_id == 1

    @pytest.mark.asyncio
    async def test_still_pending_updates_confirmations(self, session_maker, fake_blockchain, pending):
        payment_id, transaction_id = pending
        fake_blockchain.set_result(TX_HASH, ConfirmationStatus.PENDING, confirmations=2)

        assert await process_pending_transactions(session_maker, fake_blockchain) == 0

        transaction = await load(session_maker, Transaction, transaction_id)
        assert transaction.status == "pending"
        assert transaction.confirmations == 2
        assert (await load(session_maker, Payment, payment_id)).status == "pending"

    @pytest.mark.asyncio
    async def test_unknown_leaves_record_untouched(self, session_maker, fake_blockchain, pending):
        _, transaction_id = pending
        fake_blockchain.set_result(TX_HASH, ConfirmationStatus.UNKNOWN)

        assert await process_pending_transactions(session_maker, fake_blockchain) == 0

        transaction = await load(session_maker, Transaction, transaction_id)
        assert transaction.status == "pending"
        assert transaction.confirmations == 1

    @pytest.mark.asyncio
    async def test_failed_transaction_marked_failed(self, session_maker, fake_blockchain, pending):
        _, transaction_id = pending
        fake_blockchain.set_result(TX_HASH, ConfirmationStatus.FAILED)

        await process_pending_transactions(session_maker, fake_blockchain)

        assert (await load(session_maker, Transaction, transaction_id)).status == "failed"

    @pytest.mark.asyncio
    async def test_lookup_errors_do_not_stop_the_pass(self, session_maker, pending):
        _, transaction_id = pending

        assert await process_pending_transactions(session_maker, BrokenBlockchain()) == 0
        assert (await load(session_maker, Transaction, transaction_id)).status == "pending"

    @pytest.mark.asyncio
    async def test_confirmation_after_expiry(self, db_session, session_maker, fake_blockchain, pending):
        payment_id, transaction_id = pending
        payment = await db_session.get(Payment, payment_id)
        payment.expires_at = utcnow() - timedelta(minutes=5)
        await db_session.commit()
        fake_blockchain.set_result(TX_HASH, ConfirmationStatus.CONFIRMED, confirmations=3)

        await process_pending_transactions(session_maker, fake_blockchain)

        assert (await load(session_maker, Payment, payment_id)).status == "expired"
        assert (await load(session_maker, Transaction, transaction_id)).status == "confirmed"

    @pytest.mark.asyncio
    async def test_unseen_hash_dropped_once_payment_expired(
        self, db_session, session_maker, fake_blockchain, pending
    ):
        payment_id, transaction_id = pending
        payment = await db_session.get(Payment, payment_id)
        payment.expires_at = utcnow() - timedelta(days=30)
        await db_session.commit()
        # Never seen by the explorer
        fake_blockchain.set_result(TX_HASH, ConfirmationStatus.PENDING, confirmations=0)

        for _ in range(5):
            await process_pending_transactions(session_maker, fake_blockchain)

        assert fake_blockchain.calls == [("bitcoin", TX_HASH)]
        assert (await load(session_maker, Transaction, transaction_id)).status == "failed"
        assert (await load(session_maker, Payment, payment_id)).status == "expired"

    @pytest.mark.asyncio
    async def test_old_pending_transaction_dropped(
        self, db_session, session_maker, fake_blockchain, pending
    ):
        payment_id, transaction_id = pending
        transaction = await db_session.get(Transaction, transaction_id)
        transaction.created_at = utcnow() - timedelta(hours=73)
        await db_session.commit()

        await process_pending_transactions(session_maker, fake_blockchain)
        await process_pending_transactions(session_maker, fake_blockchain)

        assert len(fake_blockchain.calls) == 1
        assert (await load(session_maker, Transaction, transaction_id)).status == "failed"
        assert (await load(session_maker, Payment, payment_id)).status == "pending"

    @pytest.mark.asyncio
    async def test_pending_transaction_polled_while_payment_open(
        self, session_maker, fake_blockchain, pending
    ):
        _, transaction_id = pending
        fake_blockchain.set_result(TX_HASH, ConfirmationStatus.PENDING, confirmations=2)

        for _ in range(3):
            await process_pending_transactions(session_maker, fake_blockchain)

        assert len(fake_blockchain.calls) == 3
        assert (await load(session_maker, Transaction, transaction_id)).status == "pending"

    @pytest.mark.asyncio
    async def test_stale_payments_expired(
        self, db_session, session_maker, fake_blockchain, plan, exchange_rates
    ):
        service = CryptoPaymentService(db_session, fake_blockchain)
        quote = await service.create_crypto_payment_request(1, plan.id, Chain.SOLANA)
        quote.payment.expires_at = utcnow() - timedelta(hours=1)
        await db_session.commit()

        await process_pending_transactions(session_maker, fake_blockchain)

        assert (await load(session_maker, Payment, quote.payment.id)).status == "expired"


class TestTransactionMonitor:
    """Background loop lifecycle."""

    @pytest.mark.asyncio
    async def test_start_runs_a_pass_and_stop_cancels(self, session_maker, fake_blockchain, pending):
        monitor = TransactionMonitor(session_maker, fake_blockchain, interval_seconds=3600)
        monitor.start()
        assert monitor.running

        for _ in range(100):
            if fake_blockchain.calls:
                break
            await asyncio.sleep(0.01)
        assert fake_blockchain.calls == [("bitcoin", TX_HASH)]

        await monitor.stop()
        assert not monitor.running

    @pytest.mark.asyncio
    async def test_stop_without_start(self, session_maker, fake_blockchain):
        monitor = TransactionMonitor(session_maker, fake_blockchain)
        await monitor.stop()
        assert not monitor.running
