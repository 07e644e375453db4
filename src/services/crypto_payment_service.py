"""
Crypto payment service.

Quotes subscription plans in crypto, verifies the on-chain transactions users
submit and, once a transaction has enough confirmations, completes the
matching payment and activates or extends the subscription.

A payment moves ``pending -> completed`` at most once. The transition is a
conditional update on the pending status, and both the transactions table and
the payments table carry a unique transaction hash.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.blockchain.chains import Chain
from src.core.config import settings
from src.core.constants import CRYPTO_AMOUNT_QUANTUM, USD_AMOUNT_QUANTUM
from src.core.database import utcnow
from src.core.errors import (
    BusinessRuleError,
    ExchangeRateMissingError,
    PaymentExpiredError,
    PaymentNotFoundError,
    TransactionNotConfirmedError,
    UpstreamServiceError,
    WalletNotFoundError,
)
from src.models.payments import Payment
from src.models.subscriptions import Subscription
from src.models.transactions import Transaction
from src.models.wallets import ExchangeRate, Wallet
from src.services.blockchain_service import (
    BlockchainService,
    ConfirmationResult,
    ConfirmationStatus,
)
from src.services.subscription_service import SubscriptionService
from src.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

NO_PENDING_PAYMENT_MESSAGE = "Transaction confirmed, no pending payment to complete"


@dataclass
class PaymentQuote:
    """A freshly created payment request."""
    wallet: Wallet
    payment: Payment
    amount_crypto: Decimal
    amount_usd: Decimal
    expires_at: datetime
    reference_id: str


@dataclass
class VerificationResult:
    """Outcome of verifying a submitted transaction."""
    verified: bool
    status: str
    confirmations: int
    message: str
    transaction: Transaction | None = None
    payment: Payment | None = None
    subscription: Subscription | None = None


@dataclass
class PaymentInfo:
    payment: Payment
    wallet: Wallet
    exchange_rate: ExchangeRate


def calculate_crypto_amount(
    amount_usd: Decimal,
    rate_usd: Decimal,
    buffer_percent: Decimal | None = None,
) -> Decimal:
    """
    Crypto amount to request for ``amount_usd`` at ``rate_usd``.

    A buffer (5% by default) covers price movement while the payment is open.
    The result is rounded half-up to 8 decimal places.
    """
    if buffer_percent is None:
        buffer_percent = settings.price_buffer_percent
    multiplier = 1 + Decimal(buffer_percent) / 100
    amount = Decimal(amount_usd) / Decimal(rate_usd) * multiplier
    return amount.quantize(CRYPTO_AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


class CryptoPaymentService:
    """Service for crypto payment requests and verification."""

    def __init__(self, db: AsyncSession, blockchain: BlockchainService):
        """
        Initialize the crypto payment service.

        Args:
            db: Database session
            blockchain: Confirmation lookups against the chains
        """
        self.db = db
        self.blockchain = blockchain
        self.wallets = WalletService(db)
        self.subscriptions = SubscriptionService(db)

    async def create_crypto_payment_request(
        self, user_id: int, plan_id: int, chain: Chain | str
    ) -> PaymentQuote:
        """
        Quote a plan in crypto and open a pending payment for it.

        Args:
            user_id: Paying user
            plan_id: Plan being purchased
            chain: Chain the user will pay on

        Returns:
            PaymentQuote with the deposit wallet and amount

        Raises:
            PlanNotFoundError: If the plan does not exist
            ExchangeRateMissingError: If no rate is stored for the chain
            WalletProvisioningError: If the deposit wallet cannot be created
        """
        chain = Chain(chain)
        plan = await self.subscriptions.get_plan(plan_id)
        wallet = await self.wallets.create_wallet_for_user(user_id, chain)

        rate = await self.wallets.get_stored_exchange_rate(chain)
        if rate is None:
            raise ExchangeRateMissingError(chain.value)

        amount_usd = Decimal(plan.price).quantize(USD_AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)
        amount_crypto = calculate_crypto_amount(amount_usd, rate.rate_usd)
        created_at = utcnow()
        expires_at = created_at + timedelta(hours=settings.payment_expiry_hours)
        reference_id = secrets.token_hex(16)

        payment = Payment(
            user_id=user_id,
            plan_id=plan.id,
            amount=amount_usd,
            currency="USD",
            status="pending",
            payment_method=f"crypto_{chain.value}",
            chain=chain.value,
            reference_id=reference_id,
            amount_crypto=amount_crypto,
            wallet_address=wallet.wallet_address,
            gateway_metadata={
                "chain": chain.value,
                "walletAddress": wallet.wallet_address,
                "amountCrypto": str(amount_crypto),
                "exchangeRate": str(rate.rate_usd),
            },
            created_at=created_at,
            expires_at=expires_at,
        )
        self.db.add(payment)
        await self.db.commit()
        await self.db.refresh(payment)

        logger.info(
            f"Created payment {payment.id} for user {user_id}: {amount_crypto} "
            f"{chain.value} for plan {plan.id}, expires {expires_at}"
        )
        return PaymentQuote(
            wallet=wallet,
            payment=payment,
            amount_crypto=amount_crypto,
            amount_usd=amount_usd,
            expires_at=expires_at,
            reference_id=reference_id,
        )

    async def verify_crypto_payment(
        self, user_id: int, tx_hash: str, chain: Chain | str, wallet_id: int
    ) -> VerificationResult:
        """
        Verify a transaction the user sent to one of their wallets.

        A hash that is already recorded is answered from the stored record.
        Otherwise the chain is queried; a confirmed transaction completes the
        user's latest pending payment on that chain.

        Args:
            user_id: User submitting the transaction
            tx_hash: Transaction hash or signature
            chain: Chain the transaction was sent on
            wallet_id: Receiving wallet

        Returns:
            VerificationResult describing the transaction's state

        Raises:
            WalletNotFoundError: If the wallet does not belong to the user and chain
            PaymentExpiredError: If the payment expired before confirmation
        """
        chain = Chain(chain)
        stmt = select(Wallet).where(
            Wallet.id == wallet_id,
            Wallet.user_id == user_id,
            Wallet.chain == chain.value,
        )
        wallet = (await self.db.execute(stmt)).scalar_one_or_none()
        if wallet is None:
            raise WalletNotFoundError(f"Wallet {wallet_id} not found for {chain.value}")

        existing = await self.wallets.get_transaction_by_hash(tx_hash)
        if existing:
            return self._result_from_existing(existing, user_id)

        result = await self.blockchain.is_transaction_confirmed(chain, tx_hash)
        if result.status == ConfirmationStatus.UNKNOWN:
            return VerificationResult(
                verified=False,
                status=ConfirmationStatus.UNKNOWN.value,
                confirmations=0,
                message="Unable to verify transaction on blockchain right now, try again later",
            )

        transaction = await self._record_transaction(user_id, wallet, chain, tx_hash, result)
        if transaction is None:
            # Recorded concurrently by another request
            existing = await self.wallets.get_transaction_by_hash(tx_hash)
            return self._result_from_existing(existing, user_id)

        if result.status == ConfirmationStatus.FAILED:
            await self.db.commit()
            return VerificationResult(
                verified=False,
                status=ConfirmationStatus.FAILED.value,
                confirmations=result.confirmations,
                message="Transaction failed on blockchain",
                transaction=transaction,
            )

        if not result.confirmed:
            await self.db.commit()
            return VerificationResult(
                verified=False,
                status=ConfirmationStatus.PENDING.value,
                confirmations=result.confirmations,
                message=(
                    f"Transaction requires {result.required_confirmations} confirmations, "
                    f"currently has {result.confirmations}"
                ),
                transaction=transaction,
            )

        payment, subscription = await self.complete_payment(user_id, chain, transaction, result)
        await self.db.commit()
        return VerificationResult(
            verified=True,
            status=ConfirmationStatus.CONFIRMED.value,
            confirmations=result.confirmations,
            message=(
                "Transaction confirmed and payment processed"
                if payment is not None
                else NO_PENDING_PAYMENT_MESSAGE
            ),
            transaction=transaction,
            payment=payment,
            subscription=subscription,
        )

    async def process_payment_notification(
        self,
        transaction_hash: str,
        chain: Chain | str,
        wallet_address: str,
    ) -> VerificationResult:
        """
        Handle a payment notification from an external chain monitor.

        The notification is never trusted on its own: the transaction is
        re-verified on chain before any payment is completed.

        Args:
            transaction_hash: Reported transaction hash
            chain: Reported chain
            wallet_address: Receiving wallet address

        Returns:
            VerificationResult for a confirmed transaction

        Raises:
            WalletNotFoundError: If no wallet has the address on that chain
            UpstreamServiceError: If the chain could not be queried
            TransactionNotConfirmedError: If confirmations are still missing
            BusinessRuleError: If the transaction failed on chain
        """
        chain = Chain(chain)
        wallet = await self.wallets.get_wallet_by_address(wallet_address, chain)
        if wallet is None:
            raise WalletNotFoundError(f"No {chain.value} wallet with address {wallet_address}")

        existing = await self.wallets.get_transaction_by_hash(transaction_hash)
        if existing and existing.status == ConfirmationStatus.CONFIRMED.value:
            logger.info(f"Notification for already processed transaction {transaction_hash}")
            return VerificationResult(
                verified=True,
                status=existing.status,
                confirmations=existing.confirmations,
                message="Transaction already processed",
                transaction=existing,
            )
        if existing and existing.wallet_id != wallet.id:
            raise BusinessRuleError(
                "Transaction already recorded",
                "Transaction is recorded against a different wallet",
            )

        result = await self.blockchain.is_transaction_confirmed(chain, transaction_hash)
        if result.status == ConfirmationStatus.UNKNOWN:
            raise UpstreamServiceError(
                "Unable to verify transaction on blockchain",
                result.error,
            )

        user_id = wallet.user_id
        if existing:
            transaction = await self.wallets.update_transaction_status(
                existing,
                result.status.value,
                result.confirmations,
                result.block_height,
                result.block_time,
            )
        else:
            transaction = await self._record_transaction(
                user_id, wallet, chain, transaction_hash, result
            )
            if transaction is None:
                raise BusinessRuleError("Transaction is already being processed")

        if result.status == ConfirmationStatus.FAILED:
            await self.db.commit()
            raise BusinessRuleError("Transaction failed on blockchain")
        if not result.confirmed:
            await self.db.commit()
            raise TransactionNotConfirmedError(result.confirmations, result.required_confirmations)

        payment, subscription = await self.complete_payment(user_id, chain, transaction, result)
        await self.db.commit()
        logger.info(f"Processed payment notification for transaction {transaction_hash}")
        return VerificationResult(
            verified=True,
            status=ConfirmationStatus.CONFIRMED.value,
            confirmations=result.confirmations,
            message=(
                "Payment processed successfully"
                if payment is not None
                else NO_PENDING_PAYMENT_MESSAGE
            ),
            transaction=transaction,
            payment=payment,
            subscription=subscription,
        )

    async def refresh_pending_transaction(self, transaction: Transaction) -> ConfirmationStatus:
        """
        Re-check a pending transaction and complete its payment once confirmed.

        A transaction that is still pending is given up on (marked failed)
        once no unexpired pending payment waits for it, or once it is older
        than ``pending_transaction_max_age_hours``.

        Returns:
            The status recorded for the transaction; ``unknown`` leaves the
            record as is
        """
        result = await self.blockchain.is_transaction_confirmed(
            transaction.chain, transaction.transaction_hash
        )
        if result.status == ConfirmationStatus.UNKNOWN:
            return result.status

        status = result.status
        if status == ConfirmationStatus.PENDING and await self._stopped_waiting(transaction):
            status = ConfirmationStatus.FAILED
            logger.warning(
                f"Giving up on transaction {transaction.transaction_hash}: "
                f"{result.confirmations} confirmations and no payment awaiting it"
            )

        await self.wallets.update_transaction_status(
            transaction,
            status.value,
            result.confirmations,
            result.block_height,
            result.block_time,
        )
        if result.confirmed:
            await self.complete_payment(
                transaction.user_id, Chain(transaction.chain), transaction, result
            )
        await self.db.commit()
        return status

    async def _stopped_waiting(self, transaction: Transaction) -> bool:
        """True once a pending transaction is too old or no live payment awaits it."""
        now = utcnow()
        max_age = timedelta(hours=settings.pending_transaction_max_age_hours)
        if transaction.created_at <= now - max_age:
            return True
        stmt = (
            select(Payment.id)
            .where(
                Payment.user_id == transaction.user_id,
                Payment.status == "pending",
                Payment.payment_method == f"crypto_{transaction.chain}",
                Payment.expires_at > now,
            )
            .limit(1)
        )
        return (await self.db.execute(stmt)).first() is None

    async def complete_payment(
        self,
        user_id: int,
        chain: Chain,
        transaction: Transaction,
        result: ConfirmationResult,
    ) -> tuple[Payment | None, Subscription | None]:
        """
        Complete the user's latest pending payment on ``chain``.

        Does not commit unless the payment has expired, in which case the
        expiry and the transaction record are committed before raising.

        Returns:
            The completed payment and subscription, or ``(None, None)`` when
            there was nothing left to complete

        Raises:
            PaymentExpiredError: If the pending payment has already expired
        """
        stmt = (
            select(Payment)
            .where(
                Payment.user_id == user_id,
                Payment.status == "pending",
                Payment.payment_method == f"crypto_{chain.value}",
            )
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .limit(1)
        )
        payment = (await self.db.execute(stmt)).scalar_one_or_none()
        if payment is None:
            logger.info(f"No pending {chain.value} payment for user {user_id}")
            return None, None

        now = utcnow()
        if payment.expires_at <= now:
            payment.status = "expired"
            await self.db.commit()
            logger.warning(f"Payment {payment.id} expired before transaction confirmed")
            raise PaymentExpiredError(payment.reference_id)

        completed = await self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == "pending")
            .values(
                status="completed",
                transaction_hash=transaction.transaction_hash,
                completed_at=now,
                gateway_response=self._gateway_response(transaction, result),
            )
            .execution_options(synchronize_session=False)
        )
        if completed.rowcount != 1:
            logger.info(f"Payment {payment.id} was already completed")
            return None, None

        plan = await self.subscriptions.get_plan(payment.plan_id, active_only=False)
        subscription = await self.subscriptions.activate_or_extend(user_id, plan, now=now)

        await self.db.refresh(payment)
        payment.subscription_id = subscription.id
        transaction.subscription_id = subscription.id
        await self.db.flush()

        logger.info(
            f"Payment {payment.id} completed by transaction {transaction.transaction_hash}, "
            f"subscription {subscription.id} ends {subscription.end_date}"
        )
        return payment, subscription

    async def get_crypto_payment_info(self, payment_id: int, user_id: int) -> PaymentInfo:
        """
        Payment details with its deposit wallet and the current rate.

        Raises:
            PaymentNotFoundError: If the payment does not belong to the user
            WalletNotFoundError: If the deposit wallet no longer exists
            ExchangeRateMissingError: If no rate is stored for the chain
        """
        stmt = select(Payment).where(Payment.id == payment_id, Payment.user_id == user_id)
        payment = (await self.db.execute(stmt)).scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(f"Payment {payment_id} not found")

        await self._expire_if_due(payment)

        wallet = await self.wallets.get_wallet_by_address(payment.wallet_address, payment.chain)
        if wallet is None:
            raise WalletNotFoundError()

        rate = await self.wallets.get_stored_exchange_rate(payment.chain)
        if rate is None:
            raise ExchangeRateMissingError(payment.chain)

        return PaymentInfo(payment=payment, wallet=wallet, exchange_rate=rate)

    async def get_pending_crypto_payment_for_user(self, user_id: int) -> Payment | None:
        """The user's most recent unexpired pending crypto payment."""
        stmt = (
            select(Payment)
            .where(
                Payment.user_id == user_id,
                Payment.status == "pending",
                Payment.payment_method.like("crypto_%"),
            )
            .order_by(Payment.created_at.desc(), Payment.id.desc())
        )
        payments = (await self.db.execute(stmt)).scalars().all()
        for payment in payments:
            if not await self._expire_if_due(payment):
                return payment
        return None

    async def setup_crypto_wallets_for_user(self, user_id: int) -> list[Wallet]:
        """Provision a wallet on every supported chain for a user."""
        return await self.wallets.ensure_user_has_all_wallets(user_id)

    async def expire_stale_payments(self) -> int:
        """Mark every pending payment past its expiry as expired."""
        result = await self.db.execute(
            update(Payment)
            .where(Payment.status == "pending", Payment.expires_at <= utcnow())
            .values(status="expired")
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount:
            logger.info(f"Expired {result.rowcount} stale payments")
        return result.rowcount

    async def _expire_if_due(self, payment: Payment) -> bool:
        if payment.status == "pending" and payment.expires_at <= utcnow():
            payment.status = "expired"
            await self.db.commit()
            logger.info(f"Payment {payment.id} expired")
            return True
        return False

    async def _record_transaction(
        self,
        user_id: int,
        wallet: Wallet,
        chain: Chain,
        tx_hash: str,
        result: ConfirmationResult,
    ) -> Transaction | None:
        """Persist a chain lookup; None if the hash was recorded concurrently."""
        amount = result.amount or Decimal("0")
        amount_usd = None
        if result.confirmed:
            rate = await self.wallets.get_stored_exchange_rate(chain)
            if rate is not None:
                amount_usd = (amount * rate.rate_usd).quantize(USD_AMOUNT_QUANTUM)

        try:
            return await self.wallets.create_transaction(
                user_id=user_id,
                wallet_id=wallet.id,
                chain=chain.value,
                transaction_hash=tx_hash,
                sender_address=result.from_address,
                recipient_address=wallet.wallet_address,
                amount=amount,
                amount_usd=amount_usd,
                fee_amount=result.fee,
                status=result.status.value,
                confirmations=result.confirmations,
                block_height=result.block_height,
                block_time=result.block_time,
                raw_data=result.raw or None,
            )
        except IntegrityError:
            logger.info(f"Transaction {tx_hash} already recorded")
            return None

    @staticmethod
    def _gateway_response(transaction: Transaction, result: ConfirmationResult) -> dict[str, Any]:
        return {
            "transactionHash": transaction.transaction_hash,
            "amount": str(result.amount) if result.amount is not None else None,
            "confirmations": result.confirmations,
            "blockHeight": result.block_height,
            "blockTime": result.block_time.isoformat() if result.block_time else None,
        }

    @staticmethod
    def _result_from_existing(transaction: Transaction, user_id: int) -> VerificationResult:
        if transaction.user_id != user_id:
            raise BusinessRuleError(
                "Transaction already recorded",
                "Transaction hash was submitted by another account",
            )
        confirmed = transaction.status == ConfirmationStatus.CONFIRMED.value
        if confirmed:
            message = "Transaction already confirmed"
        elif transaction.status == ConfirmationStatus.FAILED.value:
            message = "Transaction failed on blockchain"
        else:
            message = "Transaction is still pending confirmation"
        return VerificationResult(
            verified=confirmed,
            status=transaction.status,
            confirmations=transaction.confirmations,
            message=message,
            transaction=transaction,
        )
