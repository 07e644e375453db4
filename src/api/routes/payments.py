"""
Crypto payment API routes.

This module provides endpoints for opening a crypto payment for a plan,
submitting a transaction for verification and looking up payments.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import AuthenticatedUser, Permission, require_permission
from src.core.database import get_db
from src.core.security import sanitize
from src.schemas.crypto import (
    ExchangeRateResponse,
    PaymentInfoResponse,
    PaymentRequestBody,
    PaymentRequestResponse,
    PaymentResponse,
    PendingPaymentResponse,
    TransactionResponse,
    VerifyPaymentBody,
    VerifyPaymentResponse,
    WalletResponse,
)
from src.services.blockchain_service import BlockchainService, get_blockchain_service
from src.services.crypto_payment_service import CryptoPaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/payment/request",
    response_model=PaymentRequestResponse,
    summary="Open a crypto payment",
    description="Quote a subscription plan in crypto and open a pending payment valid for 24 hours.",
)
async def create_payment_request(
    body: PaymentRequestBody,
    user: AuthenticatedUser = Depends(require_permission(Permission.PAYMENTS_CREATE)),
    db: AsyncSession = Depends(get_db),
    blockchain: BlockchainService = Depends(get_blockchain_service),
) -> PaymentRequestResponse:
    """Open a pending crypto payment for ``planId`` on ``chain``."""
    service = CryptoPaymentService(db, blockchain)
    quote = await service.create_crypto_payment_request(user.id, body.plan_id, body.chain)
    return PaymentRequestResponse(
        payment_id=quote.payment.id,
        wallet_id=quote.wallet.id,
        wallet_address=quote.wallet.wallet_address,
        chain=body.chain.value,
        amount_crypto=quote.amount_crypto,
        amount_usd=quote.amount_usd,
        expires_at=quote.expires_at,
        reference_id=quote.reference_id,
    )


@router.post(
    "/payment/verify",
    response_model=VerifyPaymentResponse,
    summary="Verify a transaction",
    description="Check a submitted transaction on chain and complete the pending payment once confirmed.",
)
async def verify_payment(
    body: VerifyPaymentBody,
    user: AuthenticatedUser = Depends(require_permission(Permission.PAYMENTS_VERIFY)),
    db: AsyncSession = Depends(get_db),
    blockchain: BlockchainService = Depends(get_blockchain_service),
) -> VerifyPaymentResponse:
    """Verify ``transactionHash`` sent to the caller's wallet ``walletId``."""
    payload = sanitize(body.model_dump(mode="json", by_alias=True))
    logger.info(f"User {user.id} submitted transaction for verification: {payload}")
    service = CryptoPaymentService(db, blockchain)
    result = await service.verify_crypto_payment(
        user.id, body.transaction_hash, body.chain, body.wallet_id
    )
    return VerifyPaymentResponse(
        verified=result.verified,
        status=result.status,
        confirmations=result.confirmations,
        message=result.message,
        transaction=(
            TransactionResponse.model_validate(result.transaction)
            if result.transaction is not None
            else None
        ),
    )


@router.get(
    "/payment/pending",
    response_model=PendingPaymentResponse,
    summary="Get pending payment",
)
async def get_pending_payment(
    user: AuthenticatedUser = Depends(require_permission(Permission.PAYMENTS_READ)),
    db: AsyncSession = Depends(get_db),
    blockchain: BlockchainService = Depends(get_blockchain_service),
) -> PendingPaymentResponse:
    """The caller's most recent unexpired pending crypto payment, if any."""
    payment = await CryptoPaymentService(db, blockchain).get_pending_crypto_payment_for_user(user.id)
    return PendingPaymentResponse(
        payment=PaymentResponse.model_validate(payment) if payment is not None else None
    )


@router.get(
    "/payment/{payment_id}",
    response_model=PaymentInfoResponse,
    summary="Get payment",
)
async def get_payment(
    payment_id: int,
    user: AuthenticatedUser = Depends(require_permission(Permission.PAYMENTS_READ)),
    db: AsyncSession = Depends(get_db),
    blockchain: BlockchainService = Depends(get_blockchain_service),
) -> PaymentInfoResponse:
    """A payment of the caller with its deposit wallet and the current rate."""
    info = await CryptoPaymentService(db, blockchain).get_crypto_payment_info(payment_id, user.id)
    return PaymentInfoResponse(
        payment=PaymentResponse.model_validate(info.payment),
        wallet=WalletResponse.model_validate(info.wallet),
        exchange_rate=ExchangeRateResponse.model_validate(info.exchange_rate),
    )
