"""
Webhook API routes.

External chain monitors post payment notifications here. Requests are
authenticated with a shared secret in the ``x-webhook-secret`` header rather
than a user token.
"""

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.database import get_db
from src.core.security import sanitize
from src.schemas.crypto import PaymentNotification, WebhookResponse
from src.services.blockchain_service import BlockchainService, get_blockchain_service
from src.services.crypto_payment_service import CryptoPaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


async def verify_webhook_secret(
    x_webhook_secret: str | None = Header(default=None),
) -> None:
    """
    Check the shared webhook secret.

    Without a configured secret the webhook is open outside production and
    refused in production.

    Raises:
        HTTPException: If the secret is missing or wrong
    """
    expected = settings.crypto_webhook_secret
    if not expected:
        if settings.is_production:
            logger.error("Payment webhook called but CRYPTO_WEBHOOK_SECRET is not configured")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Webhook not configured",
            )
        return

    if not x_webhook_secret or not hmac.compare_digest(
        x_webhook_secret.encode(), expected.encode()
    ):
        logger.warning("Payment webhook called with invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )


@router.post(
    "/webhook/payment-notification",
    response_model=WebhookResponse,
    summary="Payment notification webhook",
    description="Re-verify a reported transaction on chain and complete the matching payment.",
    dependencies=[Depends(verify_webhook_secret)],
)
async def payment_notification(
    body: PaymentNotification,
    db: AsyncSession = Depends(get_db),
    blockchain: BlockchainService = Depends(get_blockchain_service),
) -> WebhookResponse:
    """Handle a payment notification for ``transactionHash``."""
    payload = sanitize(body.model_dump(mode="json", by_alias=True))
    logger.info(f"Payment notification: {payload}")
    result = await CryptoPaymentService(db, blockchain).process_payment_notification(
        body.transaction_hash, body.chain, body.wallet_address
    )
    return WebhookResponse(
        message=result.message,
        status=result.status,
        transaction_hash=body.transaction_hash,
    )
