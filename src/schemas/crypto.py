"""
Crypto billing request and response schemas.

Request and response bodies use camelCase on the wire; monetary amounts are
serialized as decimal strings.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.blockchain.chains import Chain


class CamelModel(BaseModel):
    """Base schema with camelCase aliases that also accepts field names."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# Requests

class PaymentRequestBody(CamelModel):
    """Schema for opening a crypto payment for a plan."""
    plan_id: int = Field(..., gt=0, description="Subscription plan to purchase")
    chain: Chain = Field(
        ...,
        validation_alias=AliasChoices("chain", "cryptoType"),
        description="Chain the payment will be sent on",
    )


class VerifyPaymentBody(CamelModel):
    """Schema for submitting a transaction for verification."""
    transaction_hash: str = Field(..., min_length=1, max_length=128, description="Transaction hash or signature")
    chain: Chain = Field(..., validation_alias=AliasChoices("chain", "cryptoType"))
    wallet_id: int = Field(..., gt=0, description="Receiving wallet")


class QuoteBody(CamelModel):
    usd_amount: Decimal = Field(..., gt=0, description="USD amount to quote")


class PaymentNotification(CamelModel):
    """Payment notification posted by an external chain monitor."""
    transaction_hash: str = Field(..., min_length=1, max_length=128)
    chain: Chain = Field(..., validation_alias=AliasChoices("chain", "cryptoType"))
    wallet_address: str = Field(..., min_length=1, max_length=128)
    amount: Decimal | None = Field(None, description="Reported amount, informational only")
    confirmations: int | None = Field(None, ge=0, description="Reported confirmations, informational only")
    block_height: int | None = None
    block_time: datetime | None = None


# Records

class WalletResponse(CamelModel):
    """Public view of a wallet. Key material is never exposed."""
    id: int
    chain: str
    wallet_address: str
    public_key: str
    is_active: bool
    balance: Decimal
    last_checked: datetime | None = None
    created_at: datetime


class TransactionResponse(CamelModel):
    id: int
    wallet_id: int
    subscription_id: int | None = None
    chain: str
    transaction_hash: str
    sender_address: str | None = None
    recipient_address: str
    amount: Decimal
    amount_usd: Decimal | None = None
    fee_amount: Decimal | None = None
    status: str
    confirmations: int
    block_height: int | None = None
    block_time: datetime | None = None
    created_at: datetime


class PaymentResponse(CamelModel):
    id: int
    plan_id: int
    subscription_id: int | None = None
    amount: Decimal
    currency: str
    status: str
    payment_method: str
    chain: str
    reference_id: str
    amount_crypto: Decimal
    wallet_address: str
    transaction_hash: str | None = None
    created_at: datetime
    expires_at: datetime
    completed_at: datetime | None = None


class ExchangeRateResponse(CamelModel):
    chain: str
    rate_usd: Decimal
    source: str
    last_updated: datetime


class SubscriptionResponse(CamelModel):
    id: int
    plan_id: int
    status: str
    start_date: datetime
    end_date: datetime
    cancelled_at: datetime | None = None


# Envelopes

class WalletListResponse(CamelModel):
    success: bool = True
    wallets: list[WalletResponse]


class WalletDetailResponse(CamelModel):
    success: bool = True
    wallet: WalletResponse


class PaymentRequestResponse(CamelModel):
    """Response for a newly opened payment."""
    success: bool = True
    payment_id: int
    wallet_id: int
    wallet_address: str
    chain: str
    amount_crypto: Decimal
    amount_usd: Decimal
    expires_at: datetime
    reference_id: str


class VerifyPaymentResponse(CamelModel):
    """Response for a verification attempt."""
    success: bool = True
    verified: bool
    status: str
    confirmations: int
    message: str
    transaction: TransactionResponse | None = None


class PendingPaymentResponse(CamelModel):
    success: bool = True
    payment: PaymentResponse | None = None


class PaymentInfoResponse(CamelModel):
    success: bool = True
    payment: PaymentResponse
    wallet: WalletResponse
    exchange_rate: ExchangeRateResponse


class TransactionListResponse(CamelModel):
    success: bool = True
    transactions: list[TransactionResponse]
    limit: int
    offset: int


class TransactionDetailResponse(CamelModel):
    success: bool = True
    transaction: TransactionResponse


class ExchangeRateListResponse(CamelModel):
    success: bool = True
    rates: list[ExchangeRateResponse]


class PricesResponse(CamelModel):
    success: bool = True
    prices: dict[str, Decimal]
    timestamp: datetime


class QuoteResponse(CamelModel):
    success: bool = True
    usd_amount: Decimal
    quotes: dict[str, dict[str, Any]]
    timestamp: datetime


class SubscriptionListResponse(CamelModel):
    success: bool = True
    subscriptions: list[SubscriptionResponse]


class WebhookResponse(CamelModel):
    success: bool = True
    message: str
    status: str
    transaction_hash: str
