"""
Exchange rate and pricing API routes.

Stored exchange rates are what payment quotes use; live prices and quotes
come straight from the price feed.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import AuthenticatedUser, Permission, require_permission
from src.core.database import get_db
from src.schemas.crypto import (
    ExchangeRateListResponse,
    ExchangeRateResponse,
    PricesResponse,
    QuoteBody,
    QuoteResponse,
)
from src.services.price_service import PriceService, get_price_service
from src.services.wallet_service import WalletService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/exchange-rates/update",
    response_model=ExchangeRateListResponse,
    summary="Refresh exchange rates",
    description="Fetch current USD prices and store one rate per chain. Admin only.",
)
async def update_exchange_rates(
    user: AuthenticatedUser = Depends(require_permission(Permission.EXCHANGE_RATES_UPDATE)),
    db: AsyncSession = Depends(get_db),
    price_service: PriceService = Depends(get_price_service),
) -> ExchangeRateListResponse:
    """Refresh the stored exchange rates."""
    logger.info(f"Exchange rate refresh requested by user {user.id}")
    rates = await WalletService(db, price_service).update_exchange_rates()
    return ExchangeRateListResponse(
        rates=[ExchangeRateResponse.model_validate(rate) for rate in rates]
    )


@router.get(
    "/exchange-rates",
    response_model=ExchangeRateListResponse,
    summary="List stored exchange rates",
)
async def list_exchange_rates(
    user: AuthenticatedUser = Depends(require_permission(Permission.EXCHANGE_RATES_READ)),
    db: AsyncSession = Depends(get_db),
) -> ExchangeRateListResponse:
    rates = await WalletService(db).get_stored_exchange_rates()
    return ExchangeRateListResponse(
        rates=[ExchangeRateResponse.model_validate(rate) for rate in rates]
    )


@router.get(
    "/prices",
    response_model=PricesResponse,
    summary="Current crypto prices",
)
async def get_prices(
    user: AuthenticatedUser = Depends(require_permission(Permission.EXCHANGE_RATES_READ)),
    price_service: PriceService = Depends(get_price_service),
) -> PricesResponse:
    """Current USD price per asset."""
    prices = await price_service.get_current_prices()
    return PricesResponse(prices=prices, timestamp=datetime.now(timezone.utc))


@router.post(
    "/quote",
    response_model=QuoteResponse,
    summary="Quote a USD amount",
)
async def get_quote(
    body: QuoteBody,
    user: AuthenticatedUser = Depends(require_permission(Permission.EXCHANGE_RATES_READ)),
    price_service: PriceService = Depends(get_price_service),
) -> QuoteResponse:
    """Quote ``usdAmount`` in every supported asset."""
    quotes = await price_service.get_quote_for_usd(body.usd_amount)
    return QuoteResponse(
        usd_amount=body.usd_amount,
        quotes=quotes,
        timestamp=datetime.now(timezone.utc),
    )
