"""
Transaction history API routes.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import AuthenticatedUser, Permission, require_permission
from src.core.database import get_db
from src.schemas.crypto import (
    TransactionDetailResponse,
    TransactionListResponse,
    TransactionResponse,
)
from src.services.wallet_service import WalletService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get(
    "/transactions",
    response_model=TransactionListResponse,
    summary="List transactions",
)
async def list_transactions(
    limit: int = Query(default=10, ge=1, le=100, description="Maximum transactions to return"),
    offset: int = Query(default=0, ge=0, description="Number of transactions to skip"),
    user: AuthenticatedUser = Depends(require_permission(Permission.TRANSACTIONS_READ)),
    db: AsyncSession = Depends(get_db),
) -> TransactionListResponse:
    """The caller's transactions, newest first."""
    transactions = await WalletService(db).get_transactions_for_user(user.id, limit, offset)
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(tx) for tx in transactions],
        limit=limit,
        offset=offset,
    )


@router.get(
    "/transactions/{transaction_id}",
    response_model=TransactionDetailResponse,
    summary="Get transaction",
)
async def get_transaction(
    transaction_id: int,
    user: AuthenticatedUser = Depends(require_permission(Permission.TRANSACTIONS_READ)),
    db: AsyncSession = Depends(get_db),
) -> TransactionDetailResponse:
    transaction = await WalletService(db).get_transaction_by_id(transaction_id, user.id)
    return TransactionDetailResponse(transaction=TransactionResponse.model_validate(transaction))
