"""
Wallet API routes.

This module provides endpoints for provisioning and viewing the caller's
crypto wallets.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.blockchain.chains import Chain
from src.core.auth import AuthenticatedUser, Permission, require_permission
from src.core.database import get_db
from src.core.errors import WalletNotFoundError
from src.schemas.crypto import WalletDetailResponse, WalletListResponse, WalletResponse
from src.services.wallet_service import WalletService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/wallets/setup",
    response_model=WalletListResponse,
    status_code=status.HTTP_200_OK,
    summary="Provision wallets",
    description="Create a wallet on every supported chain for the caller.",
)
async def setup_wallets(
    user: AuthenticatedUser = Depends(require_permission(Permission.WALLETS_SETUP)),
    db: AsyncSession = Depends(get_db),
) -> WalletListResponse:
    """
    Provision the caller's wallets.

    Chains that fail to provision are skipped; the remaining wallets are
    returned.
    """
    wallets = await WalletService(db).ensure_user_has_all_wallets(user.id)
    return WalletListResponse(
        wallets=[WalletResponse.model_validate(wallet) for wallet in wallets]
    )


@router.get(
    "/wallets",
    response_model=WalletListResponse,
    summary="List wallets",
)
async def list_wallets(
    user: AuthenticatedUser = Depends(require_permission(Permission.WALLETS_READ)),
    db: AsyncSession = Depends(get_db),
) -> WalletListResponse:
    """List the caller's active wallets."""
    wallets = await WalletService(db).get_wallets_for_user(user.id)
    return WalletListResponse(
        wallets=[WalletResponse.model_validate(wallet) for wallet in wallets]
    )


@router.get(
    "/wallets/type/{chain}",
    response_model=WalletDetailResponse,
    summary="Get wallet by chain",
)
async def get_wallet_by_chain(
    chain: Chain,
    user: AuthenticatedUser = Depends(require_permission(Permission.WALLETS_READ)),
    db: AsyncSession = Depends(get_db),
) -> WalletDetailResponse:
    """Get the caller's active wallet on ``chain``."""
    wallet = await WalletService(db).get_wallet_by_chain(user.id, chain)
    if wallet is None:
        raise WalletNotFoundError(f"No {chain.value} wallet found")
    return WalletDetailResponse(wallet=WalletResponse.model_validate(wallet))


@router.get(
    "/wallets/{wallet_id}",
    response_model=WalletDetailResponse,
    summary="Get wallet",
)
async def get_wallet(
    wallet_id: int,
    user: AuthenticatedUser = Depends(require_permission(Permission.WALLETS_READ)),
    db: AsyncSession = Depends(get_db),
) -> WalletDetailResponse:
    """Get one of the caller's wallets by ID."""
    wallet = await WalletService(db).get_wallet_by_id(wallet_id, user.id)
    return WalletDetailResponse(wallet=WalletResponse.model_validate(wallet))
