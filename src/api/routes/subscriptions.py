"""
Subscription API routes.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import AuthenticatedUser, Permission, require_permission
from src.core.database import get_db
from src.schemas.crypto import SubscriptionListResponse, SubscriptionResponse
from src.services.subscription_service import SubscriptionService

router = APIRouter()


@router.get(
    "/subscriptions",
    response_model=SubscriptionListResponse,
    summary="List subscriptions",
)
async def list_subscriptions(
    user: AuthenticatedUser = Depends(require_permission(Permission.SUBSCRIPTIONS_READ)),
    db: AsyncSession = Depends(get_db),
) -> SubscriptionListResponse:
    """The caller's subscriptions, most recently ending first."""
    subscriptions = await SubscriptionService(db).get_user_subscriptions(user.id)
    return SubscriptionListResponse(
        subscriptions=[SubscriptionResponse.model_validate(s) for s in subscriptions]
    )
