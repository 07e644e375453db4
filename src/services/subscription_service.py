"""
Subscription service for plan lookup and paid subscription periods.

A confirmed payment either starts a subscription to the paid plan or extends
the existing one by the plan's billing interval.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.constants import DEFAULT_SUBSCRIPTION_DAYS, PLAN_INTERVAL_DAYS
from src.core.database import utcnow
from src.core.errors import PlanNotFoundError
from src.models.subscriptions import Subscription, SubscriptionPlan

logger = logging.getLogger(__name__)


def plan_interval_days(interval: str | None) -> int:
    """Length in days of one billing period; unknown intervals count as monthly."""
    return PLAN_INTERVAL_DAYS.get((interval or "").lower(), DEFAULT_SUBSCRIPTION_DAYS)


class SubscriptionService:
    """Service for subscription plans and user subscriptions."""

    def __init__(self, db: AsyncSession):
        """
        Initialize the subscription service.

        Args:
            db: Database session
        """
        self.db = db

    async def get_plan(self, plan_id: int, active_only: bool = True) -> SubscriptionPlan:
        """
        Get a subscription plan.

        Args:
            plan_id: Plan ID
            active_only: Treat inactive plans as missing

        Raises:
            PlanNotFoundError: If the plan does not exist (or is inactive)
        """
        stmt = select(SubscriptionPlan).where(SubscriptionPlan.id == plan_id)
        if active_only:
            stmt = stmt.where(SubscriptionPlan.is_active.is_(True))
        result = await self.db.execute(stmt)
        plan = result.scalar_one_or_none()
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    async def get_user_subscriptions(self, user_id: int) -> list[Subscription]:
        """All subscriptions of a user, most recently ending first."""
        stmt = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.end_date.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def activate_or_extend(
        self,
        user_id: int,
        plan: SubscriptionPlan,
        now: datetime | None = None,
    ) -> Subscription:
        """
        Start or extend the user's subscription to ``plan`` by one period.

        An active subscription is extended from its current end date; a lapsed
        one restarts from ``now``. Does not commit.

        Args:
            user_id: Subscriber
            plan: Plan that was paid for
            now: Reference time, defaults to the current UTC time

        Returns:
            The created or updated subscription
        """
        now = now or utcnow()
        period = timedelta(days=plan_interval_days(plan.interval))

        stmt = select(Subscription).where(
            Subscription.user_id == user_id,
            Subscription.plan_id == plan.id,
        )
        result = await self.db.execute(stmt)
        subscription = result.scalar_one_or_none()

        if subscription is None:
            subscription = Subscription(
                user_id=user_id,
                plan_id=plan.id,
                status="active",
                start_date=now,
                end_date=now + period,
            )
            self.db.add(subscription)
            await self.db.flush()
            logger.info(
                f"Created subscription {subscription.id} for user {user_id} "
                f"to plan {plan.id}, ends {subscription.end_date}"
            )
            return subscription

        subscription.end_date = max(now, subscription.end_date) + period
        subscription.status = "active"
        subscription.cancelled_at = None
        await self.db.flush()
        logger.info(
            f"Extended subscription {subscription.id} for user {user_id} "
            f"to {subscription.end_date}"
        )
        return subscription
