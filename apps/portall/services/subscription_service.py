"""
Subscription service layer: plan catalog, checkout, cancellation.

Payment rows are append-only: a row is written once a PaymentIntent
reaches a terminal state (succeeded or failed) and never modified after.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from portall.database.models import (
    User,
    SubscriptionPlan,
    UserSubscription,
    PaymentHistory,
    BillingInterval,
    SubscriptionStatus,
    PaymentStatus,
    PaymentType,
)
from portall.services import stripe_service
from portall.services.errors import ConflictError, NotFoundError, PermissionDeniedError
from portall.services.serializers import serialize_plan, serialize_subscription, serialize_payment
from portall.utils.datetime_utils import utcnow, add_months

logger = logging.getLogger(__name__)

RECENT_PAYMENTS_LIMIT = 10
OPEN_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.PENDING)


def period_end(start: datetime, interval: BillingInterval) -> datetime:
    """End of a billing period starting at `start`."""
    months = 1 if BillingInterval(interval) == BillingInterval.MONTH else 12
    return add_months(start, months)


async def list_active_plans(session: AsyncSession) -> Dict:
    result = await session.execute(
        select(SubscriptionPlan)
        .where(SubscriptionPlan.is_active == True)  # noqa: E712
        .order_by(SubscriptionPlan.display_order, SubscriptionPlan.id)
    )
    plans = [serialize_plan(p) for p in result.scalars().all()]
    return {"plans": plans, "total": len(plans)}


async def get_subscription_model(session: AsyncSession, user_id: int) -> Optional[UserSubscription]:
    result = await session.execute(
        select(UserSubscription)
        .options(selectinload(UserSubscription.plan))
        .where(UserSubscription.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _card_details(payment_intent) -> Dict:
    """Brand and last four digits of the card charged, when Stripe expanded them."""
    try:
        charge = payment_intent["latest_charge"]
        card = charge["payment_method_details"]["card"]
        return {"card_brand": card["brand"], "card_last_four": card["last4"]}
    except (KeyError, TypeError):
        return {}


async def create_subscription(
    session: AsyncSession, user_id: int, plan_id: int, payment_method_id: str
) -> Dict:
    """
    Subscribe a user to a plan and charge the first period.

    Steps: reject an already open subscription, resolve the plan, reuse or
    create the Stripe customer, create (or recycle) the pending local
    subscription, confirm a PaymentIntent, and on success activate the
    subscription and open the recurring Stripe subscription.

    Args:
        session: Database session
        user_id: Subscribing user
        plan_id: SubscriptionPlan ID
        payment_method_id: Stripe payment method (pm_...)

    Returns:
        Dict with "subscription", "payment" and "requires_action". The
        payment status is "failed" when the card was declined; the failed
        payment row is still recorded.

    Raises:
        ConflictError: If the user already has an active or pending subscription
        NotFoundError: If the plan does not exist or is inactive
        PermissionDeniedError: If the plan is not offered to the user's type
    """
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    subscription = await get_subscription_model(session, user_id)
    if subscription is not None and subscription.status in OPEN_STATUSES:
        raise ConflictError("User already has an active or pending subscription")

    plan = await session.get(SubscriptionPlan, plan_id)
    if plan is None or not plan.is_active:
        raise NotFoundError("Subscription plan not found or inactive")
    if user.user_type.value not in (plan.allowed_user_types or []):
        raise PermissionDeniedError(f"This plan is not available for {user.user_type.value} accounts")

    customer_id = subscription.stripe_customer_id if subscription else None
    if not customer_id:
        customer_id = await asyncio.to_thread(stripe_service.create_customer, user.email, user.full_name, user.id)

    # One row per user: a cancelled/expired subscription is recycled
    if subscription is None:
        subscription = UserSubscription(user_id=user_id)
        session.add(subscription)
    subscription.plan_id = plan.id
    subscription.status = SubscriptionStatus.PENDING
    subscription.stripe_customer_id = customer_id
    subscription.stripe_subscription_id = None
    subscription.started_at = None
    subscription.ends_at = None
    subscription.cancelled_at = None
    subscription.subscription_metadata = {
        "plan_name": plan.name,
        "billing_interval": plan.billing_interval.value,
        "created_via": "api",
    }
    await session.flush()

    metadata = {
        "portall_subscription_id": subscription.id,
        "portall_user_id": user_id,
        "portall_plan_name": plan.name,
        "billing_interval": plan.billing_interval.value,
    }
    try:
        intent = await asyncio.to_thread(
            stripe_service.create_payment_intent,
            plan.price_in_cents, plan.currency, customer_id, payment_method_id, metadata
        )
    except stripe_service.CardError as e:
        error_intent = getattr(e.error, "payment_intent", None) if e.error else None
        payment = PaymentHistory(
            subscription_id=subscription.id,
            stripe_payment_intent_id=error_intent["id"] if error_intent else None,
            amount_in_cents=plan.price_in_cents,
            currency=plan.currency,
            status=PaymentStatus.FAILED,
            payment_type=PaymentType.INITIAL,
            payment_method="card",
            failure_reason=e.code,
            failure_message=e.user_message or str(e),
            processed_at=utcnow(),
            payment_metadata={"decline_code": getattr(e.error, "decline_code", None) if e.error else None},
        )
        session.add(payment)
        subscription.status = SubscriptionStatus.EXPIRED
        await session.flush()
        await session.refresh(payment)
        logger.warning(f"Initial payment declined for user {user_id}: {e.code}")
        return {
            "subscription": serialize_subscription(await get_subscription_model(session, user_id)),
            "payment": serialize_payment(payment),
            "requires_action": False,
        }

    if intent.status != "succeeded":
        # 3-D Secure or similar; the payment_intent.succeeded webhook finishes the job
        logger.info(f"PaymentIntent {intent.id} for user {user_id} is {intent.status}")
        return {
            "subscription": serialize_subscription(await get_subscription_model(session, user_id)),
            "payment": {"status": intent.status, "client_secret": intent.client_secret},
            "requires_action": True,
        }

    now = utcnow()
    payment = PaymentHistory(
        subscription_id=subscription.id,
        stripe_payment_intent_id=intent.id,
        amount_in_cents=plan.price_in_cents,
        currency=plan.currency,
        status=PaymentStatus.SUCCEEDED,
        payment_type=PaymentType.INITIAL,
        payment_method="card",
        processed_at=now,
        payment_metadata={"stripe_payment_intent_status": intent.status},
        **_card_details(intent),
    )
    session.add(payment)
    subscription.status = SubscriptionStatus.ACTIVE
    subscription.started_at = now
    subscription.ends_at = period_end(now, plan.billing_interval)
    try:
        subscription.stripe_subscription_id = await asyncio.to_thread(
            stripe_service.create_subscription,
            customer_id,
            plan.stripe_price_id,
            {"portall_subscription_id": subscription.id, "portall_user_id": user_id},
        )
    except stripe_service.StripeError as e:
        # The first period is paid; customer.subscription.created links the id later
        logger.error(f"Stripe subscription for local subscription {subscription.id} not created: {e}")
    await session.flush()
    await session.refresh(payment)

    logger.info(f"Subscription {subscription.id} activated for user {user_id} ({plan.name})")
    return {
        "subscription": serialize_subscription(await get_subscription_model(session, user_id)),
        "payment": serialize_payment(payment),
        "requires_action": False,
    }


async def get_my_subscription(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """Subscription with plan and the most recent payments, or None."""
    subscription = await get_subscription_model(session, user_id)
    if subscription is None:
        return None
    result = await session.execute(
        select(PaymentHistory)
        .where(PaymentHistory.subscription_id == subscription.id)
        .order_by(PaymentHistory.created_at.desc(), PaymentHistory.id.desc())
        .limit(RECENT_PAYMENTS_LIMIT)
    )
    return {
        **serialize_subscription(subscription),
        "payments": [serialize_payment(p) for p in result.scalars().all()],
    }


async def cancel_subscription(session: AsyncSession, user_id: int) -> Dict:
    """
    Cancel at period end: access continues until ends_at.

    Raises:
        NotFoundError: If the user has no active subscription
    """
    subscription = await get_subscription_model(session, user_id)
    if subscription is None or subscription.status != SubscriptionStatus.ACTIVE:
        raise NotFoundError("No active subscription to cancel")

    if subscription.stripe_subscription_id:
        await asyncio.to_thread(stripe_service.cancel_at_period_end, subscription.stripe_subscription_id)

    subscription.status = SubscriptionStatus.CANCELLED
    subscription.cancelled_at = utcnow()
    await session.flush()
    logger.info(f"Subscription {subscription.id} cancelled by user {user_id}")

    data = serialize_subscription(subscription)
    data["access_until"] = subscription.ends_at.isoformat() if subscription.ends_at else None
    return data
