"""
Stripe webhook processing.

Events arrive already verified (see stripe_service.construct_event) as plain
dicts. Every handler runs inside the caller's transaction. Events are
idempotent by id: an event whose id is already recorded on a payment row is
acknowledged without being applied again.
"""

import asyncio
import logging
from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from portall.database.models import (
    UserSubscription,
    PaymentHistory,
    SubscriptionStatus,
    PaymentStatus,
    PaymentType,
)
from portall.services import stripe_service
from portall.services.subscription_service import period_end
from portall.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# Stripe subscription status -> local status
STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "canceled": SubscriptionStatus.CANCELLED,
    "past_due": SubscriptionStatus.SUSPENDED,
    "unpaid": SubscriptionStatus.SUSPENDED,
    "incomplete": SubscriptionStatus.PENDING,
}


async def is_duplicate_event(session: AsyncSession, event_id: str) -> bool:
    result = await session.execute(
        select(PaymentHistory.id).where(PaymentHistory.stripe_event_id == event_id)
    )
    return result.first() is not None


async def _payment_exists_for_intent(session: AsyncSession, intent_id: Optional[str], status: PaymentStatus) -> bool:
    """A failed attempt and the successful retry of one intent are separate rows."""
    if not intent_id:
        return False
    result = await session.execute(
        select(PaymentHistory.id).where(
            PaymentHistory.stripe_payment_intent_id == intent_id,
            PaymentHistory.status == status,
        )
    )
    return result.first() is not None


async def _subscription_by_id(session: AsyncSession, subscription_id) -> Optional[UserSubscription]:
    if not subscription_id:
        return None
    result = await session.execute(
        select(UserSubscription)
        .options(selectinload(UserSubscription.plan))
        .where(UserSubscription.id == int(subscription_id))
    )
    return result.scalar_one_or_none()


async def _subscription_by_stripe_id(session: AsyncSession, stripe_subscription_id) -> Optional[UserSubscription]:
    if not stripe_subscription_id:
        return None
    result = await session.execute(
        select(UserSubscription)
        .options(selectinload(UserSubscription.plan))
        .where(UserSubscription.stripe_subscription_id == stripe_subscription_id)
    )
    return result.scalar_one_or_none()


def _skipped(reason: str) -> Dict:
    return {"action": "skipped", "reason": reason}


async def handle_payment_intent_succeeded(session: AsyncSession, event: Dict) -> Dict:
    """Record the payment and activate a still-pending subscription (3-D Secure flow)."""
    intent = event["data"]["object"]
    if await _payment_exists_for_intent(session, intent["id"], PaymentStatus.SUCCEEDED):
        return _skipped("payment_already_recorded")

    metadata = intent.get("metadata") or {}
    subscription = await _subscription_by_id(session, metadata.get("portall_subscription_id"))
    if subscription is None:
        logger.warning(f"payment_intent.succeeded {intent['id']} has no matching subscription")
        return _skipped("subscription_not_found")

    now = utcnow()
    was_pending = subscription.status == SubscriptionStatus.PENDING
    session.add(PaymentHistory(
        subscription_id=subscription.id,
        stripe_payment_intent_id=intent["id"],
        stripe_event_id=event["id"],
        amount_in_cents=intent["amount"],
        currency=(intent.get("currency") or "usd").upper(),
        status=PaymentStatus.SUCCEEDED,
        payment_type=PaymentType.INITIAL if was_pending else PaymentType.RECURRING,
        payment_method="card",
        processed_at=now,
        payment_metadata={"source": "webhook", "event_type": event["type"]},
    ))

    if was_pending:
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.started_at = now
        subscription.ends_at = period_end(now, subscription.plan.billing_interval)
        if not subscription.stripe_subscription_id:
            try:
                subscription.stripe_subscription_id = await asyncio.to_thread(
                    stripe_service.create_subscription,
                    subscription.stripe_customer_id,
                    subscription.plan.stripe_price_id,
                    {"portall_subscription_id": subscription.id, "portall_user_id": subscription.user_id},
                )
            except stripe_service.StripeError as e:
                # customer.subscription.created links the id once Stripe has it
                logger.error(f"Could not open Stripe subscription for {subscription.id}: {e}")
    await session.flush()

    logger.info(f"Subscription {subscription.id} payment succeeded via webhook")
    return {
        "action": "subscription_activated" if was_pending else "payment_recorded",
        "subscription_id": subscription.id,
    }


async def handle_payment_intent_failed(session: AsyncSession, event: Dict) -> Dict:
    intent = event["data"]["object"]
    if await _payment_exists_for_intent(session, intent["id"], PaymentStatus.FAILED):
        return _skipped("payment_already_recorded")

    metadata = intent.get("metadata") or {}
    subscription = await _subscription_by_id(session, metadata.get("portall_subscription_id"))
    if subscription is None:
        return _skipped("subscription_not_found")

    error = intent.get("last_payment_error") or {}
    was_pending = subscription.status == SubscriptionStatus.PENDING
    session.add(PaymentHistory(
        subscription_id=subscription.id,
        stripe_payment_intent_id=intent["id"],
        stripe_event_id=event["id"],
        amount_in_cents=intent["amount"],
        currency=(intent.get("currency") or "usd").upper(),
        status=PaymentStatus.FAILED,
        payment_type=PaymentType.INITIAL if was_pending else PaymentType.RECURRING,
        payment_method="card",
        failure_reason=error.get("code"),
        failure_message=error.get("message"),
        processed_at=utcnow(),
        payment_metadata={"source": "webhook", "event_type": event["type"]},
    ))
    if was_pending:
        subscription.status = SubscriptionStatus.SUSPENDED
    await session.flush()

    logger.warning(f"Payment failed for subscription {subscription.id}: {error.get('code')}")
    return {"action": "payment_failed", "subscription_id": subscription.id}


async def handle_invoice_payment_succeeded(session: AsyncSession, event: Dict) -> Dict:
    """Renewal: extend ends_at by one billing interval."""
    invoice = event["data"]["object"]
    # The first invoice of a subscription is covered by the initial PaymentIntent
    if invoice.get("billing_reason") == "subscription_create":
        return _skipped("initial_invoice")

    subscription = await _subscription_by_stripe_id(session, invoice.get("subscription"))
    if subscription is None:
        return _skipped("subscription_not_found")
    if await _payment_exists_for_intent(session, invoice.get("payment_intent"), PaymentStatus.SUCCEEDED):
        return _skipped("payment_already_recorded")

    now = utcnow()
    current_end = subscription.ends_at if subscription.ends_at and subscription.ends_at > now else now
    subscription.ends_at = period_end(current_end, subscription.plan.billing_interval)
    subscription.status = SubscriptionStatus.ACTIVE
    session.add(PaymentHistory(
        subscription_id=subscription.id,
        stripe_payment_intent_id=invoice.get("payment_intent"),
        stripe_invoice_id=invoice["id"],
        stripe_event_id=event["id"],
        amount_in_cents=invoice["amount_paid"],
        currency=(invoice.get("currency") or "usd").upper(),
        status=PaymentStatus.SUCCEEDED,
        payment_type=PaymentType.RECURRING,
        payment_method="card",
        processed_at=now,
        payment_metadata={"source": "webhook", "event_type": event["type"]},
    ))
    await session.flush()

    logger.info(f"Subscription {subscription.id} renewed until {subscription.ends_at.isoformat()}")
    return {
        "action": "subscription_renewed",
        "subscription_id": subscription.id,
        "new_ends_at": subscription.ends_at.isoformat(),
    }


async def handle_invoice_payment_failed(session: AsyncSession, event: Dict) -> Dict:
    invoice = event["data"]["object"]
    subscription = await _subscription_by_stripe_id(session, invoice.get("subscription"))
    if subscription is None:
        return _skipped("subscription_not_found")

    subscription.status = SubscriptionStatus.SUSPENDED
    # Stripe retries the same invoice and intent; one failed row per intent is kept
    if await _payment_exists_for_intent(session, invoice.get("payment_intent"), PaymentStatus.FAILED):
        await session.flush()
        return {"action": "subscription_suspended", "subscription_id": subscription.id, "retry": True}
    error = invoice.get("last_payment_error") or {}
    session.add(PaymentHistory(
        subscription_id=subscription.id,
        stripe_payment_intent_id=invoice.get("payment_intent"),
        stripe_invoice_id=invoice["id"],
        stripe_event_id=event["id"],
        amount_in_cents=invoice["amount_due"],
        currency=(invoice.get("currency") or "usd").upper(),
        status=PaymentStatus.FAILED,
        payment_type=PaymentType.RECURRING,
        payment_method="card",
        failure_reason=error.get("code"),
        failure_message=error.get("message") or "Recurring payment failed",
        processed_at=utcnow(),
        payment_metadata={"source": "webhook", "event_type": event["type"]},
    ))
    await session.flush()

    logger.warning(f"Subscription {subscription.id} suspended after failed renewal")
    return {"action": "subscription_suspended", "subscription_id": subscription.id}


async def handle_subscription_changed(session: AsyncSession, event: Dict) -> Dict:
    """customer.subscription.created / updated: link the Stripe id and sync the status."""
    stripe_subscription = event["data"]["object"]
    subscription = await _subscription_by_stripe_id(session, stripe_subscription["id"])
    if subscription is None:
        metadata = stripe_subscription.get("metadata") or {}
        subscription = await _subscription_by_id(session, metadata.get("portall_subscription_id"))
        if subscription is None:
            return _skipped("subscription_not_found")
        subscription.stripe_subscription_id = stripe_subscription["id"]

    new_status = STRIPE_STATUS_MAP.get(stripe_subscription.get("status"), subscription.status)
    # A cancellation at period end stays "active" on Stripe until the period is over
    if subscription.status == SubscriptionStatus.CANCELLED and stripe_subscription.get("cancel_at_period_end"):
        new_status = SubscriptionStatus.CANCELLED

    old_status = subscription.status
    subscription.status = new_status
    if new_status == SubscriptionStatus.CANCELLED and subscription.cancelled_at is None:
        subscription.cancelled_at = utcnow()
    await session.flush()

    if old_status != new_status:
        logger.info(f"Subscription {subscription.id} status {old_status.value} -> {new_status.value}")
    return {
        "action": "subscription_synced",
        "subscription_id": subscription.id,
        "old_status": old_status.value,
        "new_status": new_status.value,
    }


async def handle_subscription_deleted(session: AsyncSession, event: Dict) -> Dict:
    stripe_subscription = event["data"]["object"]
    subscription = await _subscription_by_stripe_id(session, stripe_subscription["id"])
    if subscription is None:
        return _skipped("subscription_not_found")

    subscription.status = SubscriptionStatus.EXPIRED
    if subscription.cancelled_at is None:
        subscription.cancelled_at = utcnow()
    await session.flush()

    logger.info(f"Subscription {subscription.id} expired (deleted on Stripe)")
    return {"action": "subscription_expired", "subscription_id": subscription.id}


EVENT_HANDLERS = {
    "payment_intent.succeeded": handle_payment_intent_succeeded,
    "payment_intent.payment_failed": handle_payment_intent_failed,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
    "customer.subscription.created": handle_subscription_changed,
    "customer.subscription.updated": handle_subscription_changed,
    "customer.subscription.deleted": handle_subscription_deleted,
}

SUPPORTED_EVENTS = list(EVENT_HANDLERS)


async def process_event(session: AsyncSession, event: Dict) -> Dict:
    """
    Apply a verified Stripe event.

    Args:
        session: Database session
        event: Event dict with "id", "type" and "data.object"

    Returns:
        Dict always carrying "received": True, plus "duplicate",
        "unhandled" or the handler's "result"
    """
    event_id = event["id"]
    event_type = event["type"]

    if await is_duplicate_event(session, event_id):
        logger.info(f"Webhook event {event_id} already processed")
        return {"received": True, "duplicate": True, "event_id": event_id}

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled webhook event type {event_type}")
        return {"received": True, "unhandled": True, "event_type": event_type}

    result = await handler(session, event)
    logger.info(f"Webhook event {event_id} ({event_type}): {result['action']}")
    return {"received": True, "event_id": event_id, "event_type": event_type, "result": result}
