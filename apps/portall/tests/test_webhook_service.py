"""
Tests for Stripe webhook processing: idempotency, renewals, status sync.
"""
import pytest
from datetime import timedelta
from sqlalchemy import select, func
from portall.database.models import (
    UserType,
    BillingInterval,
    UserSubscription,
    SubscriptionStatus,
    PaymentHistory,
)
from portall.services import webhook_service, stripe_service
from portall.utils.datetime_utils import utcnow


async def _subscription(db_session, builders, status=SubscriptionStatus.ACTIVE, interval=BillingInterval.MONTH,
                        stripe_subscription_id="sub_123", ends_at=None):
    plan = await builders.plan(db_session, interval)
    user = await builders.user(db_session, "subscriber@example.com", UserType.COACH)
    subscription = UserSubscription(
        user_id=user.id,
        plan_id=plan.id,
        status=status,
        stripe_customer_id="cus_123",
        stripe_subscription_id=stripe_subscription_id,
        started_at=utcnow() - timedelta(days=30),
        ends_at=ends_at,
    )
    db_session.add(subscription)
    await db_session.flush()
    return subscription


def _event(event_type, obj, event_id="evt_1"):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def _invoice(amount=2999, billing_reason="subscription_cycle", invoice_id="in_1"):
    return {
        "id": invoice_id,
        "subscription": "sub_123",
        "payment_intent": f"pi_{invoice_id}",
        "amount_paid": amount,
        "amount_due": amount,
        "currency": "usd",
        "billing_reason": billing_reason,
    }


async def _payment_count(db_session):
    return (await db_session.execute(select(func.count(PaymentHistory.id)))).scalar_one()


@pytest.mark.asyncio
async def test_renewal_extends_period_and_is_idempotent(db_session, builders):
    ends_at = utcnow() + timedelta(days=2)
    subscription = await _subscription(db_session, builders, ends_at=ends_at)
    event = _event("invoice.payment_succeeded", _invoice())

    result = await webhook_service.process_event(db_session, event)
    assert result["result"]["action"] == "subscription_renewed"
    assert subscription.ends_at > ends_at + timedelta(days=27)
    assert await _payment_count(db_session) == 1

    duplicate = await webhook_service.process_event(db_session, event)
    assert duplicate == {"received": True, "duplicate": True, "event_id": "evt_1"}
    assert await _payment_count(db_session) == 1


@pytest.mark.asyncio
async def test_renewal_of_lapsed_subscription_starts_from_now(db_session, builders):
    subscription = await _subscription(
        db_session, builders, status=SubscriptionStatus.SUSPENDED, ends_at=utcnow() - timedelta(days=10)
    )

    await webhook_service.process_event(db_session, _event("invoice.payment_succeeded", _invoice()))

    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.ends_at > utcnow() + timedelta(days=27)


@pytest.mark.asyncio
async def test_initial_invoice_is_skipped(db_session, builders):
    await _subscription(db_session, builders, ends_at=utcnow() + timedelta(days=30))
    event = _event("invoice.payment_succeeded", _invoice(billing_reason="subscription_create"))

    result = await webhook_service.process_event(db_session, event)
    assert result["result"] == {"action": "skipped", "reason": "initial_invoice"}
    assert await _payment_count(db_session) == 0


@pytest.mark.asyncio
async def test_failed_renewal_suspends(db_session, builders):
    subscription = await _subscription(db_session, builders, ends_at=utcnow())

    result = await webhook_service.process_event(db_session, _event("invoice.payment_failed", _invoice()))
    assert result["result"]["action"] == "subscription_suspended"
    assert subscription.status == SubscriptionStatus.SUSPENDED

    payment = (await db_session.execute(select(PaymentHistory))).scalar_one()
    assert payment.status.value == "failed"
    assert payment.payment_type.value == "recurring"


@pytest.mark.asyncio
async def test_retried_invoice_records_failure_then_success(db_session, builders):
    subscription = await _subscription(db_session, builders, ends_at=utcnow())
    invoice = _invoice(invoice_id="in_retry")

    await webhook_service.process_event(db_session, _event("invoice.payment_failed", invoice, event_id="evt_f1"))
    assert subscription.status == SubscriptionStatus.SUSPENDED

    # Stripe's smart retry fails again on the same PaymentIntent
    again = await webhook_service.process_event(
        db_session, _event("invoice.payment_failed", invoice, event_id="evt_f2")
    )
    assert again["result"]["retry"] is True
    assert await _payment_count(db_session) == 1

    result = await webhook_service.process_event(
        db_session, _event("invoice.payment_succeeded", invoice, event_id="evt_s1")
    )
    assert result["result"]["action"] == "subscription_renewed"
    assert subscription.status == SubscriptionStatus.ACTIVE

    rows = (await db_session.execute(
        select(PaymentHistory.status).where(PaymentHistory.stripe_payment_intent_id == "pi_in_retry")
    )).scalars().all()
    assert sorted(s.value for s in rows) == ["failed", "succeeded"]


@pytest.mark.asyncio
async def test_payment_intent_succeeded_activates_pending(db_session, builders, monkeypatch):
    created = []
    monkeypatch.setattr(
        stripe_service, "create_subscription",
        lambda customer_id, price_id, metadata=None: created.append(price_id) or "sub_new",
    )
    subscription = await _subscription(
        db_session, builders, status=SubscriptionStatus.PENDING, stripe_subscription_id=None
    )
    intent = {
        "id": "pi_3ds",
        "amount": 2999,
        "currency": "usd",
        "metadata": {"portall_subscription_id": str(subscription.id)},
    }

    result = await webhook_service.process_event(db_session, _event("payment_intent.succeeded", intent))
    assert result["result"]["action"] == "subscription_activated"
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.stripe_subscription_id == "sub_new"
    assert created == ["price_test_month"]

    # Same intent delivered under a new event id is not recorded twice
    again = await webhook_service.process_event(
        db_session, _event("payment_intent.succeeded", intent, event_id="evt_2")
    )
    assert again["result"]["reason"] == "payment_already_recorded"
    assert await _payment_count(db_session) == 1


@pytest.mark.asyncio
async def test_payment_intent_failed_suspends_pending(db_session, builders):
    subscription = await _subscription(db_session, builders, status=SubscriptionStatus.PENDING)
    intent = {
        "id": "pi_fail",
        "amount": 2999,
        "metadata": {"portall_subscription_id": str(subscription.id)},
        "last_payment_error": {"code": "card_declined", "message": "Declined"},
    }

    await webhook_service.process_event(db_session, _event("payment_intent.payment_failed", intent))
    assert subscription.status == SubscriptionStatus.SUSPENDED


@pytest.mark.asyncio
@pytest.mark.parametrize("stripe_status,expected", [
    ("active", SubscriptionStatus.ACTIVE),
    ("trialing", SubscriptionStatus.ACTIVE),
    ("past_due", SubscriptionStatus.SUSPENDED),
    ("unpaid", SubscriptionStatus.SUSPENDED),
    ("canceled", SubscriptionStatus.CANCELLED),
    ("incomplete", SubscriptionStatus.PENDING),
])
async def test_subscription_updated_maps_status(db_session, builders, stripe_status, expected):
    subscription = await _subscription(db_session, builders)
    event = _event("customer.subscription.updated", {"id": "sub_123", "status": stripe_status})

    result = await webhook_service.process_event(db_session, event)
    assert result["result"]["new_status"] == expected.value
    assert subscription.status == expected
    if expected == SubscriptionStatus.CANCELLED:
        assert subscription.cancelled_at is not None


@pytest.mark.asyncio
async def test_cancel_at_period_end_keeps_cancelled_status(db_session, builders):
    subscription = await _subscription(db_session, builders, status=SubscriptionStatus.CANCELLED)
    event = _event(
        "customer.subscription.updated",
        {"id": "sub_123", "status": "active", "cancel_at_period_end": True},
    )

    await webhook_service.process_event(db_session, event)
    assert subscription.status == SubscriptionStatus.CANCELLED


@pytest.mark.asyncio
async def test_subscription_created_links_by_metadata(db_session, builders):
    subscription = await _subscription(
        db_session, builders, status=SubscriptionStatus.ACTIVE, stripe_subscription_id=None
    )
    event = _event(
        "customer.subscription.created",
        {"id": "sub_linked", "status": "active", "metadata": {"portall_subscription_id": str(subscription.id)}},
    )

    await webhook_service.process_event(db_session, event)
    assert subscription.stripe_subscription_id == "sub_linked"


@pytest.mark.asyncio
async def test_subscription_deleted_expires(db_session, builders):
    subscription = await _subscription(db_session, builders)

    await webhook_service.process_event(db_session, _event("customer.subscription.deleted", {"id": "sub_123"}))
    assert subscription.status == SubscriptionStatus.EXPIRED
    assert subscription.cancelled_at is not None


@pytest.mark.asyncio
async def test_unknown_subscription_and_event_type(db_session):
    missing = await webhook_service.process_event(
        db_session, _event("customer.subscription.deleted", {"id": "sub_unknown"})
    )
    assert missing["result"]["reason"] == "subscription_not_found"

    unhandled = await webhook_service.process_event(db_session, _event("charge.refunded", {"id": "ch_1"}))
    assert unhandled == {"received": True, "unhandled": True, "event_type": "charge.refunded"}
