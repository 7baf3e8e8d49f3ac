"""
Thin wrapper around the Stripe SDK.

Keeps every call to the payment processor in one module so the
subscription and webhook services (and their tests) never touch the SDK
directly.
"""

import os
import json
import logging
from typing import Dict, Optional
import stripe
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

stripe.api_key = STRIPE_SECRET_KEY

# Re-exported so callers can catch processor errors without importing stripe
CardError = stripe.CardError
StripeError = stripe.StripeError
SignatureVerificationError = stripe.SignatureVerificationError


def create_customer(email: str, name: str, user_id: int) -> str:
    """Create a Stripe customer and return its id (cus_...)."""
    customer = stripe.Customer.create(
        email=email,
        name=name,
        metadata={"portall_user_id": str(user_id)},
    )
    logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
    return customer.id


def create_payment_intent(
    amount_in_cents: int,
    currency: str,
    customer_id: str,
    payment_method_id: str,
    metadata: Optional[Dict] = None,
):
    """
    Create and confirm a card PaymentIntent.

    Raises:
        CardError: If the card is declined
    """
    return stripe.PaymentIntent.create(
        amount=amount_in_cents,
        currency=currency.lower(),
        customer=customer_id,
        payment_method=payment_method_id,
        payment_method_types=["card"],
        confirm=True,
        return_url=f"{FRONTEND_URL}/subscription/success",
        metadata={k: str(v) for k, v in (metadata or {}).items()},
    )


def create_subscription(customer_id: str, price_id: str, metadata: Optional[Dict] = None) -> str:
    """Create the recurring Stripe subscription and return its id (sub_...)."""
    subscription = stripe.Subscription.create(
        customer=customer_id,
        items=[{"price": price_id}],
        metadata={k: str(v) for k, v in (metadata or {}).items()},
    )
    return subscription.id


def cancel_at_period_end(subscription_id: str) -> None:
    stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)
    logger.info(f"Stripe subscription {subscription_id} set to cancel at period end")


def construct_event(payload: bytes, signature: str):
    """
    Verify a webhook payload signature and return the event as a plain dict.

    Raises:
        SignatureVerificationError: If the signature does not match
        ValueError: If the payload is not valid JSON
    """
    stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
    return json.loads(payload)
