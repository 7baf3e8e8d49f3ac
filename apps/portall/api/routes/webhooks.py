"""Stripe webhook route handlers."""

import logging
from typing import Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portall.api.routes import limiter, WEBHOOK_RATE_LIMIT
from portall.database.db import get_db_session
from portall.services import stripe_service, webhook_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/webhooks/stripe", response_model=Dict[str, Any])
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def stripe_webhook(request: Request, session: AsyncSession = Depends(get_db_session)):
    """
    Receive a Stripe event.

    The signature is checked against the raw body, so the payload is read
    from the request directly rather than through a Pydantic model.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    try:
        event = stripe_service.construct_event(payload, signature)
    except stripe_service.SignatureVerificationError:
        logger.warning("Rejected webhook with invalid signature")
        raise HTTPException(status_code=400, detail="Invalid signature")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    try:
        return await webhook_service.process_event(session, event)
    except IntegrityError:
        raise
    except Exception as e:
        # A 500 makes Stripe retry the event later
        logger.error(f"Error processing webhook event {event.get('id')}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Webhook processing failed")


@router.get("/api/webhooks/events", response_model=Dict[str, Any])
async def list_supported_events():
    return {"supported_events": webhook_service.SUPPORTED_EVENTS, "total": len(webhook_service.SUPPORTED_EVENTS)}
