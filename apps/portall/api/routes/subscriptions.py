"""Subscription route handlers: plan catalog, checkout and cancellation."""

import logging
from typing import Dict, Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portall.api.routes import to_http_exception
from portall.database.db import get_db_session
from portall.services import subscription_service, stripe_service
from portall.api.auth_dependencies import require_active_user, require_subscriber
from portall.models.schemas import SubscriptionCreate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/subscriptions/plans", response_model=Dict[str, Any])
async def list_plans(session: AsyncSession = Depends(get_db_session)):
    try:
        return await subscription_service.list_active_plans(session)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error listing plans: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading plans")


@router.post("/api/subscriptions/create", status_code=201, response_model=Dict[str, Any])
async def create_subscription(
    payload: SubscriptionCreate,
    user: dict = Depends(require_subscriber),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Charge the first period and activate the subscription.

    A declined card answers 402; the failed payment row is still committed
    because the handler returns instead of raising.
    """
    try:
        result = await subscription_service.create_subscription(
            session, user["id"], payload.plan_id, payload.payment_method_id
        )
    except ValueError as e:
        raise to_http_exception(e)
    except stripe_service.StripeError as e:
        logger.error(f"Stripe error creating subscription for user {user['id']}: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Payment processor error")
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error creating subscription: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error creating subscription")

    if result["payment"]["status"] == "failed":
        return JSONResponse(
            status_code=402,
            content={
                "status": "error",
                "message": result["payment"]["failure_message"] or "Payment failed",
                "data": result,
            },
        )
    if result["requires_action"]:
        return JSONResponse(
            status_code=202,
            content={
                "status": "requires_action",
                "message": "Additional authentication required to complete the payment",
                "data": result,
            },
        )
    return {"status": "success", "message": "Subscription activated", "data": result}


@router.get("/api/subscriptions/my-subscription", response_model=Dict[str, Any])
async def get_my_subscription(
    user: dict = Depends(require_active_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        subscription = await subscription_service.get_my_subscription(session, user["id"])
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error loading subscription: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading subscription")
    return {
        "status": "success",
        "message": "Subscription found" if subscription else "No subscription",
        "data": subscription,
    }


@router.post("/api/subscriptions/cancel", response_model=Dict[str, Any])
async def cancel_subscription(
    user: dict = Depends(require_active_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        subscription = await subscription_service.cancel_subscription(session, user["id"])
    except ValueError as e:
        raise to_http_exception(e)
    except stripe_service.StripeError as e:
        logger.error(f"Stripe error cancelling subscription for user {user['id']}: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Payment processor error")
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error cancelling subscription: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error cancelling subscription")
    return {
        "status": "success",
        "message": "Subscription cancelled. Access continues until the end of the current period.",
        "data": subscription,
    }
