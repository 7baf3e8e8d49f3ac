"""Admin route handlers: dashboard and account approval workflow."""

import asyncio
import logging
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portall.api.routes import to_http_exception
from portall.database.db import get_db_session
from portall.database.models import UserType
from portall.services import admin_service, email_service
from portall.api.auth_dependencies import require_admin
from portall.models.schemas import RejectUserRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/admin/dashboard", response_model=Dict[str, Any])
async def get_dashboard(
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await admin_service.get_dashboard_stats(session)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error loading admin dashboard: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading dashboard")


@router.get("/api/admin/users/pending", response_model=Dict[str, Any])
async def get_pending_users(
    user_type: Optional[UserType] = None,
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await admin_service.get_pending_users(
            session, user_type=user_type, search=search, limit=limit, offset=offset
        )
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error listing pending users: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing pending users")


@router.get("/api/admin/users/{user_id}", response_model=Dict[str, Any])
async def get_user_details(
    user_id: int,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await admin_service.get_user_details(session, user_id)
    except ValueError as e:
        raise to_http_exception(e)


@router.post("/api/admin/users/{user_id}/approve", response_model=Dict[str, Any])
async def approve_user(
    user_id: int,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        approved = await admin_service.approve_user(session, user_id, user)
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error approving user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error approving user")

    await session.commit()
    await asyncio.to_thread(email_service.send_account_approved_email, approved, user["full_name"])
    return {"status": "success", "message": "User approved", "data": approved}


@router.post("/api/admin/users/{user_id}/reject", response_model=Dict[str, Any])
async def reject_user(
    user_id: int,
    payload: RejectUserRequest,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        result = await admin_service.reject_user(
            session, user_id, user, reason=payload.reason, delete_account=payload.delete_account
        )
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error rejecting user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error rejecting user")

    await session.commit()
    await asyncio.to_thread(email_service.send_account_rejected_email, result["user"], payload.reason)
    message = "User rejected and account deleted" if result["deleted"] else "User rejected"
    return {"status": "success", "message": message, "data": result}
