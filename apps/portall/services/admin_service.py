"""
Admin service layer: account approval workflow and platform statistics.
"""

import logging
from datetime import timedelta
from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, or_
from portall.database.models import User, UserType
from portall.services import user_service
from portall.services.errors import NotFoundError
from portall.utils.datetime_utils import utcnow, days_between

logger = logging.getLogger(__name__)

HIGH_PRIORITY_WAITING_DAYS = 7
MEDIUM_PRIORITY_WAITING_DAYS = 3
RECENT_REGISTRATION_DAYS = 30


def waiting_priority(waiting_days: int) -> str:
    if waiting_days > HIGH_PRIORITY_WAITING_DAYS:
        return "high"
    if waiting_days > MEDIUM_PRIORITY_WAITING_DAYS:
        return "medium"
    return "normal"


async def get_dashboard_stats(session: AsyncSession) -> Dict:
    """User counts by state and type, recent registrations and activation rate."""
    total = (await session.execute(select(func.count(User.id)))).scalar_one()
    active = (
        await session.execute(select(func.count(User.id)).where(User.is_active == True))  # noqa: E712
    ).scalar_one()
    pending = (
        await session.execute(
            select(func.count(User.id)).where(
                User.is_active == False,  # noqa: E712
                User.user_type != UserType.ADMIN,
            )
        )
    ).scalar_one()
    recent = (
        await session.execute(
            select(func.count(User.id)).where(
                User.created_at >= utcnow() - timedelta(days=RECENT_REGISTRATION_DAYS)
            )
        )
    ).scalar_one()

    by_type_rows = await session.execute(
        select(User.user_type, User.is_active, func.count(User.id)).group_by(User.user_type, User.is_active)
    )
    by_type = {t.value: {"total": 0, "active": 0, "pending": 0} for t in UserType}
    for user_type, is_active, count in by_type_rows.all():
        entry = by_type[user_type.value]
        entry["total"] += count
        entry["active" if is_active else "pending"] += count

    return {
        "users": {
            "total": total,
            "active": active,
            "pending": pending,
            "recent_registrations": recent,
            "by_type": by_type,
        },
        "activation_rate": round(active / total * 100, 1) if total else 0.0,
        "generated_at": utcnow().isoformat(),
    }


async def get_pending_users(
    session: AsyncSession,
    user_type: Optional[UserType] = None,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> Dict:
    """
    Inactive non-admin accounts awaiting approval, oldest first.

    Each entry carries waiting_days and a priority: high after 7 days
    waiting, medium after 3.
    """
    conditions = [User.is_active == False, User.user_type != UserType.ADMIN]  # noqa: E712
    if user_type is not None:
        conditions.append(User.user_type == UserType(user_type))
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(User.first_name.ilike(pattern), User.last_name.ilike(pattern), User.email.ilike(pattern))
        )

    total = await session.execute(select(func.count(User.id)).where(*conditions))
    result = await session.execute(
        user_service._user_query()
        .where(*conditions)
        .order_by(User.created_at.asc(), User.id.asc())
        .limit(limit)
        .offset(offset)
    )

    now = utcnow()
    users = []
    for user in result.scalars().all():
        waiting = days_between(user.created_at, now) if user.created_at else 0
        users.append({
            **user_service.user_to_dict(user),
            "waiting_days": waiting,
            "priority": waiting_priority(waiting),
        })
    return {"users": users, "total": total.scalar_one(), "limit": limit, "offset": offset}


async def get_user_details(session: AsyncSession, user_id: int) -> Dict:
    """
    Raises:
        NotFoundError: If the user does not exist
    """
    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _get_reviewable_user(session: AsyncSession, user_id: int) -> User:
    user = await user_service.get_user_model(session, user_id)
    if user is None:
        raise NotFoundError("User not found")
    if user.user_type == UserType.ADMIN:
        raise ValueError("Admin accounts cannot be reviewed")
    if user.is_active:
        raise ValueError("User account is already active")
    return user


async def approve_user(session: AsyncSession, user_id: int, admin: Dict) -> Dict:
    """
    Activate a pending account. A player's profile becomes visible.

    Raises:
        NotFoundError: If the user does not exist
        ValueError: If the user is an admin or already active
    """
    user = await _get_reviewable_user(session, user_id)
    user.is_active = True
    if user.user_type == UserType.PLAYER and user.player_profile is not None:
        user.player_profile.is_profile_visible = True
    await session.flush()

    logger.info(f"User {user_id} approved by admin {admin['id']}")
    return await user_service.get_user_by_id(session, user_id)


async def reject_user(
    session: AsyncSession,
    user_id: int,
    admin: Dict,
    reason: Optional[str] = None,
    delete_account: bool = False,
) -> Dict:
    """
    Reject a pending account, optionally deleting it.

    Deletion is a single DELETE on users; the profile, favorites,
    evaluations and subscription rows go with it through ON DELETE CASCADE.

    Returns:
        Dict with the user as it was before rejection plus "deleted"

    Raises:
        NotFoundError: If the user does not exist
        ValueError: If the user is an admin or already active
    """
    user = await _get_reviewable_user(session, user_id)
    snapshot = user_service.user_to_dict(user)

    if delete_account:
        await session.execute(delete(User).where(User.id == user_id))
        logger.info(f"User {user_id} rejected and deleted by admin {admin['id']}: {reason}")
    else:
        logger.info(f"User {user_id} rejected by admin {admin['id']}: {reason}")

    return {"user": snapshot, "deleted": delete_account, "reason": reason}
