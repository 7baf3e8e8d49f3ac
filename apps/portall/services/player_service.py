"""
Player service layer: profile management, visibility, search, and view tracking.
"""

import logging
from typing import Optional, Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.orm import selectinload
from portall.database.models import (
    User,
    UserType,
    Gender,
    PlayerProfile,
    PlayerPosition,
    CoachFavorite,
    NJCAACollege,
    ProfileCompletionStatus,
)
from portall.services.errors import NotFoundError, PermissionDeniedError
from portall.services.serializers import serialize_player_profile
from portall.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# Fields counted by the profile completion percentage
COMPLETION_FIELDS = (
    "gender",
    "college_id",
    "date_of_birth",
    "height",
    "weight",
    "position",
    "current_year",
    "graduation_year",
)
USER_COMPLETION_FIELDS = ("first_name", "last_name", "email")

EDITABLE_FIELDS = (
    "gender",
    "college_id",
    "date_of_birth",
    "height",
    "weight",
    "position",
    "current_year",
    "graduation_year",
)

# Views a profile needs before the "increase your visibility" tip goes away
LOW_VIEWS_THRESHOLD = 10


def _profile_query():
    return select(PlayerProfile).options(
        selectinload(PlayerProfile.user), selectinload(PlayerProfile.college)
    )


async def get_profile_by_user_id(session: AsyncSession, user_id: int) -> PlayerProfile:
    """
    Load the player profile of a user, with user and college.

    Raises:
        NotFoundError: If the user has no player profile
    """
    result = await session.execute(
        _profile_query()
        .where(PlayerProfile.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError("Player profile not found")
    return profile


async def get_profile_by_id(session: AsyncSession, player_id: int) -> PlayerProfile:
    result = await session.execute(
        _profile_query()
        .where(PlayerProfile.id == player_id)
        .execution_options(populate_existing=True)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError("Player profile not found")
    return profile


def calculate_profile_completion(profile: PlayerProfile) -> int:
    """Percentage (0-100) of completion fields that are filled in."""
    filled = sum(1 for f in COMPLETION_FIELDS if getattr(profile, f) not in (None, ""))
    user = profile.__dict__.get("user")
    if user is not None:
        filled += sum(1 for f in USER_COMPLETION_FIELDS if getattr(user, f))
    total = len(COMPLETION_FIELDS) + len(USER_COMPLETION_FIELDS)
    return round(filled / total * 100)


def determine_completion_status(percentage: int) -> ProfileCompletionStatus:
    if percentage < 50:
        return ProfileCompletionStatus.BASIC
    if percentage < 80:
        return ProfileCompletionStatus.COMPLETED
    return ProfileCompletionStatus.PREMIUM


def _recommendations(profile: PlayerProfile, completion: int) -> List[Dict]:
    recommendations = []
    if completion < 70:
        recommendations.append({
            "type": "profile_completion",
            "title": "Complete Your Profile",
            "description": "A complete profile gets more views from coaches",
            "priority": "high",
        })
    if not profile.is_profile_visible:
        recommendations.append({
            "type": "visibility",
            "title": "Make Your Profile Visible",
            "description": "Hidden profiles can't be discovered by coaches",
            "priority": "medium",
        })
    if profile.profile_views < LOW_VIEWS_THRESHOLD:
        recommendations.append({
            "type": "exposure",
            "title": "Increase Your Visibility",
            "description": "Add more details to help coaches find you",
            "priority": "medium",
        })
    return recommendations


async def get_dashboard(session: AsyncSession, user_id: int) -> Dict:
    """
    Compose the player dashboard.

    Returns:
        Dict with profile (plus completion_percentage), statistics,
        recent_activity and recommendations
    """
    profile = await get_profile_by_user_id(session, user_id)
    completion = calculate_profile_completion(profile)

    activity = [{
        "type": "profile_created",
        "description": "Profile created",
        "timestamp": profile.created_at,
    }]
    if profile.last_profile_update:
        activity.append({
            "type": "profile_update",
            "description": "Profile information updated",
            "timestamp": profile.last_profile_update,
        })
    activity.sort(key=lambda a: a["timestamp"], reverse=True)
    last_activity = profile.last_profile_update or profile.created_at

    return {
        "profile": {**serialize_player_profile(profile), "completion_percentage": completion},
        "statistics": {
            "total_views": profile.profile_views,
            "profile_score": completion,
            "visibility": "Public" if profile.is_profile_visible else "Private",
            "member_since": profile.created_at.isoformat() if profile.created_at else None,
            "last_activity": last_activity.isoformat() if last_activity else None,
        },
        "recent_activity": [
            {**a, "timestamp": a["timestamp"].isoformat()} for a in activity[:10]
        ],
        "recommendations": _recommendations(profile, completion),
        "last_updated": utcnow().isoformat(),
    }


async def get_analytics(session: AsyncSession, user_id: int) -> Dict:
    profile = await get_profile_by_user_id(session, user_id)
    completion = calculate_profile_completion(profile)
    favorited_count = await session.execute(
        select(func.count(CoachFavorite.id)).where(CoachFavorite.player_profile_id == profile.id)
    )
    return {
        "profile_views": {"total": profile.profile_views},
        "profile_metrics": {
            "completion_percentage": completion,
            "completion_status": determine_completion_status(completion).value,
            "is_visible": profile.is_profile_visible,
            "last_update": profile.last_profile_update.isoformat() if profile.last_profile_update else None,
        },
        "coach_interest": {"favorited_by_coaches": favorited_count.scalar_one()},
    }


async def increment_profile_views(session: AsyncSession, player_id: int) -> int:
    """Atomically bump profile_views; returns the new count."""
    result = await session.execute(
        update(PlayerProfile)
        .where(PlayerProfile.id == player_id)
        .values(profile_views=PlayerProfile.profile_views + 1)
        .returning(PlayerProfile.profile_views)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one()


async def get_player_profile_for_viewer(
    session: AsyncSession, player_id: int, viewer: Dict
) -> Dict:
    """
    Fetch a player profile as seen by another user.

    Private profiles are only visible to their owner and to admins. A view
    by a recruiter (coach or NJCAA coach) increments the view counter.

    Raises:
        NotFoundError: If the profile does not exist
        PermissionDeniedError: If the profile is private and the viewer may not see it
    """
    profile = await get_profile_by_id(session, player_id)
    is_own = profile.user_id == viewer["id"]
    is_admin = viewer["user_type"] == UserType.ADMIN.value

    if not profile.is_profile_visible and not is_own and not is_admin:
        raise PermissionDeniedError("This player profile is private")

    data = serialize_player_profile(profile)
    if not is_own and viewer["user_type"] in (UserType.COACH.value, UserType.NJCAA_COACH.value):
        data["profile_views"] = await increment_profile_views(session, profile.id)
        logger.info(f"Profile view recorded for player {player_id} by user {viewer['id']}")

    data.update({
        "is_own_profile": is_own,
        "can_edit": is_own or is_admin,
        "viewer_type": viewer["user_type"],
    })
    return data


async def update_profile(session: AsyncSession, user_id: int, changes: Dict) -> Dict:
    """
    Update the caller's player profile.

    Only keys present in `changes` are written. Recomputes the completion
    status and stamps last_profile_update.

    Raises:
        NotFoundError: If the user has no player profile
        ValueError: If the new college is unknown or inactive
    """
    profile = await get_profile_by_user_id(session, user_id)

    new_college_id = changes.get("college_id")
    if new_college_id is not None and new_college_id != profile.college_id:
        college = await session.get(NJCAACollege, new_college_id)
        if college is None or not college.is_active:
            raise ValueError("Selected college is not valid or inactive")

    for field in EDITABLE_FIELDS:
        if field in changes:
            setattr(profile, field, changes[field])
    profile.last_profile_update = utcnow()
    await session.flush()

    profile = await get_profile_by_user_id(session, user_id)
    completion = calculate_profile_completion(profile)
    profile.profile_completion_status = determine_completion_status(completion)
    await session.flush()

    logger.info(f"Player profile {profile.id} updated ({completion}% complete)")
    return {**serialize_player_profile(profile), "completion_percentage": completion}


async def set_profile_visibility(session: AsyncSession, user_id: int, is_visible: bool) -> Dict:
    profile = await get_profile_by_user_id(session, user_id)
    profile.is_profile_visible = is_visible
    profile.last_profile_update = utcnow()
    await session.flush()
    logger.info(f"Player profile {profile.id} visibility set to {is_visible}")
    return {"id": profile.id, "is_profile_visible": profile.is_profile_visible}


async def find_visible_profiles(
    session: AsyncSession,
    gender: Optional[Gender] = None,
    position: Optional[PlayerPosition] = None,
    state: Optional[str] = None,
    region: Optional[str] = None,
    college_id: Optional[int] = None,
    min_views: int = 0,
    limit: int = 20,
    offset: int = 0,
) -> Dict:
    """
    Search profiles that recruiters may see: visible and owned by an active user.

    Args:
        session: Database session
        gender: Optional gender filter
        position: Optional position filter
        state: Optional college state (2-letter, any case)
        region: Optional college region
        college_id: Optional college
        min_views: Minimum profile_views
        limit: Page size
        offset: Rows to skip

    Returns:
        Dict with "players" (ordered by profile_views desc) and "total"
    """
    conditions = [
        PlayerProfile.is_profile_visible == True,  # noqa: E712
        User.is_active == True,  # noqa: E712
    ]
    if gender is not None:
        conditions.append(PlayerProfile.gender == gender)
    if position is not None:
        conditions.append(PlayerProfile.position == position)
    if college_id is not None:
        conditions.append(PlayerProfile.college_id == college_id)
    if min_views:
        conditions.append(PlayerProfile.profile_views >= min_views)
    if state:
        conditions.append(NJCAACollege.state == state.strip().upper())
    if region:
        conditions.append(NJCAACollege.region == region.strip())

    base = (
        select(PlayerProfile)
        .join(User, PlayerProfile.user_id == User.id)
        .join(NJCAACollege, PlayerProfile.college_id == NJCAACollege.id)
        .where(*conditions)
    )
    total = await session.execute(select(func.count()).select_from(base.subquery()))
    result = await session.execute(
        base.options(selectinload(PlayerProfile.user), selectinload(PlayerProfile.college))
        .order_by(PlayerProfile.profile_views.desc(), PlayerProfile.id)
        .limit(limit)
        .offset(offset)
    )
    return {
        "players": [serialize_player_profile(p) for p in result.scalars().all()],
        "total": total.scalar_one(),
    }


async def record_profile_view(session: AsyncSession, player_id: int, viewer_id: int) -> Dict:
    """
    Count a profile view unless the viewer owns the profile.

    Raises:
        NotFoundError: If the profile does not exist
    """
    result = await session.execute(
        select(PlayerProfile.user_id, PlayerProfile.profile_views).where(PlayerProfile.id == player_id)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("Player profile not found")

    if row.user_id == viewer_id:
        return {"player_id": player_id, "recorded": False, "profile_views": row.profile_views}

    views = await increment_profile_views(session, player_id)
    return {"player_id": player_id, "recorded": True, "profile_views": views}
