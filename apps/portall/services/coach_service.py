"""
Coach (NCAA/NAIA) service layer: profile, dashboard, favorites, saved searches.
"""

import logging
import uuid
from typing import Optional, Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from portall.database.models import (
    CoachProfile,
    CoachFavorite,
    PlayerProfile,
    NCAACollege,
    FavoritePriority,
    RecruitmentStatus,
    MAX_SAVED_SEARCHES,
)
from portall.services.errors import ConflictError, NotFoundError, PermissionDeniedError
from portall.services.serializers import serialize_coach_profile, serialize_favorite
from portall.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("position", "phone_number", "college_id", "division", "team_sport")
COMPLETENESS_FIELDS = ("position", "phone_number", "college_id", "division", "team_sport")
ACTIVE_RECRUITMENT_STATUSES = (
    RecruitmentStatus.INTERESTED,
    RecruitmentStatus.CONTACTED,
    RecruitmentStatus.EVALUATING,
)
SEARCH_CRITERIA_KEYS = ("gender", "position", "state", "region", "college_id", "min_views")


async def get_profile_by_user_id(session: AsyncSession, user_id: int) -> CoachProfile:
    """
    Load a coach profile with user and college.

    Raises:
        NotFoundError: If the user has no coach profile
    """
    result = await session.execute(
        select(CoachProfile)
        .options(selectinload(CoachProfile.user), selectinload(CoachProfile.college))
        .where(CoachProfile.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError("Coach profile not found")
    return profile


def calculate_profile_completeness(profile: CoachProfile) -> int:
    filled = sum(1 for f in COMPLETENESS_FIELDS if getattr(profile, f))
    user = profile.__dict__.get("user")
    if user is not None:
        filled += sum(1 for f in ("first_name", "last_name", "email") if getattr(user, f))
    return round(filled / (len(COMPLETENESS_FIELDS) + 3) * 100)


async def get_favorites_summary(session: AsyncSession, coach_profile_id: int) -> Dict:
    """Favorite counts in total, by priority and by recruitment status."""
    summary = {
        "total": 0,
        "by_priority": {p.value: 0 for p in FavoritePriority},
        "by_status": {s.value: 0 for s in RecruitmentStatus},
    }
    result = await session.execute(
        select(CoachFavorite.priority_level, CoachFavorite.recruitment_status, func.count())
        .where(CoachFavorite.coach_profile_id == coach_profile_id)
        .group_by(CoachFavorite.priority_level, CoachFavorite.recruitment_status)
    )
    for priority, status, count in result.all():
        summary["total"] += count
        summary["by_priority"][priority.value] += count
        summary["by_status"][status.value] += count
    return summary


async def _recruiting_stats(session: AsyncSession, coach_profile_id: int) -> Dict:
    month_start = utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    result = await session.execute(
        select(CoachFavorite).where(CoachFavorite.coach_profile_id == coach_profile_id)
    )
    favorites = result.scalars().all()
    return {
        "total_favorites": len(favorites),
        "active_recruitments": sum(
            1 for f in favorites if f.recruitment_status in ACTIVE_RECRUITMENT_STATUSES
        ),
        "this_month": {
            "new_favorites": sum(1 for f in favorites if f.favorited_at and f.favorited_at >= month_start),
            "contacts_made": sum(
                1 for f in favorites if f.last_contacted and f.last_contacted >= month_start
            ),
        },
    }


def _recommendations(profile: CoachProfile, completeness: int) -> List[Dict]:
    recommendations = []
    if completeness < 70:
        recommendations.append({
            "type": "profile_completion",
            "title": "Complete Your Profile",
            "description": "A complete profile builds trust with potential recruits",
            "priority": "high",
        })
    if (profile.total_searches or 0) < 5:
        recommendations.append({
            "type": "search_activity",
            "title": "Start Searching for Players",
            "description": "Use the player search to find players that match your needs",
            "priority": "medium",
        })
    return recommendations


async def get_dashboard(session: AsyncSession, user_id: int) -> Dict:
    """
    Compose the coach dashboard.

    Returns:
        Dict with profile (plus completeness), recruiting (recent favorites,
        top saved searches, statistics) and recommendations
    """
    profile = await get_profile_by_user_id(session, user_id)
    completeness = calculate_profile_completeness(profile)

    recent = await session.execute(
        select(CoachFavorite)
        .options(
            selectinload(CoachFavorite.player_profile).selectinload(PlayerProfile.user),
            selectinload(CoachFavorite.player_profile).selectinload(PlayerProfile.college),
        )
        .where(CoachFavorite.coach_profile_id == profile.id)
        .order_by(CoachFavorite.favorited_at.desc())
        .limit(5)
    )
    saved = sorted(
        profile.saved_searches or [], key=lambda s: s.get("use_count", 0), reverse=True
    )

    return {
        "profile": {**serialize_coach_profile(profile), "profile_completeness": completeness},
        "recruiting": {
            "recent_favorites": [serialize_favorite(f) for f in recent.scalars().all()],
            "saved_searches": saved[:3],
            "statistics": await _recruiting_stats(session, profile.id),
        },
        "recommendations": _recommendations(profile, completeness),
        "last_updated": utcnow().isoformat(),
    }


async def get_analytics(session: AsyncSession, user_id: int) -> Dict:
    profile = await get_profile_by_user_id(session, user_id)
    return {
        "search_activity": {
            "total_searches": profile.total_searches,
            "saved_searches": len(profile.saved_searches or []),
        },
        "favorites": await get_favorites_summary(session, profile.id),
        "recruiting": await _recruiting_stats(session, profile.id),
    }


async def get_public_profile(session: AsyncSession, coach_id: int) -> Dict:
    """Coach profile as shown to other users (no phone number, no saved searches)."""
    result = await session.execute(
        select(CoachProfile)
        .options(selectinload(CoachProfile.user), selectinload(CoachProfile.college))
        .where(CoachProfile.id == coach_id)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError("Coach profile not found")
    return serialize_coach_profile(profile, public=True)


async def update_profile(session: AsyncSession, user_id: int, changes: Dict) -> Dict:
    """
    Update the caller's coach profile.

    Raises:
        NotFoundError: If the user has no coach profile
        ValueError: If the new college is unknown or inactive
    """
    profile = await get_profile_by_user_id(session, user_id)

    new_college_id = changes.get("college_id")
    if new_college_id is not None and new_college_id != profile.college_id:
        college = await session.get(NCAACollege, new_college_id)
        if college is None or not college.is_active:
            raise ValueError("Selected college is not valid or inactive")

    for field in EDITABLE_FIELDS:
        if changes.get(field) is not None:
            setattr(profile, field, changes[field])
    profile.last_profile_update = utcnow()
    await session.flush()

    profile = await get_profile_by_user_id(session, user_id)
    logger.info(f"Coach profile {profile.id} updated")
    return {
        **serialize_coach_profile(profile),
        "profile_completeness": calculate_profile_completeness(profile),
    }


# ---------------------------------------------------------------------------
# Favorites
# ---------------------------------------------------------------------------


async def _get_favorite(session: AsyncSession, coach_profile_id: int, player_id: int) -> Optional[CoachFavorite]:
    result = await session.execute(
        select(CoachFavorite)
        .options(
            selectinload(CoachFavorite.player_profile).selectinload(PlayerProfile.user),
            selectinload(CoachFavorite.player_profile).selectinload(PlayerProfile.college),
        )
        .where(
            CoachFavorite.coach_profile_id == coach_profile_id,
            CoachFavorite.player_profile_id == player_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def add_favorite(
    session: AsyncSession,
    user_id: int,
    player_id: int,
    priority_level: FavoritePriority = FavoritePriority.MEDIUM,
    recruitment_status: RecruitmentStatus = RecruitmentStatus.INTERESTED,
    notes: Optional[str] = None,
) -> Dict:
    """
    Bookmark a visible player.

    Raises:
        NotFoundError: If the coach or player profile does not exist
        PermissionDeniedError: If the player profile is not visible
        ConflictError: If the player is already a favorite
    """
    coach = await get_profile_by_user_id(session, user_id)
    player = await session.get(PlayerProfile, player_id)
    if player is None:
        raise NotFoundError("Player not found")
    if not player.is_profile_visible:
        raise PermissionDeniedError("This player profile is private")
    if await _get_favorite(session, coach.id, player_id) is not None:
        raise ConflictError("Player already in favorites")

    now = utcnow()
    favorite = CoachFavorite(
        coach_profile_id=coach.id,
        player_profile_id=player_id,
        priority_level=FavoritePriority(priority_level),
        recruitment_status=RecruitmentStatus(recruitment_status),
        notes=notes,
        favorited_at=now,
        updated_at=now,
    )
    session.add(favorite)
    await session.flush()
    logger.info(f"Coach {coach.id} added player {player_id} to favorites")

    favorite = await _get_favorite(session, coach.id, player_id)
    return serialize_favorite(favorite)


async def update_favorite(session: AsyncSession, user_id: int, player_id: int, changes: Dict) -> Dict:
    """
    Update notes, priority, recruitment status or last_contacted of a favorite.

    Raises:
        NotFoundError: If the player is not among the coach's favorites
    """
    coach = await get_profile_by_user_id(session, user_id)
    favorite = await _get_favorite(session, coach.id, player_id)
    if favorite is None:
        raise NotFoundError("Player not found in favorites")

    if changes.get("priority_level") is not None:
        favorite.priority_level = FavoritePriority(changes["priority_level"])
    if changes.get("recruitment_status") is not None:
        new_status = RecruitmentStatus(changes["recruitment_status"])
        if new_status == RecruitmentStatus.CONTACTED and favorite.recruitment_status != new_status:
            favorite.last_contacted = utcnow()
        favorite.recruitment_status = new_status
    if "notes" in changes:
        favorite.notes = changes["notes"]
    if changes.get("last_contacted") is not None:
        favorite.last_contacted = changes["last_contacted"]
    favorite.updated_at = utcnow()
    await session.flush()
    return serialize_favorite(favorite)


async def remove_favorite(session: AsyncSession, user_id: int, player_id: int) -> None:
    """
    Raises:
        NotFoundError: If the player is not among the coach's favorites
    """
    coach = await get_profile_by_user_id(session, user_id)
    favorite = await _get_favorite(session, coach.id, player_id)
    if favorite is None:
        raise NotFoundError("Player not found in favorites")
    await session.delete(favorite)
    await session.flush()
    logger.info(f"Coach {coach.id} removed player {player_id} from favorites")


async def list_favorites(
    session: AsyncSession,
    user_id: int,
    recruitment_status: Optional[RecruitmentStatus] = None,
    priority_level: Optional[FavoritePriority] = None,
    limit: int = 20,
    offset: int = 0,
) -> Dict:
    """
    Paginated favorites of the caller with an overall summary.

    Returns:
        Dict with "favorites", "total" (after filters) and "summary" (unfiltered)
    """
    coach = await get_profile_by_user_id(session, user_id)
    conditions = [CoachFavorite.coach_profile_id == coach.id]
    if recruitment_status is not None:
        conditions.append(CoachFavorite.recruitment_status == recruitment_status)
    if priority_level is not None:
        conditions.append(CoachFavorite.priority_level == priority_level)

    total = await session.execute(select(func.count(CoachFavorite.id)).where(*conditions))
    result = await session.execute(
        select(CoachFavorite)
        .options(
            selectinload(CoachFavorite.player_profile).selectinload(PlayerProfile.user),
            selectinload(CoachFavorite.player_profile).selectinload(PlayerProfile.college),
        )
        .where(*conditions)
        .order_by(CoachFavorite.favorited_at.desc(), CoachFavorite.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return {
        "favorites": [serialize_favorite(f) for f in result.scalars().all()],
        "total": total.scalar_one(),
        "summary": await get_favorites_summary(session, coach.id),
    }


# ---------------------------------------------------------------------------
# Saved searches (JSON list on the profile, newest last)
# ---------------------------------------------------------------------------


async def get_saved_searches(session: AsyncSession, user_id: int) -> Dict:
    coach = await get_profile_by_user_id(session, user_id)
    searches = list(coach.saved_searches or [])
    return {
        "saved_searches": searches,
        "total": len(searches),
        "total_searches": coach.total_searches,
        "max_saved_searches": MAX_SAVED_SEARCHES,
    }


async def save_search(session: AsyncSession, user_id: int, name: Optional[str], criteria: Dict) -> Dict:
    """
    Append a saved search, keeping only the MAX_SAVED_SEARCHES most recent.

    Returns:
        Dict with the new "search" and "total_saved_searches"
    """
    coach = await get_profile_by_user_id(session, user_id)
    current = list(coach.saved_searches or [])

    search = {
        "id": uuid.uuid4().hex,
        "name": name or f"Search {len(current) + 1}",
        "criteria": {k: criteria.get(k) for k in SEARCH_CRITERIA_KEYS if criteria.get(k) is not None},
        "saved_at": utcnow().isoformat(),
        "last_used": None,
        "use_count": 0,
    }
    current.append(search)
    if len(current) > MAX_SAVED_SEARCHES:
        current = current[-MAX_SAVED_SEARCHES:]

    # Reassign so the JSONB column is flagged dirty
    coach.saved_searches = current
    coach.total_searches = (coach.total_searches or 0) + 1
    await session.flush()
    return {"search": search, "total_saved_searches": len(current)}


async def delete_saved_search(session: AsyncSession, user_id: int, search_id: str) -> Dict:
    """
    Raises:
        NotFoundError: If no saved search has this id
    """
    coach = await get_profile_by_user_id(session, user_id)
    current = list(coach.saved_searches or [])
    remaining = [s for s in current if str(s.get("id")) != str(search_id)]
    if len(remaining) == len(current):
        raise NotFoundError("Saved search not found")
    coach.saved_searches = remaining
    await session.flush()
    return {"deleted_search_id": search_id, "remaining_searches": len(remaining)}

