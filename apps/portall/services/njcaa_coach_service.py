"""
NJCAA coach service layer: team roster, versioned player evaluations, settings.

An NJCAA coach may only evaluate players from their own college whose gender
matches the coach's team (men's soccer -> male players, women's -> female),
and only while the player's account is active and the profile visible.
"""

import logging
from typing import Dict, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.orm import selectinload
from portall.database.models import (
    User,
    NJCAACoachProfile,
    PlayerProfile,
    PlayerEvaluation,
)
from portall.services.errors import NotFoundError, PermissionDeniedError
from portall.services.serializers import (
    EVALUATION_FIELDS,
    serialize_evaluation,
    serialize_njcaa_coach_profile,
    serialize_player_profile,
)
from portall.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


async def get_profile_by_user_id(session: AsyncSession, user_id: int) -> NJCAACoachProfile:
    """
    Raises:
        NotFoundError: If the user has no NJCAA coach profile
    """
    result = await session.execute(
        select(NJCAACoachProfile)
        .options(selectinload(NJCAACoachProfile.user), selectinload(NJCAACoachProfile.college))
        .where(NJCAACoachProfile.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError("NJCAA coach profile not found")
    return profile


async def validate_coach_player_relationship(
    session: AsyncSession, coach_user_id: int, player_id: int
) -> Tuple[NJCAACoachProfile, PlayerProfile]:
    """
    Check that a coach may evaluate a player.

    Args:
        session: Database session
        coach_user_id: User ID of the NJCAA coach
        player_id: PlayerProfile ID

    Returns:
        (coach profile, player profile)

    Raises:
        PermissionDeniedError: With the reason the evaluation is not allowed
    """
    result = await session.execute(
        select(NJCAACoachProfile).where(NJCAACoachProfile.user_id == coach_user_id)
    )
    coach = result.scalar_one_or_none()
    if coach is None:
        raise PermissionDeniedError("Coach profile not found")

    result = await session.execute(
        select(PlayerProfile)
        .options(selectinload(PlayerProfile.user), selectinload(PlayerProfile.college))
        .where(PlayerProfile.id == player_id)
    )
    player = result.scalar_one_or_none()
    if player is None:
        raise PermissionDeniedError("Player profile not found")

    if not player.user.is_active or not player.is_profile_visible:
        raise PermissionDeniedError("Player profile is not active or visible")

    if player.college_id != coach.college_id:
        raise PermissionDeniedError("Coach and player are not from the same college")

    if player.gender != coach.player_gender:
        raise PermissionDeniedError(
            f"Coach manages {coach.team_sport.value} but player is {player.gender.value}"
        )

    return coach, player


async def _current_evaluation(session: AsyncSession, player_id: int):
    result = await session.execute(
        select(PlayerEvaluation).where(
            PlayerEvaluation.player_id == player_id,
            PlayerEvaluation.is_current == True,  # noqa: E712
        )
    )
    return result.scalar_one_or_none()


async def evaluate_player(
    session: AsyncSession, coach_user_id: int, player_id: int, data: Dict
) -> Dict:
    """
    Create a new evaluation version for a player.

    The previous current evaluation of the player (by any coach) is demoted
    and the new row inserted as current, both inside the caller's
    transaction, so at most one current evaluation exists per player.

    Args:
        session: Database session
        coach_user_id: User ID of the NJCAA coach
        player_id: PlayerProfile ID
        data: Evaluation criteria (see EVALUATION_FIELDS)

    Returns:
        Dict with "evaluation", "player" and "is_update"

    Raises:
        PermissionDeniedError: If the coach may not evaluate this player
    """
    coach, player = await validate_coach_player_relationship(session, coach_user_id, player_id)

    latest_version = await session.execute(
        select(func.max(PlayerEvaluation.evaluation_version)).where(
            PlayerEvaluation.player_id == player_id
        )
    )
    previous_version = latest_version.scalar_one() or 0

    # Demote before insert; the partial unique index is checked per statement
    await session.execute(
        update(PlayerEvaluation)
        .where(
            PlayerEvaluation.player_id == player_id,
            PlayerEvaluation.is_current == True,  # noqa: E712
        )
        .values(is_current=False)
        .execution_options(synchronize_session="fetch")
    )

    now = utcnow()
    evaluation = PlayerEvaluation(
        player_id=player_id,
        coach_id=coach.id,
        evaluation_version=previous_version + 1,
        is_current=True,
        evaluation_date=now,
        **{field: data[field] for field in EVALUATION_FIELDS},
    )
    session.add(evaluation)

    coach.total_evaluations = (coach.total_evaluations or 0) + 1
    coach.last_evaluation_date = now
    await session.flush()

    logger.info(
        f"NJCAA coach {coach.id} evaluated player {player_id} (version {evaluation.evaluation_version})"
    )
    return {
        "evaluation": serialize_evaluation(evaluation),
        "player": {
            "id": player.id,
            "name": player.user.full_name,
            "college": player.college.name if player.college else None,
        },
        "is_update": previous_version > 0,
    }


async def get_player_evaluation(session: AsyncSession, coach_user_id: int, player_id: int) -> Dict:
    """
    Current evaluation of a player the coach is allowed to evaluate.

    Raises:
        PermissionDeniedError: If the coach may not evaluate this player
        NotFoundError: If the player has no evaluation yet
    """
    _, player = await validate_coach_player_relationship(session, coach_user_id, player_id)
    evaluation = await _current_evaluation(session, player_id)
    if evaluation is None:
        raise NotFoundError("No evaluation found for this player")
    return {
        "evaluation": serialize_evaluation(evaluation),
        "player": serialize_player_profile(player),
    }


async def get_evaluation_history(session: AsyncSession, coach_user_id: int) -> Dict:
    """All evaluations written by the coach, grouped by player, newest first."""
    coach = await get_profile_by_user_id(session, coach_user_id)
    result = await session.execute(
        select(PlayerEvaluation)
        .options(selectinload(PlayerEvaluation.player).selectinload(PlayerProfile.user))
        .where(PlayerEvaluation.coach_id == coach.id)
        .order_by(PlayerEvaluation.evaluation_date.desc(), PlayerEvaluation.evaluation_version.desc())
    )
    evaluations = result.scalars().all()

    by_player: Dict[int, Dict] = {}
    for evaluation in evaluations:
        entry = by_player.setdefault(
            evaluation.player_id,
            {
                "player": {
                    "id": evaluation.player.id,
                    "name": evaluation.player.user.full_name,
                },
                "evaluations": [],
            },
        )
        entry["evaluations"].append(serialize_evaluation(evaluation))

    current = sum(1 for e in evaluations if e.is_current)
    return {
        "total_evaluations": len(evaluations),
        "unique_players": len(by_player),
        "evaluations_by_player": list(by_player.values()),
        "summary": {
            "current_evaluations": current,
            "historical_versions": len(evaluations) - current,
        },
    }


async def get_dashboard(session: AsyncSession, coach_user_id: int) -> Dict:
    """
    Roster of evaluable players with their evaluation status.

    Players listed: same college, gender matching the team sport, visible
    profile, active account. Newest profiles first.
    """
    coach = await get_profile_by_user_id(session, coach_user_id)
    result = await session.execute(
        select(PlayerProfile)
        .join(User, PlayerProfile.user_id == User.id)
        .options(selectinload(PlayerProfile.user), selectinload(PlayerProfile.college))
        .where(
            PlayerProfile.college_id == coach.college_id,
            PlayerProfile.gender == coach.player_gender,
            PlayerProfile.is_profile_visible == True,  # noqa: E712
            User.is_active == True,  # noqa: E712
        )
        .order_by(PlayerProfile.created_at.desc())
    )
    players = result.scalars().all()

    player_ids = [p.id for p in players]
    evaluations = {}
    if player_ids:
        eval_result = await session.execute(
            select(PlayerEvaluation).where(
                PlayerEvaluation.player_id.in_(player_ids),
                PlayerEvaluation.is_current == True,  # noqa: E712
            )
        )
        evaluations = {e.player_id: e for e in eval_result.scalars().all()}

    roster = []
    for player in players:
        evaluation = evaluations.get(player.id)
        roster.append({
            **serialize_player_profile(player),
            "evaluation_status": {
                "has_evaluation": evaluation is not None,
                "last_evaluated": evaluation.evaluation_date.isoformat() if evaluation else None,
                "available_to_transfer": evaluation.available_to_transfer if evaluation else None,
                "evaluation_version": evaluation.evaluation_version if evaluation else 0,
            },
        })

    return {
        "coach": serialize_njcaa_coach_profile(coach),
        "players": roster,
        "statistics": {
            "total_players": len(players),
            "evaluated_players": len(evaluations),
            "unevaluated_players": len(players) - len(evaluations),
            "available_for_transfer": sum(1 for e in evaluations.values() if e.available_to_transfer),
            "last_evaluation_date": coach.last_evaluation_date.isoformat()
            if coach.last_evaluation_date else None,
        },
        "metadata": {
            "team_sport": coach.team_sport.value,
            "target_gender": coach.player_gender.value,
            "college_id": coach.college_id,
        },
    }


async def get_settings(session: AsyncSession, coach_user_id: int) -> Dict:
    coach = await get_profile_by_user_id(session, coach_user_id)
    user = coach.user
    return {
        "profile": serialize_njcaa_coach_profile(coach),
        "user": {"first_name": user.first_name, "last_name": user.last_name, "email": user.email},
        "editable_fields": ["phone_number"],
    }


async def update_settings(session: AsyncSession, coach_user_id: int, phone_number: str) -> Dict:
    """Only the phone number is editable by the coach; everything else goes through an admin."""
    coach = await get_profile_by_user_id(session, coach_user_id)
    coach.phone_number = phone_number.strip()
    await session.flush()
    logger.info(f"NJCAA coach {coach.id} updated settings")
    return serialize_njcaa_coach_profile(coach)
