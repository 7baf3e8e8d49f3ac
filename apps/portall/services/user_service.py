"""
User service layer: accounts, registration, and password reset state.
"""

from typing import Optional, Dict
from datetime import timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from portall.database.models import (
    User,
    UserType,
    PlayerProfile,
    CoachProfile,
    NJCAACoachProfile,
    NJCAACollege,
    NCAACollege,
    ProfileCompletionStatus,
)
from portall.services import auth_service
from portall.services.errors import ConflictError, NotFoundError
from portall.services.serializers import (
    serialize_user,
    serialize_player_profile,
    serialize_coach_profile,
    serialize_njcaa_coach_profile,
)
from portall.utils.datetime_utils import utcnow
import logging

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {
    UserType.PLAYER: ("gender", "college_id"),
    UserType.COACH: ("position", "phone_number", "college_id", "division", "team_sport"),
    UserType.NJCAA_COACH: ("position", "phone_number", "college_id", "division", "team_sport"),
}


def _user_query():
    """User select with every role profile (and its college) eagerly loaded."""
    return select(User).options(
        selectinload(User.player_profile).selectinload(PlayerProfile.college),
        selectinload(User.coach_profile).selectinload(CoachProfile.college),
        selectinload(User.njcaa_coach_profile).selectinload(NJCAACoachProfile.college),
    )


def serialize_profile(user: User) -> Optional[Dict]:
    """The profile matching the user's role, or None (admins have none)."""
    if user.user_type == UserType.PLAYER and user.player_profile:
        return serialize_player_profile(user.player_profile)
    if user.user_type == UserType.COACH and user.coach_profile:
        return serialize_coach_profile(user.coach_profile)
    if user.user_type == UserType.NJCAA_COACH and user.njcaa_coach_profile:
        return serialize_njcaa_coach_profile(user.njcaa_coach_profile)
    return None


def user_to_dict(user: User) -> Dict:
    return serialize_user(user, profile=serialize_profile(user))


async def get_user_model(session: AsyncSession, user_id: int) -> Optional[User]:
    result = await session.execute(
        _user_query().where(User.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User dictionary (with "profile") or None if not found
    """
    user = await get_user_model(session, user_id)
    if user is None:
        return None
    return user_to_dict(user)


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    """
    Get the User row for an email (case-insensitive).

    Returns the model rather than a dict because login needs the password hash.
    """
    result = await session.execute(
        _user_query().where(User.email == email.strip().lower()).limit(1)
    )
    return result.scalar_one_or_none()


async def check_email_exists(session: AsyncSession, email: str) -> bool:
    result = await session.execute(select(User.id).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none() is not None


async def _require_active_college(session: AsyncSession, model, college_id: int, label: str):
    college = await session.get(model, college_id)
    if college is None or not college.is_active:
        raise ValueError(f"Selected {label} college is not available")
    return college


async def register_user(
    session: AsyncSession,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    user_type: UserType,
    profile_data: Dict,
) -> Dict:
    """
    Create a user and its role profile in the current transaction.

    The account starts inactive (pending admin approval) and a player
    profile starts invisible to recruiters.

    Args:
        session: Database session
        email: Account email (normalized to lowercase)
        password: Plaintext password, hashed here
        first_name: First name
        last_name: Last name
        user_type: player, coach or njcaa_coach
        profile_data: Role-specific fields (see PROFILE_FIELDS)

    Returns:
        User dictionary with its profile

    Raises:
        ConflictError: If the email is already registered
        ValueError: If the role is not self-service or required profile data is missing/invalid
    """
    user_type = UserType(user_type)
    if user_type == UserType.ADMIN:
        raise ValueError("Admin accounts cannot be self-registered")

    email = auth_service.normalize_email(email)
    if await check_email_exists(session, email):
        raise ConflictError("An account with this email already exists")

    missing = [f for f in PROFILE_FIELDS[user_type] if profile_data.get(f) in (None, "")]
    if missing:
        raise ValueError(f"Missing required {user_type.value} fields: {', '.join(missing)}")

    if user_type == UserType.COACH:
        await _require_active_college(session, NCAACollege, profile_data["college_id"], "NCAA")
    else:
        await _require_active_college(session, NJCAACollege, profile_data["college_id"], "NJCAA")

    user = User(
        email=email,
        password_hash=auth_service.hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        user_type=user_type,
        is_active=False,
        is_email_verified=False,
        email_verification_token=auth_service.generate_reset_token(),
    )
    session.add(user)
    await session.flush()

    fields = {f: profile_data[f] for f in PROFILE_FIELDS[user_type]}
    if user_type == UserType.PLAYER:
        session.add(
            PlayerProfile(
                user_id=user.id,
                is_profile_visible=False,
                profile_views=0,
                profile_completion_status=ProfileCompletionStatus.BASIC,
                **fields,
            )
        )
    elif user_type == UserType.COACH:
        session.add(CoachProfile(user_id=user.id, saved_searches=[], total_searches=0, **fields))
    else:
        session.add(NJCAACoachProfile(user_id=user.id, total_evaluations=0, **fields))
    await session.flush()

    logger.info(f"Registered {user_type.value} account {user.id} ({email}), pending approval")
    return await get_user_by_id(session, user.id)


async def update_last_login(session: AsyncSession, user_id: int) -> None:
    user = await session.get(User, user_id)
    if user is not None:
        user.last_login = utcnow()
        await session.flush()


async def set_password_reset_token(session: AsyncSession, user_id: int, token: str) -> None:
    """Store a reset token valid for PASSWORD_RESET_EXPIRATION_HOURS."""
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    user.password_reset_token = token
    user.password_reset_expires = utcnow() + timedelta(
        hours=auth_service.PASSWORD_RESET_EXPIRATION_HOURS
    )
    await session.flush()


async def reset_password(session: AsyncSession, token: str, new_password: str) -> Dict:
    """
    Replace the password of the user holding a valid reset token.

    Raises:
        ValueError: If the token is unknown or expired
    """
    result = await session.execute(select(User).where(User.password_reset_token == token))
    user = result.scalar_one_or_none()
    if user is None or user.password_reset_expires is None or user.password_reset_expires < utcnow():
        raise ValueError("Invalid or expired reset token")

    user.password_hash = auth_service.hash_password(new_password)
    user.password_reset_token = None
    user.password_reset_expires = None
    await session.flush()
    logger.info(f"Password reset completed for user {user.id}")
    return {"id": user.id, "email": user.email, "first_name": user.first_name}
