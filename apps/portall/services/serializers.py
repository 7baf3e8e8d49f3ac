"""
Dict serialization of ORM rows for API responses.

Secrets (password hash, verification and reset tokens) never leave this module.
"""

import enum
from datetime import date, datetime
from typing import Optional, Dict, Any
from portall.database.models import (
    User,
    NJCAACollege,
    NCAACollege,
    PlayerProfile,
    CoachProfile,
    NJCAACoachProfile,
    CoachFavorite,
    PlayerEvaluation,
    SubscriptionPlan,
    UserSubscription,
    PaymentHistory,
    BillingInterval,
)


def _val(value):
    """Enum member -> its value, dates -> ISO strings, everything else unchanged."""
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _loaded(obj, attr: str):
    """Relationship value if already loaded, else None (no lazy IO in async)."""
    if attr in obj.__dict__:
        return obj.__dict__[attr]
    return None


def serialize_user(user: User, profile: Optional[Dict] = None) -> Dict[str, Any]:
    data = {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "user_type": _val(user.user_type),
        "is_active": user.is_active,
        "is_email_verified": user.is_email_verified,
        "last_login": _val(user.last_login),
        "created_at": _val(user.created_at),
    }
    if profile is not None:
        data["profile"] = profile
    return data


def serialize_njcaa_college(college: NJCAACollege) -> Dict[str, Any]:
    return {
        "id": college.id,
        "name": college.name,
        "state": college.state,
        "region": college.region,
        "is_active": college.is_active,
    }


def serialize_ncaa_college(college: NCAACollege) -> Dict[str, Any]:
    return {
        "id": college.id,
        "name": college.name,
        "state": college.state,
        "division": _val(college.division),
        "is_active": college.is_active,
    }


def serialize_player_profile(profile: PlayerProfile) -> Dict[str, Any]:
    data = {
        "id": profile.id,
        "user_id": profile.user_id,
        "gender": _val(profile.gender),
        "college_id": profile.college_id,
        "date_of_birth": _val(profile.date_of_birth),
        "age": profile.age,
        "height": profile.height,
        "weight": profile.weight,
        "position": _val(profile.position),
        "current_year": _val(profile.current_year),
        "graduation_year": profile.graduation_year,
        "is_profile_visible": profile.is_profile_visible,
        "profile_views": profile.profile_views,
        "profile_completion_status": _val(profile.profile_completion_status),
        "last_profile_update": _val(profile.last_profile_update),
        "created_at": _val(profile.created_at),
    }
    user = _loaded(profile, "user")
    if user is not None:
        data["user"] = {
            "id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "email": user.email,
            "is_active": user.is_active,
        }
    college = _loaded(profile, "college")
    if college is not None:
        data["college"] = serialize_njcaa_college(college)
    return data


def serialize_coach_profile(profile: CoachProfile, public: bool = False) -> Dict[str, Any]:
    """Coach profile dict; public views hide the phone number and saved searches."""
    data = {
        "id": profile.id,
        "user_id": profile.user_id,
        "position": _val(profile.position),
        "college_id": profile.college_id,
        "division": _val(profile.division),
        "team_sport": _val(profile.team_sport),
        "total_searches": profile.total_searches,
        "created_at": _val(profile.created_at),
    }
    if not public:
        data["phone_number"] = profile.phone_number
        data["saved_searches"] = profile.saved_searches or []
    user = _loaded(profile, "user")
    if user is not None:
        data["user"] = {
            "id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "email": user.email,
        }
    college = _loaded(profile, "college")
    if college is not None:
        data["college"] = serialize_ncaa_college(college)
    return data


def serialize_njcaa_coach_profile(profile: NJCAACoachProfile) -> Dict[str, Any]:
    data = {
        "id": profile.id,
        "user_id": profile.user_id,
        "position": _val(profile.position),
        "phone_number": profile.phone_number,
        "college_id": profile.college_id,
        "division": _val(profile.division),
        "team_sport": _val(profile.team_sport),
        "total_evaluations": profile.total_evaluations,
        "last_evaluation_date": _val(profile.last_evaluation_date),
        "created_at": _val(profile.created_at),
    }
    college = _loaded(profile, "college")
    if college is not None:
        data["college"] = serialize_njcaa_college(college)
    return data


def serialize_favorite(favorite: CoachFavorite) -> Dict[str, Any]:
    data = {
        "id": favorite.id,
        "coach_profile_id": favorite.coach_profile_id,
        "player_profile_id": favorite.player_profile_id,
        "notes": favorite.notes,
        "priority_level": _val(favorite.priority_level),
        "recruitment_status": _val(favorite.recruitment_status),
        "last_contacted": _val(favorite.last_contacted),
        "favorited_at": _val(favorite.favorited_at),
        "updated_at": _val(favorite.updated_at),
    }
    player = _loaded(favorite, "player_profile")
    if player is not None:
        data["player"] = serialize_player_profile(player)
    return data


EVALUATION_FIELDS = (
    "available_to_transfer",
    "expected_graduation_date",
    "role_in_team",
    "performance_level",
    "player_strengths",
    "improvement_areas",
    "mentality",
    "coachability",
    "technique",
    "physique",
    "coach_final_comment",
)


def serialize_evaluation(evaluation: PlayerEvaluation) -> Dict[str, Any]:
    data = {
        "id": evaluation.id,
        "player_id": evaluation.player_id,
        "coach_id": evaluation.coach_id,
        "evaluation_version": evaluation.evaluation_version,
        "is_current": evaluation.is_current,
        "evaluation_date": _val(evaluation.evaluation_date),
    }
    for field in EVALUATION_FIELDS:
        data[field] = getattr(evaluation, field)
    return data


def serialize_plan(plan: SubscriptionPlan) -> Dict[str, Any]:
    return {
        "id": plan.id,
        "name": plan.name,
        "description": plan.description,
        "price_in_cents": plan.price_in_cents,
        "formatted_price": plan.formatted_price,
        "currency": plan.currency,
        "billing_interval": _val(plan.billing_interval),
        "allowed_user_types": plan.allowed_user_types,
        "features": plan.features,
        "display_order": plan.display_order,
        "savings_in_cents": plan.yearly_savings_in_cents,
        "is_recommended": plan.billing_interval == BillingInterval.YEAR,
    }


def serialize_subscription(subscription: UserSubscription) -> Dict[str, Any]:
    data = {
        "id": subscription.id,
        "user_id": subscription.user_id,
        "plan_id": subscription.plan_id,
        "status": _val(subscription.status),
        "is_active": subscription.is_active,
        "is_expiring_soon": subscription.is_expiring_soon,
        "days_remaining": subscription.days_remaining,
        "started_at": _val(subscription.started_at),
        "ends_at": _val(subscription.ends_at),
        "cancelled_at": _val(subscription.cancelled_at),
    }
    plan = _loaded(subscription, "plan")
    if plan is not None:
        data["plan"] = serialize_plan(plan)
    return data


def serialize_payment(payment: PaymentHistory) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "amount_in_cents": payment.amount_in_cents,
        "formatted_amount": f"${payment.amount_in_cents / 100:.2f}",
        "currency": payment.currency,
        "status": _val(payment.status),
        "payment_type": _val(payment.payment_type),
        "card_brand": payment.card_brand,
        "card_last_four": payment.card_last_four,
        "failure_message": payment.failure_message,
        "processed_at": _val(payment.processed_at),
        "created_at": _val(payment.created_at),
    }
