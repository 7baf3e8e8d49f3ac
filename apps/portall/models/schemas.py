"""
Pydantic models for API request validation.
"""

import re
from datetime import date, datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from portall.database.models import (
    UserType,
    Gender,
    PlayerPosition,
    AcademicYear,
    CoachPosition,
    NCAADivision,
    NJCAADivision,
    TeamSport,
    FavoritePriority,
    RecruitmentStatus,
)

PHONE_PATTERN = re.compile(r"^\+?[\d\s\-\(\)]+$")
PHONE_MIN_LENGTH = 10
PHONE_MAX_LENGTH = 20


def _check_password_strength(value: str) -> str:
    if not re.search(r"[a-z]", value) or not re.search(r"[A-Z]", value) or not re.search(r"\d", value):
        raise ValueError("Password must contain an uppercase letter, a lowercase letter and a digit")
    return value


def _check_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not PHONE_PATTERN.match(value) or not PHONE_MIN_LENGTH <= len(value) <= PHONE_MAX_LENGTH:
        raise ValueError(
            "Phone number must be 10-20 characters of digits, spaces, dashes or parentheses, optionally starting with +"
        )
    return value


def _reject_null(value):
    # Omitted fields stay unchanged; an explicit null would break a NOT NULL column
    if value is None:
        raise ValueError("Field cannot be null")
    return value


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """
    Self-service registration. Profile fields depend on user_type:

    - player: gender, college_id (NJCAA)
    - coach: position, phone_number, college_id (NCAA), division (NCAA/NAIA), team_sport
    - njcaa_coach: position, phone_number, college_id (NJCAA), division (NJCAA), team_sport
    """

    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    confirm_password: Optional[str] = None
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    user_type: UserType

    gender: Optional[Gender] = None
    college_id: Optional[int] = Field(default=None, gt=0)
    position: Optional[CoachPosition] = None
    phone_number: Optional[str] = None
    division: Optional[str] = None
    team_sport: Optional[TeamSport] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("Invalid email address")
        return v

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_password_strength(v)

    @field_validator("phone_number")
    @classmethod
    def phone_format(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)

    @model_validator(mode="after")
    def check_role_fields(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords do not match")
        if self.user_type == UserType.ADMIN:
            raise ValueError("Admin accounts cannot be self-registered")
        if self.division is not None:
            # Coaches recruit into NCAA/NAIA, NJCAA coaches sit in an NJCAA division
            division_enum = NCAADivision if self.user_type == UserType.COACH else NJCAADivision
            try:
                self.division = division_enum(self.division).value
            except ValueError:
                allowed = ", ".join(d.value for d in division_enum)
                raise ValueError(f"division must be one of: {allowed}")
        return self

    def profile_data(self) -> Dict[str, Any]:
        return {
            "gender": self.gender,
            "college_id": self.college_id,
            "position": self.position,
            "phone_number": self.phone_number,
            "division": self.division,
            "team_sport": self.team_sport,
        }


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_password_strength(v)


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------


class PlayerProfileUpdate(BaseModel):
    """Partial update; only fields sent by the client are applied."""

    gender: Optional[Gender] = None
    college_id: Optional[int] = Field(default=None, gt=0)
    date_of_birth: Optional[date] = None
    height: Optional[int] = Field(default=None, ge=140, le=220)
    weight: Optional[int] = Field(default=None, ge=40, le=150)
    position: Optional[PlayerPosition] = None
    current_year: Optional[AcademicYear] = None
    graduation_year: Optional[int] = Field(default=None, ge=2024, le=2030)

    @field_validator("gender", "college_id")
    @classmethod
    def required_columns(cls, v):
        return _reject_null(v)

    @field_validator("date_of_birth")
    @classmethod
    def plausible_birth_date(cls, v: Optional[date]) -> Optional[date]:
        if v is not None and not (date(1980, 1, 1) <= v < date.today()):
            raise ValueError("date_of_birth must be in the past and no earlier than 1980")
        return v


class VisibilityRequest(BaseModel):
    is_visible: bool


# ---------------------------------------------------------------------------
# Coaches
# ---------------------------------------------------------------------------


class CoachProfileUpdate(BaseModel):
    position: Optional[CoachPosition] = None
    phone_number: Optional[str] = None
    college_id: Optional[int] = Field(default=None, gt=0)
    division: Optional[NCAADivision] = None
    team_sport: Optional[TeamSport] = None

    @field_validator("position", "phone_number", "college_id", "division", "team_sport")
    @classmethod
    def required_columns(cls, v):
        return _reject_null(v)

    @field_validator("phone_number")
    @classmethod
    def phone_format(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


class FavoriteCreate(BaseModel):
    priority_level: FavoritePriority = FavoritePriority.MEDIUM
    recruitment_status: RecruitmentStatus = RecruitmentStatus.INTERESTED
    notes: Optional[str] = Field(default=None, max_length=2000)


class FavoriteUpdate(BaseModel):
    priority_level: Optional[FavoritePriority] = None
    recruitment_status: Optional[RecruitmentStatus] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    last_contacted: Optional[datetime] = None


class SavedSearchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    criteria: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# NJCAA coaches
# ---------------------------------------------------------------------------


class EvaluationRequest(BaseModel):
    # Length limits apply to the stripped text
    model_config = ConfigDict(str_strip_whitespace=True)

    available_to_transfer: bool
    expected_graduation_date: int = Field(..., ge=2024, le=2030)
    role_in_team: str = Field(..., min_length=2, max_length=500)
    performance_level: str = Field(..., min_length=2, max_length=500)
    player_strengths: str = Field(..., min_length=10, max_length=500)
    improvement_areas: str = Field(..., min_length=10, max_length=500)
    mentality: str = Field(..., min_length=10, max_length=500)
    coachability: str = Field(..., min_length=10, max_length=500)
    technique: str = Field(..., min_length=10, max_length=500)
    physique: str = Field(..., min_length=10, max_length=500)
    coach_final_comment: str = Field(..., min_length=20, max_length=1500)


class NJCAASettingsUpdate(BaseModel):
    phone_number: str

    @field_validator("phone_number")
    @classmethod
    def phone_format(cls, v: str) -> str:
        return _check_phone(v)


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


class NJCAACollegeCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    state: str = Field(..., min_length=2, max_length=2)
    region: str = Field(..., min_length=1, max_length=10)


class NJCAACollegeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    state: Optional[str] = Field(default=None, min_length=2, max_length=2)
    region: Optional[str] = Field(default=None, min_length=1, max_length=10)
    is_active: Optional[bool] = None


class NCAACollegeCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    state: str = Field(..., min_length=2, max_length=2)
    division: NCAADivision


# ---------------------------------------------------------------------------
# Subscriptions / admin
# ---------------------------------------------------------------------------


class SubscriptionCreate(BaseModel):
    plan_id: int = Field(..., gt=0)
    payment_method_id: str = Field(..., min_length=3)

    @field_validator("payment_method_id")
    @classmethod
    def stripe_payment_method(cls, v: str) -> str:
        if not v.startswith("pm_"):
            raise ValueError("payment_method_id must be a Stripe payment method (pm_...)")
        return v


class RejectUserRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)
    delete_account: bool = False
