"""
SQLAlchemy ORM models for the Portall recruiting platform.
"""

from datetime import date, timedelta
from typing import Optional
import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func
from portall.database.db import Base
from portall.utils.datetime_utils import utcnow


class UserType(str, enum.Enum):
    """Account role."""

    PLAYER = "player"
    COACH = "coach"
    ADMIN = "admin"
    NJCAA_COACH = "njcaa_coach"


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


class PlayerPosition(str, enum.Enum):
    """Soccer positions a player can list on their profile."""

    GOALKEEPER = "goalkeeper"
    DEFENDER = "defender"
    MIDFIELDER = "midfielder"
    FORWARD = "forward"
    CENTER_BACK = "center_back"
    FULL_BACK = "full_back"
    WING_BACK = "wing_back"
    DEFENSIVE_MIDFIELDER = "defensive_midfielder"
    CENTRAL_MIDFIELDER = "central_midfielder"
    ATTACKING_MIDFIELDER = "attacking_midfielder"
    WINGER = "winger"
    STRIKER = "striker"


class AcademicYear(str, enum.Enum):
    FRESHMAN = "freshman"
    SOPHOMORE = "sophomore"
    JUNIOR = "junior"
    SENIOR = "senior"


class ProfileCompletionStatus(str, enum.Enum):
    BASIC = "basic"
    COMPLETED = "completed"
    PREMIUM = "premium"


class CoachPosition(str, enum.Enum):
    HEAD_COACH = "head_coach"
    ASSISTANT_COACH = "assistant_coach"


class NCAADivision(str, enum.Enum):
    """Four-year divisions (NCAA and NAIA)."""

    NCAA_D1 = "ncaa_d1"
    NCAA_D2 = "ncaa_d2"
    NCAA_D3 = "ncaa_d3"
    NAIA = "naia"


class NJCAADivision(str, enum.Enum):
    NJCAA_D1 = "njcaa_d1"
    NJCAA_D2 = "njcaa_d2"
    NJCAA_D3 = "njcaa_d3"


class TeamSport(str, enum.Enum):
    MENS_SOCCER = "mens_soccer"
    WOMENS_SOCCER = "womens_soccer"


class FavoritePriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecruitmentStatus(str, enum.Enum):
    """Recruitment pipeline stage of a favorited player."""

    INTERESTED = "interested"
    CONTACTED = "contacted"
    EVALUATING = "evaluating"
    OFFER_MADE = "offer_made"
    DECLINED = "declined"
    COMMITTED = "committed"


class BillingInterval(str, enum.Enum):
    MONTH = "month"
    YEAR = "year"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    PENDING = "pending"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    SUSPENDED = "suspended"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentType(str, enum.Enum):
    INITIAL = "initial"
    RECURRING = "recurring"
    RETRY = "retry"
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"


# Fixed price points. Each billing interval has exactly one price.
PLAN_PRICES = {
    BillingInterval.MONTH: 2999,
    BillingInterval.YEAR: 7999,
}

DEFAULT_PLAN_FEATURES = {
    "profileAccess": True,
    "searchAccess": True,
    "contactCoaches": True,
    "viewPlayerProfiles": True,
    "favoriteProfiles": True,
    "analyticsBasic": True,
}

MAX_SAVED_SEARCHES = 20


def _enum(enum_cls, name: str) -> Enum:
    """Postgres enum type that stores the lowercase member values."""
    return Enum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


# Types shared by more than one table
NCAA_DIVISION_TYPE = _enum(NCAADivision, "ncaa_division")
COACH_POSITION_TYPE = _enum(CoachPosition, "coach_position")
TEAM_SPORT_TYPE = _enum(TeamSport, "team_sport")


class User(Base):
    """Base account record shared by every role."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    user_type = Column(_enum(UserType, "user_type"), nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)  # Pending admin approval until True
    is_email_verified = Column(Boolean, default=False, nullable=False)
    last_login = Column(DateTime(timezone=True), nullable=True)
    email_verification_token = Column(String(255), nullable=True)
    password_reset_token = Column(String(255), nullable=True)
    password_reset_expires = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships (one-to-one, at most one populated per user_type)
    player_profile = relationship(
        "PlayerProfile", back_populates="user", uselist=False, passive_deletes=True
    )
    coach_profile = relationship(
        "CoachProfile", back_populates="user", uselist=False, passive_deletes=True
    )
    njcaa_coach_profile = relationship(
        "NJCAACoachProfile", back_populates="user", uselist=False, passive_deletes=True
    )
    subscription = relationship(
        "UserSubscription", back_populates="user", uselist=False, passive_deletes=True
    )

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    __table_args__ = (
        CheckConstraint("char_length(first_name) BETWEEN 1 AND 50", name="ck_users_first_name_length"),
        CheckConstraint("char_length(last_name) BETWEEN 1 AND 50", name="ck_users_last_name_length"),
        Index("idx_users_user_type", "user_type"),
        Index("idx_users_is_active", "is_active"),
    )


class NJCAACollege(Base):
    """Two-year college reference data (players and NJCAA coaches)."""

    __tablename__ = "njcaa_colleges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    state = Column(String(2), nullable=False)
    region = Column(String(10), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @validates("state")
    def _upper_state(self, key, value):
        return value.strip().upper() if value else value

    __table_args__ = (
        CheckConstraint("char_length(region) BETWEEN 1 AND 10", name="ck_njcaa_colleges_region_length"),
        Index("idx_njcaa_colleges_state_name", "state", "name"),
    )


class NCAACollege(Base):
    """Four-year college reference data (NCAA and NAIA coaches)."""

    __tablename__ = "ncaa_colleges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    state = Column(String(2), nullable=False)
    division = Column(NCAA_DIVISION_TYPE, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @validates("name")
    def _trim_name(self, key, value):
        return value.strip() if value else value

    @validates("state")
    def _upper_state(self, key, value):
        return value.strip().upper() if value else value

    __table_args__ = (
        CheckConstraint("char_length(name) BETWEEN 2 AND 255", name="ck_ncaa_colleges_name_length"),
        Index("idx_ncaa_colleges_division", "division"),
    )


class PlayerProfile(Base):
    """NJCAA player attributes. Invisible to recruiters until toggled on or approved."""

    __tablename__ = "player_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    gender = Column(_enum(Gender, "gender"), nullable=False)
    college_id = Column(
        Integer, ForeignKey("njcaa_colleges.id", ondelete="RESTRICT"), nullable=False
    )
    date_of_birth = Column(Date, nullable=True)
    height = Column(Integer, nullable=True)  # cm
    weight = Column(Integer, nullable=True)  # kg
    position = Column(_enum(PlayerPosition, "player_position"), nullable=True)
    current_year = Column(_enum(AcademicYear, "academic_year"), nullable=True)
    graduation_year = Column(Integer, nullable=True)
    is_profile_visible = Column(Boolean, default=False, nullable=False)
    profile_views = Column(Integer, default=0, nullable=False)
    profile_completion_status = Column(
        _enum(ProfileCompletionStatus, "profile_completion_status"),
        default=ProfileCompletionStatus.BASIC,
        nullable=False,
    )
    last_profile_update = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="player_profile")
    college = relationship("NJCAACollege")
    favorited_by = relationship(
        "CoachFavorite", back_populates="player_profile", passive_deletes=True
    )
    evaluations = relationship(
        "PlayerEvaluation", back_populates="player", passive_deletes=True
    )

    @property
    def age(self) -> Optional[int]:
        """Age in whole years, or None when date_of_birth is unknown."""
        if not self.date_of_birth:
            return None
        today = date.today()
        born = self.date_of_birth
        return today.year - born.year - ((today.month, today.day) < (born.month, born.day))

    __table_args__ = (
        CheckConstraint("height IS NULL OR height BETWEEN 140 AND 220", name="ck_player_profiles_height"),
        CheckConstraint("weight IS NULL OR weight BETWEEN 40 AND 150", name="ck_player_profiles_weight"),
        CheckConstraint(
            "graduation_year IS NULL OR graduation_year BETWEEN 2024 AND 2030",
            name="ck_player_profiles_graduation_year",
        ),
        CheckConstraint("profile_views >= 0", name="ck_player_profiles_views"),
        Index("idx_player_profiles_college", "college_id"),
        Index("idx_player_profiles_visible_views", "is_profile_visible", "profile_views"),
    )


class CoachProfile(Base):
    """NCAA/NAIA coach attributes."""

    __tablename__ = "coach_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    position = Column(COACH_POSITION_TYPE, nullable=False)
    phone_number = Column(String(20), nullable=False)
    college_id = Column(
        Integer, ForeignKey("ncaa_colleges.id", ondelete="RESTRICT"), nullable=False
    )
    division = Column(NCAA_DIVISION_TYPE, nullable=False)
    team_sport = Column(TEAM_SPORT_TYPE, nullable=False)
    saved_searches = Column(JSONB, default=list, nullable=False)
    total_searches = Column(Integer, default=0, nullable=False)
    last_profile_update = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="coach_profile")
    college = relationship("NCAACollege")
    favorites = relationship(
        "CoachFavorite", back_populates="coach_profile", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint(
            "char_length(phone_number) BETWEEN 10 AND 20", name="ck_coach_profiles_phone_length"
        ),
        Index("idx_coach_profiles_college", "college_id"),
    )


class NJCAACoachProfile(Base):
    """NJCAA coach attributes. Evaluates players at their own college."""

    __tablename__ = "njcaa_coach_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    position = Column(COACH_POSITION_TYPE, nullable=False)
    phone_number = Column(String(20), nullable=False)
    college_id = Column(
        Integer, ForeignKey("njcaa_colleges.id", ondelete="RESTRICT"), nullable=False
    )
    division = Column(_enum(NJCAADivision, "njcaa_division"), nullable=False)
    team_sport = Column(TEAM_SPORT_TYPE, nullable=False)
    total_evaluations = Column(Integer, default=0, nullable=False)
    last_evaluation_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="njcaa_coach_profile")
    college = relationship("NJCAACollege")
    evaluations = relationship(
        "PlayerEvaluation", back_populates="coach", passive_deletes=True
    )

    @property
    def player_gender(self) -> Gender:
        """Gender of the players this coach's team is made of."""
        return Gender.MALE if self.team_sport == TeamSport.MENS_SOCCER else Gender.FEMALE

    __table_args__ = (
        CheckConstraint(
            "char_length(phone_number) BETWEEN 10 AND 20",
            name="ck_njcaa_coach_profiles_phone_length",
        ),
        Index("idx_njcaa_coach_profiles_college", "college_id"),
    )


class CoachFavorite(Base):
    """Coach-to-player bookmark with recruitment pipeline metadata."""

    __tablename__ = "coach_favorites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    coach_profile_id = Column(
        Integer, ForeignKey("coach_profiles.id", ondelete="CASCADE"), nullable=False
    )
    player_profile_id = Column(
        Integer, ForeignKey("player_profiles.id", ondelete="CASCADE"), nullable=False
    )
    notes = Column(Text, nullable=True)
    priority_level = Column(
        _enum(FavoritePriority, "favorite_priority"),
        default=FavoritePriority.MEDIUM,
        nullable=False,
    )
    recruitment_status = Column(
        _enum(RecruitmentStatus, "recruitment_status"),
        default=RecruitmentStatus.INTERESTED,
        nullable=False,
    )
    last_contacted = Column(DateTime(timezone=True), nullable=True)
    favorited_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    coach_profile = relationship("CoachProfile", back_populates="favorites")
    player_profile = relationship("PlayerProfile", back_populates="favorited_by")

    __table_args__ = (
        UniqueConstraint(
            "coach_profile_id", "player_profile_id", name="uq_coach_favorites_coach_player"
        ),
        Index("idx_coach_favorites_coach_status", "coach_profile_id", "recruitment_status"),
        Index("idx_coach_favorites_player", "player_profile_id"),
    )


class PlayerEvaluation(Base):
    """
    Versioned assessment of a player written by an NJCAA coach.

    At most one row per player has is_current=True. Writers demote the
    previous current row in the same transaction as the insert; the partial
    unique index rejects anything that slips past.
    """

    __tablename__ = "player_evaluations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(
        Integer, ForeignKey("player_profiles.id", ondelete="CASCADE"), nullable=False
    )
    coach_id = Column(
        Integer, ForeignKey("njcaa_coach_profiles.id", ondelete="CASCADE"), nullable=False
    )
    available_to_transfer = Column(Boolean, default=False, nullable=False)
    expected_graduation_date = Column(Integer, nullable=False)
    role_in_team = Column(Text, nullable=False)
    performance_level = Column(Text, nullable=False)
    player_strengths = Column(Text, nullable=False)
    improvement_areas = Column(Text, nullable=False)
    mentality = Column(Text, nullable=False)
    coachability = Column(Text, nullable=False)
    technique = Column(Text, nullable=False)
    physique = Column(Text, nullable=False)
    coach_final_comment = Column(Text, nullable=False)
    evaluation_version = Column(Integer, default=1, nullable=False)
    is_current = Column(Boolean, default=True, nullable=False)
    evaluation_date = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    player = relationship("PlayerProfile", back_populates="evaluations")
    coach = relationship("NJCAACoachProfile", back_populates="evaluations")

    __table_args__ = (
        CheckConstraint(
            "expected_graduation_date BETWEEN 2024 AND 2030",
            name="ck_player_evaluations_graduation",
        ),
        CheckConstraint("evaluation_version >= 1", name="ck_player_evaluations_version"),
        Index(
            "uq_player_evaluations_current",
            "player_id",
            unique=True,
            postgresql_where=text("is_current"),
        ),
        Index("idx_player_evaluations_coach", "coach_id"),
        Index("idx_player_evaluations_player_version", "player_id", "evaluation_version"),
    )


class SubscriptionPlan(Base):
    """Catalog entry. Monthly is 2999 cents, yearly is 7999 cents."""

    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price_in_cents = Column(Integer, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    billing_interval = Column(_enum(BillingInterval, "billing_interval"), nullable=False)
    allowed_user_types = Column(JSONB, default=lambda: ["coach", "player"], nullable=False)
    features = Column(JSONB, default=lambda: dict(DEFAULT_PLAN_FEATURES), nullable=False)
    stripe_price_id = Column(String(255), nullable=False, unique=True)
    is_active = Column(Boolean, default=True, nullable=False)
    display_order = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @validates("price_in_cents", "billing_interval")
    def _check_price_matches_interval(self, key, value):
        if key == "price_in_cents":
            if value not in PLAN_PRICES.values():
                raise ValueError("price_in_cents must be 2999 or 7999")
            interval, price = self.billing_interval, value
        else:
            value = BillingInterval(value)
            interval, price = value, self.price_in_cents
        if interval is not None and price is not None:
            expected = PLAN_PRICES[BillingInterval(interval)]
            if price != expected:
                raise ValueError(f"A {BillingInterval(interval).value}ly plan must cost {expected} cents")
        return value

    @validates("stripe_price_id")
    def _check_stripe_price_id(self, key, value):
        if not value or not value.startswith("price_"):
            raise ValueError("stripe_price_id must start with 'price_'")
        return value

    @property
    def formatted_price(self) -> str:
        return f"${self.price_in_cents / 100:.2f}"

    @property
    def yearly_savings_in_cents(self) -> int:
        """Savings of the yearly plan against twelve monthly payments (0 for monthly)."""
        if self.billing_interval != BillingInterval.YEAR:
            return 0
        return PLAN_PRICES[BillingInterval.MONTH] * 12 - self.price_in_cents

    __table_args__ = (
        CheckConstraint("price_in_cents IN (2999, 7999)", name="ck_subscription_plans_price"),
        CheckConstraint(
            "(billing_interval = 'month' AND price_in_cents = 2999) "
            "OR (billing_interval = 'year' AND price_in_cents = 7999)",
            name="ck_subscription_plans_price_interval",
        ),
        CheckConstraint("char_length(name) BETWEEN 3 AND 100", name="ck_subscription_plans_name"),
        Index("idx_subscription_plans_active_order", "is_active", "display_order"),
    )


class UserSubscription(Base):
    """The single subscription record of a user."""

    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    plan_id = Column(
        Integer, ForeignKey("subscription_plans.id", ondelete="RESTRICT"), nullable=False
    )
    status = Column(
        _enum(SubscriptionStatus, "subscription_status"),
        default=SubscriptionStatus.PENDING,
        nullable=False,
    )
    stripe_subscription_id = Column(String(255), nullable=True, unique=True)
    stripe_customer_id = Column(String(255), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    subscription_metadata = Column("metadata", JSONB, default=dict, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="subscription")
    plan = relationship("SubscriptionPlan")
    payments = relationship(
        "PaymentHistory", back_populates="subscription", order_by="PaymentHistory.created_at.desc()"
    )

    @property
    def is_active(self) -> bool:
        """Active status with a paid period that has not ended yet."""
        if self.status != SubscriptionStatus.ACTIVE:
            return False
        return self.ends_at is None or self.ends_at > utcnow()

    @property
    def days_remaining(self) -> int:
        if not self.ends_at:
            return 0
        remaining = self.ends_at - utcnow()
        return max(0, remaining.days)

    @property
    def is_expiring_soon(self) -> bool:
        if not self.is_active or not self.ends_at:
            return False
        return self.ends_at - utcnow() <= timedelta(days=7)

    __table_args__ = (
        Index("idx_user_subscriptions_status", "status"),
        Index("idx_user_subscriptions_customer", "stripe_customer_id"),
    )


class PaymentHistory(Base):
    """Append-only payment ledger. Rows are never updated once written."""

    __tablename__ = "payment_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(
        Integer, ForeignKey("user_subscriptions.id", ondelete="RESTRICT"), nullable=False
    )
    stripe_payment_intent_id = Column(String(255), nullable=True)
    stripe_invoice_id = Column(String(255), nullable=True)
    stripe_event_id = Column(String(255), nullable=True, unique=True)  # Webhook idempotency
    amount_in_cents = Column(Integer, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    status = Column(_enum(PaymentStatus, "payment_status"), nullable=False)
    payment_type = Column(_enum(PaymentType, "payment_type"), nullable=False)
    payment_method = Column(String(50), nullable=True)
    card_last_four = Column(String(4), nullable=True)
    card_brand = Column(String(20), nullable=True)
    failure_reason = Column(String(100), nullable=True)
    failure_message = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    refunded_amount_in_cents = Column(Integer, nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    payment_metadata = Column("metadata", JSONB, default=dict, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    subscription = relationship("UserSubscription", back_populates="payments")

    @validates("amount_in_cents")
    def _check_amount(self, key, value):
        if value not in PLAN_PRICES.values():
            raise ValueError("amount_in_cents must be 2999 or 7999")
        return value

    __table_args__ = (
        CheckConstraint("amount_in_cents IN (2999, 7999)", name="ck_payment_history_amount"),
        # A retried invoice reuses its PaymentIntent: one failed and one succeeded row may share it
        UniqueConstraint(
            "stripe_payment_intent_id", "status", name="uq_payment_history_intent_status"
        ),
        Index("idx_payment_history_subscription_created", "subscription_id", "created_at"),
    )


class ImmutablePaymentError(Exception):
    """Raised when code tries to modify a payment history row."""


@event.listens_for(PaymentHistory, "before_update")
def _reject_payment_update(mapper, connection, target):
    raise ImmutablePaymentError(f"Payment history row {target.id} is append-only")
