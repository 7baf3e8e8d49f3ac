"""
Shared pytest configuration for Portall tests.

Service tests run against PostgreSQL (partial indexes, JSONB and enum types
are part of the schema). Route tests mock the service layer and need no
database at all.

SAFETY: this module REFUSES to run against any database whose name does not
contain "test", so a missing TEST_DATABASE_URL can never truncate the
development or production database.
"""

import os

# Must be set before the app is imported: routes read it to disable rate limits
os.environ.setdefault("ENV", "test")
os.environ.setdefault("ENABLE_EMAIL", "false")

import asyncio  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402
from sqlalchemy import text  # noqa: E402
from portall.database.db import Base  # noqa: E402
from portall.database.models import (  # noqa: E402
    User,
    UserType,
    Gender,
    CoachPosition,
    NCAADivision,
    NJCAADivision,
    TeamSport,
    NJCAACollege,
    NCAACollege,
    PlayerProfile,
    CoachProfile,
    NJCAACoachProfile,
    SubscriptionPlan,
    BillingInterval,
)
from portall.services import auth_service  # noqa: E402

from portall.tests.pytest_cleanup_plugin import pytest_runtest_makereport  # noqa: E402,F401


def _resolve_test_database_url() -> str:
    """Build the test database URL, refusing any database not named *test*."""
    url = os.getenv("TEST_DATABASE_URL", "")
    if not url:
        url = (
            f"postgresql+asyncpg://"
            f"{os.getenv('POSTGRES_USER', 'portall')}:"
            f"{os.getenv('POSTGRES_PASSWORD', 'portall')}@"
            f"{os.getenv('POSTGRES_HOST', 'localhost')}:"
            f"{os.getenv('POSTGRES_PORT', '5433')}/"
            f"{os.getenv('POSTGRES_TEST_DB', 'portall_test')}"
        )

    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"\n{'=' * 70}\n"
            f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
            f"  The database name must contain 'test'.\n\n"
            f"  Fix: export TEST_DATABASE_URL=postgresql+asyncpg://.../portall_test\n"
            f"{'=' * 70}"
        )
    return url


TEST_DATABASE_URL = _resolve_test_database_url()

TEST_PASSWORD = "Password123"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Engine on the test database with every table created."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Code that opens its own sessions (seed_reference_data) must hit the test DB
    from portall.database import db

    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    try:
        await asyncio.sleep(0.05)
        await engine.dispose(close=True)
    except Exception:
        pass  # Connection teardown noise only


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Session on a freshly truncated database."""
    async with test_engine.connect() as truncate_conn:
        async with truncate_conn.begin():
            result = await truncate_conn.execute(
                text(
                    "SELECT tablename FROM pg_tables "
                    "WHERE schemaname = 'public' AND tablename NOT LIKE 'alembic_%'"
                )
            )
            tables = [row[0] for row in result.fetchall()]
            if tables:
                table_list = ", ".join(f'"{table}"' for table in tables)
                await truncate_conn.execute(text(f"TRUNCATE TABLE {table_list} RESTART IDENTITY CASCADE"))

    session_maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


# ---------------------------------------------------------------------------
# Data builders
# ---------------------------------------------------------------------------


async def make_njcaa_college(session, name="Test Junior College", state="TX", region="V", is_active=True):
    college = NJCAACollege(name=name, state=state, region=region, is_active=is_active)
    session.add(college)
    await session.flush()
    return college


async def make_ncaa_college(session, name="Test University", state="CA", division=NCAADivision.NCAA_D1):
    college = NCAACollege(name=name, state=state, division=division, is_active=True)
    session.add(college)
    await session.flush()
    return college


async def make_user(session, email, user_type, is_active=True, first_name="Test", last_name="User"):
    user = User(
        email=email,
        password_hash=auth_service.hash_password(TEST_PASSWORD),
        first_name=first_name,
        last_name=last_name,
        user_type=user_type,
        is_active=is_active,
    )
    session.add(user)
    await session.flush()
    return user


async def make_player(session, college, email="player@example.com", gender=Gender.MALE,
                      is_active=True, is_visible=True, first_name="Pat"):
    user = await make_user(session, email, UserType.PLAYER, is_active=is_active, first_name=first_name)
    profile = PlayerProfile(
        user_id=user.id,
        gender=gender,
        college_id=college.id,
        is_profile_visible=is_visible,
        profile_views=0,
    )
    session.add(profile)
    await session.flush()
    return user, profile


async def make_coach(session, college, email="coach@example.com", is_active=True):
    user = await make_user(session, email, UserType.COACH, is_active=is_active)
    profile = CoachProfile(
        user_id=user.id,
        position=CoachPosition.HEAD_COACH,
        phone_number="+15551234567",
        college_id=college.id,
        division=NCAADivision.NCAA_D1,
        team_sport=TeamSport.MENS_SOCCER,
        saved_searches=[],
        total_searches=0,
    )
    session.add(profile)
    await session.flush()
    return user, profile


async def make_njcaa_coach(session, college, email="njcoach@example.com",
                           team_sport=TeamSport.MENS_SOCCER):
    user = await make_user(session, email, UserType.NJCAA_COACH)
    profile = NJCAACoachProfile(
        user_id=user.id,
        position=CoachPosition.HEAD_COACH,
        phone_number="+15557654321",
        college_id=college.id,
        division=NJCAADivision.NJCAA_D1,
        team_sport=team_sport,
        total_evaluations=0,
    )
    session.add(profile)
    await session.flush()
    return user, profile


async def make_plan(session, interval=BillingInterval.MONTH, is_active=True):
    price = 2999 if interval == BillingInterval.MONTH else 7999
    plan = SubscriptionPlan(
        name=f"Portall {interval.value.title()}ly",
        billing_interval=interval,
        price_in_cents=price,
        currency="USD",
        stripe_price_id=f"price_test_{interval.value}",
        is_active=is_active,
        display_order=1 if interval == BillingInterval.MONTH else 2,
    )
    session.add(plan)
    await session.flush()
    return plan


@pytest.fixture
def builders():
    """Namespace of the async data builders above."""

    class _Builders:
        njcaa_college = staticmethod(make_njcaa_college)
        ncaa_college = staticmethod(make_ncaa_college)
        user = staticmethod(make_user)
        player = staticmethod(make_player)
        coach = staticmethod(make_coach)
        njcaa_coach = staticmethod(make_njcaa_coach)
        plan = staticmethod(make_plan)

    return _Builders
