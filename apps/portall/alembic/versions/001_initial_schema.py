"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

Initial Portall schema:
- Accounts: users
- Reference data: njcaa_colleges, ncaa_colleges
- Profiles: player_profiles, coach_profiles, njcaa_coach_profiles
- Recruiting: coach_favorites, player_evaluations (partial unique index on is_current)
- Billing: subscription_plans, user_subscriptions, payment_history
- All enum types, check constraints and indexes
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables and enum types from the current models."""
    from portall.database.db import Base

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind, checkfirst=True)


def downgrade() -> None:
    """Drop all tables and enum types."""
    from portall.database.db import Base

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind, checkfirst=True)
