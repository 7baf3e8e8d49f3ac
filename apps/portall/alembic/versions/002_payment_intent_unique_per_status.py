"""payment_intent_unique_per_status

Revision ID: 002
Revises: 001
Create Date: 2026-10-20

Stripe retries a failed renewal invoice with the same PaymentIntent, so the
ledger holds a failed row and later a succeeded row for one intent id.
Replace the unique key on payment_history.stripe_payment_intent_id with a
unique key on (stripe_payment_intent_id, status).
"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Databases created from the current models never had the old key
    op.execute(
        "ALTER TABLE payment_history "
        "DROP CONSTRAINT IF EXISTS payment_history_stripe_payment_intent_id_key"
    )
    op.execute(
        "ALTER TABLE payment_history DROP CONSTRAINT IF EXISTS uq_payment_history_intent_status"
    )
    op.create_unique_constraint(
        "uq_payment_history_intent_status",
        "payment_history",
        ["stripe_payment_intent_id", "status"],
    )


def downgrade() -> None:
    op.drop_constraint("uq_payment_history_intent_status", "payment_history", type_="unique")
    op.create_unique_constraint(
        "payment_history_stripe_payment_intent_id_key",
        "payment_history",
        ["stripe_payment_intent_id"],
    )
