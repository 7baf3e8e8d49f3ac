"""
Seed reference data on startup: NJCAA colleges, NCAA/NAIA colleges and the
two subscription plans.

Idempotent: rows are matched by name (colleges) or billing interval (plans)
and only missing rows are created. Existing rows are left untouched so admin
edits survive restarts.
"""

import csv
import os
import logging
from pathlib import Path

from sqlalchemy import select

from portall.database import db
from portall.database.models import (
    NJCAACollege,
    NCAACollege,
    NCAADivision,
    SubscriptionPlan,
    BillingInterval,
    PLAN_PRICES,
    DEFAULT_PLAN_FEATURES,
)

logger = logging.getLogger(__name__)

SEED_DIR = Path(__file__).resolve().parent.parent / "seed"

DEFAULT_PLANS = [
    {
        "name": "Portall Monthly",
        "description": "Full access to Portall, billed every month",
        "billing_interval": BillingInterval.MONTH,
        "stripe_price_id": os.getenv("STRIPE_PRICE_MONTHLY", "price_portall_monthly"),
        "display_order": 1,
    },
    {
        "name": "Portall Yearly",
        "description": "Full access to Portall, billed once a year",
        "billing_interval": BillingInterval.YEAR,
        "stripe_price_id": os.getenv("STRIPE_PRICE_YEARLY", "price_portall_yearly"),
        "display_order": 2,
    },
]


def _bool(val: str) -> bool:
    return val.strip().lower() == "true"


def _read_csv(filename: str):
    csv_path = SEED_DIR / filename
    if not csv_path.exists():
        logger.warning("Seed CSV not found: %s", csv_path)
        return []
    with open(csv_path, "r", encoding="utf-8") as f:
        return list(csv.DictReader(f))


async def _seed_njcaa_colleges(session) -> int:
    result = await session.execute(select(NJCAACollege.name))
    existing = {name for name in result.scalars().all()}

    created = 0
    for row in _read_csv("njcaa_colleges.csv"):
        if row["name"] in existing:
            continue
        session.add(
            NJCAACollege(
                name=row["name"],
                state=row["state"],
                region=row["region"],
                is_active=_bool(row["is_active"]),
            )
        )
        created += 1
    await session.flush()
    return created


async def _seed_ncaa_colleges(session) -> int:
    result = await session.execute(select(NCAACollege.name))
    existing = {name.lower() for name in result.scalars().all()}

    created = 0
    for row in _read_csv("ncaa_colleges.csv"):
        if row["name"].lower() in existing:
            continue
        session.add(
            NCAACollege(
                name=row["name"],
                state=row["state"],
                division=NCAADivision(row["division"]),
                is_active=_bool(row["is_active"]),
            )
        )
        created += 1
    await session.flush()
    return created


async def _seed_plans(session) -> int:
    result = await session.execute(select(SubscriptionPlan.billing_interval))
    existing = set(result.scalars().all())

    created = 0
    for plan in DEFAULT_PLANS:
        if plan["billing_interval"] in existing:
            continue
        session.add(
            SubscriptionPlan(
                price_in_cents=PLAN_PRICES[plan["billing_interval"]],
                currency="USD",
                allowed_user_types=["coach", "player"],
                features=dict(DEFAULT_PLAN_FEATURES),
                is_active=True,
                **plan,
            )
        )
        created += 1
    await session.flush()
    return created


async def seed_reference_data():
    """Create missing colleges and plans. Returns the created counts."""
    async with db.session_scope() as session:
        counts = {
            "njcaa_colleges": await _seed_njcaa_colleges(session),
            "ncaa_colleges": await _seed_ncaa_colleges(session),
            "subscription_plans": await _seed_plans(session),
        }

    logger.info(
        "Reference seed: %d NJCAA colleges, %d NCAA colleges, %d plans created",
        counts["njcaa_colleges"],
        counts["ncaa_colleges"],
        counts["subscription_plans"],
    )
    return counts
