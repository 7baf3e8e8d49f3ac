"""
Reference data service: NJCAA and NCAA/NAIA college lookups.
"""

import logging
from typing import Optional, List, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from portall.database.models import NJCAACollege, NCAACollege, NCAADivision
from portall.services.errors import ConflictError, NotFoundError
from portall.services.serializers import serialize_njcaa_college, serialize_ncaa_college

logger = logging.getLogger(__name__)


def parse_ncaa_division(division: str) -> NCAADivision:
    """
    Parse a division query value.

    Raises:
        ValueError: If the value is not a known NCAA/NAIA division
    """
    try:
        return NCAADivision(division.strip().lower())
    except ValueError:
        valid = ", ".join(d.value for d in NCAADivision)
        raise ValueError(f"Invalid division '{division}'. Valid divisions: {valid}")


async def list_njcaa_colleges(session: AsyncSession) -> List[Dict]:
    """Active NJCAA colleges ordered by state, then name."""
    result = await session.execute(
        select(NJCAACollege)
        .where(NJCAACollege.is_active == True)  # noqa: E712
        .order_by(NJCAACollege.state, NJCAACollege.name)
    )
    return [serialize_njcaa_college(c) for c in result.scalars().all()]


async def list_ncaa_colleges(
    session: AsyncSession, division: Optional[NCAADivision] = None
) -> List[Dict]:
    """Active NCAA/NAIA colleges, optionally filtered by division."""
    query = select(NCAACollege).where(NCAACollege.is_active == True)  # noqa: E712
    if division is not None:
        query = query.where(NCAACollege.division == division)
    result = await session.execute(query.order_by(NCAACollege.state, NCAACollege.name))
    return [serialize_ncaa_college(c) for c in result.scalars().all()]


async def create_njcaa_college(session: AsyncSession, name: str, state: str, region: str) -> Dict:
    college = NJCAACollege(name=name.strip(), state=state, region=region.strip(), is_active=True)
    session.add(college)
    await session.flush()
    logger.info(f"Created NJCAA college {college.id}: {college.name}")
    return serialize_njcaa_college(college)


async def update_njcaa_college(session: AsyncSession, college_id: int, **changes) -> Dict:
    """
    Update an NJCAA college. Only keys with a non-None value are applied.

    Raises:
        NotFoundError: If the college does not exist
    """
    college = await session.get(NJCAACollege, college_id)
    if college is None:
        raise NotFoundError("NJCAA college not found")
    for field in ("name", "state", "region", "is_active"):
        value = changes.get(field)
        if value is not None:
            setattr(college, field, value.strip() if isinstance(value, str) else value)
    await session.flush()
    return serialize_njcaa_college(college)


async def create_ncaa_college(
    session: AsyncSession, name: str, state: str, division: NCAADivision
) -> Dict:
    """
    Create an NCAA/NAIA college.

    Raises:
        ConflictError: If a college with the same name (case-insensitive) exists
    """
    name = name.strip()
    existing = await session.execute(
        select(NCAACollege.id).where(func.lower(NCAACollege.name) == name.lower())
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"An NCAA college named '{name}' already exists")

    college = NCAACollege(name=name, state=state, division=NCAADivision(division), is_active=True)
    session.add(college)
    await session.flush()
    logger.info(f"Created NCAA college {college.id}: {college.name}")
    return serialize_ncaa_college(college)
