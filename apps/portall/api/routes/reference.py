"""Reference data route handlers: college lists (public) and college admin."""

import logging
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portall.api.routes import to_http_exception
from portall.database.db import get_db_session
from portall.services import reference_service
from portall.api.auth_dependencies import require_admin
from portall.models.schemas import NJCAACollegeCreate, NJCAACollegeUpdate, NCAACollegeCreate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/reference/njcaa-colleges", response_model=Dict[str, Any])
async def list_njcaa_colleges(session: AsyncSession = Depends(get_db_session)):
    """Active NJCAA colleges for registration forms."""
    try:
        colleges = await reference_service.list_njcaa_colleges(session)
        return {"colleges": colleges, "total": len(colleges)}
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error listing NJCAA colleges: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading colleges")


@router.get("/api/reference/ncaa-colleges", response_model=Dict[str, Any])
async def list_ncaa_colleges(
    division: Optional[str] = None,
    session: AsyncSession = Depends(get_db_session),
):
    try:
        parsed = reference_service.parse_ncaa_division(division) if division else None
        colleges = await reference_service.list_ncaa_colleges(session, parsed)
        return {"colleges": colleges, "total": len(colleges), "division": parsed.value if parsed else None}
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error listing NCAA colleges: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading colleges")


@router.get("/api/reference/ncaa-colleges/{division}", response_model=Dict[str, Any])
async def list_ncaa_colleges_by_division(division: str, session: AsyncSession = Depends(get_db_session)):
    try:
        parsed = reference_service.parse_ncaa_division(division)
        colleges = await reference_service.list_ncaa_colleges(session, parsed)
        return {"colleges": colleges, "total": len(colleges), "division": parsed.value}
    except ValueError as e:
        raise to_http_exception(e)


@router.post("/api/reference/njcaa-colleges", status_code=201, response_model=Dict[str, Any])
async def create_njcaa_college(
    payload: NJCAACollegeCreate,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await reference_service.create_njcaa_college(session, payload.name, payload.state, payload.region)
    except ValueError as e:
        raise to_http_exception(e)


@router.put("/api/reference/njcaa-colleges/{college_id}", response_model=Dict[str, Any])
async def update_njcaa_college(
    college_id: int,
    payload: NJCAACollegeUpdate,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await reference_service.update_njcaa_college(
            session, college_id, **payload.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise to_http_exception(e)


@router.post("/api/reference/ncaa-colleges", status_code=201, response_model=Dict[str, Any])
async def create_ncaa_college(
    payload: NCAACollegeCreate,
    user: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await reference_service.create_ncaa_college(session, payload.name, payload.state, payload.division)
    except ValueError as e:
        raise to_http_exception(e)
