"""Player route handlers: dashboard, profile management and recruiter search."""

import logging
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portall.api.routes import to_http_exception
from portall.database.db import get_db_session
from portall.database.models import Gender, PlayerPosition, UserType
from portall.services import player_service
from portall.api.auth_dependencies import (
    require_active_user,
    require_player,
    require_recruiter,
    require_user_type,
)
from portall.models.schemas import PlayerProfileUpdate, VisibilityRequest

logger = logging.getLogger(__name__)
router = APIRouter()

require_coach_viewer = require_user_type(UserType.COACH, UserType.NJCAA_COACH)


@router.get("/api/players/dashboard", response_model=Dict[str, Any])
async def get_dashboard(
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await player_service.get_dashboard(session, user["id"])
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error loading player dashboard: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading dashboard")


@router.get("/api/players/analytics", response_model=Dict[str, Any])
async def get_analytics(
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await player_service.get_analytics(session, user["id"])
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error loading player analytics: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading analytics")


@router.get("/api/players/search", response_model=Dict[str, Any])
async def search_players(
    gender: Optional[Gender] = None,
    position: Optional[PlayerPosition] = None,
    state: Optional[str] = Query(None, min_length=2, max_length=2),
    region: Optional[str] = None,
    college_id: Optional[int] = None,
    min_views: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: dict = Depends(require_recruiter),
    session: AsyncSession = Depends(get_db_session),
):
    """Visible profiles of active players, most viewed first."""
    try:
        result = await player_service.find_visible_profiles(
            session,
            gender=gender,
            position=position,
            state=state,
            region=region,
            college_id=college_id,
            min_views=min_views,
            limit=limit,
            offset=offset,
        )
        return {**result, "limit": limit, "offset": offset}
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error searching players: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error searching players")


@router.put("/api/players/profile", response_model=Dict[str, Any])
async def update_profile(
    payload: PlayerProfileUpdate,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Partial update: only fields present in the body are written."""
    try:
        return await player_service.update_profile(session, user["id"], payload.model_dump(exclude_unset=True))
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error updating player profile: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating profile")


@router.post("/api/players/profile/visibility", response_model=Dict[str, Any])
async def set_visibility(
    payload: VisibilityRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await player_service.set_profile_visibility(session, user["id"], payload.is_visible)
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error updating visibility: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating visibility")


@router.get("/api/players/{player_id}/profile", response_model=Dict[str, Any])
async def get_player_profile(
    player_id: int,
    user: dict = Depends(require_active_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await player_service.get_player_profile_for_viewer(session, player_id, user)
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error loading player profile {player_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading player profile")


@router.post("/api/players/{player_id}/view", response_model=Dict[str, Any])
async def record_view(
    player_id: int,
    user: dict = Depends(require_coach_viewer),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await player_service.record_profile_view(session, player_id, user["id"])
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error recording profile view: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error recording profile view")
