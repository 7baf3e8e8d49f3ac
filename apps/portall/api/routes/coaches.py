"""Coach route handlers: dashboard, profile, favorites and saved searches."""

import logging
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portall.api.routes import to_http_exception
from portall.database.db import get_db_session
from portall.database.models import FavoritePriority, RecruitmentStatus
from portall.services import coach_service
from portall.api.auth_dependencies import require_active_user, require_coach
from portall.models.schemas import (
    CoachProfileUpdate,
    FavoriteCreate,
    FavoriteUpdate,
    SavedSearchCreate,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/coaches/dashboard", response_model=Dict[str, Any])
async def get_dashboard(
    user: dict = Depends(require_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await coach_service.get_dashboard(session, user["id"])
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error loading coach dashboard: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading dashboard")


@router.get("/api/coaches/analytics", response_model=Dict[str, Any])
async def get_analytics(
    user: dict = Depends(require_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await coach_service.get_analytics(session, user["id"])
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error loading coach analytics: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading analytics")


@router.put("/api/coaches/profile", response_model=Dict[str, Any])
async def update_profile(
    payload: CoachProfileUpdate,
    user: dict = Depends(require_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await coach_service.update_profile(session, user["id"], payload.model_dump(exclude_unset=True))
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error updating coach profile: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating profile")


# ---------------------------------------------------------------------------
# Favorites
# ---------------------------------------------------------------------------


@router.get("/api/coaches/favorites", response_model=Dict[str, Any])
async def list_favorites(
    status: Optional[RecruitmentStatus] = None,
    priority: Optional[FavoritePriority] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: dict = Depends(require_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        result = await coach_service.list_favorites(
            session,
            user["id"],
            recruitment_status=status,
            priority_level=priority,
            limit=limit,
            offset=offset,
        )
        return {**result, "limit": limit, "offset": offset}
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error listing favorites: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing favorites")


@router.post("/api/coaches/favorites/{player_id}", status_code=201, response_model=Dict[str, Any])
async def add_favorite(
    player_id: int,
    payload: Optional[FavoriteCreate] = None,
    user: dict = Depends(require_coach),
    session: AsyncSession = Depends(get_db_session),
):
    payload = payload or FavoriteCreate()
    try:
        return await coach_service.add_favorite(
            session,
            user["id"],
            player_id,
            priority_level=payload.priority_level,
            recruitment_status=payload.recruitment_status,
            notes=payload.notes,
        )
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error adding favorite: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error adding favorite")


@router.put("/api/coaches/favorites/{player_id}", response_model=Dict[str, Any])
async def update_favorite(
    player_id: int,
    payload: FavoriteUpdate,
    user: dict = Depends(require_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await coach_service.update_favorite(
            session, user["id"], player_id, payload.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error updating favorite: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating favorite")


@router.delete("/api/coaches/favorites/{player_id}", response_model=Dict[str, Any])
async def remove_favorite(
    player_id: int,
    user: dict = Depends(require_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await coach_service.remove_favorite(session, user["id"], player_id)
        return {"status": "success", "message": "Player removed from favorites"}
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error removing favorite: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error removing favorite")


# ---------------------------------------------------------------------------
# Saved searches
# ---------------------------------------------------------------------------


@router.get("/api/coaches/saved-searches", response_model=Dict[str, Any])
async def get_saved_searches(
    user: dict = Depends(require_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await coach_service.get_saved_searches(session, user["id"])
    except ValueError as e:
        raise to_http_exception(e)


@router.post("/api/coaches/saved-searches", status_code=201, response_model=Dict[str, Any])
async def save_search(
    payload: SavedSearchCreate,
    user: dict = Depends(require_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await coach_service.save_search(session, user["id"], payload.name, payload.criteria)
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error saving search: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error saving search")


@router.delete("/api/coaches/saved-searches/{search_id}", response_model=Dict[str, Any])
async def delete_saved_search(
    search_id: str,
    user: dict = Depends(require_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await coach_service.delete_saved_search(session, user["id"], search_id)
    except ValueError as e:
        raise to_http_exception(e)


@router.get("/api/coaches/{coach_id}/profile", response_model=Dict[str, Any])
async def get_public_profile(
    coach_id: int,
    user: dict = Depends(require_active_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await coach_service.get_public_profile(session, coach_id)
    except ValueError as e:
        raise to_http_exception(e)
