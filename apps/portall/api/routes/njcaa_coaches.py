"""NJCAA coach route handlers: roster dashboard, settings and player evaluations."""

import logging
from typing import Dict, Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portall.api.routes import to_http_exception
from portall.database.db import get_db_session
from portall.services import njcaa_coach_service
from portall.api.auth_dependencies import require_njcaa_coach
from portall.models.schemas import EvaluationRequest, NJCAASettingsUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/njcaa-coaches/dashboard", response_model=Dict[str, Any])
async def get_dashboard(
    user: dict = Depends(require_njcaa_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await njcaa_coach_service.get_dashboard(session, user["id"])
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error loading NJCAA coach dashboard: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading dashboard")


@router.get("/api/njcaa-coaches/settings", response_model=Dict[str, Any])
async def get_settings(
    user: dict = Depends(require_njcaa_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await njcaa_coach_service.get_settings(session, user["id"])
    except ValueError as e:
        raise to_http_exception(e)


@router.put("/api/njcaa-coaches/settings", response_model=Dict[str, Any])
async def update_settings(
    payload: NJCAASettingsUpdate,
    user: dict = Depends(require_njcaa_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await njcaa_coach_service.update_settings(session, user["id"], payload.phone_number)
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error updating NJCAA coach settings: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating settings")


@router.get("/api/njcaa-coaches/players/{player_id}/evaluation", response_model=Dict[str, Any])
async def get_player_evaluation(
    player_id: int,
    user: dict = Depends(require_njcaa_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await njcaa_coach_service.get_player_evaluation(session, user["id"], player_id)
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error loading evaluation of player {player_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading evaluation")


@router.post("/api/njcaa-coaches/players/{player_id}/evaluation", status_code=201, response_model=Dict[str, Any])
async def evaluate_player(
    player_id: int,
    payload: EvaluationRequest,
    user: dict = Depends(require_njcaa_coach),
    session: AsyncSession = Depends(get_db_session),
):
    """Write a new evaluation version; the previous one becomes history."""
    try:
        result = await njcaa_coach_service.evaluate_player(session, user["id"], player_id, payload.model_dump())
        return {
            "status": "success",
            "message": "Evaluation updated" if result["is_update"] else "Evaluation created",
            "data": result,
        }
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error evaluating player {player_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error saving evaluation")


@router.get("/api/njcaa-coaches/evaluation-history", response_model=Dict[str, Any])
async def get_evaluation_history(
    user: dict = Depends(require_njcaa_coach),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await njcaa_coach_service.get_evaluation_history(session, user["id"])
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error loading evaluation history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error loading evaluation history")
