"""Authentication route handlers."""

import asyncio
import logging
from typing import Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from portall.api.routes import limiter, AUTH_RATE_LIMIT, INVALID_CREDENTIALS_RESPONSE, to_http_exception
from portall.database.db import get_db_session
from portall.services import auth_service, user_service, email_service
from portall.api.auth_dependencies import get_current_user
from portall.models.schemas import (
    RegisterRequest,
    LoginRequest,
    RefreshTokenRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()

FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a reset link has been sent"


@router.post("/api/auth/register", status_code=201, response_model=Dict[str, Any])
@limiter.limit(AUTH_RATE_LIMIT)
async def register(
    request: Request, payload: RegisterRequest, session: AsyncSession = Depends(get_db_session)
):
    """
    Create an account and its role profile. The account stays inactive until
    an admin approves it, so no tokens are returned.
    """
    try:
        user = await user_service.register_user(
            session,
            email=payload.email,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            user_type=payload.user_type,
            profile_data=payload.profile_data(),
        )
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error during registration: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Registration failed")

    # Emails go out only once the account is committed; their failures are logged and never fail the request
    await session.commit()
    await asyncio.to_thread(email_service.send_welcome_email, user)
    await asyncio.to_thread(email_service.send_new_registration_notification, user)

    return {
        "status": "success",
        "message": "Registration successful. Your account is pending admin approval.",
        "data": {"user": user},
    }


@router.post("/api/auth/login", response_model=Dict[str, Any])
@limiter.limit(AUTH_RATE_LIMIT)
async def login(request: Request, payload: LoginRequest, session: AsyncSession = Depends(get_db_session)):
    """Login with email and password."""
    try:
        user = await user_service.get_user_by_email(session, payload.email)
        if user is None or not auth_service.verify_password(payload.password, user.password_hash):
            raise INVALID_CREDENTIALS_RESPONSE
        if not user.is_active:
            raise HTTPException(status_code=403, detail="Account pending approval")

        await user_service.update_last_login(session, user.id)
        user_dict = await user_service.get_user_by_id(session, user.id)
        claims = auth_service.build_token_claims(user_dict)

        logger.info(f"User {user.id} logged in")
        return {
            "access_token": auth_service.create_access_token(claims),
            "refresh_token": auth_service.create_refresh_token(claims),
            "token_type": "bearer",
            "expires_in": auth_service.ACCESS_TOKEN_EXPIRATION_MINUTES * 60,
            "user": user_dict,
        }
    except HTTPException:
        raise
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error during login: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Login failed")


@router.post("/api/auth/refresh", response_model=Dict[str, Any])
async def refresh_token(payload: RefreshTokenRequest, session: AsyncSession = Depends(get_db_session)):
    """Exchange a refresh token for a new access token."""
    claims = auth_service.verify_token(payload.refresh_token, expected_type=auth_service.TOKEN_TYPE_REFRESH)
    if claims is None:
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")

    user = await user_service.get_user_by_id(session, claims.get("user_id"))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if not user["is_active"]:
        raise HTTPException(status_code=403, detail="Account pending approval")

    return {
        "access_token": auth_service.create_access_token(auth_service.build_token_claims(user)),
        "token_type": "bearer",
        "expires_in": auth_service.ACCESS_TOKEN_EXPIRATION_MINUTES * 60,
    }


@router.post("/api/auth/logout", response_model=Dict[str, Any])
async def logout(user: dict = Depends(get_current_user)):
    """Tokens are stateless; the client discards them."""
    logger.info(f"User {user['id']} logged out")
    return {"status": "success", "message": "Logged out"}


@router.get("/api/auth/me", response_model=Dict[str, Any])
async def get_me(user: dict = Depends(get_current_user)):
    """Current user with their profile."""
    return user


@router.post("/api/auth/forgot-password", response_model=Dict[str, Any])
@limiter.limit(AUTH_RATE_LIMIT)
async def forgot_password(
    request: Request, payload: ForgotPasswordRequest, session: AsyncSession = Depends(get_db_session)
):
    """Always answers the same message so the endpoint never reveals which emails are registered."""
    try:
        user = await user_service.get_user_by_email(session, payload.email)
        if user is not None:
            token = auth_service.generate_reset_token()
            await user_service.set_password_reset_token(session, user.id, token)
            user_dict = {"id": user.id, "email": user.email, "first_name": user.first_name}
            await session.commit()
            await asyncio.to_thread(email_service.send_password_reset_email, user_dict, token)
        else:
            logger.info("Password reset requested for unknown email")
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error during forgot-password: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Could not process the request")

    return {"status": "success", "message": FORGOT_PASSWORD_MESSAGE}


@router.post("/api/auth/reset-password", response_model=Dict[str, Any])
@limiter.limit(AUTH_RATE_LIMIT)
async def reset_password(
    request: Request, payload: ResetPasswordRequest, session: AsyncSession = Depends(get_db_session)
):
    try:
        await user_service.reset_password(session, payload.token, payload.password)
    except ValueError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise
    except Exception as e:
        logger.error(f"Error during password reset: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Password reset failed")
    return {"status": "success", "message": "Password has been reset. You can now log in."}
