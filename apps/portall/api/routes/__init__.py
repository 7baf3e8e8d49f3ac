"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping) lives here; every sub-router
imports what it needs from this package.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from portall.services.errors import (
    NotFoundError,
    PermissionDeniedError,
    ConflictError,
)

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

AUTH_RATE_LIMIT = os.getenv("AUTH_RATE_LIMIT", "10/minute")
WEBHOOK_RATE_LIMIT = os.getenv("WEBHOOK_RATE_LIMIT", "100/minute")

# ---------------------------------------------------------------------------
# Shared constants
# ---------------------------------------------------------------------------
INVALID_CREDENTIALS_RESPONSE = HTTPException(status_code=401, detail="Invalid email or password")

ERROR_STATUS_CODES = (
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (ConflictError, 409),
)


def to_http_exception(error: ValueError) -> HTTPException:
    """Map a service-layer error to its HTTP status (plain ValueError -> 400)."""
    for error_cls, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_cls):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from portall.api.routes.auth import router as auth_router  # noqa: E402
from portall.api.routes.players import router as players_router  # noqa: E402
from portall.api.routes.coaches import router as coaches_router  # noqa: E402
from portall.api.routes.njcaa_coaches import router as njcaa_coaches_router  # noqa: E402
from portall.api.routes.reference import router as reference_router  # noqa: E402
from portall.api.routes.subscriptions import router as subscriptions_router  # noqa: E402
from portall.api.routes.webhooks import router as webhooks_router  # noqa: E402
from portall.api.routes.admin import router as admin_router  # noqa: E402

router = APIRouter()
router.include_router(auth_router)
router.include_router(players_router)
router.include_router(coaches_router)
router.include_router(njcaa_coaches_router)
router.include_router(reference_router)
router.include_router(subscriptions_router)
router.include_router(webhooks_router)
router.include_router(admin_router)
