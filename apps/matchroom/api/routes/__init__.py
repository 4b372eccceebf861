"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping) lives here; every sub-router
imports what it needs from this package.
"""

import os

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from matchroom.utils.errors import MatchroomError

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

# Posting limits for chat and direct messages
MESSAGE_RATE_LIMIT = os.getenv("MESSAGE_RATE_LIMIT", "30/minute")


# ---------------------------------------------------------------------------
# Domain error mapping
# ---------------------------------------------------------------------------
async def matchroom_error_handler(request: Request, exc: MatchroomError) -> JSONResponse:
    """Render a refused operation as {"detail", "code"} with its HTTP status."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "code": exc.code},
    )


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from matchroom.api.routes.players import router as players_router  # noqa: E402
from matchroom.api.routes.rooms import router as rooms_router  # noqa: E402
from matchroom.api.routes.friends import router as friends_router  # noqa: E402
from matchroom.api.routes.inbox import router as inbox_router  # noqa: E402

router = APIRouter()
router.include_router(players_router)
router.include_router(rooms_router)
router.include_router(friends_router)
router.include_router(inbox_router)
