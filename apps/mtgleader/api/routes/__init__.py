"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, watermark parsing) lives here; every
sub-router imports what it needs from this package.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter
from slowapi import Limiter
from slowapi.util import get_remote_address

from mtgleader.config import IS_TEST_ENV
from mtgleader.services.errors import InvalidUpdatedAtError
from mtgleader.utils.datetime_utils import now_millis, parse_updated_at

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
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


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------
def watermark_or_none(raw: Optional[str]) -> Optional[datetime]:
    """Parse an optional ``updated_at`` from a request body."""
    if raw is None:
        return None
    try:
        return parse_updated_at(raw)
    except ValueError:
        raise InvalidUpdatedAtError()


def watermark_or_now(raw: Optional[str]) -> datetime:
    parsed = watermark_or_none(raw)
    return parsed if parsed is not None else now_millis()


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from mtgleader.api.routes.health import router as health_router  # noqa: E402
from mtgleader.api.routes.auth import router as auth_router  # noqa: E402
from mtgleader.api.routes.users import router as users_router  # noqa: E402
from mtgleader.api.routes.friends import router as friends_router  # noqa: E402
from mtgleader.api.routes.matches import router as matches_router  # noqa: E402
from mtgleader.api.routes.stats import router as stats_router  # noqa: E402
from mtgleader.api.routes.notifications import router as notifications_router  # noqa: E402
from mtgleader.api.routes.admin import router as admin_router  # noqa: E402

router = APIRouter()
router.include_router(health_router)
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(friends_router)
router.include_router(matches_router)
router.include_router(stats_router)
router.include_router(notifications_router)
router.include_router(admin_router)
