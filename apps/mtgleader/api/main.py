"""
MTG Leader API Server

FastAPI server for recording Magic: The Gathering pods, managing friends
and serving play statistics.
"""

from contextlib import asynccontextmanager
import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from mtgleader import config
from mtgleader.api.errors import register_exception_handlers
from mtgleader.api.routes import router, limiter as routes_limiter
from mtgleader.database import db
from mtgleader.services.rate_limiting_service import SlidingWindowLimiter

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
numeric_level = getattr(logging, config.LOG_LEVEL, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info(f"Starting up MTG Leader API (env={config.ENV})...")
    config.validate()

    # Create tables that migrations have not created yet
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    yield  # App is running

    logger.info("Shutting down MTG Leader API...")
    await db.engine.dispose()


app = FastAPI(
    title="MTG Leader API",
    description="API for recording Magic: The Gathering matches between friends",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiters
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.state.login_limiter = SlidingWindowLimiter(
    config.LOGIN_RATE_LIMIT, config.LOGIN_RATE_WINDOW_SECONDS
)

register_exception_handlers(app)

# Add CORS middleware; origins configured via ALLOWED_ORIGINS env var
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["ETag"],
)

# Include API routes
app.include_router(router)

# Uploaded avatars
app.mount("/avatars", StaticFiles(directory=config.AVATAR_DIR, check_dir=False), name="avatars")


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
