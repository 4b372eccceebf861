"""
Matchroom API Server

FastAPI server for sports meetup rooms, the coin economy, friends, inbox
and player ratings.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from matchroom.api.routes import router, limiter as routes_limiter, matchroom_error_handler
from matchroom.database import db
from matchroom.utils.errors import MatchroomError

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info("Starting up Matchroom API...")

    # Create tables that migrations have not created yet
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        # Don't raise - allow app to start even if initialization fails

    yield  # App is running

    logger.info("Shutting down Matchroom API...")
    await db.engine.dispose()


app = FastAPI(
    title="Matchroom API",
    description="API for organizing and joining sports meetup rooms",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Refused domain operations render as {"detail", "code"}
app.add_exception_handler(MatchroomError, matchroom_error_handler)

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


@app.get("/api/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
