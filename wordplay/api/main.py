"""
wordplay.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn wordplay.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from wordplay.api.deps import get_engine  # noqa: E402
from wordplay.api.routes.arenas import router as arenas_router  # noqa: E402
from wordplay.api.routes.games import router as games_router  # noqa: E402
from wordplay.api.routes.leaderboard import router as leaderboard_router  # noqa: E402
from wordplay.api.routes.streak_freeze import router as streak_freeze_router  # noqa: E402
from wordplay.exceptions import (  # noqa: E402
    ConflictError,
    ExternalServiceError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
    WordplayError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
_STATUS_BY_ERROR: list[tuple[type[WordplayError], int]] = [
    (NotFoundError, 404),
    (ValidationError, 400),
    (ConflictError, 409),
    (ExternalServiceError, 502),
    (InvariantViolation, 422),
]


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


def status_for(exc: WordplayError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("Wordplay API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Wordplay API shutting down")


app = FastAPI(
    title="Wordplay API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WordplayError)
async def wordplay_error_handler(request: Request, exc: WordplayError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content=exc.to_dict())


# Mount routers
app.include_router(games_router, prefix="/api")
app.include_router(arenas_router, prefix="/api")
app.include_router(streak_freeze_router, prefix="/api")
app.include_router(leaderboard_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
