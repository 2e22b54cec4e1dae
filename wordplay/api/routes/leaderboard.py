"""
wordplay.api.routes.leaderboard — Ranked views
================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from wordplay.api.deps import get_config, get_engine, get_optional_user
from wordplay.config import WordplayConfig
from wordplay.constants import is_daily_key
from wordplay.engine.games import UserKey
from wordplay.exceptions import ValidationError
from wordplay.services import leaderboard_service
from wordplay.services.leaderboard_service import LeaderboardType

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])


@router.get("/{board_type}")
def get_leaderboard(
    board_type: LeaderboardType,
    identity_provider: str = Query(...),
    date: str | None = Query(None),
    days: int | None = Query(None, ge=1, le=365),
    user: UserKey | None = Depends(get_optional_user),
    engine: Engine = Depends(get_engine),
    cfg: WordplayConfig = Depends(get_config),
):
    """``score``, ``wins`` or ``streak`` for one identity provider.

    A signed-in caller of the same provider also gets their own entry, even
    when outside the top N.
    """
    if date is not None and not is_daily_key(date):
        raise ValidationError(f"{date!r} is not a date", code="invalid_date")
    if user is not None and user.identity_provider != identity_provider:
        user = None
    board = leaderboard_service.rank(
        engine, board_type, identity_provider, date=date, days=days, user=user, cfg=cfg
    )
    return board.to_dict()
