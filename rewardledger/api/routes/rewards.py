"""
rewardledger.api.routes.rewards — Member reward endpoints (JWT‑protected)
==========================================================================

Every mutating route is safe to call repeatedly: the services fence each
"once per day" rule in the database.  Fatal errors (missing balance row,
database failure) become a 500 with no celebration flag; the client decides
whether to try again.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from rewardledger.api.deps import (
    get_cache,
    get_claim_hint,
    get_config,
    get_current_user,
    get_engine,
    get_notifier,
)
from rewardledger.config import RewardsConfig
from rewardledger.constants import DailyActivity
from rewardledger.engine.cache import RewardCatalogCache
from rewardledger.services import (
    daily_login_service,
    engagement_service,
    ledger_service,
    scratch_card_service,
    streak_service,
)
from rewardledger.services.daily_login_service import ClaimedTodayCache
from rewardledger.services.ledger_service import LedgerError
from rewardledger.services.notifications import Notifier

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rewards"])

EngineDep = Annotated[Engine, Depends(get_engine)]
CacheDep = Annotated[RewardCatalogCache, Depends(get_cache)]
ConfigDep = Annotated[RewardsConfig, Depends(get_config)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]
UserDep = Annotated[dict, Depends(get_current_user)]


def _reward_failed(action: str, user_id: str) -> HTTPException:
    logger.exception("%s failed for user=%s", action, user_id)
    return HTTPException(
        status.HTTP_500_INTERNAL_SERVER_ERROR, f"{action} could not be recorded",
    )


# ---------------------------------------------------------------------------
# Daily login + streak
# ---------------------------------------------------------------------------
@router.post("/rewards/daily-login")
def claim_daily_login(
    user: UserDep,
    engine: EngineDep,
    cache: CacheDep,
    cfg: ConfigDep,
    notifier: NotifierDep,
    hint: Annotated[ClaimedTodayCache, Depends(get_claim_hint)],
):
    user_id = str(user["sub"])
    try:
        result = daily_login_service.claim_daily_login(
            engine, cache, user_id,
            tz=cfg.tz, notifier=notifier, hint=hint,
            display_name=user.get("username"),
        )
    except (LedgerError, SQLAlchemyError):
        raise _reward_failed("Daily login", user_id)
    return asdict(result)


@router.post("/rewards/streak")
def record_streak(
    user: UserDep,
    engine: EngineDep,
    cache: CacheDep,
    cfg: ConfigDep,
    notifier: NotifierDep,
):
    user_id = str(user["sub"])
    try:
        result = streak_service.record_login(
            engine, cache, user_id,
            tz=cfg.tz, notifier=notifier, display_name=user.get("username"),
        )
    except (LedgerError, SQLAlchemyError):
        raise _reward_failed("Streak", user_id)
    return asdict(result)


@router.post("/rewards/check-in")
def check_in(
    user: UserDep,
    engine: EngineDep,
    cache: CacheDep,
    cfg: ConfigDep,
    notifier: NotifierDep,
    hint: Annotated[ClaimedTodayCache, Depends(get_claim_hint)],
):
    """Login bonus and streak in one call, as the client does on page load."""
    user_id = str(user["sub"])
    try:
        login = daily_login_service.claim_daily_login(
            engine, cache, user_id,
            tz=cfg.tz, notifier=notifier, hint=hint,
            display_name=user.get("username"),
        )
        streak = streak_service.record_login(
            engine, cache, user_id, tz=cfg.tz, notifier=notifier,
        )
    except (LedgerError, SQLAlchemyError):
        raise _reward_failed("Check-in", user_id)
    return {"daily_login": asdict(login), "streak": asdict(streak)}


# ---------------------------------------------------------------------------
# Daily activities + engagement bonus
# ---------------------------------------------------------------------------
@router.post("/activities/{activity}")
def complete_activity(
    activity: DailyActivity,
    user: UserDep,
    engine: EngineDep,
    cache: CacheDep,
    cfg: ConfigDep,
    notifier: NotifierDep,
):
    """Record one activity, then claim the combined bonus if that finished the set."""
    user_id = str(user["sub"])
    try:
        result = engagement_service.record_activity(
            engine, cache, user_id, activity,
            tz=cfg.tz, notifier=notifier, display_name=user.get("username"),
        )
        status_, bonus = engagement_service.check_engagement(
            engine, cache, user_id, tz=cfg.tz, notifier=notifier,
        )
    except (LedgerError, SQLAlchemyError):
        raise _reward_failed("Activity", user_id)
    return {**asdict(result), "status": status_, "engagement": asdict(bonus)}


@router.get("/rewards/engagement")
def engagement_status(user: UserDep, engine: EngineDep, cfg: ConfigDep):
    return engagement_service.get_completion_status(engine, str(user["sub"]), tz=cfg.tz)


@router.post("/rewards/engagement")
def claim_engagement(
    user: UserDep,
    engine: EngineDep,
    cache: CacheDep,
    cfg: ConfigDep,
    notifier: NotifierDep,
):
    user_id = str(user["sub"])
    try:
        status_, result = engagement_service.check_engagement(
            engine, cache, user_id, tz=cfg.tz, notifier=notifier,
        )
    except (LedgerError, SQLAlchemyError):
        raise _reward_failed("Engagement bonus", user_id)
    return {"status": status_, **asdict(result)}


# ---------------------------------------------------------------------------
# Me
# ---------------------------------------------------------------------------
@router.get("/me/balance")
def my_balance(user: UserDep, engine: EngineDep):
    balance = ledger_service.get_balance(engine, str(user["sub"]))
    return {"user_id": str(user["sub"]), "coins": balance or 0}


@router.get("/me/transactions")
def my_transactions(
    user: UserDep,
    engine: EngineDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=ledger_service.MAX_PAGE_SIZE),
):
    items, total = ledger_service.list_transactions(
        engine, str(user["sub"]), page=page, page_size=page_size,
    )
    return {"transactions": items, "total": total, "page": page, "page_size": page_size}


@router.get("/me/streak")
def my_streak(
    user: UserDep,
    engine: EngineDep,
    cache: CacheDep,
    cfg: ConfigDep,
    hint: Annotated[ClaimedTodayCache, Depends(get_claim_hint)],
):
    user_id = str(user["sub"])
    result = streak_service.get_streak(engine, cache, user_id)
    claimed = daily_login_service.has_claimed_today(engine, user_id, tz=cfg.tz, hint=hint)
    return {**asdict(result), "claimed_today": claimed}


@router.get("/me/scratch-card")
def my_scratch_card(user: UserDep, engine: EngineDep, cfg: ConfigDep):
    """Today's free card, generated on first view if the batch hasn't run yet."""
    card = scratch_card_service.ensure_daily_card(engine, str(user["sub"]), cfg.tz)
    if card is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "No active sticker collection")
    return card
