"""
rewardledger.services.engagement_service — Daily Activities & Combined Bonus
=============================================================================

Each day a member can complete a fixed set of activities (mood check-in,
daily fortune, the Daily Five word game).  Each activity pays its own reward
once per day, and finishing all of them pays the ``daily_engagement_bonus``
once per day on top.

Both layers use the same fence pattern: INSERT the day's completion row in a
SAVEPOINT, treat ``IntegrityError`` as "already done", and award in the same
transaction as the fence row.  :func:`claim_engagement_bonus` is therefore
safe to call on every render of the daily bar.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rewardledger.constants import (
    ACTIVITY_REWARD_KEYS,
    REQUIRED_ACTIVITIES,
    DailyActivity,
    RewardKey,
)
from rewardledger.database.models import (
    DailyActivityCompletion,
    DailyEngagementCompletion,
)
from rewardledger.engine.clock import today
from rewardledger.services.catalog_service import apply_reward
from rewardledger.services.ledger_service import get_or_create_user
from rewardledger.services.notifications import safe_notify

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from rewardledger.engine.cache import RewardCatalogCache
    from rewardledger.services.notifications import Notifier

logger = logging.getLogger(__name__)

ENGAGEMENT_DESCRIPTION = "Completed all daily activities!"


@dataclass
class ActivityResult:
    activity: str
    completion_date: str
    already_completed: bool = False
    coins_awarded: int = 0


@dataclass
class EngagementResult:
    completion_date: str
    celebrate: bool = False
    already_completed: bool = False
    coins_awarded: int = 0


# ---------------------------------------------------------------------------
# Per-activity completion
# ---------------------------------------------------------------------------
def record_activity(
    engine: Engine,
    cache: RewardCatalogCache,
    user_id: str,
    activity: DailyActivity | str,
    now: datetime | None = None,
    *,
    tz: ZoneInfo | str | None = None,
    notifier: Notifier | None = None,
    display_name: str | None = None,
) -> ActivityResult:
    """Mark *activity* done for today and pay its reward the first time.

    Raises ``ValueError`` for an unknown activity.
    """
    activity = DailyActivity(activity)
    reward_key = ACTIVITY_REWARD_KEYS[activity]
    day = today(tz, now)
    rule = cache.get_rule(reward_key)

    with Session(engine) as session:
        get_or_create_user(session, user_id, display_name)

        marker = DailyActivityCompletion(
            user_id=user_id,
            activity_key=activity.value,
            completion_date=day,
            coins_awarded=0,
        )
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(marker)
                session.flush()
        except IntegrityError:
            session.commit()
            return ActivityResult(
                activity=activity.value,
                completion_date=day.isoformat(),
                already_completed=True,
            )

        outcome = apply_reward(session, user_id, reward_key, rule)
        marker.coins_awarded = outcome.amount
        session.commit()

    if outcome.awarded and notifier is not None:
        safe_notify(notifier, user_id, outcome.amount, outcome.description)

    logger.info(
        "Activity %s completed: user=%s day=%s coins=%d",
        activity, user_id, day, outcome.amount,
    )
    return ActivityResult(
        activity=activity.value,
        completion_date=day.isoformat(),
        coins_awarded=outcome.amount,
    )


def get_completion_status(
    engine: Engine,
    user_id: str,
    now: datetime | None = None,
    *,
    tz: ZoneInfo | str | None = None,
) -> dict[str, Any]:
    """Which of today's activities *user_id* has finished.

    Returns ``{"date", "activities": {name: bool}, "all_complete"}``.
    """
    day = today(tz, now)
    with Session(engine) as session:
        done = set(session.scalars(
            select(DailyActivityCompletion.activity_key).where(
                DailyActivityCompletion.user_id == user_id,
                DailyActivityCompletion.completion_date == day,
            )
        ).all())

    activities = {a.value: a.value in done for a in sorted(REQUIRED_ACTIVITIES)}
    return {
        "date": day.isoformat(),
        "activities": activities,
        "all_complete": all(activities.values()),
    }


# ---------------------------------------------------------------------------
# Combined bonus
# ---------------------------------------------------------------------------
def claim_engagement_bonus(
    engine: Engine,
    cache: RewardCatalogCache,
    user_id: str,
    all_complete: bool,
    now: datetime | None = None,
    *,
    tz: ZoneInfo | str | None = None,
    notifier: Notifier | None = None,
) -> EngagementResult:
    """Pay the all-activities bonus once per day.

    ``celebrate`` is True only on the call that actually recorded today's
    completion; every other call (incomplete, duplicate) returns quietly.
    """
    day = today(tz, now)
    if not all_complete:
        return EngagementResult(completion_date=day.isoformat())

    rule = cache.get_rule(RewardKey.DAILY_ENGAGEMENT_BONUS)
    with Session(engine) as session:
        get_or_create_user(session, user_id)

        completion = DailyEngagementCompletion(
            user_id=user_id, completion_date=day, coins_awarded=0,
        )
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(completion)
                session.flush()
        except IntegrityError:
            session.commit()
            return EngagementResult(completion_date=day.isoformat(), already_completed=True)

        outcome = apply_reward(
            session, user_id, RewardKey.DAILY_ENGAGEMENT_BONUS, rule,
            ENGAGEMENT_DESCRIPTION,
        )
        completion.coins_awarded = outcome.amount
        session.commit()

    if outcome.awarded and notifier is not None:
        safe_notify(notifier, user_id, outcome.amount, outcome.description)

    logger.info(
        "Daily engagement complete: user=%s day=%s coins=%d",
        user_id, day, outcome.amount,
    )
    return EngagementResult(
        completion_date=day.isoformat(), celebrate=True, coins_awarded=outcome.amount,
    )


def check_engagement(
    engine: Engine,
    cache: RewardCatalogCache,
    user_id: str,
    now: datetime | None = None,
    *,
    tz: ZoneInfo | str | None = None,
    notifier: Notifier | None = None,
) -> tuple[dict[str, Any], EngagementResult]:
    """Read today's status and claim the bonus if everything is done."""
    status = get_completion_status(engine, user_id, now, tz=tz)
    result = claim_engagement_bonus(
        engine, cache, user_id, status["all_complete"], now,
        tz=tz, notifier=notifier,
    )
    return status, result
