"""
rewardledger.services.streak_service — Login Streaks & Milestones
==================================================================

Tracks consecutive reference-timezone days with a login and pays one-time
bonuses when a streak reaches a configured milestone.

Write path, all in one transaction:
    1. Make sure the ``user_streaks`` row exists (SAVEPOINT insert).
    2. Compute the next state with :func:`advance_streak` (pure).
    3. Persist with a compare-and-set ``UPDATE … WHERE last_login_date =
       <value we read>``.  Zero rows updated means another request already
       advanced the streak today; this call becomes a no-op.
    4. For each active milestone whose threshold equals the new streak,
       INSERT the ``user_streak_milestones`` fence row; a duplicate means the
       milestone was paid on an earlier run (even before a streak reset), so
       it is skipped.  Otherwise award its coins and bonus cards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rewardledger.database.models import UserStreak, UserStreakMilestone
from rewardledger.engine.clock import today
from rewardledger.engine.streaks import (
    StreakState,
    advance_streak,
    milestones_hit,
    next_milestone,
)
from rewardledger.services.catalog_service import AwardOutcome, gated_award
from rewardledger.services.ledger_service import get_or_create_user
from rewardledger.services.notifications import safe_notify
from rewardledger.services.scratch_card_service import (
    DEFAULT_BONUS_EXPIRY_DAYS,
    issue_bonus_cards,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from rewardledger.engine.cache import MilestoneSnapshot, RewardCatalogCache
    from rewardledger.services.notifications import Notifier

logger = logging.getLogger(__name__)

BONUS_EXPIRY_SETTING = "scratch_cards.bonus_expiry_days"


@dataclass
class StreakResult:
    current_streak: int
    best_streak: int
    total_login_days: int
    last_login_date: str | None
    advanced: bool = False
    milestones_awarded: list[dict[str, Any]] = field(default_factory=list)
    next_milestone: dict[str, Any] | None = None


def _milestone_dict(m: MilestoneSnapshot) -> dict[str, Any]:
    return {
        "id": m.id,
        "days_required": m.days_required,
        "badge_name": m.badge_name,
        "badge_icon": m.badge_icon,
        "bonus_coins": m.bonus_coins,
        "free_scratch_cards": m.free_scratch_cards,
    }


def _state_of(row: UserStreak) -> StreakState:
    return StreakState(
        current_streak=row.current_streak,
        best_streak=row.best_streak,
        total_login_days=row.total_login_days,
        last_login_date=row.last_login_date,
    )


def _result(
    state: StreakState,
    milestones: list[MilestoneSnapshot],
    *,
    advanced: bool,
    awarded: list[dict[str, Any]] | None = None,
) -> StreakResult:
    upcoming = next_milestone(milestones, state.current_streak)
    return StreakResult(
        current_streak=state.current_streak,
        best_streak=state.best_streak,
        total_login_days=state.total_login_days,
        last_login_date=state.last_login_date.isoformat() if state.last_login_date else None,
        advanced=advanced,
        milestones_awarded=awarded or [],
        next_milestone=_milestone_dict(upcoming) if upcoming else None,
    )


def _ensure_streak_row(session: Session, user_id: str) -> UserStreak:
    row = session.get(UserStreak, user_id)
    if row is not None:
        return row
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(UserStreak(
                user_id=user_id,
                current_streak=0,
                best_streak=0,
                total_login_days=0,
                last_login_date=None,
            ))
            session.flush()
    except IntegrityError:
        pass  # created concurrently
    return session.get(UserStreak, user_id, populate_existing=True)


# ---------------------------------------------------------------------------
# Record a login
# ---------------------------------------------------------------------------
def record_login(
    engine: Engine,
    cache: RewardCatalogCache,
    user_id: str,
    now: datetime | None = None,
    *,
    tz: ZoneInfo | str | None = None,
    notifier: Notifier | None = None,
    display_name: str | None = None,
) -> StreakResult:
    """Advance *user_id*'s streak for today and pay any milestone reached.

    Idempotent per day: the second and later calls return the stored
    counters with ``advanced=False``.
    """
    day = today(tz, now)
    milestones = cache.get_milestones()
    expiry_days = cache.get_int(BONUS_EXPIRY_SETTING, DEFAULT_BONUS_EXPIRY_DAYS)
    paid: list[AwardOutcome] = []
    awarded: list[dict[str, Any]] = []

    with Session(engine) as session:
        get_or_create_user(session, user_id, display_name)
        row = _ensure_streak_row(session, user_id)
        state = _state_of(row)

        new_state, advanced = advance_streak(state, day)
        if not advanced:
            session.commit()
            return _result(state, milestones, advanced=False)

        guard = (
            UserStreak.last_login_date.is_(None)
            if state.last_login_date is None
            else UserStreak.last_login_date == state.last_login_date
        )
        updated = session.execute(
            update(UserStreak)
            .where(UserStreak.user_id == user_id, guard)
            .values(
                current_streak=new_state.current_streak,
                best_streak=new_state.best_streak,
                total_login_days=new_state.total_login_days,
                last_login_date=day,
            )
            .execution_options(synchronize_session=False)
        ).rowcount

        if updated == 0:
            # Lost the race to a concurrent login for the same user
            session.commit()
            current = _state_of(session.get(UserStreak, user_id, populate_existing=True))
            logger.debug("Streak already advanced concurrently: user=%s day=%s", user_id, day)
            return _result(current, milestones, advanced=False)

        for m in milestones_hit(milestones, new_state.current_streak):
            fence = UserStreakMilestone(
                user_id=user_id,
                milestone_id=m.id,
                streak_length=new_state.current_streak,
                coins_awarded=0,
                scratch_cards_awarded=0,
            )
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(fence)
                    session.flush()
            except IntegrityError:
                logger.info(
                    "Milestone %d-day already awarded to user=%s; skipping",
                    m.days_required, user_id,
                )
                continue

            outcome = gated_award(
                session,
                user_id,
                amount=m.bonus_coins,
                is_active=m.is_active,
                description=f"{m.badge_name} streak milestone!",
                source=f"milestone:{m.days_required}",
                metadata={"milestone_id": m.id, "days_required": m.days_required},
            )
            cards = issue_bonus_cards(
                session, user_id, m.free_scratch_cards, day,
                expiry_days=expiry_days, now=now,
            )
            fence.coins_awarded = outcome.amount
            fence.scratch_cards_awarded = cards
            if outcome.awarded:
                paid.append(outcome)
            awarded.append({
                **_milestone_dict(m),
                "coins_awarded": outcome.amount,
                "scratch_cards_awarded": cards,
            })

        session.commit()

    for outcome in paid:
        if notifier is not None:
            safe_notify(notifier, user_id, outcome.amount, outcome.description)

    logger.info(
        "Streak advanced: user=%s day=%s current=%d best=%d milestones=%d",
        user_id, day, new_state.current_streak, new_state.best_streak, len(awarded),
    )
    return _result(new_state, milestones, advanced=True, awarded=awarded)


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------
def get_streak(
    engine: Engine, cache: RewardCatalogCache, user_id: str,
) -> StreakResult:
    """Stored counters for *user_id* (zeros if they never logged in)."""
    with Session(engine) as session:
        row = session.get(UserStreak, user_id)
        state = _state_of(row) if row is not None else StreakState()
    return _result(state, cache.get_milestones(), advanced=False)
