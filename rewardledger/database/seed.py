"""
rewardledger.database.seed — Default Settings, Reward Rules & Milestones
=========================================================================

Baseline rows seeded on first startup so a fresh install awards coins
immediately.

Idempotent — only inserts rows whose natural key (setting key, reward key,
milestone threshold) doesn't already exist.  Values tuned later by an
operator are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from rewardledger.constants import RewardKey
from rewardledger.database.models import (
    RewardCategory,
    RewardRule,
    Setting,
    StreakMilestone,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default catalogues
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "catalog_cache_ttl_seconds": (
        60, "cache", "Seconds reward rules and milestones stay cached",
    ),
    "scratch_cards.bonus_expiry_days": (
        7, "scratch_cards", "Days before an unscratched bonus card expires",
    ),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""

DEFAULT_REWARD_RULES: dict[RewardKey, tuple[str, int, str, str]] = {
    RewardKey.DAILY_LOGIN: (
        "Daily Login", 10, RewardCategory.DAILY, "Coins for the first visit each day",
    ),
    RewardKey.DAILY_ENGAGEMENT_BONUS: (
        "Daily Engagement Bonus", 25, RewardCategory.DAILY,
        "Bonus for finishing every daily activity",
    ),
    RewardKey.MOOD_CHECKIN: (
        "Mood Check-in", 5, RewardCategory.DAILY, "Coins for the daily mood check-in",
    ),
    RewardKey.FORTUNE_VIEW: (
        "Daily Fortune", 5, RewardCategory.DAILY, "Coins for reading the daily fortune",
    ),
    RewardKey.WORD_GAME_COMPLETE: (
        "Daily Five", 10, RewardCategory.GAMES, "Coins for finishing the daily word game",
    ),
}
"""``reward_key`` → ``(reward_name, coins_amount, category, description)``."""

DEFAULT_MILESTONES: list[tuple[int, str, str, int, int, str]] = [
    (3, "Getting Started", "🌱", 15, 0, "Logged in three days in a row"),
    (7, "Week Warrior", "🔥", 50, 1, "A full week of daily visits"),
    (14, "Fortnight Champion", "⭐", 100, 1, "Two weeks without missing a day"),
    (30, "Monthly Master", "🏆", 250, 2, "Thirty days straight"),
]
"""``(days_required, badge_name, badge_icon, bonus_coins, free_scratch_cards,
description)``."""


# ---------------------------------------------------------------------------
# Seeders
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> int:
    """Insert default settings that don't yet exist."""
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            existing = session.get(Setting, key)
            if existing is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)
    return inserted


def seed_reward_rules(engine: Engine) -> int:
    """Insert a catalog row for every known reward key that lacks one."""
    with Session(engine) as session:
        existing = set(session.scalars(select(RewardRule.reward_key)).all())
        inserted = 0
        for key, (name, amount, category, desc) in DEFAULT_REWARD_RULES.items():
            if key.value in existing:
                continue
            session.add(RewardRule(
                reward_key=key.value,
                reward_name=name,
                coins_amount=amount,
                category=category.value,
                description=desc,
                is_active=True,
            ))
            inserted += 1
        session.commit()

    if inserted:
        logger.info("Seeded %d default reward rules.", inserted)
    return inserted


def seed_streak_milestones(engine: Engine) -> int:
    """Insert the default milestone thresholds that don't yet exist."""
    with Session(engine) as session:
        existing = set(session.scalars(select(StreakMilestone.days_required)).all())
        inserted = 0
        for days, badge, icon, coins, cards, desc in DEFAULT_MILESTONES:
            if days in existing:
                continue
            session.add(StreakMilestone(
                days_required=days,
                badge_name=badge,
                badge_icon=icon,
                bonus_coins=coins,
                free_scratch_cards=cards,
                description=desc,
                is_active=True,
            ))
            inserted += 1
        session.commit()

    if inserted:
        logger.info("Seeded %d default streak milestones.", inserted)
    return inserted


def seed_all(engine: Engine) -> None:
    seed_default_settings(engine)
    seed_reward_rules(engine)
    seed_streak_milestones(engine)
