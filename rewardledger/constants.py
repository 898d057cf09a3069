"""
rewardledger.constants — Shared Constants & Enumerations
=========================================================

Single source of truth for the reward keys the code knows about.  The
``coin_rewards_settings`` table holds the *amounts* for these keys; it is
configuration data, never the source of the key set.
"""

from __future__ import annotations

import enum


# ---------------------------------------------------------------------------
# Reward keys — the closed set awarding code may look up
# ---------------------------------------------------------------------------
class RewardKey(enum.StrEnum):
    DAILY_LOGIN = "daily_login"
    DAILY_ENGAGEMENT_BONUS = "daily_engagement_bonus"
    MOOD_CHECKIN = "mood_checkin"
    FORTUNE_VIEW = "fortune_view"
    WORD_GAME_COMPLETE = "word_game_complete"


# ---------------------------------------------------------------------------
# Daily activities — all must be complete for the engagement bonus
# ---------------------------------------------------------------------------
class DailyActivity(enum.StrEnum):
    MOOD = "mood"
    FORTUNE = "fortune"
    WORD_GAME = "word_game"


ACTIVITY_REWARD_KEYS: dict[DailyActivity, RewardKey] = {
    DailyActivity.MOOD: RewardKey.MOOD_CHECKIN,
    DailyActivity.FORTUNE: RewardKey.FORTUNE_VIEW,
    DailyActivity.WORD_GAME: RewardKey.WORD_GAME_COMPLETE,
}

REQUIRED_ACTIVITIES: frozenset[DailyActivity] = frozenset(DailyActivity)


def parse_reward_key(value: str | RewardKey) -> RewardKey:
    """Coerce *value* to a :class:`RewardKey`.

    Raises ``ValueError`` for keys outside the known set, so free-text keys
    never reach the catalog lookup.
    """
    if isinstance(value, RewardKey):
        return value
    try:
        return RewardKey(value)
    except ValueError:
        raise ValueError(
            f"Unknown reward key: {value!r}. "
            f"Known keys: {sorted(k.value for k in RewardKey)}"
        ) from None
