"""
rewardledger.services.catalog_service — Reward Rule Lookup & Admin Edits
=========================================================================

Awarding code names *what* happened (a :class:`RewardKey`); the catalog
says *how much* it is worth.  A reward that has no row, is switched off, or
is set to zero coins is a silent no-op: the caller still succeeds, it just
awards nothing.  Operators use that to pause a reward without a deploy.

Streak milestones are tuned through the same module
(:func:`update_milestone`); their bonus coins pass the same gate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from rewardledger.constants import RewardKey, parse_reward_key
from rewardledger.database.models import RewardRule, StreakMilestone
from rewardledger.services.ledger_service import award_coins
from rewardledger.services.notifications import safe_notify

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from rewardledger.engine.cache import RewardCatalogCache, RuleSnapshot
    from rewardledger.services.notifications import Notifier

logger = logging.getLogger(__name__)


@dataclass
class AwardOutcome:
    """What a catalog-driven award actually did."""

    amount: int = 0
    description: str = ""

    @property
    def awarded(self) -> bool:
        return self.amount > 0


# ---------------------------------------------------------------------------
# The soft-disable gate
# ---------------------------------------------------------------------------
def gated_award(
    session: Session,
    user_id: str,
    *,
    amount: int,
    is_active: bool,
    description: str,
    source: str,
    metadata: dict[str, Any] | None = None,
) -> AwardOutcome:
    """Award *amount* unless the configuration says the reward is off.

    Shared by catalog rules and streak milestones so both obey the same
    "inactive or zero means skip" rule.
    """
    if not is_active or amount <= 0:
        logger.info(
            "Reward %s skipped for user=%s (active=%s, amount=%d)",
            source, user_id, is_active, amount,
        )
        return AwardOutcome()

    award_coins(session, user_id, amount, description, metadata=metadata)
    return AwardOutcome(amount=amount, description=description)


# ---------------------------------------------------------------------------
# Awarding by key
# ---------------------------------------------------------------------------
def apply_reward(
    session: Session,
    user_id: str,
    reward_key: RewardKey | str,
    rule: RuleSnapshot | None,
    custom_description: str | None = None,
) -> AwardOutcome:
    """Session-level award of an already-resolved *rule*.

    Callers look the rule up with ``cache.get_rule`` *before* opening their
    transaction, so a cache reload never runs while fence rows are held.
    Raises ``ValueError`` for keys outside :class:`RewardKey`.
    """
    key = parse_reward_key(reward_key)
    if rule is None:
        logger.info("No reward rule for %s; nothing awarded to user=%s", key, user_id)
        return AwardOutcome()

    return gated_award(
        session,
        user_id,
        amount=rule.coins_amount,
        is_active=rule.is_active,
        description=(
            custom_description if custom_description is not None else rule.reward_name
        ),
        source=key.value,
        metadata={"reward_key": key.value},
    )


def award_by_key(
    engine: Engine,
    cache: RewardCatalogCache,
    user_id: str,
    reward_key: RewardKey | str,
    custom_description: str | None = None,
    *,
    notifier: Notifier | None = None,
) -> int:
    """Award the catalog amount for *reward_key* and commit.

    Returns the coins awarded; 0 when the rule is missing, inactive or zero.
    """
    key = parse_reward_key(reward_key)
    rule = cache.get_rule(key)
    with Session(engine) as session:
        outcome = apply_reward(session, user_id, key, rule, custom_description)
        session.commit()

    if outcome.awarded and notifier is not None:
        safe_notify(notifier, user_id, outcome.amount, outcome.description)
    return outcome.amount


# ---------------------------------------------------------------------------
# Admin edits
# ---------------------------------------------------------------------------
def update_reward_rule(
    engine: Engine,
    reward_key: RewardKey | str,
    *,
    coins_amount: int | None = None,
    is_active: bool | None = None,
    reward_name: str | None = None,
    description: str | None = None,
) -> RewardRule | None:
    """Patch a catalog row.  Returns the detached row, or None if absent."""
    key = parse_reward_key(reward_key)
    if coins_amount is not None and coins_amount < 0:
        raise ValueError("coins_amount must be >= 0")

    with Session(engine, expire_on_commit=False) as session:
        rule = session.scalar(select(RewardRule).where(RewardRule.reward_key == key.value))
        if rule is None:
            return None
        if coins_amount is not None:
            rule.coins_amount = coins_amount
        if is_active is not None:
            rule.is_active = is_active
        if reward_name is not None:
            rule.reward_name = reward_name
        if description is not None:
            rule.description = description
        session.commit()
        session.refresh(rule)
        session.expunge(rule)

    logger.info(
        "Reward rule %s updated: coins=%d active=%s",
        key, rule.coins_amount, rule.is_active,
    )
    return rule


def update_milestone(
    engine: Engine,
    milestone_id: int,
    *,
    bonus_coins: int | None = None,
    free_scratch_cards: int | None = None,
    is_active: bool | None = None,
    badge_name: str | None = None,
    badge_icon: str | None = None,
    description: str | None = None,
) -> StreakMilestone | None:
    """Patch a streak milestone.  Returns the detached row, or None if absent.

    The threshold (``days_required``) is not editable here: members who
    already earned a milestone keep their award row for it.
    """
    if bonus_coins is not None and bonus_coins < 0:
        raise ValueError("bonus_coins must be >= 0")
    if free_scratch_cards is not None and free_scratch_cards < 0:
        raise ValueError("free_scratch_cards must be >= 0")

    with Session(engine, expire_on_commit=False) as session:
        milestone = session.get(StreakMilestone, milestone_id)
        if milestone is None:
            return None
        if bonus_coins is not None:
            milestone.bonus_coins = bonus_coins
        if free_scratch_cards is not None:
            milestone.free_scratch_cards = free_scratch_cards
        if is_active is not None:
            milestone.is_active = is_active
        if badge_name is not None:
            milestone.badge_name = badge_name
        if badge_icon is not None:
            milestone.badge_icon = badge_icon
        if description is not None:
            milestone.description = description
        session.commit()
        session.expunge(milestone)

    logger.info(
        "Streak milestone %d-day updated: coins=%d cards=%d active=%s",
        milestone.days_required, milestone.bonus_coins,
        milestone.free_scratch_cards, milestone.is_active,
    )
    return milestone
