"""
rewardledger.services.daily_login_service — Once-per-Day Login Bonus
=====================================================================

The first visit of each reference-timezone day earns the ``daily_login``
reward.  The fence is the unique ``(user_id, claim_date)`` row in
``daily_login_claims``:

    1. INSERT the claim row inside a SAVEPOINT.
    2. ``IntegrityError`` → already claimed today; return success, award 0.
    3. Otherwise award through the catalog in the **same** transaction, so
       the claim and the coins commit together.

No read-before-write, no in-process flag.  Two tabs, a double-click and a
client retry all resolve to exactly one award.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rewardledger.constants import RewardKey
from rewardledger.database.models import DailyLoginClaim
from rewardledger.engine.clock import today
from rewardledger.services.catalog_service import apply_reward
from rewardledger.services.ledger_service import get_or_create_user
from rewardledger.services.notifications import safe_notify

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from rewardledger.engine.cache import RewardCatalogCache
    from rewardledger.services.notifications import Notifier

logger = logging.getLogger(__name__)

LOGIN_DESCRIPTION = "Daily login bonus"


@dataclass
class DailyLoginResult:
    claim_date: str
    already_claimed: bool = False
    coins_awarded: int = 0
    success: bool = True


# ---------------------------------------------------------------------------
# Advisory hint — lets read paths skip a query once today is known claimed
# ---------------------------------------------------------------------------
class ClaimedTodayCache:
    """Process-local memo of ``(user_id, day)`` pairs already claimed.

    Only ever read by :func:`has_claimed_today`.  Losing it (restart, another
    worker) costs one query, never a double award.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._day: date | None = None
        self._users: set[str] = set()

    def mark(self, user_id: str, day: date) -> None:
        with self._lock:
            if self._day != day:
                self._day = day
                self._users = set()
            self._users.add(user_id)

    def contains(self, user_id: str, day: date) -> bool:
        with self._lock:
            return self._day == day and user_id in self._users


# ---------------------------------------------------------------------------
# Claim
# ---------------------------------------------------------------------------
def claim_daily_login(
    engine: Engine,
    cache: RewardCatalogCache,
    user_id: str,
    now: datetime | None = None,
    *,
    tz: ZoneInfo | str | None = None,
    notifier: Notifier | None = None,
    hint: ClaimedTodayCache | None = None,
    display_name: str | None = None,
) -> DailyLoginResult:
    """Claim today's login bonus for *user_id*.

    Safe to call on every page load.  ``LedgerError`` and database errors
    propagate; the claim row rolls back with them so a later call can retry.
    """
    day = today(tz, now)
    rule = cache.get_rule(RewardKey.DAILY_LOGIN)

    with Session(engine) as session:
        get_or_create_user(session, user_id, display_name)

        claim = DailyLoginClaim(user_id=user_id, claim_date=day, coins_awarded=0)
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(claim)
                session.flush()
        except IntegrityError:
            session.commit()
            logger.debug("Daily login already claimed: user=%s day=%s", user_id, day)
            if hint is not None:
                hint.mark(user_id, day)
            return DailyLoginResult(claim_date=day.isoformat(), already_claimed=True)

        outcome = apply_reward(
            session, user_id, RewardKey.DAILY_LOGIN, rule, LOGIN_DESCRIPTION,
        )
        claim.coins_awarded = outcome.amount
        session.commit()

    if hint is not None:
        hint.mark(user_id, day)
    if outcome.awarded and notifier is not None:
        safe_notify(notifier, user_id, outcome.amount, outcome.description)

    logger.info(
        "Daily login claimed: user=%s day=%s coins=%d", user_id, day, outcome.amount,
    )
    return DailyLoginResult(claim_date=day.isoformat(), coins_awarded=outcome.amount)


def has_claimed_today(
    engine: Engine,
    user_id: str,
    now: datetime | None = None,
    *,
    tz: ZoneInfo | str | None = None,
    hint: ClaimedTodayCache | None = None,
) -> bool:
    """Read-only check for display; never use it to decide whether to claim."""
    day = today(tz, now)
    if hint is not None and hint.contains(user_id, day):
        return True

    with Session(engine) as session:
        found = session.scalar(
            select(DailyLoginClaim.id).where(
                DailyLoginClaim.user_id == user_id,
                DailyLoginClaim.claim_date == day,
            )
        )
    if found is not None and hint is not None:
        hint.mark(user_id, day)
    return found is not None
