"""
rewardledger.engine.cache — TTL Cache for the Reward Catalog
=============================================================

Reward rules, streak milestones and settings are read on every award but
change only when an operator edits them.  They are cached in memory and
reloaded once the cached copy is older than ``catalog_cache_ttl_seconds``
(default 60 s), so an admin edit reaches every worker within one TTL.
The admin API also calls :meth:`RewardCatalogCache.invalidate` so the
worker that took the edit sees it immediately.

The cache is read-only: it never gates a mutation.  Idempotency always comes
from the database fences.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from rewardledger.constants import RewardKey, parse_reward_key
from rewardledger.database.models import RewardRule, Setting, StreakMilestone
from rewardledger.engine.retry import with_retry

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60.0
TTL_SETTING_KEY = "catalog_cache_ttl_seconds"


# ---------------------------------------------------------------------------
# Snapshots — detached, immutable copies of config rows
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RuleSnapshot:
    reward_key: str
    reward_name: str
    coins_amount: int
    is_active: bool
    category: str
    description: str | None = None


@dataclass(frozen=True, slots=True)
class MilestoneSnapshot:
    id: int
    days_required: int
    badge_name: str
    bonus_coins: int
    free_scratch_cards: int
    is_active: bool
    badge_icon: str | None = None
    description: str | None = None


class RewardCatalogCache:
    """Thread-safe TTL cache of reward rules, milestones and settings.

    Usage:
        cache = RewardCatalogCache(engine)
        cache.load_all()

        rule = cache.get_rule(RewardKey.DAILY_LOGIN)
        milestones = cache.get_milestones()
        expiry = cache.get_int("scratch_cards.bonus_expiry_days", default=7)
    """

    def __init__(
        self,
        engine: Engine,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._lock = threading.Lock()
        self._clock = clock
        # Explicit TTL wins over the settings-table value
        self._ttl_override = ttl_seconds

        # reward_key → RuleSnapshot
        self._rules: dict[str, RuleSnapshot] = {}
        # ordered by days_required
        self._milestones: list[MilestoneSnapshot] = []
        # key → parsed JSON value
        self._settings: dict[str, Any] = {}

        self._loaded_at: float | None = None

    # -------------------------------------------------------------------
    # Cache loading
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """Load every partition from the DB and restart the TTL clock."""
        rules = self._load_rules()
        milestones = self._load_milestones()
        settings = self._load_settings()
        with self._lock:
            self._rules = rules
            self._milestones = milestones
            self._settings = settings
            self._loaded_at = self._clock()
        logger.info(
            "RewardCatalogCache loaded: %d reward rules, %d milestones, %d settings",
            len(rules), len(milestones), len(settings),
        )

    def _load_rules(self) -> dict[str, RuleSnapshot]:
        with Session(self._engine) as session:
            rows = session.scalars(select(RewardRule)).all()
            return {
                r.reward_key: RuleSnapshot(
                    reward_key=r.reward_key,
                    reward_name=r.reward_name,
                    coins_amount=r.coins_amount,
                    is_active=r.is_active,
                    category=r.category,
                    description=r.description,
                )
                for r in rows
            }

    def _load_milestones(self) -> list[MilestoneSnapshot]:
        with Session(self._engine) as session:
            rows = session.scalars(
                select(StreakMilestone).order_by(StreakMilestone.days_required)
            ).all()
            return [
                MilestoneSnapshot(
                    id=m.id,
                    days_required=m.days_required,
                    badge_name=m.badge_name,
                    bonus_coins=m.bonus_coins,
                    free_scratch_cards=m.free_scratch_cards,
                    is_active=m.is_active,
                    badge_icon=m.badge_icon,
                    description=m.description,
                )
                for m in rows
            ]

    def _load_settings(self) -> dict[str, Any]:
        with Session(self._engine) as session:
            rows = session.scalars(select(Setting)).all()
            parsed: dict[str, Any] = {}
            for row in rows:
                try:
                    parsed[row.key] = json.loads(row.value_json)
                except (json.JSONDecodeError, TypeError):
                    parsed[row.key] = row.value_json
            return parsed

    # -------------------------------------------------------------------
    # Freshness
    # -------------------------------------------------------------------
    @property
    def ttl_seconds(self) -> float:
        if self._ttl_override is not None:
            return self._ttl_override
        with self._lock:
            raw = self._settings.get(TTL_SETTING_KEY, DEFAULT_TTL_SECONDS)
        try:
            return float(raw)
        except (TypeError, ValueError):
            return DEFAULT_TTL_SECONDS

    def is_stale(self) -> bool:
        with self._lock:
            loaded_at = self._loaded_at
        if loaded_at is None:
            return True
        return (self._clock() - loaded_at) >= self.ttl_seconds

    def _ensure_fresh(self) -> None:
        if self.is_stale():
            with_retry(self.load_all)

    def invalidate(self) -> None:
        """Force a reload on the next read."""
        with self._lock:
            self._loaded_at = None
        logger.info("RewardCatalogCache invalidated")

    # -------------------------------------------------------------------
    # Cache reads
    # -------------------------------------------------------------------
    def get_rule(self, reward_key: RewardKey | str) -> RuleSnapshot | None:
        """Return the catalog row for *reward_key*, or None if there is none.

        Raises ``ValueError`` for keys outside :class:`RewardKey`.
        """
        key = parse_reward_key(reward_key)
        self._ensure_fresh()
        with self._lock:
            return self._rules.get(key.value)

    def get_rules(self) -> list[RuleSnapshot]:
        self._ensure_fresh()
        with self._lock:
            return sorted(self._rules.values(), key=lambda r: r.reward_key)

    def get_milestones(self) -> list[MilestoneSnapshot]:
        self._ensure_fresh()
        with self._lock:
            return list(self._milestones)

    # -------------------------------------------------------------------
    # Typed setting accessors
    # -------------------------------------------------------------------
    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the parsed JSON value for *key*, or *default*."""
        self._ensure_fresh()
        with self._lock:
            return self._settings.get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return int(val)
        except (TypeError, ValueError):
            return default
