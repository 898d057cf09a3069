"""
rewardledger — Daily Engagement & Coin Reward Ledger
=====================================================
Awards community coins for daily engagement: a once-per-day login bonus,
consecutive-day streaks with milestone bonuses, a combined bonus for
finishing every daily activity, and a daily scratch card for each member.
Every "once per day" rule is fenced by a database uniqueness constraint,
so retries, duplicate tabs and re-run batch jobs never double-award.

Package layout::

    rewardledger/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # RewardKey / DailyActivity enumerations
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default settings, reward rules, milestones
    ├── engine/
    │   ├── clock.py       # Reference-timezone calendar day keys
    │   ├── streaks.py     # Pure streak arithmetic
    │   ├── retry.py       # Bounded exponential-backoff retry
    │   └── cache.py       # TTL cache for reward rules, milestones, settings
    ├── services/
    │   ├── ledger_service.py        # Balance + transaction log (single entrypoint)
    │   ├── catalog_service.py       # award_by_key
    │   ├── daily_login_service.py   # Once-per-day login bonus
    │   ├── streak_service.py        # Streak tracker + milestones
    │   ├── engagement_service.py    # Daily activities + combined bonus
    │   ├── scratch_card_service.py  # Daily scratch-card batch issuer
    │   ├── reconciliation_service.py # Balance vs. ledger audit
    │   └── notifications.py         # Fire-and-forget "+N coins" messages
    ├── jobs.py            # ``python -m rewardledger.jobs``
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT auth + engine/cache dependencies
        └── routes/        # Member + admin REST endpoints
"""

__version__ = "0.1.0"
