"""
rewardledger.database.models — SQLAlchemy 2.0 Data Models
==========================================================

Tables:
- users                        — Member balance (denormalized coin total)
- coin_transactions            — Append-only coin ledger
- coin_rewards_settings        — Reward catalog (key → amount, active flag)
- daily_login_claims           — Once-per-day login fence
- user_streaks                 — Consecutive-day login counters
- streak_milestones            — Milestone thresholds + bonuses (config)
- user_streak_milestones       — Awarded milestones (once ever per user)
- daily_activity_completions   — Per-activity daily completion markers
- daily_engagement_completions — Once-per-day engagement bonus fence
- sticker_collections          — Content collections backing scratch cards
- daily_scratch_cards          — Issued scratch cards
- settings                     — Admin-configurable key-value store

Every "once per day" or "once ever" rule is a unique constraint here.  The
services insert first and treat ``IntegrityError`` as "already done"; they
never check-then-insert.
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all rewardledger ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TransactionType(enum.StrEnum):
    """Direction of a coin movement recorded in coin_transactions."""
    EARNED = "earned"
    SPENT = "spent"


class RewardCategory(enum.StrEnum):
    GAMES = "games"
    DAILY = "daily"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Users — one row per member, holds the running coin balance
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    # Subject claim from the external identity provider
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    coins: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    transactions: Mapped[list[CoinTransaction]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    streak: Mapped[UserStreak | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("coins >= 0", name="ck_users_coins_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id!r} coins={self.coins}>"


# ---------------------------------------------------------------------------
# CoinTransaction — append-only ledger
# ---------------------------------------------------------------------------
class CoinTransaction(Base):
    """Immutable record of a single coin movement.

    The sum of ``amount`` over a user's rows always equals ``users.coins``;
    :func:`rewardledger.services.ledger_service.award_coins` is the only
    writer of both.
    """
    __tablename__ = "coin_transactions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="transactions")

    __table_args__ = (
        Index("ix_coin_transactions_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<CoinTransaction id={self.id} user={self.user_id!r} "
            f"amount={self.amount} type={self.transaction_type}>"
        )


# ---------------------------------------------------------------------------
# RewardRule — the reward catalog
# ---------------------------------------------------------------------------
class RewardRule(Base):
    """Operator-tunable reward amount for a known :class:`RewardKey`.

    A missing row, ``is_active = False`` or ``coins_amount = 0`` all mean
    "this reward is currently off" and awarding it is a silent no-op.
    """
    __tablename__ = "coin_rewards_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reward_key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    reward_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    coins_amount: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    category: Mapped[str] = mapped_column(
        String(30), nullable=False, default=RewardCategory.OTHER.value
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("coins_amount >= 0", name="ck_reward_rules_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<RewardRule key={self.reward_key!r} coins={self.coins_amount} "
            f"active={self.is_active}>"
        )


# ---------------------------------------------------------------------------
# DailyLoginClaim — idempotency fence for the login bonus
# ---------------------------------------------------------------------------
class DailyLoginClaim(Base):
    __tablename__ = "daily_login_claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    claim_date: Mapped[date] = mapped_column(Date, nullable=False)
    coins_awarded: Mapped[int] = mapped_column(Integer, default=0)
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "claim_date", name="uq_daily_login_claims_user_date"),
    )

    def __repr__(self) -> str:
        return f"<DailyLoginClaim user={self.user_id!r} date={self.claim_date}>"


# ---------------------------------------------------------------------------
# UserStreak — consecutive-day login counters
# ---------------------------------------------------------------------------
class UserStreak(Base):
    __tablename__ = "user_streaks"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    best_streak: Mapped[int] = mapped_column(Integer, default=0)
    total_login_days: Mapped[int] = mapped_column(Integer, default=0)
    last_login_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[User] = relationship(back_populates="streak")

    def __repr__(self) -> str:
        return (
            f"<UserStreak user={self.user_id!r} current={self.current_streak} "
            f"best={self.best_streak} last={self.last_login_date}>"
        )


# ---------------------------------------------------------------------------
# StreakMilestone — configurable thresholds
# ---------------------------------------------------------------------------
class StreakMilestone(Base):
    """A streak length that earns a one-time bonus.

    Thresholds are rows, not code, so admins can add a 60-day milestone or
    switch one off without a deployment.
    """
    __tablename__ = "streak_milestones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    days_required: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    badge_name: Mapped[str] = mapped_column(String(100), nullable=False)
    badge_icon: Mapped[str | None] = mapped_column(String(50), default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    bonus_coins: Mapped[int] = mapped_column(Integer, default=0)
    free_scratch_cards: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        CheckConstraint("days_required > 0", name="ck_streak_milestones_days_positive"),
    )

    def __repr__(self) -> str:
        return f"<StreakMilestone days={self.days_required} badge={self.badge_name!r}>"


# ---------------------------------------------------------------------------
# UserStreakMilestone — milestones already awarded
# ---------------------------------------------------------------------------
class UserStreakMilestone(Base):
    __tablename__ = "user_streak_milestones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    milestone_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("streak_milestones.id", ondelete="CASCADE"), nullable=False
    )
    streak_length: Mapped[int] = mapped_column(Integer, nullable=False)
    coins_awarded: Mapped[int] = mapped_column(Integer, default=0)
    scratch_cards_awarded: Mapped[int] = mapped_column(Integer, default=0)
    awarded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    milestone: Mapped[StreakMilestone] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "user_id", "milestone_id", name="uq_user_streak_milestones_user_milestone"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<UserStreakMilestone user={self.user_id!r} "
            f"milestone={self.milestone_id}>"
        )


# ---------------------------------------------------------------------------
# DailyActivityCompletion — per-activity daily markers
# ---------------------------------------------------------------------------
class DailyActivityCompletion(Base):
    __tablename__ = "daily_activity_completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    activity_key: Mapped[str] = mapped_column(String(30), nullable=False)
    completion_date: Mapped[date] = mapped_column(Date, nullable=False)
    coins_awarded: Mapped[int] = mapped_column(Integer, default=0)
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "activity_key", "completion_date",
            name="uq_activity_completions_user_activity_date",
        ),
        Index("ix_activity_completions_user_date", "user_id", "completion_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<DailyActivityCompletion user={self.user_id!r} "
            f"activity={self.activity_key!r} date={self.completion_date}>"
        )


# ---------------------------------------------------------------------------
# DailyEngagementCompletion — fence for the all-activities bonus
# ---------------------------------------------------------------------------
class DailyEngagementCompletion(Base):
    __tablename__ = "daily_engagement_completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    completion_date: Mapped[date] = mapped_column(Date, nullable=False)
    coins_awarded: Mapped[int] = mapped_column(Integer, default=0)
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "completion_date", name="uq_engagement_completions_user_date"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<DailyEngagementCompletion user={self.user_id!r} "
            f"date={self.completion_date}>"
        )


# ---------------------------------------------------------------------------
# StickerCollection — content behind scratch cards
# ---------------------------------------------------------------------------
class StickerCollection(Base):
    __tablename__ = "sticker_collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<StickerCollection id={self.id} name={self.name!r} active={self.is_active}>"


# ---------------------------------------------------------------------------
# ScratchCard — one free card per user per day, plus bonus cards
# ---------------------------------------------------------------------------
class ScratchCard(Base):
    __tablename__ = "daily_scratch_cards"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    card_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    collection_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sticker_collections.id", ondelete="CASCADE"), nullable=False
    )
    is_bonus_card: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    purchase_number: Mapped[int] = mapped_column(Integer, default=0)
    is_scratched: Mapped[bool] = mapped_column(Boolean, default=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        # At most one free (non-bonus) card per user per day
        Index(
            "uq_daily_scratch_cards_user_date",
            "user_id",
            "date",
            unique=True,
            postgresql_where=is_bonus_card.is_(False),
            sqlite_where=is_bonus_card.is_(False),
        ),
        Index("ix_daily_scratch_cards_date", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<ScratchCard id={self.id} user={self.user_id!r} date={self.card_date} "
            f"bonus={self.is_bonus_card}>"
        )


# ---------------------------------------------------------------------------
# Setting — admin-configurable key-value store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Tuning knobs that aren't reward amounts (cache TTL, bonus-card expiry)
    live here.  Values are stored as JSON strings; typed accessors live in
    :class:`~rewardledger.engine.cache.RewardCatalogCache`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
