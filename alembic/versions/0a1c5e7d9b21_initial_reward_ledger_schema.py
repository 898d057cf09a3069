"""Initial reward ledger schema

Balances, the append-only coin ledger, the reward catalog, every daily
idempotency fence, streaks and milestones, sticker collections, scratch
cards and the settings store.

Revision ID: 0a1c5e7d9b21
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "0a1c5e7d9b21"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("coins", sa.Integer(), server_default="0", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("coins >= 0", name="ck_users_coins_non_negative"),
    )

    op.create_table(
        "coin_transactions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_coin_transactions_user_time", "coin_transactions", ["user_id", "created_at"],
    )

    op.create_table(
        "coin_rewards_settings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("reward_key", sa.String(100), nullable=False),
        sa.Column("reward_name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("coins_amount", sa.Integer(), server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("category", sa.String(30), server_default="other", nullable=False),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reward_key"),
        sa.CheckConstraint("coins_amount >= 0", name="ck_reward_rules_amount_non_negative"),
    )

    op.create_table(
        "daily_login_claims",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("claim_date", sa.Date(), nullable=False),
        sa.Column("coins_awarded", sa.Integer(), server_default="0", nullable=False),
        _timestamp("claimed_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "claim_date", name="uq_daily_login_claims_user_date"),
    )

    op.create_table(
        "user_streaks",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("current_streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("best_streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_login_days", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_login_date", sa.Date(), nullable=True),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("user_id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "streak_milestones",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("days_required", sa.Integer(), nullable=False),
        sa.Column("badge_name", sa.String(100), nullable=False),
        sa.Column("badge_icon", sa.String(50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("bonus_coins", sa.Integer(), server_default="0", nullable=False),
        sa.Column("free_scratch_cards", sa.Integer(), server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("days_required"),
        sa.CheckConstraint("days_required > 0", name="ck_streak_milestones_days_positive"),
    )

    op.create_table(
        "user_streak_milestones",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("milestone_id", sa.Integer(), nullable=False),
        sa.Column("streak_length", sa.Integer(), nullable=False),
        sa.Column("coins_awarded", sa.Integer(), server_default="0", nullable=False),
        sa.Column("scratch_cards_awarded", sa.Integer(), server_default="0", nullable=False),
        _timestamp("awarded_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["milestone_id"], ["streak_milestones.id"], ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "user_id", "milestone_id", name="uq_user_streak_milestones_user_milestone",
        ),
    )

    op.create_table(
        "daily_activity_completions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("activity_key", sa.String(30), nullable=False),
        sa.Column("completion_date", sa.Date(), nullable=False),
        sa.Column("coins_awarded", sa.Integer(), server_default="0", nullable=False),
        _timestamp("completed_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "user_id", "activity_key", "completion_date",
            name="uq_activity_completions_user_activity_date",
        ),
    )
    op.create_index(
        "ix_activity_completions_user_date",
        "daily_activity_completions",
        ["user_id", "completion_date"],
    )

    op.create_table(
        "daily_engagement_completions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("completion_date", sa.Date(), nullable=False),
        sa.Column("coins_awarded", sa.Integer(), server_default="0", nullable=False),
        _timestamp("completed_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "user_id", "completion_date", name="uq_engagement_completions_user_date",
        ),
    )

    op.create_table(
        "sticker_collections",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("display_order", sa.Integer(), server_default="0", nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "daily_scratch_cards",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("collection_id", sa.Integer(), nullable=False),
        sa.Column("is_bonus_card", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("purchase_number", sa.Integer(), server_default="0", nullable=False),
        sa.Column("is_scratched", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["collection_id"], ["sticker_collections.id"], ondelete="CASCADE",
        ),
    )
    # One free card per user per day; bonus cards are unrestricted
    op.create_index(
        "uq_daily_scratch_cards_user_date",
        "daily_scratch_cards",
        ["user_id", "date"],
        unique=True,
        postgresql_where=sa.text("is_bonus_card = false"),
    )
    op.create_index("ix_daily_scratch_cards_date", "daily_scratch_cards", ["date"])

    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), server_default="general", nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("key"),
    )
    op.create_index("ix_settings_category", "settings", ["category"])


def downgrade() -> None:
    op.drop_index("ix_settings_category", table_name="settings")
    op.drop_table("settings")
    op.drop_index("ix_daily_scratch_cards_date", table_name="daily_scratch_cards")
    op.drop_index("uq_daily_scratch_cards_user_date", table_name="daily_scratch_cards")
    op.drop_table("daily_scratch_cards")
    op.drop_table("sticker_collections")
    op.drop_table("daily_engagement_completions")
    op.drop_index(
        "ix_activity_completions_user_date", table_name="daily_activity_completions",
    )
    op.drop_table("daily_activity_completions")
    op.drop_table("user_streak_milestones")
    op.drop_table("streak_milestones")
    op.drop_table("user_streaks")
    op.drop_table("daily_login_claims")
    op.drop_table("coin_rewards_settings")
    op.drop_index("ix_coin_transactions_user_time", table_name="coin_transactions")
    op.drop_table("coin_transactions")
    op.drop_table("users")
