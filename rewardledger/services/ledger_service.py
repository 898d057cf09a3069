"""
rewardledger.services.ledger_service — Coin Balance & Transaction Log
======================================================================

The one and only way coins move.  :func:`award_coins` bumps the
denormalized ``users.coins`` total with an SQL-side increment and appends a
matching :class:`CoinTransaction` in the caller's transaction, so the two
always commit together and ``sum(coin_transactions.amount) == users.coins``
holds for every user.

Two call shapes:

* ``award_coins(session, …)`` — joins a transaction the caller already
  holds (used by the fenced claim services: fence row + award commit as one).
* ``award(engine, …)`` — opens, commits and notifies on its own.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rewardledger.database.models import CoinTransaction, TransactionType, User
from rewardledger.services.notifications import safe_notify

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from rewardledger.services.notifications import Notifier

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class LedgerError(Exception):
    """A ledger mutation could not be applied (e.g. the user row is missing)."""


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
def get_or_create_user(
    session: Session, user_id: str, display_name: str | None = None,
) -> User:
    """Fetch or insert a User row.

    Two first-ever requests for the same member may race; the loser's insert
    hits the primary key and it re-reads the winner's row instead.
    """
    user = session.get(User, user_id)
    if user is None:
        user = User(id=user_id, display_name=display_name, coins=0)
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(user)
                session.flush()
        except IntegrityError:
            user = session.get(User, user_id)
            if user is None:
                raise
    elif display_name and user.display_name != display_name:
        user.display_name = display_name
    return user


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def award_coins(
    session: Session,
    user_id: str,
    amount: int,
    description: str,
    transaction_type: TransactionType = TransactionType.EARNED,
    metadata: dict[str, Any] | None = None,
) -> int:
    """Apply a coin movement inside *session*'s transaction.

    Earns must be positive and spends negative.  Returns the new balance.
    Does not commit.

    Raises
    ------
    ValueError
        If *amount* is zero, non-integer, or its sign contradicts
        *transaction_type*.
    LedgerError
        If *user_id* has no balance row.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
        raise ValueError(f"Coin amount must be a non-zero integer, got {amount!r}")
    transaction_type = TransactionType(transaction_type)
    if transaction_type is TransactionType.EARNED and amount < 0:
        raise ValueError(f"Earned amount must be positive, got {amount}")
    if transaction_type is TransactionType.SPENT and amount > 0:
        raise ValueError(f"Spent amount must be negative, got {amount}")

    new_balance = session.execute(
        update(User)
        .where(User.id == user_id)
        .values(coins=User.coins + amount)
        .returning(User.coins)
    ).scalar_one_or_none()
    if new_balance is None:
        raise LedgerError(f"No balance row for user {user_id!r}")

    session.add(CoinTransaction(
        user_id=user_id,
        amount=amount,
        transaction_type=transaction_type.value,
        description=description,
        metadata_=metadata,
    ))
    session.flush()

    logger.info(
        "Ledger: user=%s %s %+d → balance %d (%s)",
        user_id, transaction_type.value, amount, new_balance, description,
    )
    return new_balance


def award(
    engine: Engine,
    user_id: str,
    amount: int,
    description: str,
    transaction_type: TransactionType = TransactionType.EARNED,
    *,
    metadata: dict[str, Any] | None = None,
    notifier: Notifier | None = None,
) -> int:
    """Apply a coin movement in its own transaction and commit it.

    The notifier (if any) is called after the commit; a notification failure
    never undoes the award.
    """
    with Session(engine) as session:
        new_balance = award_coins(
            session, user_id, amount, description, transaction_type, metadata,
        )
        session.commit()

    if notifier is not None and amount > 0:
        safe_notify(notifier, user_id, amount, description)
    return new_balance


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_balance(engine: Engine, user_id: str) -> int | None:
    """Current balance, or None for an unknown user."""
    with Session(engine) as session:
        return session.scalar(select(User.coins).where(User.id == user_id))


def ledger_sum(session: Session, user_id: str) -> int:
    """Sum of every transaction amount for *user_id*."""
    return session.scalar(
        select(func.coalesce(func.sum(CoinTransaction.amount), 0))
        .where(CoinTransaction.user_id == user_id)
    ) or 0


def _transaction_dict(t: CoinTransaction) -> dict[str, Any]:
    return {
        "id": t.id,
        "user_id": t.user_id,
        "amount": t.amount,
        "transaction_type": t.transaction_type,
        "description": t.description,
        "metadata": t.metadata_,
        "created_at": t.created_at.isoformat() if t.created_at else None,
    }


def _page_of_transactions(
    engine: Engine, filters: list, page: int, page_size: int,
) -> tuple[list[dict[str, Any]], int]:
    page = max(page, 1)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)

    with Session(engine) as session:
        count_query = select(func.count()).select_from(CoinTransaction)
        row_query = select(CoinTransaction, User.display_name).join(
            User, User.id == CoinTransaction.user_id,
        )
        if filters:
            count_query = count_query.where(*filters)
            row_query = row_query.where(*filters)

        total = session.scalar(count_query) or 0
        rows = session.execute(
            row_query
            .order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()

        items = [
            {**_transaction_dict(t), "display_name": display_name}
            for t, display_name in rows
        ]
    return items, total


def list_transactions(
    engine: Engine,
    user_id: str,
    *,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[dict[str, Any]], int]:
    """Return ``(transactions, total)`` for *user_id*, newest first."""
    return _page_of_transactions(
        engine, [CoinTransaction.user_id == user_id], page, page_size,
    )


def list_all_transactions(
    engine: Engine,
    *,
    user_id: str | None = None,
    transaction_type: TransactionType | str | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[dict[str, Any]], int]:
    """Every member's transactions, newest first, for the admin ledger view.

    Optional filters narrow to one member and/or one transaction type.
    Raises ``ValueError`` for an unknown *transaction_type*.
    """
    filters = []
    if user_id is not None:
        filters.append(CoinTransaction.user_id == user_id)
    if transaction_type is not None:
        filters.append(
            CoinTransaction.transaction_type == TransactionType(transaction_type).value
        )
    return _page_of_transactions(engine, filters, page, page_size)


def transaction_stats(engine: Engine) -> dict[str, Any]:
    """Ledger-wide totals: count and coin sum per transaction type.

    ``total_spent`` is reported as a positive number of coins.
    """
    with Session(engine) as session:
        rows = session.execute(
            select(
                CoinTransaction.transaction_type,
                func.count(),
                func.coalesce(func.sum(CoinTransaction.amount), 0),
            ).group_by(CoinTransaction.transaction_type)
        ).all()

    by_type = {
        tx_type: {"count": count, "total": int(total)}
        for tx_type, count, total in rows
    }
    earned = by_type.get(TransactionType.EARNED.value, {}).get("total", 0)
    spent = by_type.get(TransactionType.SPENT.value, {}).get("total", 0)
    return {
        "total_count": sum(v["count"] for v in by_type.values()),
        "total_earned": earned,
        "total_spent": -spent,
        "by_type": by_type,
    }
