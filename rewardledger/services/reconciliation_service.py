"""
rewardledger.services.reconciliation_service — Balance vs. Ledger Audit
========================================================================

Periodic job that checks ``users.coins`` against the sum of each user's
``coin_transactions`` rows.

How it works:
    1. Sum ``coin_transactions.amount`` grouped by ``user_id``.
    2. Compare against the stored ``users.coins`` for every user.
    3. Report every mismatch (``stored``, ``actual``, ``diff``) and log it.

:func:`reconcile_user` runs the same check for one member (admin drill-down).

Drift is **reported, not corrected**.  Every mutation goes through the ledger
entrypoint, which writes both sides in one transaction, so a mismatch means
someone edited a table by hand.  A human decides which side is right.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select

from rewardledger.database.engine import get_session
from rewardledger.database.models import CoinTransaction, User
from rewardledger.services.ledger_service import ledger_sum

logger = logging.getLogger(__name__)


def reconcile_balances(engine: Engine) -> dict:
    """Compare every balance against its ledger.

    Returns ``{"checked": N, "drifted": M, "drift": [...], "timestamp"}``.
    """
    drift: list[dict] = []

    with get_session(engine) as session:
        # Ground truth: SUM(amount) per user from the ledger
        ledger = (
            select(
                CoinTransaction.user_id.label("user_id"),
                func.sum(CoinTransaction.amount).label("actual"),
            )
            .group_by(CoinTransaction.user_id)
            .subquery()
        )
        rows = session.execute(
            select(
                User.id,
                User.coins,
                func.coalesce(ledger.c.actual, 0).label("actual"),
            )
            .outerjoin(ledger, ledger.c.user_id == User.id)
            .order_by(User.id)
        ).all()

        checked = 0
        for row in rows:
            checked += 1
            if row.coins != row.actual:
                drift.append({
                    "user_id": row.id,
                    "stored": row.coins,
                    "actual": int(row.actual),
                    "diff": int(row.actual) - row.coins,
                })

    if drift:
        logger.warning(
            "Ledger reconciliation: %d/%d balances drifted: %s",
            len(drift), checked, drift,
        )
    else:
        logger.info("Ledger reconciliation: all %d balances match", checked)

    return {
        "checked": checked,
        "drifted": len(drift),
        "drift": drift,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def reconcile_user(engine: Engine, user_id: str) -> dict | None:
    """Check one member's balance against their ledger.

    Returns ``{"user_id", "stored", "actual", "diff", "drifted"}``, or None
    for an unknown member.
    """
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return None
        stored = user.coins
        actual = int(ledger_sum(session, user_id))

    if stored != actual:
        logger.warning(
            "Ledger reconciliation: user=%s stored=%d actual=%d", user_id, stored, actual,
        )
    return {
        "user_id": user_id,
        "stored": stored,
        "actual": actual,
        "diff": actual - stored,
        "drifted": stored != actual,
    }
