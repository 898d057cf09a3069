"""
rewardledger.services.notifications — "+N coins" Messages
==========================================================

Fire-and-forget delivery of coin-award notices to the member's client.
Notification runs after the award has committed; if delivery fails the
failure is logged and swallowed, never surfaced to the caller and never
rolled back into the ledger.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import text

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# PG channel the web tier LISTENs on for reward toasts
REWARD_EVENTS_CHANNEL = "reward_events"


class Notifier(Protocol):
    def notify_coins(self, user_id: str, amount: int, reason: str) -> None: ...


class LoggingNotifier:
    """Default notifier: records the notice in the application log only."""

    def notify_coins(self, user_id: str, amount: int, reason: str) -> None:
        logger.info("Notify user=%s: +%d coins (%s)", user_id, amount, reason)


class PgEventNotifier:
    """Publish notices with PostgreSQL ``NOTIFY`` on ``reward_events``.

    Payload is JSON: ``{"type": "coins_awarded", "user_id", "amount",
    "reason"}``.  Uses its own connection so it can't touch the caller's
    transaction.
    """

    def __init__(self, engine: Engine, channel: str = REWARD_EVENTS_CHANNEL) -> None:
        self._engine = engine
        self._channel = channel

    def notify_coins(self, user_id: str, amount: int, reason: str) -> None:
        payload = json.dumps({
            "type": "coins_awarded",
            "user_id": user_id,
            "amount": amount,
            "reason": reason,
        })
        with self._engine.connect() as conn:
            conn.execute(
                text("SELECT pg_notify(:channel, :payload)"),
                {"channel": self._channel, "payload": payload},
            )
            conn.commit()


def safe_notify(notifier: Notifier, user_id: str, amount: int, reason: str) -> bool:
    """Call *notifier*, logging and swallowing any failure.

    Returns True if the notifier ran without raising.
    """
    try:
        notifier.notify_coins(user_id, amount, reason)
    except Exception:
        logger.exception(
            "Coin notification failed for user=%s amount=%d", user_id, amount,
        )
        return False
    return True
