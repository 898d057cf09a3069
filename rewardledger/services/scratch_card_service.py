"""
rewardledger.services.scratch_card_service — Daily Scratch-Card Issuer
=======================================================================

Every member gets one free scratch card per reference-timezone day, drawn
from the currently active sticker collection.  Cards come from two places:

* the nightly/cron batch (:func:`issue_daily_cards`), and
* lazy generation when a member opens the card screen before the batch has
  reached them (:func:`ensure_daily_card`).

Both insert inside a SAVEPOINT and rely on the partial unique index
``(user_id, date) WHERE NOT is_bonus_card``: a duplicate is "skipped", so
either path can run any number of times.

Bonus cards (streak milestones) are not fenced by that index; each grant
inserts fresh rows that expire after ``scratch_cards.bonus_expiry_days``.

**Users are paged by keyset** (``WHERE id > :last ORDER BY id``) in chunks of
``batch_size`` and each chunk commits on its own, so a large membership never
holds one long transaction.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from rewardledger.config import DEFAULT_BATCH_SIZE
from rewardledger.database.models import ScratchCard, StickerCollection, User
from rewardledger.engine.clock import end_of_day, now_utc, today
from rewardledger.services.ledger_service import get_or_create_user

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

DEFAULT_BONUS_EXPIRY_DAYS = 7


# ---------------------------------------------------------------------------
# Collection lookup
# ---------------------------------------------------------------------------
def get_active_collection(session: Session, day: date) -> StickerCollection | None:
    """The collection cards are drawn from on *day*, or None.

    Active means ``is_active`` and ``start_date <= day <= end_date`` (a NULL
    end date is open-ended).  Ties go to the lowest ``display_order``.
    """
    return session.scalar(
        select(StickerCollection)
        .where(
            StickerCollection.is_active.is_(True),
            StickerCollection.start_date <= day,
            or_(
                StickerCollection.end_date.is_(None),
                StickerCollection.end_date >= day,
            ),
        )
        .order_by(StickerCollection.display_order, StickerCollection.id)
        .limit(1)
    )


# ---------------------------------------------------------------------------
# Single-card insert (the fence)
# ---------------------------------------------------------------------------
def _insert_daily_card(
    session: Session,
    user_id: str,
    day: date,
    collection_id: int,
    expires_at: datetime,
) -> bool:
    """Insert the free card for (*user_id*, *day*).  False if it already exists."""
    card = ScratchCard(
        user_id=user_id,
        card_date=day,
        collection_id=collection_id,
        is_bonus_card=False,
        purchase_number=0,
        expires_at=expires_at,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(card)
            session.flush()
    except IntegrityError:
        return False
    return True


# ---------------------------------------------------------------------------
# Batch issuer
# ---------------------------------------------------------------------------
def issue_daily_cards(
    engine: Engine,
    tz: ZoneInfo | str | None = None,
    now: datetime | None = None,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> dict[str, Any]:
    """Issue today's free card to every member.

    Returns ``{"date", "collection_id", "total", "created", "skipped",
    "errored"}``, or ``{"status": "no_active_collection", "date"}`` when
    there is nothing to draw from.  Per-user failures are logged and counted;
    they never abort the batch.
    """
    day = today(tz, now)
    expires_at = end_of_day(day, tz).astimezone(UTC)

    with Session(engine) as session:
        collection = get_active_collection(session, day)
        collection_id = collection.id if collection else None

    if collection_id is None:
        logger.info("Scratch cards: no active collection for %s; nothing issued", day)
        return {"status": "no_active_collection", "date": day.isoformat()}

    total = created = skipped = errored = 0
    last_id: str | None = None

    while True:
        with Session(engine) as session:
            query = select(User.id).order_by(User.id).limit(batch_size)
            if last_id is not None:
                query = query.where(User.id > last_id)
            user_ids = session.scalars(query).all()
            if not user_ids:
                break

            for user_id in user_ids:
                total += 1
                try:
                    if _insert_daily_card(session, user_id, day, collection_id, expires_at):
                        created += 1
                    else:
                        skipped += 1
                except SQLAlchemyError:
                    errored += 1
                    logger.exception(
                        "Scratch cards: failed to issue card for user=%s on %s",
                        user_id, day,
                    )
            session.commit()
            last_id = user_ids[-1]

        logger.info(
            "Scratch cards: processed %d users so far (created=%d skipped=%d errored=%d)",
            total, created, skipped, errored,
        )

    logger.info(
        "Scratch cards for %s complete: %d users, %d created, %d skipped, %d errored",
        day, total, created, skipped, errored,
    )
    return {
        "date": day.isoformat(),
        "collection_id": collection_id,
        "total": total,
        "created": created,
        "skipped": skipped,
        "errored": errored,
    }


# ---------------------------------------------------------------------------
# Lazy per-user generation
# ---------------------------------------------------------------------------
def ensure_daily_card(
    engine: Engine,
    user_id: str,
    tz: ZoneInfo | str | None = None,
    now: datetime | None = None,
) -> dict[str, Any] | None:
    """Make sure *user_id* has today's free card and return it.

    Returns None when no collection is active.
    """
    day = today(tz, now)
    with Session(engine) as session:
        get_or_create_user(session, user_id)
        collection = get_active_collection(session, day)
        if collection is None:
            return None

        created = _insert_daily_card(
            session, user_id, day, collection.id, end_of_day(day, tz).astimezone(UTC),
        )
        session.commit()

        card = session.scalar(
            select(ScratchCard).where(
                ScratchCard.user_id == user_id,
                ScratchCard.card_date == day,
                ScratchCard.is_bonus_card.is_(False),
            )
        )
        return {
            "id": card.id,
            "date": card.card_date.isoformat(),
            "collection_id": card.collection_id,
            "is_scratched": card.is_scratched,
            "created": created,
        }


# ---------------------------------------------------------------------------
# Bonus cards
# ---------------------------------------------------------------------------
def issue_bonus_cards(
    session: Session,
    user_id: str,
    count: int,
    day: date,
    *,
    expiry_days: int = DEFAULT_BONUS_EXPIRY_DAYS,
    now: datetime | None = None,
) -> int:
    """Add *count* bonus cards for *user_id* in the caller's transaction.

    Returns the number issued: 0 when *count* is not positive or no
    collection is active on *day*.
    """
    if count <= 0:
        return 0

    collection = get_active_collection(session, day)
    if collection is None:
        logger.info(
            "Bonus cards: no active collection on %s; %d card(s) for user=%s dropped",
            day, count, user_id,
        )
        return 0

    existing = session.scalar(
        select(func.count())
        .select_from(ScratchCard)
        .where(
            ScratchCard.user_id == user_id,
            ScratchCard.card_date == day,
            ScratchCard.is_bonus_card.is_(True),
        )
    ) or 0

    expires_at = (now or now_utc()) + timedelta(days=expiry_days)
    for n in range(1, count + 1):
        session.add(ScratchCard(
            user_id=user_id,
            card_date=day,
            collection_id=collection.id,
            is_bonus_card=True,
            purchase_number=existing + n,
            expires_at=expires_at,
        ))
    session.flush()

    logger.info("Bonus cards: issued %d to user=%s for %s", count, user_id, day)
    return count
