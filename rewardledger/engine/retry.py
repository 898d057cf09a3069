"""
rewardledger.engine.retry — Bounded Retry for Transient Database Errors
========================================================================

Retries a whole unit of work (a read-only lookup, or a complete fenced claim
transaction) when the database hiccups: dropped connections, lock timeouts,
failover.  Backoff is exponential with jitter and capped.

Never wrap a bare balance write in :func:`with_retry`; only wrap operations
whose uniqueness fence makes a replay harmless.  A replayed claim that had in
fact committed comes back as "already claimed".
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
BASE_BACKOFF = 0.2
MAX_BACKOFF = 5.0


def is_transient(exc: BaseException) -> bool:
    """True for failures worth retrying; constraint violations never are."""
    if isinstance(exc, IntegrityError):
        return False
    if isinstance(exc, (OperationalError, TimeoutError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


def backoff_delay(attempt: int, base: float = BASE_BACKOFF, cap: float = MAX_BACKOFF) -> float:
    """Seconds to wait before retry number *attempt* (1-based)."""
    backoff = min(base * (2 ** (attempt - 1)), cap)
    return backoff + random.uniform(0, backoff * 0.5)


def with_retry(
    func: Callable[P, T],
    *args: P.args,
    **kwargs: P.kwargs,
) -> T:
    """Call *func*, retrying transient failures up to ``DEFAULT_ATTEMPTS`` times."""
    return retry_call(func, args, kwargs)


def retry_call(
    func: Callable[..., T],
    args: tuple = (),
    kwargs: dict | None = None,
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Explicit-parameter form of :func:`with_retry`.

    Non-transient errors propagate immediately; the last transient error
    propagates once *attempts* are used up.
    """
    kwargs = kwargs or {}
    attempt = 0
    while True:
        attempt += 1
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            if not is_transient(exc) or attempt >= attempts:
                raise
            wait = backoff_delay(attempt)
            logger.warning(
                "Transient DB error in %s (attempt %d/%d): %s. Retrying in %.2fs",
                getattr(func, "__name__", func), attempt, attempts, exc, wait,
            )
            sleep(wait)
