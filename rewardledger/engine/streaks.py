"""
rewardledger.engine.streaks — Streak Arithmetic
================================================

Pure streak transition, no DB I/O.  The streak service feeds in the stored
state and the reference-timezone day and persists whatever comes back.

Transition for a login on ``today``:
  same day as last login  → unchanged (no-op)
  day after last login    → current + 1
  anything else           → 1 (first login or a gap of ≥ 1 missed day)

``best_streak`` is a high-water mark and never decreases.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date
from typing import Protocol

from rewardledger.engine.clock import yesterday


@dataclass(frozen=True, slots=True)
class StreakState:
    current_streak: int = 0
    best_streak: int = 0
    total_login_days: int = 0
    last_login_date: date | None = None


class MilestoneLike(Protocol):
    days_required: int
    is_active: bool


def advance_streak(state: StreakState, today: date) -> tuple[StreakState, bool]:
    """Apply a login on *today* to *state*.

    Returns ``(new_state, advanced)``.  ``advanced`` is False when the login
    is on the day already recorded; *state* comes back unchanged.
    """
    last = state.last_login_date
    if last == today:
        return state, False

    if last is not None and last == yesterday(today):
        current = state.current_streak + 1
    else:
        current = 1

    return replace(
        state,
        current_streak=current,
        best_streak=max(state.best_streak, current),
        total_login_days=state.total_login_days + 1,
        last_login_date=today,
    ), True


def milestones_hit(
    milestones: Iterable[MilestoneLike], current_streak: int,
) -> list[MilestoneLike]:
    """Active milestones whose threshold equals *current_streak* exactly."""
    return [
        m for m in milestones
        if m.is_active and m.days_required == current_streak
    ]


def next_milestone(
    milestones: Iterable[MilestoneLike], current_streak: int,
) -> MilestoneLike | None:
    """The lowest active milestone still ahead of *current_streak*."""
    ahead = [
        m for m in milestones
        if m.is_active and m.days_required > current_streak
    ]
    if not ahead:
        return None
    return min(ahead, key=lambda m: m.days_required)
