"""
tests/test_engagement_service.py — Daily Activities & Engagement Bonus
=======================================================================
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from conftest import NOON_DENVER, TODAY
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rewardledger.constants import DailyActivity
from rewardledger.database.models import DailyEngagementCompletion
from rewardledger.engine.cache import RewardCatalogCache
from rewardledger.services.engagement_service import (
    ENGAGEMENT_DESCRIPTION,
    check_engagement,
    claim_engagement_bonus,
    get_completion_status,
    record_activity,
)
from rewardledger.services.ledger_service import get_balance


@pytest.fixture
def engine(seeded_engine):
    return seeded_engine


def _complete_all(engine, cache, user_id="u1", now=NOON_DENVER):
    for activity in DailyActivity:
        record_activity(engine, cache, user_id, activity, now)


class TestRecordActivity:
    def test_pays_activity_reward(self, engine, cache):
        result = record_activity(engine, cache, "u1", "mood", NOON_DENVER)
        assert result.activity == "mood"
        assert result.completion_date == TODAY.isoformat()
        assert result.coins_awarded == 5
        assert get_balance(engine, "u1") == 5

    def test_second_completion_same_day_pays_nothing(self, engine, cache):
        record_activity(engine, cache, "u1", DailyActivity.WORD_GAME, NOON_DENVER)
        again = record_activity(engine, cache, "u1", DailyActivity.WORD_GAME, NOON_DENVER)
        assert again.already_completed is True
        assert again.coins_awarded == 0
        assert get_balance(engine, "u1") == 10

    def test_unknown_activity_rejected(self, engine, cache):
        with pytest.raises(ValueError):
            record_activity(engine, cache, "u1", "crossword", NOON_DENVER)

    def test_status_reflects_completions(self, engine, cache):
        record_activity(engine, cache, "u1", "fortune", NOON_DENVER)
        status = get_completion_status(engine, "u1", NOON_DENVER)
        assert status["date"] == TODAY.isoformat()
        assert status["activities"] == {"fortune": True, "mood": False, "word_game": False}
        assert status["all_complete"] is False

    def test_status_is_per_day(self, engine, cache):
        _complete_all(engine, cache)
        tomorrow = get_completion_status(engine, "u1", NOON_DENVER + timedelta(days=1))
        assert tomorrow["all_complete"] is False


class TestEngagementBonus:
    def test_incomplete_day_is_quiet(self, engine, cache):
        result = claim_engagement_bonus(engine, cache, "u1", False, NOON_DENVER)
        assert result.celebrate is False
        assert result.coins_awarded == 0
        with Session(engine) as session:
            count = session.scalar(
                select(func.count()).select_from(DailyEngagementCompletion)
            )
        assert count == 0

    def test_completing_all_celebrates_once(self, engine, cache):
        _complete_all(engine, cache)
        notifier = MagicMock()

        first = claim_engagement_bonus(engine, cache, "u1", True, NOON_DENVER, notifier=notifier)
        second = claim_engagement_bonus(engine, cache, "u1", True, NOON_DENVER, notifier=notifier)

        assert first.celebrate is True
        assert first.coins_awarded == 25
        assert second.celebrate is False
        assert second.already_completed is True
        assert second.coins_awarded == 0
        # 5 + 5 + 10 for the activities, 25 for the bonus
        assert get_balance(engine, "u1") == 45
        notifier.notify_coins.assert_called_once_with("u1", 25, ENGAGEMENT_DESCRIPTION)

    def test_concurrent_bonus_claims_celebrate_once(self, file_engine):
        cache = RewardCatalogCache(file_engine, ttl_seconds=3600)
        cache.load_all()
        _complete_all(file_engine, cache)
        workers = 8
        barrier = threading.Barrier(workers)
        notifier = MagicMock()

        def claim():
            barrier.wait()
            return claim_engagement_bonus(
                file_engine, cache, "u1", True, NOON_DENVER, notifier=notifier,
            )

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(claim) for _ in range(workers)]
            results = [f.result() for f in futures]

        assert sum(r.celebrate for r in results) == 1
        assert sum(r.already_completed for r in results) == workers - 1
        assert sum(r.coins_awarded for r in results) == 25
        assert get_balance(file_engine, "u1") == 45
        notifier.notify_coins.assert_called_once_with("u1", 25, ENGAGEMENT_DESCRIPTION)

    def test_concurrent_activity_pays_once(self, file_engine):
        cache = RewardCatalogCache(file_engine, ttl_seconds=3600)
        cache.load_all()
        workers = 6
        barrier = threading.Barrier(workers)

        def complete():
            barrier.wait()
            return record_activity(file_engine, cache, "u1", "fortune", NOON_DENVER)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(complete) for _ in range(workers)]
            results = [f.result() for f in futures]

        assert sum(not r.already_completed for r in results) == 1
        assert get_balance(file_engine, "u1") == 5

    def test_check_engagement_gates_on_status(self, engine, cache):
        record_activity(engine, cache, "u1", "mood", NOON_DENVER)
        status, result = check_engagement(engine, cache, "u1", NOON_DENVER)
        assert status["all_complete"] is False
        assert result.celebrate is False

        record_activity(engine, cache, "u1", "fortune", NOON_DENVER)
        record_activity(engine, cache, "u1", "word_game", NOON_DENVER)
        status, result = check_engagement(engine, cache, "u1", NOON_DENVER)
        assert status["all_complete"] is True
        assert result.celebrate is True

        _, again = check_engagement(engine, cache, "u1", NOON_DENVER)
        assert again.celebrate is False

    def test_bonus_again_next_day(self, engine, cache):
        _complete_all(engine, cache)
        check_engagement(engine, cache, "u1", NOON_DENVER)
        tomorrow = NOON_DENVER + timedelta(days=1)
        _complete_all(engine, cache, now=tomorrow)
        _, result = check_engagement(engine, cache, "u1", tomorrow)
        assert result.celebrate is True
        assert get_balance(engine, "u1") == 90
