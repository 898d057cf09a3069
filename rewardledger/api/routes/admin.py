"""
rewardledger.api.routes.admin — Admin endpoints (JWT‑protected)
================================================================
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from rewardledger.api.deps import get_cache, get_config, get_current_admin, get_engine
from rewardledger.config import RewardsConfig
from rewardledger.constants import RewardKey
from rewardledger.database.models import TransactionType
from rewardledger.engine.cache import RewardCatalogCache
from rewardledger.services import (
    catalog_service,
    ledger_service,
    reconciliation_service,
    scratch_card_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class RewardRuleUpdate(BaseModel):
    coins_amount: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    reward_name: str | None = None
    description: str | None = None


class MilestoneUpdate(BaseModel):
    bonus_coins: int | None = Field(default=None, ge=0)
    free_scratch_cards: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    badge_name: str | None = None
    badge_icon: str | None = None
    description: str | None = None


# ---------------------------------------------------------------------------
# Reward catalog
# ---------------------------------------------------------------------------
@router.get("/rewards")
def list_reward_rules(
    cache: Annotated[RewardCatalogCache, Depends(get_cache)],
    admin: dict = Depends(get_current_admin),
):
    return [
        {
            "reward_key": r.reward_key,
            "reward_name": r.reward_name,
            "description": r.description,
            "coins_amount": r.coins_amount,
            "is_active": r.is_active,
            "category": r.category,
        }
        for r in cache.get_rules()
    ]


@router.patch("/rewards/{reward_key}")
def update_reward_rule(
    reward_key: RewardKey,
    body: RewardRuleUpdate,
    engine: Annotated[Engine, Depends(get_engine)],
    cache: Annotated[RewardCatalogCache, Depends(get_cache)],
    admin: dict = Depends(get_current_admin),
):
    rule = catalog_service.update_reward_rule(
        engine, reward_key, **body.model_dump(exclude_none=True),
    )
    if rule is None:
        raise HTTPException(404, "Reward rule not found")
    cache.invalidate()
    logger.info("Admin %s updated reward rule %s", admin.get("sub"), reward_key)
    return {
        "reward_key": rule.reward_key,
        "reward_name": rule.reward_name,
        "description": rule.description,
        "coins_amount": rule.coins_amount,
        "is_active": rule.is_active,
        "category": rule.category,
    }


# ---------------------------------------------------------------------------
# Streak milestones
# ---------------------------------------------------------------------------
def _milestone_dict(m) -> dict:
    return {
        "id": m.id,
        "days_required": m.days_required,
        "badge_name": m.badge_name,
        "badge_icon": m.badge_icon,
        "description": m.description,
        "bonus_coins": m.bonus_coins,
        "free_scratch_cards": m.free_scratch_cards,
        "is_active": m.is_active,
    }


@router.get("/milestones")
def list_milestones(
    cache: Annotated[RewardCatalogCache, Depends(get_cache)],
    admin: dict = Depends(get_current_admin),
):
    return [_milestone_dict(m) for m in cache.get_milestones()]


@router.patch("/milestones/{milestone_id}")
def update_milestone(
    milestone_id: int,
    body: MilestoneUpdate,
    engine: Annotated[Engine, Depends(get_engine)],
    cache: Annotated[RewardCatalogCache, Depends(get_cache)],
    admin: dict = Depends(get_current_admin),
):
    milestone = catalog_service.update_milestone(
        engine, milestone_id, **body.model_dump(exclude_none=True),
    )
    if milestone is None:
        raise HTTPException(404, "Milestone not found")
    cache.invalidate()
    logger.info("Admin %s updated streak milestone %d", admin.get("sub"), milestone_id)
    return _milestone_dict(milestone)


# ---------------------------------------------------------------------------
# Batch jobs
# ---------------------------------------------------------------------------
@router.post("/scratch-cards/issue")
def issue_scratch_cards(
    engine: Annotated[Engine, Depends(get_engine)],
    cfg: Annotated[RewardsConfig, Depends(get_config)],
    admin: dict = Depends(get_current_admin),
):
    logger.info("Admin %s triggered scratch-card issue", admin.get("sub"))
    return scratch_card_service.issue_daily_cards(
        engine, cfg.tz, batch_size=cfg.scratch_card_batch_size,
    )


@router.get("/ledger/reconcile")
def reconcile_ledger(
    engine: Annotated[Engine, Depends(get_engine)],
    admin: dict = Depends(get_current_admin),
):
    return reconciliation_service.reconcile_balances(engine)


@router.get("/ledger/reconcile/{user_id}")
def reconcile_member(
    user_id: str,
    engine: Annotated[Engine, Depends(get_engine)],
    admin: dict = Depends(get_current_admin),
):
    report = reconciliation_service.reconcile_user(engine, user_id)
    if report is None:
        raise HTTPException(404, "User not found")
    return report


# ---------------------------------------------------------------------------
# Coin ledger
# ---------------------------------------------------------------------------
@router.get("/transactions")
def list_transactions(
    engine: Annotated[Engine, Depends(get_engine)],
    admin: dict = Depends(get_current_admin),
    user_id: str | None = None,
    transaction_type: TransactionType | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=ledger_service.MAX_PAGE_SIZE),
):
    items, total = ledger_service.list_all_transactions(
        engine,
        user_id=user_id,
        transaction_type=transaction_type,
        page=page,
        page_size=page_size,
    )
    return {"transactions": items, "total": total, "page": page, "page_size": page_size}


@router.get("/transactions/stats")
def transaction_stats(
    engine: Annotated[Engine, Depends(get_engine)],
    admin: dict = Depends(get_current_admin),
):
    return ledger_service.transaction_stats(engine)
