"""Risk API routes: account health, per-reserve positions and liquidation candidates."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from api.router import account_payload, lending_http_error
from common.protocol_constants import raw_to_human_hf
from models.enums import PositionStatus
from models.exceptions import LendingError
from services.lending_pool import LendingPool

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class LiquidationCandidate(BaseModel):
    user: str
    health_factor: str
    health_factor_display: Optional[float] = None
    status: PositionStatus
    total_collateral_value: str
    total_debt_value: str


class LiquidationCandidatesResponse(BaseModel):
    count: int = Field(..., ge=0)
    candidates: List[LiquidationCandidate] = Field(default_factory=list)


def _candidate(pool: LendingPool, user: str) -> Optional[LiquidationCandidate]:
    snapshot = pool.get_user_account_data(user)
    if snapshot.total_debt_value == 0:
        return None
    human_hf = raw_to_human_hf(snapshot.health_factor)
    return LiquidationCandidate(
        user=user,
        health_factor=str(snapshot.health_factor),
        health_factor_display=round(human_hf, 6),
        status=snapshot.status,
        total_collateral_value=str(snapshot.total_collateral_value),
        total_debt_value=str(snapshot.total_debt_value),
    )


def build_risk_router(pool: LendingPool) -> APIRouter:
    router = APIRouter(prefix="/api/risk", tags=["risk"])

    @router.get("/accounts/{user}", summary="Account health snapshot")
    def account(user: str) -> dict:
        """Aggregate collateral, debt, borrowing power and health factor."""
        try:
            return account_payload(pool.get_user_account_data(user))
        except LendingError as exc:
            raise lending_http_error(exc)
        except Exception as exc:
            logger.exception("Account snapshot failed user=%s", user)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

    @router.get("/accounts/{user}/reserves/{asset}", summary="Account position in one reserve")
    def account_reserve(user: str, asset: str) -> dict:
        try:
            return pool.get_user_reserve_data(user, asset).model_dump(mode="json")
        except LendingError as exc:
            raise lending_http_error(exc)

    @router.get(
        "/liquidatable",
        response_model=LiquidationCandidatesResponse,
        summary="Accounts below the liquidation threshold",
    )
    def liquidatable(include_at_risk: bool = Query(default=False)) -> LiquidationCandidatesResponse:
        wanted = {PositionStatus.LIQUIDATABLE}
        if include_at_risk:
            wanted.add(PositionStatus.AT_RISK)
        candidates = []
        for user in pool.list_users():
            try:
                candidate = _candidate(pool, user)
            except LendingError:
                logger.exception("Skipping account with unpriceable position user=%s", user)
                continue
            if candidate is not None and candidate.status in wanted:
                candidates.append(candidate)
        candidates.sort(key=lambda item: int(item.health_factor))
        return LiquidationCandidatesResponse(count=len(candidates), candidates=candidates)

    return router
