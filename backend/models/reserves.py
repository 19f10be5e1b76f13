"""Reserve configuration model for per-asset risk and rate parameters."""

import logging
from typing import Optional

from pydantic import Field, field_validator, model_validator

from .base import BaseDomainModel, PercentageBps


logger = logging.getLogger(__name__)


class ReserveConfigModel(BaseDomainModel):
    """Collateral and interest-curve configuration for one asset pool.

    All percentages are basis points; the interest-curve values are annual
    rates and slopes, converted to RAY by the rate model.
    """

    asset: str = Field(..., min_length=1)
    symbol: Optional[str] = Field(default=None)
    decimals: int = Field(default=18, ge=0, le=36)
    is_native: bool = Field(default=False)

    collateral_factor_bps: PercentageBps = Field(default=8000, ge=0, le=10000)
    liquidation_threshold_bps: PercentageBps = Field(default=8500, ge=0, le=10000)
    liquidation_bonus_bps: PercentageBps = Field(default=500, ge=0, le=5000)
    borrow_factor_bps: PercentageBps = Field(default=10000, gt=0, le=10000)
    max_utilization_bps: PercentageBps = Field(default=9500, gt=0, le=10000)
    reserve_factor_bps: PercentageBps = Field(default=1000, ge=0, le=10000)

    base_rate_bps: PercentageBps = Field(default=500, ge=0)
    kink_rate_bps: PercentageBps = Field(default=2000, gt=0, le=10000)
    multiplier_bps: PercentageBps = Field(default=100, ge=0)
    jump_multiplier_bps: Optional[PercentageBps] = Field(default=None, ge=0)
    stable_rate_premium_bps: PercentageBps = Field(default=200, ge=0)

    borrowing_enabled: bool = Field(default=True)
    stable_borrowing_enabled: bool = Field(default=True)

    @field_validator("symbol")
    @classmethod
    def _uppercase_symbol(cls, value: Optional[str]) -> Optional[str]:
        """Force ticker-style uppercase symbols."""
        return value.upper() if value else value

    @model_validator(mode="after")
    def _validate_risk_parameters(self) -> "ReserveConfigModel":
        """Validate threshold ordering and liquidation feasibility."""
        try:
            if self.liquidation_threshold_bps < self.collateral_factor_bps:
                raise ValueError("liquidation_threshold_bps must be >= collateral_factor_bps")
            bonus_adjusted = self.liquidation_threshold_bps * (10000 + self.liquidation_bonus_bps)
            if bonus_adjusted > 10000 * 10000:
                raise ValueError("liquidation_threshold_bps with bonus must not exceed 100%")
            return self
        except Exception:
            logger.exception("Reserve config validation failed asset=%s", self.asset)
            raise

    @property
    def effective_jump_multiplier_bps(self) -> PercentageBps:
        """Slope above the kink; defaults to the pre-kink slope."""
        if self.jump_multiplier_bps is None:
            return self.multiplier_bps
        return self.jump_multiplier_bps
