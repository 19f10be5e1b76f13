"""Read-only account and reserve views returned by pool queries."""

from pydantic import Field

from .base import Amount, BaseDomainModel, PercentageBps, Ray, Wad
from .enums import PositionStatus
from .reserves import ReserveConfigModel


class UserAccountSnapshot(BaseDomainModel):
    """Cross-reserve aggregate for one user, priced in WAD USD."""

    user: str = Field(..., min_length=1)
    total_collateral_value: Wad = Field(default=0, ge=0)
    total_debt_value: Wad = Field(default=0, ge=0)
    available_borrow_value: Wad = Field(default=0, ge=0)
    current_liquidation_threshold_bps: PercentageBps = Field(default=0, ge=0, le=10000)
    ltv_bps: PercentageBps = Field(default=0, ge=0, le=10000)
    health_factor: Ray = Field(..., ge=0)
    status: PositionStatus = Field(default=PositionStatus.HEALTHY)


class ReserveDataView(BaseDomainModel):
    """Point-in-time reserve state with real-unit totals computed on read."""

    id: int = Field(..., ge=1)
    asset: str = Field(..., min_length=1)
    config: ReserveConfigModel

    liquidity_index: Ray = Field(..., ge=0)
    variable_borrow_index: Ray = Field(..., ge=0)
    current_liquidity_rate: Ray = Field(default=0, ge=0)
    current_variable_borrow_rate: Ray = Field(default=0, ge=0)
    current_stable_borrow_rate: Ray = Field(default=0, ge=0)
    average_stable_rate: Ray = Field(default=0, ge=0)
    utilization: Ray = Field(default=0, ge=0)
    last_update_timestamp: int = Field(default=0, ge=0)

    total_supplied_scaled: Amount = Field(default=0, ge=0)
    total_variable_debt_scaled: Amount = Field(default=0, ge=0)
    accrued_to_treasury_scaled: Amount = Field(default=0, ge=0)
    total_supplied: Amount = Field(default=0, ge=0)
    total_variable_debt: Amount = Field(default=0, ge=0)
    total_stable_debt: Amount = Field(default=0, ge=0)
    available_liquidity: Amount = Field(default=0, ge=0)

    is_active: bool = Field(default=True)
    is_frozen: bool = Field(default=False)
    is_paused: bool = Field(default=False)


class UserReserveView(BaseDomainModel):
    """One user's balances in one reserve."""

    user: str = Field(..., min_length=1)
    asset: str = Field(..., min_length=1)
    scaled_supply_balance: Amount = Field(default=0, ge=0)
    supply_balance: Amount = Field(default=0, ge=0)
    scaled_variable_debt: Amount = Field(default=0, ge=0)
    variable_debt: Amount = Field(default=0, ge=0)
    stable_debt: Amount = Field(default=0, ge=0)
    stable_rate: Ray = Field(default=0, ge=0)
    usage_as_collateral_enabled: bool = Field(default=False)
