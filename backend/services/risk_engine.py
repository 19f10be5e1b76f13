"""Cross-reserve risk aggregation and operation validation.

Balances are read at indices projected to ``now`` so a snapshot is correct
even for reserves nobody has touched since the last accrual. Every value is
priced in WAD USD; the health factor is RAY-scaled.
"""

from dataclasses import dataclass
import logging
from typing import Dict, Optional, Tuple

from common.fixed_point import mul_div, percent_div, percent_mul
from common.protocol_constants import (
    DEFAULT_HEALTH_WARNING_BAND,
    DEFAULT_SEVERE_HEALTH_FACTOR,
    HALF_PERCENTAGE_FACTOR,
    HEALTH_FACTOR_LIQUIDATION_THRESHOLD,
    LIQUIDATION_CLOSE_FACTOR_BPS,
    MAX_AMOUNT,
    MAX_UINT256,
    PERCENTAGE_FACTOR,
    RAY,
    human_to_ray,
)
from models.accounts import UserAccountSnapshot
from models.enums import PositionStatus
from models.exceptions import (
    BorrowCapExceeded,
    CloseFactorExceeded,
    HealthFactorTooLow,
    InsufficientCollateral,
    InvalidAmount,
    PositionNotLiquidatable,
)
from services.ledger_store import LedgerStore
from services.price_oracle import PriceOracle


logger = logging.getLogger(__name__)

# asset -> (collateral delta, debt delta) in real units
Adjustments = Dict[str, Tuple[int, int]]


@dataclass(frozen=True)
class ReserveBalances:
    """One user's real-unit position in one reserve at a point in time."""

    supplied: int
    variable_debt: int
    stable_debt: int
    used_as_collateral: bool

    @property
    def total_debt(self) -> int:
        return self.variable_debt + self.stable_debt


@dataclass(frozen=True)
class LiquidationPlan:
    """Amounts a liquidation call will move."""

    collateral_asset: str
    debt_asset: str
    user: str
    health_factor: int
    close_factor_bps: int
    user_debt: int
    user_collateral: int
    debt_to_cover: int
    collateral_to_seize: int


class RiskEngine:
    """Computes account snapshots and gates risk-changing operations."""

    def __init__(
        self,
        store: LedgerStore,
        oracle: PriceOracle,
        severe_health_factor: float = DEFAULT_SEVERE_HEALTH_FACTOR,
        health_warning_band: float = DEFAULT_HEALTH_WARNING_BAND,
        close_factor_bps: int = LIQUIDATION_CLOSE_FACTOR_BPS,
    ) -> None:
        if not 0 < close_factor_bps <= PERCENTAGE_FACTOR:
            raise InvalidAmount("close factor must be in (0, 10000] bps")
        self.store = store
        self.oracle = oracle
        self.severe_health_factor = human_to_ray(severe_health_factor)
        self.health_warning_band = human_to_ray(health_warning_band)
        self.close_factor_bps = close_factor_bps

    def reserve_balances(self, user: str, asset: str, now: int) -> ReserveBalances:
        """User's supply and debt in ``asset`` at projected indices."""
        store = self.store
        reserve = store.get_reserve(asset)
        config = store.peek_user_config(user)
        supplied = store.supply_tokens[asset].balance_of_underlying(user, reserve.normalized_income(now))
        variable = store.variable_debt_tokens[asset].balance_of_underlying(
            user, reserve.normalized_variable_debt(now)
        )
        stable = store.stable_debt_tokens[asset].balance_of(user, now)
        return ReserveBalances(
            supplied=supplied,
            variable_debt=variable,
            stable_debt=stable,
            used_as_collateral=config is not None and config.is_using_as_collateral(reserve.id),
        )

    def asset_value(self, asset: str, amount: int) -> int:
        """WAD USD value of ``amount`` smallest units of ``asset``."""
        if amount == 0:
            return 0
        reserve = self.store.get_reserve(asset)
        return mul_div(amount, self.oracle.get_price(asset), 10 ** reserve.config.decimals)

    def get_account_snapshot(
        self, user: str, now: int, adjustments: Optional[Adjustments] = None
    ) -> UserAccountSnapshot:
        """Aggregate collateral and debt across every reserve the user touches.

        ``adjustments`` simulates collateral and debt deltas per asset without
        touching the ledger.
        """
        adjustments = adjustments or {}
        config = self.store.peek_user_config(user)
        assets = set(adjustments)
        if config is not None:
            assets.update(self.store.asset_for_id(reserve_id) for reserve_id in config.reserve_ids())

        total_collateral = 0
        total_debt = 0
        risk_adjusted_debt = 0
        weighted_threshold = 0
        weighted_ltv = 0
        for asset in sorted(assets):
            reserve = self.store.get_reserve(asset)
            balances = self.reserve_balances(user, asset, now)
            collateral_delta, debt_delta = adjustments.get(asset, (0, 0))
            collateral = balances.supplied if balances.used_as_collateral else 0
            collateral = max(0, collateral + collateral_delta)
            debt = max(0, balances.total_debt + debt_delta)
            if collateral == 0 and debt == 0:
                continue

            collateral_value = self.asset_value(asset, collateral)
            debt_value = self.asset_value(asset, debt)
            total_collateral += collateral_value
            weighted_threshold += collateral_value * reserve.config.liquidation_threshold_bps
            weighted_ltv += collateral_value * reserve.config.collateral_factor_bps
            total_debt += debt_value
            risk_adjusted_debt += percent_div(debt_value, reserve.config.borrow_factor_bps)

        if total_debt == 0:
            health_factor = MAX_UINT256
        else:
            health_factor = mul_div(weighted_threshold, RAY, total_debt * PERCENTAGE_FACTOR)
        borrowing_power = (weighted_ltv + HALF_PERCENTAGE_FACTOR) // PERCENTAGE_FACTOR
        threshold_bps = weighted_threshold // total_collateral if total_collateral else 0
        ltv_bps = weighted_ltv // total_collateral if total_collateral else 0

        return UserAccountSnapshot(
            user=user,
            total_collateral_value=total_collateral,
            total_debt_value=total_debt,
            available_borrow_value=max(0, borrowing_power - risk_adjusted_debt),
            current_liquidation_threshold_bps=threshold_bps,
            ltv_bps=ltv_bps,
            health_factor=health_factor,
            status=self.classify(health_factor),
        )

    def classify(self, health_factor: int) -> PositionStatus:
        if health_factor < HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
            return PositionStatus.LIQUIDATABLE
        if health_factor < self.health_warning_band:
            return PositionStatus.AT_RISK
        return PositionStatus.HEALTHY

    def validate_borrow(self, user: str, asset: str, amount: int, now: int) -> UserAccountSnapshot:
        """Reject a borrow that would leave the account unsafe or over its cap."""
        if amount <= 0:
            raise InvalidAmount("borrow amount must be > 0")
        simulated = self.get_account_snapshot(user, now, {asset: (0, amount)})
        if simulated.health_factor < HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
            logger.warning(
                "Borrow rejected user=%s asset=%s amount=%s simulated_hf=%s",
                user,
                asset,
                amount,
                simulated.health_factor,
            )
            raise HealthFactorTooLow(
                "borrow would drop health factor to {0} for user={1}".format(simulated.health_factor, user)
            )

        current = self.get_account_snapshot(user, now)
        reserve = self.store.get_reserve(asset)
        borrow_value = percent_div(self.asset_value(asset, amount), reserve.config.borrow_factor_bps)
        if borrow_value > current.available_borrow_value:
            logger.warning(
                "Borrow cap exceeded user=%s asset=%s value=%s available=%s",
                user,
                asset,
                borrow_value,
                current.available_borrow_value,
            )
            raise BorrowCapExceeded(
                "borrow value {0} exceeds available {1} for user={2}".format(
                    borrow_value, current.available_borrow_value, user
                )
            )
        return simulated

    def validate_withdraw(self, user: str, asset: str, amount: int, now: int) -> None:
        """Reject a collateral withdrawal that would make the account liquidatable."""
        reserve = self.store.get_reserve(asset)
        config = self.store.peek_user_config(user)
        if config is None or not config.is_using_as_collateral(reserve.id) or not config.borrowing:
            return
        simulated = self.get_account_snapshot(user, now, {asset: (-amount, 0)})
        if simulated.health_factor < HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
            raise HealthFactorTooLow(
                "withdraw would drop health factor to {0} for user={1}".format(simulated.health_factor, user)
            )

    def validate_disable_collateral(self, user: str, asset: str, now: int) -> None:
        """Reject removing ``asset`` from collateral when debt depends on it."""
        balances = self.reserve_balances(user, asset, now)
        if not balances.used_as_collateral or balances.supplied == 0:
            return
        self.validate_withdraw(user, asset, balances.supplied, now)

    def is_liquidatable(self, user: str, now: int) -> bool:
        return self.get_account_snapshot(user, now).health_factor < HEALTH_FACTOR_LIQUIDATION_THRESHOLD

    def close_factor_for(self, health_factor: int) -> int:
        """Fraction of a debt (bps) one liquidation call may cover."""
        if health_factor < self.severe_health_factor:
            return PERCENTAGE_FACTOR
        return self.close_factor_bps

    def compute_liquidation_amounts(
        self,
        collateral_asset: str,
        debt_asset: str,
        user: str,
        debt_to_cover: int,
        now: int,
    ) -> LiquidationPlan:
        """Size a liquidation.

        ``debt_to_cover`` may be ``MAX_AMOUNT`` for "as much as the close
        factor allows".

        Raises:
            PositionNotLiquidatable: Health factor is at or above 1.0.
            CloseFactorExceeded: ``debt_to_cover`` is above the close factor.
            InsufficientCollateral: Seize amount exceeds the user's collateral.
        """
        if debt_to_cover <= 0:
            raise InvalidAmount("debt_to_cover must be > 0")
        snapshot = self.get_account_snapshot(user, now)
        if snapshot.health_factor >= HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
            raise PositionNotLiquidatable(
                "user={0} health factor {1} is not below 1.0".format(user, snapshot.health_factor)
            )

        debt_balances = self.reserve_balances(user, debt_asset, now)
        user_debt = debt_balances.total_debt
        if user_debt == 0:
            raise InvalidAmount("user={0} has no debt in asset={1}".format(user, debt_asset))

        collateral_balances = self.reserve_balances(user, collateral_asset, now)
        if not collateral_balances.used_as_collateral or collateral_balances.supplied == 0:
            raise InsufficientCollateral(
                "asset={0} is not collateral for user={1}".format(collateral_asset, user)
            )

        close_factor = self.close_factor_for(snapshot.health_factor)
        max_cover = percent_mul(user_debt, close_factor)
        if debt_to_cover == MAX_AMOUNT:
            debt_to_cover = max_cover
        elif debt_to_cover > max_cover:
            raise CloseFactorExceeded(
                "debt_to_cover {0} exceeds close factor limit {1} ({2} bps)".format(
                    debt_to_cover, max_cover, close_factor
                )
            )

        collateral_reserve = self.store.get_reserve(collateral_asset)
        debt_reserve = self.store.get_reserve(debt_asset)
        debt_price = self.oracle.get_price(debt_asset)
        collateral_price = self.oracle.get_price(collateral_asset)
        base_collateral = mul_div(
            debt_to_cover,
            debt_price * 10 ** collateral_reserve.config.decimals,
            collateral_price * 10 ** debt_reserve.config.decimals,
        )
        seize = percent_mul(base_collateral, PERCENTAGE_FACTOR + collateral_reserve.config.liquidation_bonus_bps)
        if seize > collateral_balances.supplied:
            raise InsufficientCollateral(
                "seize {0} exceeds collateral {1} asset={2} user={3}".format(
                    seize, collateral_balances.supplied, collateral_asset, user
                )
            )

        return LiquidationPlan(
            collateral_asset=collateral_asset,
            debt_asset=debt_asset,
            user=user,
            health_factor=snapshot.health_factor,
            close_factor_bps=close_factor,
            user_debt=user_debt,
            user_collateral=collateral_balances.supplied,
            debt_to_cover=debt_to_cover,
            collateral_to_seize=seize,
        )
