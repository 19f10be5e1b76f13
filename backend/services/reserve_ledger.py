"""Accrual and bookkeeping for one asset pool.

Supply and variable debt are stored scaled by their index; stable debt is
stored as a real-unit total rolled forward at the average stable rate. Real
supplied and borrowed amounts are always derived on read.
"""

from dataclasses import dataclass
import logging
from typing import Optional

from common.fixed_point import compounded_interest, ray_div, ray_mul
from common.interest_rate_model import InterestRateModel, InterestRateParams
from common.protocol_constants import PERCENTAGE_FACTOR, RAY
from models.accounts import ReserveDataView
from models.exceptions import (
    InsufficientLiquidity,
    InvalidAmount,
    InvalidTimestamp,
    SolvencyViolation,
    UtilizationExceeded,
)
from models.reserves import ReserveConfigModel


logger = logging.getLogger(__name__)

# Rounding slack in real units tolerated by the solvency check.
SOLVENCY_DUST = 10


@dataclass(frozen=True)
class AccrualResult:
    """Outcome of one ``accrue`` call."""

    elapsed: int
    liquidity_index: int
    variable_borrow_index: int
    treasury_scaled: int = 0


def build_rate_model(config: ReserveConfigModel) -> InterestRateModel:
    """Load the bps curve parameters of ``config`` into a RAY rate model."""
    return InterestRateModel(
        InterestRateParams.from_bps(
            base_rate_bps=config.base_rate_bps,
            kink_bps=config.kink_rate_bps,
            multiplier_bps=config.multiplier_bps,
            jump_multiplier_bps=config.effective_jump_multiplier_bps,
            reserve_factor_bps=config.reserve_factor_bps,
            stable_rate_premium_bps=config.stable_rate_premium_bps,
        )
    )


class ReserveLedger:
    """Pool state for one asset: totals, indices, rates and configuration."""

    def __init__(self, reserve_id: int, config: ReserveConfigModel, now: int) -> None:
        if reserve_id <= 0:
            raise InvalidAmount("reserve id must be >= 1")
        self.id = reserve_id
        self.config = config
        self.rate_model = build_rate_model(config)

        self.liquidity_index = RAY
        self.variable_borrow_index = RAY
        self.current_liquidity_rate = 0
        self.current_variable_borrow_rate = 0
        self.current_stable_borrow_rate = 0
        self.utilization = 0
        self.last_update_timestamp = now

        self.total_supplied = 0
        self.total_variable_debt = 0
        self.total_stable_debt = 0
        self.average_stable_rate = 0
        self.accrued_to_treasury = 0

        self.is_active = True
        self.is_frozen = False
        self.is_paused = False
        self.refresh_rates()

    @property
    def asset(self) -> str:
        return self.config.asset

    def apply_config(self, config: ReserveConfigModel) -> None:
        """Swap in new risk and curve parameters; takes effect on the next refresh."""
        if config.asset != self.config.asset:
            raise InvalidAmount("config asset {0} does not match reserve {1}".format(config.asset, self.asset))
        self.config = config
        self.rate_model = build_rate_model(config)

    def total_supplied_real(self) -> int:
        return ray_mul(self.total_supplied, self.liquidity_index)

    def total_variable_debt_real(self) -> int:
        return ray_mul(self.total_variable_debt, self.variable_borrow_index)

    def total_debt_real(self) -> int:
        return self.total_variable_debt_real() + self.total_stable_debt

    def available_liquidity(self) -> int:
        """Cash not out on loan, in real units."""
        return max(0, self.total_supplied_real() - self.total_debt_real())

    def accrue(self, now: int) -> AccrualResult:
        """Compound both indices up to ``now`` and reprice the next period.

        The spread between interest charged to borrowers and interest paid to
        suppliers is credited to the treasury as scaled supply, so real supply
        and real debt grow by the same amount and cash is unchanged.
        """
        if now < self.last_update_timestamp:
            raise InvalidTimestamp(
                "accrue at {0} before last update {1} for asset={2}".format(
                    now, self.last_update_timestamp, self.asset
                )
            )
        elapsed = now - self.last_update_timestamp
        if elapsed == 0:
            return AccrualResult(0, self.liquidity_index, self.variable_borrow_index)

        previous_supply = self.total_supplied_real()
        previous_variable = self.total_variable_debt_real()
        previous_stable = self.total_stable_debt

        self.liquidity_index = ray_mul(
            compounded_interest(self.current_liquidity_rate, elapsed), self.liquidity_index
        )
        self.variable_borrow_index = ray_mul(
            compounded_interest(self.current_variable_borrow_rate, elapsed), self.variable_borrow_index
        )
        if self.total_stable_debt > 0:
            self.total_stable_debt = ray_mul(
                self.total_stable_debt, compounded_interest(self.average_stable_rate, elapsed)
            )
        self.last_update_timestamp = now

        debt_accrued = (self.total_variable_debt_real() - previous_variable) + (
            self.total_stable_debt - previous_stable
        )
        supplier_gain = self.total_supplied_real() - previous_supply
        treasury_scaled = 0
        if debt_accrued > supplier_gain:
            treasury_scaled = ray_div(debt_accrued - supplier_gain, self.liquidity_index)
            self.total_supplied += treasury_scaled
            self.accrued_to_treasury += treasury_scaled

        self.refresh_rates()
        logger.debug(
            "Reserve accrued asset=%s elapsed=%s liquidity_index=%s variable_borrow_index=%s treasury_scaled=%s",
            self.asset,
            elapsed,
            self.liquidity_index,
            self.variable_borrow_index,
            treasury_scaled,
        )
        return AccrualResult(elapsed, self.liquidity_index, self.variable_borrow_index, treasury_scaled)

    def refresh_rates(self) -> None:
        """Recompute and persist the rates charged over the next period."""
        snapshot = self.rate_model.calculate_rates(
            total_supplied=self.total_supplied_real(),
            total_variable_debt=self.total_variable_debt_real(),
            total_stable_debt=self.total_stable_debt,
            average_stable_rate=self.average_stable_rate,
        )
        self.utilization = snapshot.utilization
        self.current_liquidity_rate = snapshot.liquidity_rate
        self.current_variable_borrow_rate = snapshot.variable_borrow_rate
        self.current_stable_borrow_rate = snapshot.stable_borrow_rate

    def record_supply(self, amount: int) -> int:
        """Add ``amount`` real units of supply; return the scaled delta."""
        if amount <= 0:
            raise InvalidAmount("supply amount must be > 0")
        scaled = ray_div(amount, self.liquidity_index)
        self.total_supplied += scaled
        return scaled

    def record_withdraw(self, amount: int, scaled: Optional[int] = None) -> int:
        """Remove ``amount`` real units of supply; return the scaled delta.

        ``scaled`` overrides the conversion when the caller burned an exact
        scaled balance (withdraw-all).
        """
        if amount <= 0:
            raise InvalidAmount("withdraw amount must be > 0")
        available = self.available_liquidity()
        if amount > available:
            raise InsufficientLiquidity(
                "withdraw exceeds available liquidity asset={0} requested={1} available={2}".format(
                    self.asset, amount, available
                )
            )
        if scaled is None:
            scaled = ray_div(amount, self.liquidity_index)
        self.total_supplied -= min(scaled, self.total_supplied)
        return scaled

    def _validate_new_debt(self, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmount("borrow amount must be > 0")
        available = self.available_liquidity()
        if amount > available:
            raise InsufficientLiquidity(
                "borrow exceeds available liquidity asset={0} requested={1} available={2}".format(
                    self.asset, amount, available
                )
            )
        supplied = self.total_supplied_real()
        resulting_debt = self.total_debt_real() + amount
        if resulting_debt * PERCENTAGE_FACTOR > supplied * self.config.max_utilization_bps:
            raise UtilizationExceeded(
                "borrow would exceed max utilization asset={0} debt={1} supplied={2} max_bps={3}".format(
                    self.asset, resulting_debt, supplied, self.config.max_utilization_bps
                )
            )

    def record_borrow(self, amount: int) -> int:
        """Add ``amount`` real units of variable debt; return the scaled delta."""
        self._validate_new_debt(amount)
        scaled = ray_div(amount, self.variable_borrow_index)
        self.total_variable_debt += scaled
        return scaled

    def record_repay(self, amount: int, scaled: Optional[int] = None) -> int:
        """Remove ``amount`` real units of variable debt; return the scaled delta."""
        if amount <= 0:
            raise InvalidAmount("repay amount must be > 0")
        if scaled is None:
            scaled = ray_div(amount, self.variable_borrow_index)
        self.total_variable_debt -= min(scaled, self.total_variable_debt)
        return scaled

    def record_stable_borrow(self, amount: int, rate: int) -> None:
        """Add stable debt at ``rate`` and re-average the pool's stable rate."""
        self._validate_new_debt(amount)
        new_total = self.total_stable_debt + amount
        self.average_stable_rate = (
            self.average_stable_rate * self.total_stable_debt + rate * amount
        ) // new_total
        self.total_stable_debt = new_total

    def record_stable_repay(self, amount: int, user_rate: int) -> None:
        """Remove stable debt that was locked at ``user_rate``."""
        if amount <= 0:
            raise InvalidAmount("repay amount must be > 0")
        if amount >= self.total_stable_debt:
            self.total_stable_debt = 0
            self.average_stable_rate = 0
            return
        new_total = self.total_stable_debt - amount
        weighted = self.average_stable_rate * self.total_stable_debt - user_rate * amount
        self.average_stable_rate = max(0, weighted) // new_total
        self.total_stable_debt = new_total

    def cumulate_to_liquidity_index(self, amount: int) -> int:
        """Distribute ``amount`` (e.g. a flash-loan premium) to current suppliers."""
        total = self.total_supplied_real()
        if amount <= 0 or total == 0:
            return self.liquidity_index
        self.liquidity_index = ray_mul(ray_div(amount, total) + RAY, self.liquidity_index)
        return self.liquidity_index

    def normalized_income(self, now: int) -> int:
        """Liquidity index projected to ``now`` without committing it."""
        elapsed = max(0, now - self.last_update_timestamp)
        if elapsed == 0:
            return self.liquidity_index
        return ray_mul(compounded_interest(self.current_liquidity_rate, elapsed), self.liquidity_index)

    def normalized_variable_debt(self, now: int) -> int:
        """Variable borrow index projected to ``now`` without committing it."""
        elapsed = max(0, now - self.last_update_timestamp)
        if elapsed == 0:
            return self.variable_borrow_index
        return ray_mul(
            compounded_interest(self.current_variable_borrow_rate, elapsed), self.variable_borrow_index
        )

    def check_solvency(self) -> None:
        """Raise ``SolvencyViolation`` when real debt exceeds real supply."""
        supplied = self.total_supplied_real()
        debt = self.total_debt_real()
        if debt > supplied + SOLVENCY_DUST:
            logger.error("Solvency violated asset=%s debt=%s supplied=%s", self.asset, debt, supplied)
            raise SolvencyViolation(
                "reserve {0} debt {1} exceeds supply {2}".format(self.asset, debt, supplied)
            )

    def to_view(self) -> ReserveDataView:
        return ReserveDataView(
            id=self.id,
            asset=self.asset,
            config=self.config,
            liquidity_index=self.liquidity_index,
            variable_borrow_index=self.variable_borrow_index,
            current_liquidity_rate=self.current_liquidity_rate,
            current_variable_borrow_rate=self.current_variable_borrow_rate,
            current_stable_borrow_rate=self.current_stable_borrow_rate,
            average_stable_rate=self.average_stable_rate,
            utilization=self.utilization,
            last_update_timestamp=self.last_update_timestamp,
            total_supplied_scaled=self.total_supplied,
            total_variable_debt_scaled=self.total_variable_debt,
            accrued_to_treasury_scaled=self.accrued_to_treasury,
            total_supplied=self.total_supplied_real(),
            total_variable_debt=self.total_variable_debt_real(),
            total_stable_debt=self.total_stable_debt,
            available_liquidity=self.available_liquidity(),
            is_active=self.is_active,
            is_frozen=self.is_frozen,
            is_paused=self.is_paused,
        )
