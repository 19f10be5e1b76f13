"""Kinked (jump-rate) interest rate model.

Pure functions of pool utilization; nothing here touches ledger state.
All inputs and outputs are RAY-scaled annual rates, amounts are integers.
"""

from __future__ import annotations

from dataclasses import dataclass

from .fixed_point import percent_mul, ray_div, ray_mul
from .protocol_constants import PERCENTAGE_FACTOR, bps_to_ray


@dataclass(frozen=True)
class InterestRateParams:
    """RAY-scaled curve parameters."""

    base_rate: int
    kink: int
    multiplier: int
    jump_multiplier: int
    reserve_factor_bps: int = 0
    stable_rate_premium: int = 0

    @classmethod
    def from_bps(
        cls,
        base_rate_bps: int,
        kink_bps: int,
        multiplier_bps: int,
        jump_multiplier_bps: int | None = None,
        reserve_factor_bps: int = 0,
        stable_rate_premium_bps: int = 0,
    ) -> "InterestRateParams":
        """Build parameters from the basis-point values used in configuration."""
        if jump_multiplier_bps is None:
            jump_multiplier_bps = multiplier_bps
        return cls(
            base_rate=bps_to_ray(base_rate_bps),
            kink=bps_to_ray(kink_bps),
            multiplier=bps_to_ray(multiplier_bps),
            jump_multiplier=bps_to_ray(jump_multiplier_bps),
            reserve_factor_bps=reserve_factor_bps,
            stable_rate_premium=bps_to_ray(stable_rate_premium_bps),
        )


@dataclass(frozen=True)
class RateSnapshot:
    """Output of one rate computation; callers persist it."""

    utilization: int
    liquidity_rate: int
    variable_borrow_rate: int
    stable_borrow_rate: int


class InterestRateModel:
    """Utilization-driven borrow and supply rates with a kink."""

    def __init__(self, params: InterestRateParams) -> None:
        self.params = params

    @staticmethod
    def utilization(total_supplied: int, total_debt: int) -> int:
        """``total_debt / total_supplied`` in RAY, 0 for an empty pool."""
        if total_supplied == 0:
            return 0
        return ray_div(total_debt, total_supplied)

    def borrow_rate(self, utilization: int) -> int:
        """Variable borrow rate for a RAY utilization."""
        p = self.params
        if utilization < p.kink:
            return p.base_rate + ray_mul(utilization, p.multiplier)
        normal_rate = p.base_rate + ray_mul(p.kink, p.multiplier)
        return normal_rate + ray_mul(utilization - p.kink, p.jump_multiplier)

    def stable_borrow_rate(self, utilization: int) -> int:
        """Rate offered to new stable-mode borrowers."""
        return self.borrow_rate(utilization) + self.params.stable_rate_premium

    def supply_rate(self, utilization: int, overall_borrow_rate: int | None = None) -> int:
        """``borrow_rate * utilization * (1 - reserve_factor)``."""
        if overall_borrow_rate is None:
            overall_borrow_rate = self.borrow_rate(utilization)
        gross = ray_mul(overall_borrow_rate, utilization)
        return percent_mul(gross, PERCENTAGE_FACTOR - self.params.reserve_factor_bps)

    def calculate_rates(
        self,
        total_supplied: int,
        total_variable_debt: int,
        total_stable_debt: int = 0,
        average_stable_rate: int = 0,
    ) -> RateSnapshot:
        """Compute the next period's rates from real-unit totals."""
        total_debt = total_variable_debt + total_stable_debt
        utilization = self.utilization(total_supplied, total_debt)
        variable_rate = self.borrow_rate(utilization)
        overall_rate = self._overall_borrow_rate(
            total_variable_debt, total_stable_debt, variable_rate, average_stable_rate
        )
        return RateSnapshot(
            utilization=utilization,
            liquidity_rate=self.supply_rate(utilization, overall_rate),
            variable_borrow_rate=variable_rate,
            stable_borrow_rate=variable_rate + self.params.stable_rate_premium,
        )

    @staticmethod
    def _overall_borrow_rate(
        total_variable_debt: int,
        total_stable_debt: int,
        variable_rate: int,
        average_stable_rate: int,
    ) -> int:
        total_debt = total_variable_debt + total_stable_debt
        if total_debt == 0 or total_stable_debt == 0:
            return variable_rate
        weighted = total_variable_debt * variable_rate + total_stable_debt * average_stable_rate
        return weighted // total_debt
