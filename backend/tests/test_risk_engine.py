"""Unit tests for account aggregation, borrow gating and liquidation sizing."""

import sys
import unittest
from pathlib import Path

# Ensure backend is importable
_BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from pool_fixtures import TOKEN, USDC, build_pool
from common.protocol_constants import MAX_AMOUNT, MAX_UINT256, RAY, WAD
from models.enums import PositionStatus
from models.exceptions import (
    BorrowCapExceeded,
    CloseFactorExceeded,
    HealthFactorTooLow,
    InsufficientCollateral,
    InvalidAmount,
    PositionNotLiquidatable,
)


class AccountSnapshotTests(unittest.TestCase):
    """Collateral, debt and health-factor aggregation."""

    def setUp(self) -> None:
        self.h = build_pool()
        self.engine = self.h.risk_engine

    def test_account_without_positions(self) -> None:
        snapshot = self.engine.get_account_snapshot("nobody", self.h.clock())
        self.assertEqual(snapshot.total_collateral_value, 0)
        self.assertEqual(snapshot.total_debt_value, 0)
        self.assertEqual(snapshot.health_factor, MAX_UINT256)
        self.assertEqual(snapshot.status, PositionStatus.HEALTHY)

    def test_borrowing_power_uses_collateral_factor(self) -> None:
        """1 ETH at $2000 with an 80% collateral factor allows $1600 of debt."""
        self.h.supply("alice", "ETH", 1 * TOKEN)
        snapshot = self.h.pool.get_user_account_data("alice")
        self.assertEqual(snapshot.total_collateral_value, 2000 * WAD)
        self.assertEqual(snapshot.available_borrow_value, 1600 * WAD)
        self.assertEqual(snapshot.ltv_bps, 8000)
        self.assertEqual(snapshot.current_liquidation_threshold_bps, 8500)
        self.assertEqual(snapshot.health_factor, MAX_UINT256)

    def test_health_factor_after_stablecoin_borrow(self) -> None:
        """1000 USDC (95% threshold) against 500 DAI gives exactly 1.9."""
        self.h.supply("lp", "DAI", 10_000 * TOKEN)
        self.h.supply("alice", "USDC", 1_000 * USDC)
        self.h.pool.borrow("alice", "DAI", 500 * TOKEN)
        snapshot = self.h.pool.get_user_account_data("alice")
        self.assertEqual(snapshot.total_debt_value, 500 * WAD)
        self.assertEqual(snapshot.health_factor, 19 * RAY // 10)
        self.assertEqual(snapshot.available_borrow_value, 400 * WAD)
        self.assertEqual(snapshot.status, PositionStatus.HEALTHY)

    def test_supply_without_collateral_flag_does_not_count(self) -> None:
        self.h.supply("alice", "WETH", 1 * TOKEN)
        self.h.pool.set_user_use_reserve_as_collateral("alice", "WETH", False)
        snapshot = self.h.pool.get_user_account_data("alice")
        self.assertEqual(snapshot.total_collateral_value, 0)

    def test_health_factor_monotonicity(self) -> None:
        self.h.supply("lp", "DAI", 10_000 * TOKEN)
        self.h.supply("alice", "WETH", 1 * TOKEN)
        self.h.pool.borrow("alice", "DAI", 800 * TOKEN)
        now = self.h.clock()
        base = self.engine.get_account_snapshot("alice", now).health_factor
        more_debt = self.engine.get_account_snapshot("alice", now, {"DAI": (0, 100 * TOKEN)}).health_factor
        more_collateral = self.engine.get_account_snapshot("alice", now, {"WETH": (TOKEN // 2, 0)}).health_factor
        self.assertLess(more_debt, base)
        self.assertGreater(more_collateral, base)

        self.h.set_price("WETH", 1500.0)
        lower_price = self.engine.get_account_snapshot("alice", now).health_factor
        self.assertLess(lower_price, base)

    def test_borrow_factor_reduces_available_value(self) -> None:
        h = build_pool()
        h.pool.configure_reserve_as_collateral("admin", "DAI", 9000, 9500, 500, borrow_factor_bps=8000)
        h.supply("lp", "DAI", 10_000 * TOKEN)
        h.supply("alice", "USDC", 1_000 * USDC)
        h.pool.borrow("alice", "DAI", 400 * TOKEN)
        snapshot = h.pool.get_user_account_data("alice")
        self.assertEqual(snapshot.available_borrow_value, 400 * WAD)


class BorrowValidationTests(unittest.TestCase):
    """Borrow and withdraw gating."""

    def setUp(self) -> None:
        self.h = build_pool()
        self.h.supply("lp", "DAI", 10_000 * TOKEN)
        self.h.supply("alice", "WETH", 1 * TOKEN)

    def test_borrow_within_threshold_but_above_cap(self) -> None:
        """$1700 is within the 85% threshold but above the 80% borrowing power."""
        with self.assertRaises(BorrowCapExceeded):
            self.h.risk_engine.validate_borrow("alice", "DAI", 1_700 * TOKEN, self.h.clock())

    def test_borrow_that_breaks_health_factor(self) -> None:
        with self.assertRaises(HealthFactorTooLow):
            self.h.risk_engine.validate_borrow("alice", "DAI", 1_701 * TOKEN, self.h.clock())

    def test_borrow_at_exact_cap_is_allowed(self) -> None:
        snapshot = self.h.risk_engine.validate_borrow("alice", "DAI", 1_600 * TOKEN, self.h.clock())
        self.assertGreaterEqual(snapshot.health_factor, RAY)

    def test_withdraw_that_would_liquidate_is_rejected(self) -> None:
        self.h.pool.borrow("alice", "DAI", 1_000 * TOKEN)
        with self.assertRaises(HealthFactorTooLow):
            self.h.risk_engine.validate_withdraw("alice", "WETH", TOKEN // 2, self.h.clock())
        self.h.risk_engine.validate_withdraw("alice", "WETH", TOKEN // 10, self.h.clock())

    def test_withdraw_without_debt_is_not_gated(self) -> None:
        self.h.risk_engine.validate_withdraw("alice", "WETH", TOKEN, self.h.clock())


class LiquidationSizingTests(unittest.TestCase):
    """Close factor, bonus and boundary behaviour."""

    def setUp(self) -> None:
        self.h = build_pool()
        self.h.supply("lp", "DAI", 10_000 * TOKEN)
        self.h.supply("bob", "WETH", 1 * TOKEN)
        self.h.pool.borrow("bob", "DAI", 850 * TOKEN)

    def test_exactly_one_is_not_liquidatable(self) -> None:
        self.h.set_price("WETH", 1000.0)
        now = self.h.clock()
        self.assertEqual(self.h.pool.get_user_account_data("bob").health_factor, RAY)
        self.assertFalse(self.h.risk_engine.is_liquidatable("bob", now))
        with self.assertRaises(PositionNotLiquidatable):
            self.h.risk_engine.compute_liquidation_amounts("WETH", "DAI", "bob", TOKEN, now)

        self.h.set_price("WETH", 999.99)
        self.assertTrue(self.h.risk_engine.is_liquidatable("bob", now))

    def test_close_factor_and_bonus(self) -> None:
        self.h.set_price("WETH", 900.0)
        now = self.h.clock()
        plan = self.h.risk_engine.compute_liquidation_amounts("WETH", "DAI", "bob", MAX_AMOUNT, now)
        self.assertEqual(plan.health_factor, 9 * RAY // 10)
        self.assertEqual(plan.close_factor_bps, 5000)
        self.assertEqual(plan.debt_to_cover, 425 * TOKEN)
        self.assertEqual(plan.collateral_to_seize, 495_833_333_333_333_333)

        with self.assertRaises(CloseFactorExceeded):
            self.h.risk_engine.compute_liquidation_amounts("WETH", "DAI", "bob", 425 * TOKEN + 1, now)

    def test_severe_shortfall_allows_full_close(self) -> None:
        self.h.set_price("WETH", 950.0)
        self.h.set_price("DAI", 1.25)
        now = self.h.clock()
        plan = self.h.risk_engine.compute_liquidation_amounts("WETH", "DAI", "bob", 600 * TOKEN, now)
        self.assertLess(plan.health_factor, self.h.risk_engine.severe_health_factor)
        self.assertEqual(plan.close_factor_bps, 10000)
        self.assertEqual(plan.debt_to_cover, 600 * TOKEN)

    def test_seize_above_collateral_is_rejected(self) -> None:
        self.h.set_price("WETH", 500.0)
        with self.assertRaises(InsufficientCollateral):
            self.h.risk_engine.compute_liquidation_amounts("WETH", "DAI", "bob", MAX_AMOUNT, self.h.clock())

    def test_non_collateral_asset_cannot_be_seized(self) -> None:
        self.h.set_price("WETH", 900.0)
        with self.assertRaises(InsufficientCollateral):
            self.h.risk_engine.compute_liquidation_amounts("USDC", "DAI", "bob", TOKEN, self.h.clock())

    def test_asset_without_debt_is_rejected(self) -> None:
        self.h.set_price("WETH", 900.0)
        with self.assertRaises(InvalidAmount):
            self.h.risk_engine.compute_liquidation_amounts("WETH", "USDC", "bob", USDC, self.h.clock())


if __name__ == "__main__":
    unittest.main()
