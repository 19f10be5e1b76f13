"""Unit tests for the background liquidation monitor."""

import asyncio
from dataclasses import replace
import sys
import unittest
from pathlib import Path

# Ensure backend is importable
_BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from pool_fixtures import TOKEN, build_pool
from core.config import load_settings
from models.enums import PositionStatus
from services.liquidation_poller import LiquidationPoller


def _settings(**overrides):
    base = load_settings(Path(__file__).resolve().parent / "missing-config.yml")
    return replace(base, **overrides)


class LiquidationPollerTests(unittest.TestCase):
    """Classification and auto-execution of unhealthy accounts."""

    def setUp(self) -> None:
        self.h = build_pool()
        self.h.supply("lp", "DAI", 10_000 * TOKEN)
        self.h.supply("bob", "WETH", TOKEN)
        self.h.pool.borrow("bob", "DAI", 850 * TOKEN)
        self.h.supply("alice", "USDC", 10**6)

    def test_healthy_accounts_are_not_reported(self) -> None:
        poller = LiquidationPoller(_settings(liquidator_enabled=True), self.h.pool)
        self.assertEqual(poller.scan_once(), [])

    def test_at_risk_account_is_reported_without_action(self) -> None:
        self.h.set_price("WETH", 1050.0)
        poller = LiquidationPoller(_settings(liquidator_enabled=True), self.h.pool)
        reports = poller.scan_once()
        self.assertEqual([(r.user, r.status, r.liquidated) for r in reports], [("bob", PositionStatus.AT_RISK, False)])

    def test_monitoring_only_does_not_liquidate(self) -> None:
        self.h.set_price("WETH", 900.0)
        poller = LiquidationPoller(_settings(liquidator_enabled=True), self.h.pool)
        reports = poller.scan_once()
        self.assertEqual(len(reports), 1)
        self.assertFalse(reports[0].liquidated)
        self.assertEqual(self.h.pool.get_user_reserve_data("bob", "DAI").variable_debt, 850 * TOKEN)

    def test_auto_execute_liquidates_largest_positions(self) -> None:
        self.h.set_price("WETH", 900.0)
        self.h.fund("keeper", "DAI", 1_000 * TOKEN)
        settings = _settings(liquidator_enabled=True, liquidator_auto_execute=True, liquidator_address="keeper")
        reports = LiquidationPoller(settings, self.h.pool).scan_once()
        self.assertEqual(len(reports), 1)
        self.assertTrue(reports[0].liquidated)
        self.assertEqual(reports[0].status, PositionStatus.LIQUIDATABLE)
        self.assertEqual(self.h.pool.get_user_reserve_data("bob", "DAI").variable_debt, 425 * TOKEN)
        self.assertGreater(self.h.balance("keeper", "WETH"), 0)

    def test_failed_execution_is_logged_not_raised(self) -> None:
        self.h.set_price("WETH", 900.0)
        settings = _settings(liquidator_enabled=True, liquidator_auto_execute=True, liquidator_address="broke")
        with self.assertLogs("services.liquidation_poller", level="ERROR"):
            reports = LiquidationPoller(settings, self.h.pool).scan_once()
        self.assertFalse(reports[0].liquidated)

    def test_configured_borrowers_limit_the_scan(self) -> None:
        self.h.set_price("WETH", 900.0)
        poller = LiquidationPoller(_settings(liquidator_borrowers=["alice"]), self.h.pool)
        self.assertEqual(poller.scan_once(), [])

    def test_start_and_stop(self) -> None:
        async def run() -> None:
            poller = LiquidationPoller(
                _settings(liquidator_enabled=True, liquidator_poll_interval_sec=1), self.h.pool
            )
            await poller.start()
            self.assertIsNotNone(poller._task)
            await asyncio.sleep(0.05)
            await poller.stop()
            self.assertIsNone(poller._task)

        asyncio.run(run())

    def test_disabled_poller_does_not_start(self) -> None:
        async def run() -> None:
            poller = LiquidationPoller(_settings(liquidator_enabled=False), self.h.pool)
            await poller.start()
            self.assertIsNone(poller._task)

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
