"""Background liquidation monitor for the in-process lending pool.

Every cycle re-evaluates each tracked account, logs positions that slipped
into the warning band and, when auto-execution is enabled with a liquidator
account, liquidates unhealthy positions by the close factor against their
largest debt and largest collateral.
"""

import asyncio
from dataclasses import dataclass
import logging
from typing import List, Optional, Tuple

from common.protocol_constants import MAX_AMOUNT, raw_to_human_hf
from core.config import AppSettings
from models.enums import PositionStatus
from models.exceptions import LendingError
from services.lending_pool import LendingPool


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionReport:
    """Outcome of evaluating one account in one cycle."""

    user: str
    health_factor: int
    status: PositionStatus
    liquidated: bool = False


class LiquidationPoller:
    """Continuously poll borrower health and execute liquidation when required."""

    def __init__(self, settings: AppSettings, pool: LendingPool) -> None:
        """Create a poller with configuration-driven behaviour."""
        self._settings = settings
        self._pool = pool
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def _is_enabled(self) -> bool:
        """Return whether poller feature is enabled."""
        return self._settings.liquidator_enabled

    def _can_execute(self) -> bool:
        """Auto-execution needs an account to repay debt from."""
        return self._settings.liquidator_auto_execute and bool(self._settings.liquidator_address)

    async def start(self) -> None:
        """Start polling loop in background task if enabled."""
        if not self._is_enabled():
            logger.info("Liquidation poller disabled by liquidator.enabled=false")
            return
        if self._settings.liquidator_auto_execute and not self._settings.liquidator_address:
            logger.warning("Liquidation auto-execute enabled without liquidator.address; monitoring only.")
        if self._task and not self._task.done():
            logger.info("Liquidation poller already running.")
            return

        try:
            self._stop_event.clear()
            self._task = asyncio.create_task(self._run_loop(), name="liquidation-poller")
            logger.info("Liquidation poller started.")
        except Exception:
            logger.exception("Failed to start liquidation poller.")

    async def stop(self) -> None:
        """Gracefully stop background polling task."""
        if not self._task:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            logger.info("Liquidation poller task cancelled.")
        except Exception:
            logger.exception("Unexpected error while stopping liquidation poller.")
        finally:
            self._task = None

    async def _run_loop(self) -> None:
        """Main polling loop for liquidation checks."""
        logger.info("Liquidation poller loop running.")
        while not self._stop_event.is_set():
            try:
                await self._poll_once()
            except Exception:
                logger.exception("Unhandled error during liquidation poll cycle.")

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=float(self._settings.liquidator_poll_interval_sec),
                )
            except asyncio.TimeoutError:
                continue

    async def _poll_once(self) -> None:
        """Run one cycle off the event loop; pool calls take the pool lock."""
        await asyncio.to_thread(self.scan_once)

    def scan_once(self) -> List[PositionReport]:
        """Evaluate every tracked account once and return the non-healthy ones."""
        borrowers = self._settings.liquidator_borrowers or self._pool.list_users()
        if not borrowers:
            logger.debug("No accounts to evaluate for liquidation.")
            return []

        logger.info("Liquidation cycle started accounts=%d", len(borrowers))
        reports = []
        for borrower in borrowers:
            report = self._evaluate_borrower(borrower)
            if report is not None and report.status != PositionStatus.HEALTHY:
                reports.append(report)
        return reports

    def _evaluate_borrower(self, borrower: str) -> Optional[PositionReport]:
        """Classify one account and liquidate it when allowed."""
        try:
            snapshot = self._pool.get_user_account_data(borrower)
        except LendingError:
            logger.exception("Failed borrower evaluation borrower=%s", borrower)
            return None

        human_hf = raw_to_human_hf(snapshot.health_factor)
        if snapshot.status == PositionStatus.HEALTHY:
            logger.debug("Borrower healthy borrower=%s hf=%.6f", borrower, human_hf)
            return PositionReport(borrower, snapshot.health_factor, snapshot.status)
        if snapshot.status == PositionStatus.AT_RISK:
            logger.warning("Borrower at risk borrower=%s hf=%.6f", borrower, human_hf)
            return PositionReport(borrower, snapshot.health_factor, snapshot.status)

        logger.warning("Borrower liquidatable borrower=%s hf=%.6f", borrower, human_hf)
        liquidated = self._can_execute() and self._execute_liquidation(borrower)
        return PositionReport(borrower, snapshot.health_factor, snapshot.status, liquidated=liquidated)

    def _largest_positions(self, borrower: str) -> Tuple[Optional[str], Optional[str]]:
        """Return ``(collateral_asset, debt_asset)`` with the highest USD value."""
        best_collateral: Tuple[int, Optional[str]] = (0, None)
        best_debt: Tuple[int, Optional[str]] = (0, None)
        for reserve in self._pool.list_reserves():
            position = self._pool.get_user_reserve_data(borrower, reserve.asset)
            risk_engine = self._pool.risk_engine
            if position.usage_as_collateral_enabled and position.supply_balance > 0:
                value = risk_engine.asset_value(reserve.asset, position.supply_balance)
                if value > best_collateral[0]:
                    best_collateral = (value, reserve.asset)
            debt = position.variable_debt + position.stable_debt
            if debt > 0:
                value = risk_engine.asset_value(reserve.asset, debt)
                if value > best_debt[0]:
                    best_debt = (value, reserve.asset)
        return best_collateral[1], best_debt[1]

    def _execute_liquidation(self, borrower: str) -> bool:
        """Cover the close-factor share of the largest debt."""
        liquidator = self._settings.liquidator_address or ""
        try:
            collateral_asset, debt_asset = self._largest_positions(borrower)
            if collateral_asset is None or debt_asset is None:
                logger.warning("No collateral/debt pair to liquidate borrower=%s", borrower)
                return False
            plan = self._pool.liquidation_call(liquidator, collateral_asset, debt_asset, borrower, MAX_AMOUNT)
            logger.info(
                "Liquidation executed borrower=%s debt_asset=%s covered=%s collateral_asset=%s seized=%s",
                borrower,
                debt_asset,
                plan.debt_to_cover,
                collateral_asset,
                plan.collateral_to_seize,
            )
            return True
        except LendingError:
            logger.exception("Liquidation failed borrower=%s", borrower)
            return False
