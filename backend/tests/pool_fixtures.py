"""Shared builders for lending-pool tests."""

from __future__ import annotations

from dataclasses import dataclass, field
import sys
from pathlib import Path
from typing import Dict, Iterable, Optional

# Ensure backend is importable
_BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from common.protocol_constants import MAX_UINT256, human_to_raw_price
from models.reserves import ReserveConfigModel
from services.ledger_store import LedgerStore
from services.asset_vault import AssetVault
from services.lending_pool import LendingPool, admin_authorizer
from services.price_oracle import ManualPriceFeed, PriceOracle
from services.risk_engine import RiskEngine


ADMIN = "admin"
TREASURY = "treasury"
CUSTODIAN = "lending_pool"
START_TIME = 1_700_000_000

USDC = 10**6
TOKEN = 10**18

DEFAULT_PRICES = {"USDC": 1.0, "DAI": 1.0, "WETH": 2000.0, "ETH": 2000.0}


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: int = START_TIME) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


def stablecoin_config(asset: str, decimals: int, **overrides) -> ReserveConfigModel:
    payload = dict(
        asset=asset,
        symbol=asset,
        decimals=decimals,
        collateral_factor_bps=9000,
        liquidation_threshold_bps=9500,
        liquidation_bonus_bps=500,
        borrow_factor_bps=10000,
        max_utilization_bps=9500,
        reserve_factor_bps=1000,
        base_rate_bps=500,
        kink_rate_bps=2000,
        multiplier_bps=100,
    )
    payload.update(overrides)
    return ReserveConfigModel(**payload)


def volatile_config(asset: str, is_native: bool = False, **overrides) -> ReserveConfigModel:
    payload = dict(
        asset=asset,
        symbol=asset,
        decimals=18,
        is_native=is_native,
        collateral_factor_bps=8000,
        liquidation_threshold_bps=8500,
        liquidation_bonus_bps=500,
        borrow_factor_bps=10000,
        max_utilization_bps=9500,
        reserve_factor_bps=1000,
        base_rate_bps=500,
        kink_rate_bps=2000,
        multiplier_bps=100,
    )
    payload.update(overrides)
    return ReserveConfigModel(**payload)


def default_reserves() -> list:
    return [
        stablecoin_config("USDC", 6),
        stablecoin_config("DAI", 18),
        volatile_config("WETH"),
        volatile_config("ETH", is_native=True),
    ]


@dataclass
class PoolHarness:
    """A fully wired pool with a controllable clock and price feed."""

    clock: FakeClock
    store: LedgerStore
    feed: ManualPriceFeed
    oracle: PriceOracle
    vault: AssetVault
    risk_engine: RiskEngine
    pool: LendingPool
    prices: Dict[str, float] = field(default_factory=dict)

    def set_price(self, asset: str, usd: float) -> None:
        self.prices[asset] = usd
        self.feed.set_price(asset, human_to_raw_price(usd))

    def advance(self, seconds: int, refresh_prices: bool = True) -> None:
        """Move time forward and republish prices so they stay fresh."""
        self.clock.advance(seconds)
        if refresh_prices:
            for asset, usd in self.prices.items():
                self.feed.set_price(asset, human_to_raw_price(usd))

    def fund(self, user: str, asset: str, amount: int) -> None:
        """Give ``user`` tokens and an unlimited allowance to the pool."""
        self.vault.mint(asset, user, amount)
        if not self.vault.is_native(asset):
            self.vault.approve(asset, user, CUSTODIAN, MAX_UINT256)

    def supply(self, user: str, asset: str, amount: int) -> int:
        self.fund(user, asset, amount)
        return self.pool.deposit(user, asset, amount)

    def balance(self, user: str, asset: str) -> int:
        return self.vault.balance_of(asset, user)

    def reserve(self, asset: str):
        return self.store.reserves[asset]


def build_pool(
    reserves: Optional[Iterable[ReserveConfigModel]] = None,
    prices: Optional[Dict[str, float]] = None,
    clock: Optional[FakeClock] = None,
    severe_health_factor: float = 0.85,
    flash_loan_premium_bps: int = 9,
) -> PoolHarness:
    clock = clock or FakeClock()
    store = LedgerStore()
    feed = ManualPriceFeed(clock=clock)
    oracle = PriceOracle(default_source=feed, clock=clock)
    vault = AssetVault(custodian=CUSTODIAN)
    risk_engine = RiskEngine(store, oracle, severe_health_factor=severe_health_factor)
    pool = LendingPool(
        store,
        oracle,
        vault,
        clock=clock,
        risk_engine=risk_engine,
        is_authorized=admin_authorizer([ADMIN]),
        treasury=TREASURY,
        flash_loan_premium_bps=flash_loan_premium_bps,
    )
    harness = PoolHarness(clock, store, feed, oracle, vault, risk_engine, pool)
    for config in reserves if reserves is not None else default_reserves():
        pool.add_reserve(ADMIN, config)
    for asset, usd in (prices if prices is not None else DEFAULT_PRICES).items():
        harness.set_price(asset, usd)
    return harness
