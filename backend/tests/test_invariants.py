"""Randomized operation sequences checked against ledger invariants."""

import random
import sys
import unittest
from pathlib import Path

# Ensure backend is importable
_BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from pool_fixtures import DEFAULT_PRICES, TOKEN, USDC, build_pool
from common.protocol_constants import MAX_AMOUNT, RAY
from models.enums import InterestRateMode
from models.exceptions import LendingError
from services.flash_loan_receiver import FlashLoanReceiver
from services.reserve_ledger import SOLVENCY_DUST

USERS = ("alice", "bob", "carol", "dave")
LIQUIDATOR = "keeper"
ASSET_UNITS = {"USDC": USDC, "DAI": TOKEN, "WETH": TOKEN // 100}
ACTIONS = (
    "deposit",
    "deposit",
    "withdraw",
    "borrow",
    "borrow",
    "repay",
    "advance",
    "toggle",
    "price",
    "liquidate",
    "liquidate",
    "flash_loan",
)


class RandomReceiver(FlashLoanReceiver):
    """Repays principal plus premium, or keeps the funds, as told."""

    def __init__(self, harness, repay: bool) -> None:
        self._harness = harness
        self._repay = repay

    @property
    def address(self) -> str:
        return "flash_bot"

    def execute_operation(self, assets, amounts, premiums, initiator, params) -> bool:
        if self._repay:
            vault = self._harness.vault
            for asset, amount, premium in zip(assets, amounts, premiums):
                if premium:
                    vault.mint(asset, self.address, premium)
                vault.approve(asset, self.address, vault.custodian, amount + premium)
        return True


class LedgerInvariantTests(unittest.TestCase):
    """Indices only grow, scaled totals match holders, reserves stay solvent."""

    def _random_step(self, rng: random.Random, h) -> None:
        user = rng.choice(USERS)
        asset = rng.choice(list(ASSET_UNITS))
        units = ASSET_UNITS[asset] * rng.randint(1, 2_000)
        action = rng.choice(ACTIONS)
        if action == "deposit":
            h.supply(user, asset, units)
        elif action == "withdraw":
            h.pool.withdraw(user, asset, rng.choice((units, MAX_AMOUNT)))
        elif action == "borrow":
            mode = rng.choice((InterestRateMode.VARIABLE, InterestRateMode.STABLE))
            h.pool.borrow(user, asset, units // 4 or 1, rate_mode=mode)
        elif action == "repay":
            h.fund(user, asset, units)
            mode = rng.choice((InterestRateMode.VARIABLE, InterestRateMode.STABLE))
            h.pool.repay(user, asset, rng.choice((units, MAX_AMOUNT)), rate_mode=mode)
        elif action == "toggle":
            h.pool.set_user_use_reserve_as_collateral(user, asset, rng.choice((True, False)))
        elif action == "price":
            # WETH swings between a crash and its listing price; stables stay near peg
            h.set_price("WETH", DEFAULT_PRICES["WETH"] * rng.uniform(0.3, 1.0))
            h.set_price("DAI", rng.uniform(0.95, 1.3))
        elif action == "liquidate":
            collateral_asset = rng.choice(list(ASSET_UNITS))
            h.fund(LIQUIDATOR, asset, units)
            h.pool.liquidation_call(
                LIQUIDATOR,
                collateral_asset,
                asset,
                user,
                rng.choice((units // 2 or 1, MAX_AMOUNT)),
                receive_claim=rng.choice((True, False)),
            )
        elif action == "flash_loan":
            mode = rng.choice((InterestRateMode.NONE, InterestRateMode.NONE, InterestRateMode.VARIABLE))
            receiver = RandomReceiver(h, repay=rng.random() < 0.8)
            h.pool.flash_loan(user, receiver, [asset], [units // 2 or 1], modes=[int(mode)])
        else:
            h.advance(rng.randint(1, 30 * 86_400))

    def _check(self, h, previous_indices: dict) -> None:
        holders = set(USERS) | {LIQUIDATOR, h.pool.treasury} | set(h.store.users())
        for asset, reserve in h.store.reserves.items():
            indices = (reserve.liquidity_index, reserve.variable_borrow_index)
            before = previous_indices.get(asset, (RAY, RAY))
            self.assertGreaterEqual(indices[0], before[0])
            self.assertGreaterEqual(indices[1], before[1])
            previous_indices[asset] = indices

            supply_token = h.store.supply_tokens[asset]
            debt_token = h.store.variable_debt_tokens[asset]
            self.assertEqual(sum(supply_token.scaled_balance_of(u) for u in holders), supply_token.scaled_total_supply)
            self.assertEqual(sum(debt_token.scaled_balance_of(u) for u in holders), debt_token.scaled_total_supply)
            self.assertEqual(reserve.total_supplied, supply_token.scaled_total_supply)
            self.assertEqual(reserve.total_variable_debt, debt_token.scaled_total_supply)
            self.assertLessEqual(reserve.total_debt_real(), reserve.total_supplied_real() + SOLVENCY_DUST)

    def test_random_sequences_preserve_invariants(self) -> None:
        for seed in (7, 42, 2024):
            h = build_pool()
            rng = random.Random(seed)
            previous_indices: dict = {}
            for _ in range(200):
                try:
                    self._random_step(rng, h)
                except LendingError:
                    pass
                self._check(h, previous_indices)

    def test_crash_makes_positions_liquidatable_and_liquidation_keeps_invariants(self) -> None:
        h = build_pool()
        h.supply("lp", "DAI", 100_000 * TOKEN)
        for user in USERS:
            h.supply(user, "WETH", TOKEN)
            h.pool.borrow(user, "DAI", 1_500 * TOKEN)
        h.set_price("WETH", 1_700.0)

        previous_indices: dict = {}
        for user in USERS:
            self.assertLess(h.pool.get_user_account_data(user).health_factor, RAY)
            h.fund(LIQUIDATOR, "DAI", 2_000 * TOKEN)
            h.pool.liquidation_call(LIQUIDATOR, "WETH", "DAI", user, MAX_AMOUNT, receive_claim=user == "bob")
            self._check(h, previous_indices)
        for user in USERS:
            self.assertEqual(h.pool.get_user_reserve_data(user, "DAI").variable_debt, 750 * TOKEN)


if __name__ == "__main__":
    unittest.main()
