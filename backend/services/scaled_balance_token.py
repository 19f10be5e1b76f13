"""Per-user claim accounting scaled by a reserve index.

One instance tracks supply claims (scaled by the liquidity index) and a
second tracks variable debt (scaled by the variable borrow index). Interest
is implicit: the stored scaled balance never changes with time, the index
does, and ``scaled * index`` is the real-unit balance.
"""

import logging
from typing import Dict, List

from common.fixed_point import ray_div, ray_mul
from models.exceptions import InsufficientBalance, InvalidAmount


logger = logging.getLogger(__name__)


class ScaledBalanceToken:
    """Scaled balances for one side (supply or debt) of one reserve."""

    def __init__(self, asset: str, kind: str) -> None:
        self.asset = asset
        self.kind = kind
        self._balances: Dict[str, int] = {}
        self._scaled_total_supply = 0

    @property
    def scaled_total_supply(self) -> int:
        return self._scaled_total_supply

    def scaled_balance_of(self, user: str) -> int:
        return self._balances.get(user, 0)

    def balance_of_underlying(self, user: str, index: int) -> int:
        """Real-unit balance including all interest accrued up to ``index``."""
        return ray_mul(self.scaled_balance_of(user), index)

    def total_underlying(self, index: int) -> int:
        return ray_mul(self._scaled_total_supply, index)

    def holders(self) -> List[str]:
        """Users with a non-zero scaled balance."""
        return [user for user, balance in self._balances.items() if balance > 0]

    def mint(self, user: str, amount: int, index: int) -> int:
        """Credit ``amount`` real units at ``index``; return the scaled amount."""
        if amount <= 0:
            raise InvalidAmount("{0} mint amount must be > 0".format(self.kind))
        scaled = ray_div(amount, index)
        if scaled == 0:
            raise InvalidAmount("{0} mint amount rounds to zero at index={1}".format(self.kind, index))
        self.mint_scaled(user, scaled)
        return scaled

    def burn(self, user: str, amount: int, index: int) -> int:
        """Debit ``amount`` real units at ``index``; return the scaled amount.

        The comparison happens in scaled units so rounding can neither
        over-burn nor leave a holder with a negative balance.
        """
        if amount <= 0:
            raise InvalidAmount("{0} burn amount must be > 0".format(self.kind))
        scaled = ray_div(amount, index)
        if scaled == 0:
            raise InvalidAmount("{0} burn amount rounds to zero at index={1}".format(self.kind, index))
        self.burn_scaled(user, scaled)
        return scaled

    def mint_scaled(self, user: str, scaled: int) -> None:
        if scaled <= 0:
            raise InvalidAmount("{0} scaled mint must be > 0".format(self.kind))
        self._balances[user] = self._balances.get(user, 0) + scaled
        self._scaled_total_supply += scaled

    def burn_scaled(self, user: str, scaled: int) -> None:
        if scaled <= 0:
            raise InvalidAmount("{0} scaled burn must be > 0".format(self.kind))
        balance = self._balances.get(user, 0)
        if balance < scaled:
            raise InsufficientBalance(
                "{0} balance too low asset={1} user={2} scaled_balance={3} scaled_needed={4}".format(
                    self.kind, self.asset, user, balance, scaled
                )
            )
        self._balances[user] = balance - scaled
        self._scaled_total_supply -= scaled

    def transfer_scaled(self, sender: str, recipient: str, scaled: int) -> None:
        """Move a scaled claim between holders without touching the total."""
        self.burn_scaled(sender, scaled)
        self.mint_scaled(recipient, scaled)
