"""Per-user stable-rate debt book for one reserve."""

from dataclasses import dataclass
import logging
from typing import Dict, List, Tuple

from common.fixed_point import compounded_interest, ray_mul
from models.exceptions import InsufficientBalance, InvalidAmount


logger = logging.getLogger(__name__)


@dataclass
class StableDebtPosition:
    """Principal with interest folded in up to ``last_update``."""

    principal: int = 0
    rate: int = 0
    last_update: int = 0


class StableDebtToken:
    """Stable-mode debt; each user compounds at the rate locked at borrow time."""

    def __init__(self, asset: str) -> None:
        self.asset = asset
        self._positions: Dict[str, StableDebtPosition] = {}

    def position(self, user: str) -> StableDebtPosition:
        return self._positions.get(user, StableDebtPosition())

    def user_rate(self, user: str) -> int:
        return self.position(user).rate

    def principal_of(self, user: str) -> int:
        return self.position(user).principal

    def balance_of(self, user: str, now: int) -> int:
        """Real-unit debt including interest compounded up to ``now``."""
        position = self._positions.get(user)
        if position is None or position.principal == 0:
            return 0
        elapsed = max(0, now - position.last_update)
        return ray_mul(position.principal, compounded_interest(position.rate, elapsed))

    def holders(self) -> List[str]:
        return [user for user, position in self._positions.items() if position.principal > 0]

    def mint(self, user: str, amount: int, rate: int, now: int) -> Tuple[int, int]:
        """Add ``amount`` at ``rate``; return ``(previous_balance, new_balance)``.

        The locked rate becomes the balance-weighted average of the existing
        debt's rate and the new borrow's rate.
        """
        if amount <= 0:
            raise InvalidAmount("stable debt mint amount must be > 0")
        previous = self.balance_of(user, now)
        current_rate = self.user_rate(user)
        new_balance = previous + amount
        new_rate = (previous * current_rate + amount * rate) // new_balance
        self._positions[user] = StableDebtPosition(principal=new_balance, rate=new_rate, last_update=now)
        logger.debug(
            "Stable debt minted asset=%s user=%s amount=%s rate=%s balance=%s",
            self.asset,
            user,
            amount,
            new_rate,
            new_balance,
        )
        return previous, new_balance

    def burn(self, user: str, amount: int, now: int) -> Tuple[int, int]:
        """Remove ``amount``; return ``(previous_balance, new_balance)``."""
        if amount <= 0:
            raise InvalidAmount("stable debt burn amount must be > 0")
        previous = self.balance_of(user, now)
        if amount > previous:
            raise InsufficientBalance(
                "stable debt too low asset={0} user={1} balance={2} needed={3}".format(
                    self.asset, user, previous, amount
                )
            )
        new_balance = previous - amount
        rate = self.user_rate(user) if new_balance > 0 else 0
        self._positions[user] = StableDebtPosition(principal=new_balance, rate=rate, last_update=now)
        return previous, new_balance
