"""Callback contract for flash-loan borrowers."""

from abc import ABC, abstractmethod
from typing import Any, List, Optional


class FlashLoanReceiver(ABC):
    """Untrusted code that receives flash-loaned funds.

    ``address`` is the account the pool transfers funds to and pulls the
    repayment from. Repayment works like any other pull: the receiver
    approves ``amount + premium`` to the pool's custodian account before
    returning.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Account that holds the borrowed funds during the callback."""

    @abstractmethod
    def execute_operation(
        self,
        assets: List[str],
        amounts: List[int],
        premiums: List[int],
        initiator: str,
        params: Optional[Any],
    ) -> bool:
        """Use the funds; return ``True`` when the operation succeeded."""
