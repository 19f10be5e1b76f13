"""In-memory custody of underlying assets for the lending pool.

Stands in for the chain's transfer primitive: the native asset moves as a
direct value transfer, every other asset is pulled against an allowance the
owner granted to the custodian account.

Writes made by a thread with an open journal are recorded as deltas so a
failed pool operation can revert exactly its own movements without touching
writes other threads made in the meantime.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from models.exceptions import InvalidAmount, TransferFailed


logger = logging.getLogger(__name__)

JournalEntry = Tuple[str, str, object, int]


class AssetVault:
    """Token balances and allowances keyed by asset and holder."""

    def __init__(self, custodian: str, native_assets: Iterable[str] = ()) -> None:
        self.custodian = custodian
        self._native = set(native_assets)
        self._balances: Dict[str, Dict[str, int]] = {}
        self._allowances: Dict[str, Dict[Tuple[str, str], int]] = {}
        self._lock = threading.RLock()
        self._local = threading.local()

    def register_native(self, asset: str) -> None:
        self._native.add(asset)

    def is_native(self, asset: str) -> bool:
        return asset in self._native

    def balance_of(self, asset: str, holder: str) -> int:
        return self._balances.get(asset, {}).get(holder, 0)

    def allowance(self, asset: str, owner: str, spender: str) -> int:
        return self._allowances.get(asset, {}).get((owner, spender), 0)

    def mint(self, asset: str, holder: str, amount: int) -> int:
        """Credit ``amount`` out of thin air (faucet / test setup)."""
        if amount <= 0:
            raise InvalidAmount("mint amount must be > 0")
        with self._lock:
            self._credit(asset, holder, amount)
            return self.balance_of(asset, holder)

    def approve(self, asset: str, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount("allowance must be >= 0")
        with self._lock:
            self._set_allowance(asset, owner, spender, amount)

    def transfer(self, asset: str, sender: str, recipient: str, amount: int) -> None:
        """Holder-initiated transfer."""
        with self._lock:
            self._debit(asset, sender, amount)
            self._credit(asset, recipient, amount)

    def transfer_in(self, asset: str, sender: str, amount: int) -> None:
        """Pull ``amount`` from ``sender`` into custody."""
        if amount <= 0:
            raise InvalidAmount("transfer amount must be > 0")
        with self._lock:
            if not self.is_native(asset):
                allowed = self.allowance(asset, sender, self.custodian)
                if allowed < amount:
                    raise TransferFailed(
                        "allowance too low asset={0} owner={1} allowed={2} needed={3}".format(
                            asset, sender, allowed, amount
                        )
                    )
                self._debit(asset, sender, amount)
                self._set_allowance(asset, sender, self.custodian, allowed - amount)
            else:
                self._debit(asset, sender, amount)
            self._credit(asset, self.custodian, amount)

    def transfer_out(self, asset: str, recipient: str, amount: int) -> None:
        """Send ``amount`` from custody to ``recipient``."""
        if amount <= 0:
            raise InvalidAmount("transfer amount must be > 0")
        with self._lock:
            self._debit(asset, self.custodian, amount)
            self._credit(asset, recipient, amount)

    # ------------------------------------------------------------------
    # Undo journal
    # ------------------------------------------------------------------

    def begin_journal(self) -> List[JournalEntry]:
        """Start recording this thread's writes and return the entry list."""
        journal: List[JournalEntry] = []
        self._local.journal = journal
        return journal

    def end_journal(self) -> None:
        self._local.journal = None

    def revert(self, journal: List[JournalEntry]) -> None:
        """Undo the recorded writes, newest first."""
        with self._lock:
            for kind, asset, key, delta in reversed(journal):
                if kind == "balance":
                    holders = self._balances.setdefault(asset, {})
                    holders[key] = holders.get(key, 0) - delta
                else:
                    spenders = self._allowances.setdefault(asset, {})
                    spenders[key] = spenders.get(key, 0) - delta
            logger.debug("Reverted %s vault writes", len(journal))
            del journal[:]

    def _record(self, kind: str, asset: str, key: object, delta: int) -> None:
        journal: Optional[List[JournalEntry]] = getattr(self._local, "journal", None)
        if journal is not None and delta:
            journal.append((kind, asset, key, delta))

    def _set_allowance(self, asset: str, owner: str, spender: str, amount: int) -> None:
        previous = self.allowance(asset, owner, spender)
        self._allowances.setdefault(asset, {})[(owner, spender)] = amount
        self._record("allowance", asset, (owner, spender), amount - previous)

    def _credit(self, asset: str, holder: str, amount: int) -> None:
        holders = self._balances.setdefault(asset, {})
        holders[holder] = holders.get(holder, 0) + amount
        self._record("balance", asset, holder, amount)

    def _debit(self, asset: str, holder: str, amount: int) -> None:
        balance = self.balance_of(asset, holder)
        if balance < amount:
            raise TransferFailed(
                "balance too low asset={0} holder={1} balance={2} needed={3}".format(
                    asset, holder, balance, amount
                )
            )
        self._balances[asset][holder] = balance - amount
        self._record("balance", asset, holder, -amount)
