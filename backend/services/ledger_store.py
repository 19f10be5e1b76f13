"""Explicit in-memory store holding every reserve and user position.

The pool receives a store handle instead of reaching for module globals, so
each test (or each deployment) owns an isolated ledger.
"""

import copy
from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Set, Tuple

from models.events import ProtocolEventModel
from models.exceptions import ReserveAlreadyActive, ReserveNotActive
from models.reserves import ReserveConfigModel
from services.reserve_ledger import ReserveLedger
from services.scaled_balance_token import ScaledBalanceToken
from services.stable_debt_token import StableDebtToken


logger = logging.getLogger(__name__)


@dataclass
class UserConfiguration:
    """Reserve ids a user supplies as collateral and reserve ids borrowed."""

    collateral: Set[int] = field(default_factory=set)
    borrowing: Set[int] = field(default_factory=set)

    def is_using_as_collateral(self, reserve_id: int) -> bool:
        return reserve_id in self.collateral

    def is_borrowing(self, reserve_id: int) -> bool:
        return reserve_id in self.borrowing

    def set_using_as_collateral(self, reserve_id: int, enabled: bool) -> None:
        if enabled:
            self.collateral.add(reserve_id)
        else:
            self.collateral.discard(reserve_id)

    def set_borrowing(self, reserve_id: int, borrowing: bool) -> None:
        if borrowing:
            self.borrowing.add(reserve_id)
        else:
            self.borrowing.discard(reserve_id)

    def reserve_ids(self) -> Set[int]:
        return self.collateral | self.borrowing


@dataclass
class StoreCheckpoint:
    """Opaque copy of store state taken at operation entry."""

    state: dict
    event_count: int


class LedgerStore:
    """Reserves, claim tokens, user configurations and event history."""

    def __init__(self) -> None:
        self.reserves: Dict[str, ReserveLedger] = {}
        self.reserve_assets_by_id: Dict[int, str] = {}
        self.supply_tokens: Dict[str, ScaledBalanceToken] = {}
        self.variable_debt_tokens: Dict[str, ScaledBalanceToken] = {}
        self.stable_debt_tokens: Dict[str, StableDebtToken] = {}
        self.user_configs: Dict[str, UserConfiguration] = {}
        self.borrow_allowances: Dict[Tuple[str, str, str], int] = {}
        self.events: List[ProtocolEventModel] = []
        self.paused = False

    def add_reserve(self, config: ReserveConfigModel, now: int) -> ReserveLedger:
        """Create the ledger and both claim tokens for a new asset."""
        if config.asset in self.reserves:
            raise ReserveAlreadyActive("reserve already exists for asset={0}".format(config.asset))
        reserve_id = len(self.reserves) + 1
        reserve = ReserveLedger(reserve_id, config, now)
        self.reserves[config.asset] = reserve
        self.reserve_assets_by_id[reserve_id] = config.asset
        self.supply_tokens[config.asset] = ScaledBalanceToken(config.asset, "supply")
        self.variable_debt_tokens[config.asset] = ScaledBalanceToken(config.asset, "variable_debt")
        self.stable_debt_tokens[config.asset] = StableDebtToken(config.asset)
        logger.info("Reserve stored id=%s asset=%s", reserve_id, config.asset)
        return reserve

    def has_reserve(self, asset: str) -> bool:
        return asset in self.reserves

    def get_reserve(self, asset: str) -> ReserveLedger:
        reserve = self.reserves.get(asset)
        if reserve is None or not reserve.is_active:
            raise ReserveNotActive("reserve not active for asset={0}".format(asset))
        return reserve

    def asset_for_id(self, reserve_id: int) -> str:
        asset = self.reserve_assets_by_id.get(reserve_id)
        if asset is None:
            raise ReserveNotActive("no reserve with id={0}".format(reserve_id))
        return asset

    def user_config(self, user: str) -> UserConfiguration:
        """Return the user's configuration, creating an empty one on first use."""
        config = self.user_configs.get(user)
        if config is None:
            config = UserConfiguration()
            self.user_configs[user] = config
        return config

    def peek_user_config(self, user: str) -> Optional[UserConfiguration]:
        return self.user_configs.get(user)

    def users(self) -> List[str]:
        """Every account that ever held a position, in first-seen order."""
        return list(self.user_configs.keys())

    def borrow_allowance(self, asset: str, delegator: str, delegatee: str) -> int:
        return self.borrow_allowances.get((asset, delegator, delegatee), 0)

    def set_borrow_allowance(self, asset: str, delegator: str, delegatee: str, amount: int) -> None:
        self.borrow_allowances[(asset, delegator, delegatee)] = amount

    def checkpoint(self) -> StoreCheckpoint:
        """Snapshot mutable state; events are restored by truncation."""
        state = {
            "reserves": self.reserves,
            "reserve_assets_by_id": self.reserve_assets_by_id,
            "supply_tokens": self.supply_tokens,
            "variable_debt_tokens": self.variable_debt_tokens,
            "stable_debt_tokens": self.stable_debt_tokens,
            "user_configs": self.user_configs,
            "borrow_allowances": self.borrow_allowances,
            "paused": self.paused,
        }
        return StoreCheckpoint(state=copy.deepcopy(state), event_count=len(self.events))

    def restore(self, checkpoint: StoreCheckpoint) -> None:
        """Put the store back to ``checkpoint``."""
        for name, value in checkpoint.state.items():
            setattr(self, name, value)
        del self.events[checkpoint.event_count:]
        logger.debug("Ledger store restored to checkpoint event_count=%s", checkpoint.event_count)
