"""Service layer exports."""

from .asset_vault import AssetVault
from .flash_loan_receiver import FlashLoanReceiver
from .ledger_store import LedgerStore, UserConfiguration
from .lending_pool import LendingPool, admin_authorizer
from .liquidation_poller import LiquidationPoller
from .price_oracle import ManualPriceFeed, PriceOracle, PriceQuote
from .protocol_factory import ProtocolContext, build_protocol
from .reserve_ledger import ReserveLedger
from .risk_engine import LiquidationPlan, RiskEngine
from .scaled_balance_token import ScaledBalanceToken
from .stable_debt_token import StableDebtToken

__all__ = [
    "AssetVault",
    "FlashLoanReceiver",
    "LedgerStore",
    "UserConfiguration",
    "LendingPool",
    "admin_authorizer",
    "LiquidationPoller",
    "ManualPriceFeed",
    "PriceOracle",
    "PriceQuote",
    "ProtocolContext",
    "build_protocol",
    "ReserveLedger",
    "LiquidationPlan",
    "RiskEngine",
    "ScaledBalanceToken",
    "StableDebtToken",
]
