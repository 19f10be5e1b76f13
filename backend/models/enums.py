"""Reusable enums for lending-protocol domain models."""

from enum import Enum, IntEnum


class StringEnum(str, Enum):
    """Base enum class with string behavior for JSON serialization."""


class InterestRateMode(IntEnum):
    """Debt modes; values match the on-chain ``INTEREST_RATE_MODE`` table."""

    NONE = 0
    STABLE = 1
    VARIABLE = 2


class PositionStatus(StringEnum):
    """Derived account classification, never stored."""

    HEALTHY = "HEALTHY"
    AT_RISK = "AT_RISK"
    LIQUIDATABLE = "LIQUIDATABLE"


class ProtocolAction(StringEnum):
    """Administrative actions checked by the authorization predicate."""

    ADD_RESERVE = "ADD_RESERVE"
    CONFIGURE_RESERVE = "CONFIGURE_RESERVE"
    FREEZE_RESERVE = "FREEZE_RESERVE"
    PAUSE_RESERVE = "PAUSE_RESERVE"
    PAUSE_PROTOCOL = "PAUSE_PROTOCOL"


class ProtocolEventType(StringEnum):
    """Notifications emitted for every state mutation."""

    RESERVE_INITIALIZED = "RESERVE_INITIALIZED"
    RESERVE_CONFIGURED = "RESERVE_CONFIGURED"
    RESERVE_DATA_UPDATED = "RESERVE_DATA_UPDATED"
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    BORROW = "BORROW"
    REPAY = "REPAY"
    LIQUIDATION_CALL = "LIQUIDATION_CALL"
    FLASH_LOAN = "FLASH_LOAN"
    COLLATERAL_ENABLED = "COLLATERAL_ENABLED"
    COLLATERAL_DISABLED = "COLLATERAL_DISABLED"
    PAUSED = "PAUSED"
    UNPAUSED = "UNPAUSED"
