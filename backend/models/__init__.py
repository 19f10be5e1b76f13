"""Public model package exports for the lending backend."""

from .accounts import ReserveDataView, UserAccountSnapshot, UserReserveView
from .base import Amount, BaseDomainModel, PercentageBps, Ray, Wad
from .enums import InterestRateMode, PositionStatus, ProtocolAction, ProtocolEventType
from .events import ProtocolEventModel
from .exceptions import (
    ArithmeticOverflow,
    BorrowCapExceeded,
    BorrowingNotEnabled,
    CloseFactorExceeded,
    FlashLoanNotRepaid,
    HealthFactorTooLow,
    InsufficientBalance,
    InsufficientCollateral,
    InsufficientLiquidity,
    InvalidAmount,
    InvalidTimestamp,
    LendingError,
    ModelError,
    ModelValidationError,
    PositionNotLiquidatable,
    PriceStale,
    PriceUnavailable,
    ProtocolPaused,
    ReentrancyDetected,
    ReserveAlreadyActive,
    ReserveFrozen,
    ReserveNotActive,
    SolvencyViolation,
    TransferFailed,
    Unauthorized,
    UtilizationExceeded,
)
from .reserves import ReserveConfigModel

__all__ = [
    "Amount",
    "BaseDomainModel",
    "PercentageBps",
    "Ray",
    "Wad",
    "ReserveConfigModel",
    "ProtocolEventModel",
    "UserAccountSnapshot",
    "ReserveDataView",
    "UserReserveView",
    "InterestRateMode",
    "PositionStatus",
    "ProtocolAction",
    "ProtocolEventType",
    "ModelError",
    "ModelValidationError",
    "LendingError",
    "InvalidAmount",
    "CloseFactorExceeded",
    "ReserveNotActive",
    "ReserveAlreadyActive",
    "ReserveFrozen",
    "ProtocolPaused",
    "ReentrancyDetected",
    "InsufficientLiquidity",
    "UtilizationExceeded",
    "HealthFactorTooLow",
    "BorrowCapExceeded",
    "BorrowingNotEnabled",
    "InsufficientBalance",
    "InsufficientCollateral",
    "PositionNotLiquidatable",
    "ArithmeticOverflow",
    "PriceUnavailable",
    "PriceStale",
    "FlashLoanNotRepaid",
    "TransferFailed",
    "Unauthorized",
    "InvalidTimestamp",
    "SolvencyViolation",
]
