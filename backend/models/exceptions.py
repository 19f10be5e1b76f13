"""Custom exceptions for model and ledger layers."""


class ModelError(Exception):
    """Base class for model-related failures."""


class ModelValidationError(ModelError):
    """Raised when model data fails custom business validation."""


class LendingError(Exception):
    """Base class for every typed lending-protocol failure.

    ``code`` is a stable identifier surfaced to API callers.
    """

    code = "LENDING_ERROR"


class InvalidAmount(LendingError):
    """Zero, negative or malformed amount input."""

    code = "INVALID_AMOUNT"


class CloseFactorExceeded(InvalidAmount):
    """Liquidation asked to cover more debt than the close factor allows."""

    code = "CLOSE_FACTOR_EXCEEDED"


class ReserveNotActive(LendingError):
    """Reserve was never initialized or has been deactivated."""

    code = "RESERVE_NOT_ACTIVE"


class ReserveAlreadyActive(LendingError):
    """An asset was added twice."""

    code = "RESERVE_ALREADY_ACTIVE"


class ReserveFrozen(LendingError):
    """Reserve accepts no new deposits or borrows."""

    code = "RESERVE_FROZEN"


class ProtocolPaused(LendingError):
    """Global or per-reserve pause flag is set."""

    code = "PROTOCOL_PAUSED"


class ReentrancyDetected(LendingError):
    """A state-mutating entry point was invoked while another one is running."""

    code = "REENTRANCY_DETECTED"


class InsufficientLiquidity(LendingError):
    """Withdraw or borrow exceeds the reserve's available cash."""

    code = "INSUFFICIENT_LIQUIDITY"


class UtilizationExceeded(LendingError):
    """Borrow would push utilization above the reserve's maximum."""

    code = "UTILIZATION_EXCEEDED"


class HealthFactorTooLow(LendingError):
    """Simulated post-operation health factor falls below 1.0."""

    code = "HEALTH_FACTOR_TOO_LOW"


class BorrowCapExceeded(LendingError):
    """Borrowed value exceeds the account's available borrowing power."""

    code = "BORROW_CAP_EXCEEDED"


class InsufficientBalance(LendingError):
    """Burn exceeds the holder's scaled balance."""

    code = "INSUFFICIENT_BALANCE"


class InsufficientCollateral(LendingError):
    """Liquidation seize amount exceeds the user's collateral."""

    code = "INSUFFICIENT_COLLATERAL"


class PositionNotLiquidatable(LendingError):
    """Liquidation requested for an account with health factor >= 1.0."""

    code = "POSITION_NOT_LIQUIDATABLE"


class ArithmeticOverflow(LendingError):
    """Fixed-point operation would leave the representable range."""

    code = "ARITHMETIC_OVERFLOW"


class PriceUnavailable(LendingError):
    """No usable price exists for the asset."""

    code = "PRICE_UNAVAILABLE"


class PriceStale(LendingError):
    """Latest price is older than the allowed heartbeat."""

    code = "PRICE_STALE"


class FlashLoanNotRepaid(LendingError):
    """Flash-loan principal plus premium was not returned."""

    code = "FLASH_LOAN_NOT_REPAID"


class TransferFailed(LendingError):
    """Underlying asset movement was rejected (balance or allowance)."""

    code = "TRANSFER_FAILED"


class Unauthorized(LendingError):
    """Caller lacks the capability for an administrative action."""

    code = "UNAUTHORIZED"


class InvalidTimestamp(LendingError):
    """Accrual requested for a time earlier than the last update."""

    code = "INVALID_TIMESTAMP"


class SolvencyViolation(LendingError):
    """Outstanding debt exceeds supplied liquidity. Indicates a ledger bug."""

    code = "SOLVENCY_VIOLATION"


class BorrowingNotEnabled(LendingError):
    """Reserve (or its stable-rate mode) is configured without borrowing."""

    code = "BORROWING_NOT_ENABLED"
