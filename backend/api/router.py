"""Primary API router for pool operations, test assets and oracle prices.

Amounts travel as decimal strings of the asset's smallest unit so 256-bit
values survive JSON clients; ``"max"`` selects the full-balance sentinel
where the pool supports it.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from common.protocol_constants import (
    MAX_AMOUNT,
    human_to_raw_price,
    rate_to_apy,
    raw_to_human_hf,
    raw_to_human_value,
    utilization_percent,
)
from models.accounts import ReserveDataView, UserAccountSnapshot
from models.enums import InterestRateMode
from models.exceptions import (
    ArithmeticOverflow,
    BorrowingNotEnabled,
    InsufficientLiquidity,
    InvalidAmount,
    InvalidTimestamp,
    LendingError,
    PriceStale,
    PriceUnavailable,
    ProtocolPaused,
    ReentrancyDetected,
    ReserveAlreadyActive,
    ReserveFrozen,
    ReserveNotActive,
    SolvencyViolation,
    Unauthorized,
    UtilizationExceeded,
)
from services.protocol_factory import ProtocolContext


logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (InvalidAmount, status.HTTP_400_BAD_REQUEST),
    (InvalidTimestamp, status.HTTP_400_BAD_REQUEST),
    (ReserveNotActive, status.HTTP_404_NOT_FOUND),
    (Unauthorized, status.HTTP_403_FORBIDDEN),
    (ReserveAlreadyActive, status.HTTP_409_CONFLICT),
    (ReentrancyDetected, status.HTTP_409_CONFLICT),
    (InsufficientLiquidity, status.HTTP_409_CONFLICT),
    (UtilizationExceeded, status.HTTP_409_CONFLICT),
    (ProtocolPaused, status.HTTP_423_LOCKED),
    (ReserveFrozen, status.HTTP_423_LOCKED),
    (BorrowingNotEnabled, status.HTTP_423_LOCKED),
    (PriceUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (PriceStale, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ArithmeticOverflow, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (SolvencyViolation, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


class DepositRequest(BaseModel):
    """Request payload for supplying liquidity."""

    caller: str = Field(..., min_length=1)
    asset: str = Field(..., min_length=1)
    amount: str = Field(..., min_length=1)
    on_behalf_of: Optional[str] = Field(default=None, min_length=1)


class WithdrawRequest(BaseModel):
    """Request payload for redeeming supply."""

    caller: str = Field(..., min_length=1)
    asset: str = Field(..., min_length=1)
    amount: str = Field(..., min_length=1)
    to: Optional[str] = Field(default=None, min_length=1)


class BorrowRequest(BaseModel):
    """Request payload for borrow endpoint."""

    caller: str = Field(..., min_length=1)
    asset: str = Field(..., min_length=1)
    amount: str = Field(..., min_length=1)
    rate_mode: int = Field(default=int(InterestRateMode.VARIABLE), ge=1, le=2)
    on_behalf_of: Optional[str] = Field(default=None, min_length=1)


class RepayRequest(BaseModel):
    """Request payload for repay endpoint."""

    caller: str = Field(..., min_length=1)
    asset: str = Field(..., min_length=1)
    amount: str = Field(..., min_length=1)
    rate_mode: int = Field(default=int(InterestRateMode.VARIABLE), ge=1, le=2)
    on_behalf_of: Optional[str] = Field(default=None, min_length=1)


class LiquidateRequest(BaseModel):
    """Request payload for liquidation endpoint."""

    caller: str = Field(..., min_length=1)
    collateral_asset: str = Field(..., min_length=1)
    debt_asset: str = Field(..., min_length=1)
    user: str = Field(..., min_length=1)
    debt_to_cover: str = Field(..., min_length=1)
    receive_claim: bool = Field(default=False)


class CollateralToggleRequest(BaseModel):
    """Request payload for opting a reserve in or out of collateral."""

    caller: str = Field(..., min_length=1)
    asset: str = Field(..., min_length=1)
    use_as_collateral: bool = Field(...)


class AssetMintRequest(BaseModel):
    """Request payload for the test-asset faucet."""

    asset: str = Field(..., min_length=1)
    holder: str = Field(..., min_length=1)
    amount: str = Field(..., min_length=1)


class AssetApproveRequest(BaseModel):
    """Request payload for granting the pool an allowance."""

    asset: str = Field(..., min_length=1)
    owner: str = Field(..., min_length=1)
    amount: str = Field(..., min_length=1)
    spender: Optional[str] = Field(default=None, min_length=1)


class OracleUpdatePriceRequest(BaseModel):
    """Request payload for oracle price updates."""

    actor: str = Field(..., min_length=1)
    asset: str = Field(..., min_length=1)
    price_usd: float = Field(..., gt=0)
    timestamp: Optional[int] = Field(default=None, ge=0)


def parse_amount(value: str, allow_max: bool = False) -> int:
    """Parse a decimal string of smallest units (or ``"max"``)."""
    normalized = value.strip().lower()
    if normalized == "max":
        if not allow_max:
            raise InvalidAmount("'max' is not accepted for this operation")
        return MAX_AMOUNT
    try:
        amount = int(normalized)
    except ValueError as exc:
        raise InvalidAmount("amount must be an integer string, got {0!r}".format(value)) from exc
    if amount < 0:
        raise InvalidAmount("amount must be >= 0")
    return amount


def lending_http_error(exc: LendingError) -> HTTPException:
    """Translate a typed ledger failure into an HTTP error with its code."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    for error_type, mapped_status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = mapped_status
            break
    return HTTPException(status_code=status_code, detail={"error": exc.code, "message": str(exc)})


def account_payload(snapshot: UserAccountSnapshot) -> dict:
    """Serialize an account snapshot with a display health factor."""
    human_hf = raw_to_human_hf(snapshot.health_factor)
    payload = snapshot.model_dump(mode="json")
    payload["health_factor_display"] = None if human_hf == float("inf") else round(human_hf, 6)
    payload["total_collateral_usd"] = raw_to_human_value(snapshot.total_collateral_value)
    payload["total_debt_usd"] = raw_to_human_value(snapshot.total_debt_value)
    return payload


def reserve_payload(view: ReserveDataView) -> dict:
    """Serialize reserve state with dashboard APY and utilization figures."""
    payload = view.model_dump(mode="json")
    total_debt = view.total_variable_debt + view.total_stable_debt
    payload["display"] = {
        "supply_apy": round(rate_to_apy(view.current_liquidity_rate), 4),
        "variable_borrow_apy": round(rate_to_apy(view.current_variable_borrow_rate), 4),
        "stable_borrow_apy": round(rate_to_apy(view.current_stable_borrow_rate), 4),
        "utilization_percent": utilization_percent(total_debt, view.total_supplied),
    }
    return payload


def build_router(context: ProtocolContext) -> APIRouter:
    """Build and return the top-level API router.

    Args:
        context: Wired protocol components shared by every endpoint.

    Returns:
        APIRouter: Fully configured router with all endpoints.
    """
    router = APIRouter()
    pool = context.pool
    vault = context.vault
    settings = context.settings

    @router.get("/", summary="Root endpoint")
    def read_root() -> dict:
        """Return a basic message confirming service availability."""
        return {"message": "{0} is running".format(settings.app_name)}

    @router.get("/health", summary="Health check")
    def health_check() -> dict:
        """Return service health status for probes and monitors."""
        return {"status": "ok"}

    @router.post("/api/pool/deposit", summary="Supply liquidity")
    def pool_deposit(payload: DepositRequest) -> dict:
        """Deposit an asset and receive a supply claim."""
        try:
            amount = pool.deposit(
                payload.caller, payload.asset, parse_amount(payload.amount), payload.on_behalf_of
            )
            return {"asset": payload.asset, "amount": str(amount), "on_behalf_of": payload.on_behalf_of or payload.caller}
        except LendingError as exc:
            raise lending_http_error(exc)
        except Exception as exc:
            logger.exception("Deposit failed caller=%s asset=%s", payload.caller, payload.asset)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

    @router.post("/api/pool/withdraw", summary="Redeem supplied liquidity")
    def pool_withdraw(payload: WithdrawRequest) -> dict:
        """Withdraw underlying; amount ``max`` withdraws everything."""
        try:
            amount = pool.withdraw(
                payload.caller, payload.asset, parse_amount(payload.amount, allow_max=True), payload.to
            )
            return {"asset": payload.asset, "amount": str(amount), "to": payload.to or payload.caller}
        except LendingError as exc:
            raise lending_http_error(exc)
        except Exception as exc:
            logger.exception("Withdraw failed caller=%s asset=%s", payload.caller, payload.asset)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

    @router.post("/api/pool/borrow", summary="Borrow against collateral")
    def pool_borrow(payload: BorrowRequest) -> dict:
        """Open variable or stable debt."""
        try:
            amount = pool.borrow(
                payload.caller,
                payload.asset,
                parse_amount(payload.amount),
                payload.rate_mode,
                payload.on_behalf_of,
            )
            borrower = payload.on_behalf_of or payload.caller
            return {
                "asset": payload.asset,
                "amount": str(amount),
                "rate_mode": payload.rate_mode,
                "account": account_payload(pool.get_user_account_data(borrower)),
            }
        except LendingError as exc:
            raise lending_http_error(exc)
        except Exception as exc:
            logger.exception("Borrow failed caller=%s asset=%s", payload.caller, payload.asset)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

    @router.post("/api/pool/repay", summary="Repay debt")
    def pool_repay(payload: RepayRequest) -> dict:
        """Repay debt; the pulled amount is capped at what is owed."""
        try:
            paid = pool.repay(
                payload.caller,
                payload.asset,
                parse_amount(payload.amount, allow_max=True),
                payload.rate_mode,
                payload.on_behalf_of,
            )
            return {"asset": payload.asset, "amount_repaid": str(paid), "rate_mode": payload.rate_mode}
        except LendingError as exc:
            raise lending_http_error(exc)
        except Exception as exc:
            logger.exception("Repay failed caller=%s asset=%s", payload.caller, payload.asset)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

    @router.post("/api/pool/liquidate", summary="Liquidate an unhealthy position")
    def pool_liquidate(payload: LiquidateRequest) -> dict:
        """Cover part of an account's debt in exchange for discounted collateral."""
        try:
            plan = pool.liquidation_call(
                payload.caller,
                payload.collateral_asset,
                payload.debt_asset,
                payload.user,
                parse_amount(payload.debt_to_cover, allow_max=True),
                payload.receive_claim,
            )
            return {
                "user": plan.user,
                "debt_asset": plan.debt_asset,
                "debt_covered": str(plan.debt_to_cover),
                "collateral_asset": plan.collateral_asset,
                "collateral_seized": str(plan.collateral_to_seize),
                "close_factor_bps": plan.close_factor_bps,
                "health_factor_before": str(plan.health_factor),
                "receive_claim": payload.receive_claim,
            }
        except LendingError as exc:
            raise lending_http_error(exc)
        except Exception as exc:
            logger.exception("Liquidation failed caller=%s user=%s", payload.caller, payload.user)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

    @router.post("/api/pool/collateral", summary="Toggle a reserve as collateral")
    def pool_collateral(payload: CollateralToggleRequest) -> dict:
        """Enable or disable a supplied reserve as collateral."""
        try:
            pool.set_user_use_reserve_as_collateral(payload.caller, payload.asset, payload.use_as_collateral)
            return {
                "asset": payload.asset,
                "use_as_collateral": payload.use_as_collateral,
                "account": account_payload(pool.get_user_account_data(payload.caller)),
            }
        except LendingError as exc:
            raise lending_http_error(exc)
        except Exception as exc:
            logger.exception("Collateral toggle failed caller=%s asset=%s", payload.caller, payload.asset)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

    @router.get("/api/pool/reserves", summary="List reserves")
    def pool_reserves() -> list:
        """Return every reserve's stored state."""
        return [reserve_payload(view) for view in pool.list_reserves()]

    @router.get("/api/pool/reserves/{asset}", summary="Get reserve data")
    def pool_reserve(asset: str) -> dict:
        """Return one reserve's stored state."""
        try:
            return reserve_payload(pool.get_reserve_data(asset))
        except LendingError as exc:
            raise lending_http_error(exc)

    @router.get("/api/pool/reserves/{asset}/normalized-income", summary="Projected liquidity index")
    def pool_normalized_income(asset: str) -> dict:
        """Liquidity index as of now, without committing an accrual."""
        try:
            return {"asset": asset, "normalized_income": str(pool.get_reserve_normalized_income(asset))}
        except LendingError as exc:
            raise lending_http_error(exc)

    @router.get("/api/pool/reserves/{asset}/normalized-debt", summary="Projected variable borrow index")
    def pool_normalized_debt(asset: str) -> dict:
        """Variable borrow index as of now, without committing an accrual."""
        try:
            return {
                "asset": asset,
                "normalized_variable_debt": str(pool.get_reserve_normalized_variable_debt(asset)),
            }
        except LendingError as exc:
            raise lending_http_error(exc)

    @router.get("/api/pool/events", summary="Event history")
    def pool_events(since: int = Query(default=0, ge=0)) -> list:
        """Return events with a sequence number above ``since``."""
        return [event.model_dump(mode="json") for event in pool.events(since)]

    @router.post("/api/assets/mint", summary="Mint test assets")
    def assets_mint(payload: AssetMintRequest) -> dict:
        """Credit an account with underlying asset units."""
        try:
            balance = vault.mint(payload.asset, payload.holder, parse_amount(payload.amount))
            return {"asset": payload.asset, "holder": payload.holder, "balance": str(balance)}
        except LendingError as exc:
            raise lending_http_error(exc)

    @router.post("/api/assets/approve", summary="Approve the pool to pull assets")
    def assets_approve(payload: AssetApproveRequest) -> dict:
        """Set an allowance; the spender defaults to the pool custodian."""
        try:
            spender = payload.spender or vault.custodian
            vault.approve(payload.asset, payload.owner, spender, parse_amount(payload.amount, allow_max=True))
            return {
                "asset": payload.asset,
                "owner": payload.owner,
                "spender": spender,
                "allowance": str(vault.allowance(payload.asset, payload.owner, spender)),
            }
        except LendingError as exc:
            raise lending_http_error(exc)

    @router.get("/api/assets/{asset}/balances/{holder}", summary="Underlying balance")
    def assets_balance(asset: str, holder: str) -> dict:
        """Return an account's underlying balance."""
        return {"asset": asset, "holder": holder, "balance": str(vault.balance_of(asset, holder))}

    @router.post("/api/oracle/prices", summary="Update oracle price")
    def oracle_update_price(payload: OracleUpdatePriceRequest) -> dict:
        """Publish a USD price for one asset."""
        if payload.actor not in settings.admin_accounts:
            raise lending_http_error(Unauthorized("{0} may not publish prices".format(payload.actor)))
        try:
            quote = context.price_feed.set_price(
                payload.asset, human_to_raw_price(payload.price_usd), payload.timestamp
            )
            return {"asset": payload.asset, "price": str(quote.price), "timestamp": quote.timestamp}
        except LendingError as exc:
            raise lending_http_error(exc)
        except Exception as exc:
            logger.exception("Oracle update failed asset=%s", payload.asset)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

    @router.get("/api/oracle/prices/{asset}", summary="Get oracle price")
    def oracle_price(asset: str) -> dict:
        """Resolve the current price through the oracle fallback chain."""
        try:
            return {"asset": asset, "price": str(context.oracle.get_price(asset))}
        except LendingError as exc:
            raise lending_http_error(exc)

    return router
