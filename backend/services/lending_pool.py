"""Lending pool orchestrator.

Every public mutation follows the same template: accrue every touched
reserve, validate through the risk engine, mutate ledgers and claim tokens,
move the underlying asset and emit an event. Mutations run under one pool
lock with a re-entrancy flag and are atomic: on any exception the ledger
store is restored to its state at entry and the vault movements the
operation made are reverted.
"""

import functools
import logging
import threading
from typing import Any, Callable, Iterable, List, Optional, Sequence

from common.fixed_point import percent_mul, ray_div, ray_mul
from common.protocol_constants import FLASH_LOAN_PREMIUM_BPS, MAX_AMOUNT
from models.accounts import ReserveDataView, UserAccountSnapshot, UserReserveView
from models.enums import InterestRateMode, ProtocolAction, ProtocolEventType
from models.events import ProtocolEventModel
from models.exceptions import (
    BorrowingNotEnabled,
    FlashLoanNotRepaid,
    InsufficientBalance,
    InsufficientLiquidity,
    InvalidAmount,
    LendingError,
    ModelValidationError,
    ProtocolPaused,
    ReentrancyDetected,
    ReserveFrozen,
    TransferFailed,
    Unauthorized,
)
from models.reserves import ReserveConfigModel
from services.ledger_store import LedgerStore
from services.asset_vault import AssetVault
from services.flash_loan_receiver import FlashLoanReceiver
from services.price_oracle import Clock, PriceOracle, system_clock
from services.reserve_ledger import ReserveLedger
from services.risk_engine import LiquidationPlan, RiskEngine


logger = logging.getLogger(__name__)

Authorizer = Callable[[str, ProtocolAction], bool]
EventSubscriber = Callable[[ProtocolEventModel], None]

DEFAULT_TREASURY = "treasury"


def admin_authorizer(admins: Iterable[str]) -> Authorizer:
    """Authorize every admin action for the given accounts only."""
    allowed = frozenset(admins)

    def is_authorized(actor: str, action: ProtocolAction) -> bool:
        return actor in allowed

    return is_authorized


def _mutating(method):
    """Serialize, guard against re-entry and roll back ``method`` on failure."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            if self._entered:
                logger.warning("Re-entrant call rejected operation=%s", method.__name__)
                raise ReentrancyDetected("{0} called during another pool operation".format(method.__name__))
            self._entered = True
            checkpoint = self.store.checkpoint()
            vault_journal = self.vault.begin_journal()
            first_event = len(self.store.events)
            try:
                self._now = self._clock()
                result = method(self, *args, **kwargs)
                for reserve in self.store.reserves.values():
                    reserve.check_solvency()
            except LendingError as exc:
                self.store.restore(checkpoint)
                self.vault.revert(vault_journal)
                logger.warning("Pool operation %s rejected: %s (%s)", method.__name__, exc.code, exc)
                raise
            except Exception:
                self.store.restore(checkpoint)
                self.vault.revert(vault_journal)
                logger.exception("Pool operation %s failed; state rolled back", method.__name__)
                raise
            finally:
                self.vault.end_journal()
                self._entered = False
            committed = list(self.store.events[first_event:])
        self._notify(committed)
        return result

    return wrapper


def _rate_mode(value: Any) -> InterestRateMode:
    try:
        mode = InterestRateMode(int(value))
    except (TypeError, ValueError) as exc:
        raise InvalidAmount("unknown interest rate mode {0!r}".format(value)) from exc
    if mode == InterestRateMode.NONE:
        raise InvalidAmount("interest rate mode must be STABLE or VARIABLE")
    return mode


class LendingPool:
    """Public entry points of the protocol."""

    def __init__(
        self,
        store: LedgerStore,
        oracle: PriceOracle,
        vault: AssetVault,
        clock: Clock = system_clock,
        risk_engine: Optional[RiskEngine] = None,
        is_authorized: Optional[Authorizer] = None,
        treasury: str = DEFAULT_TREASURY,
        flash_loan_premium_bps: int = FLASH_LOAN_PREMIUM_BPS,
    ) -> None:
        self.store = store
        self.oracle = oracle
        self.vault = vault
        self.risk_engine = risk_engine or RiskEngine(store, oracle)
        self.treasury = treasury
        self.flash_loan_premium_bps = flash_loan_premium_bps
        self._clock = clock
        self._is_authorized = is_authorized or admin_authorizer(())
        self._lock = threading.RLock()
        self._entered = False
        self._now = clock()
        self._subscribers: List[EventSubscriber] = []

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    @_mutating
    def deposit(self, caller: str, asset: str, amount: int, on_behalf_of: Optional[str] = None) -> int:
        """Supply ``amount`` of ``asset``; the claim is credited to ``on_behalf_of``."""
        reserve = self._usable_reserve(asset)
        if reserve.is_frozen:
            raise ReserveFrozen("reserve {0} is frozen".format(asset))
        if amount <= 0 or amount == MAX_AMOUNT:
            raise InvalidAmount("deposit amount must be > 0")
        beneficiary = on_behalf_of or caller
        self._accrue(reserve)

        self.vault.transfer_in(asset, caller, amount)
        supply_token = self.store.supply_tokens[asset]
        first_deposit = supply_token.scaled_balance_of(beneficiary) == 0
        supply_token.mint(beneficiary, amount, reserve.liquidity_index)
        reserve.record_supply(amount)
        reserve.refresh_rates()

        user_config = self.store.user_config(beneficiary)
        if first_deposit and not user_config.is_using_as_collateral(reserve.id):
            user_config.set_using_as_collateral(reserve.id, True)
            self._emit(ProtocolEventType.COLLATERAL_ENABLED, reserve, actor=caller, on_behalf_of=beneficiary)

        self._emit(ProtocolEventType.DEPOSIT, reserve, actor=caller, on_behalf_of=beneficiary, amount=amount)
        self._emit_reserve_update(reserve)
        return amount

    @_mutating
    def withdraw(self, caller: str, asset: str, amount: int, to: Optional[str] = None) -> int:
        """Redeem supply; ``MAX_AMOUNT`` withdraws the caller's full balance."""
        reserve = self._usable_reserve(asset)
        self._accrue(reserve)
        supply_token = self.store.supply_tokens[asset]
        user_scaled = supply_token.scaled_balance_of(caller)
        balance = ray_mul(user_scaled, reserve.liquidity_index)

        if amount == MAX_AMOUNT:
            amount = balance
        if amount <= 0:
            raise InvalidAmount("nothing to withdraw for user={0} asset={1}".format(caller, asset))
        if amount > balance:
            raise InsufficientBalance(
                "withdraw {0} exceeds balance {1} for user={2} asset={3}".format(amount, balance, caller, asset)
            )

        self.risk_engine.validate_withdraw(caller, asset, amount, self._now)
        if amount == balance:
            scaled = user_scaled
            supply_token.burn_scaled(caller, scaled)
        else:
            scaled = supply_token.burn(caller, amount, reserve.liquidity_index)
        reserve.record_withdraw(amount, scaled)
        reserve.refresh_rates()

        user_config = self.store.user_config(caller)
        if supply_token.scaled_balance_of(caller) == 0 and user_config.is_using_as_collateral(reserve.id):
            user_config.set_using_as_collateral(reserve.id, False)
            self._emit(ProtocolEventType.COLLATERAL_DISABLED, reserve, actor=caller, on_behalf_of=caller)

        recipient = to or caller
        self.vault.transfer_out(asset, recipient, amount)
        self._emit(
            ProtocolEventType.WITHDRAW,
            reserve,
            actor=caller,
            on_behalf_of=recipient,
            amount=amount,
        )
        self._emit_reserve_update(reserve)
        return amount

    @_mutating
    def borrow(
        self,
        caller: str,
        asset: str,
        amount: int,
        rate_mode: int = InterestRateMode.VARIABLE,
        on_behalf_of: Optional[str] = None,
    ) -> int:
        """Borrow against collateral; funds go to ``caller``.

        With ``on_behalf_of`` the debt lands on that account, which must have
        delegated enough borrowing allowance to ``caller``.
        """
        reserve = self._usable_reserve(asset)
        if reserve.is_frozen:
            raise ReserveFrozen("reserve {0} is frozen".format(asset))
        mode = _rate_mode(rate_mode)
        if amount <= 0 or amount == MAX_AMOUNT:
            raise InvalidAmount("borrow amount must be > 0")
        self._accrue(reserve)

        self._open_debt(caller, on_behalf_of or caller, reserve, amount, mode)
        self.vault.transfer_out(asset, caller, amount)
        self._emit_reserve_update(reserve)
        return amount

    @_mutating
    def repay(
        self,
        caller: str,
        asset: str,
        amount: int,
        rate_mode: int = InterestRateMode.VARIABLE,
        on_behalf_of: Optional[str] = None,
    ) -> int:
        """Repay debt; the amount pulled is capped at what is outstanding."""
        reserve = self._usable_reserve(asset)
        mode = _rate_mode(rate_mode)
        if amount <= 0:
            raise InvalidAmount("repay amount must be > 0")
        borrower = on_behalf_of or caller
        self._accrue(reserve)

        debt = self._debt_of(borrower, reserve, mode)
        if debt == 0:
            raise InvalidAmount("user={0} has no {1} debt in asset={2}".format(borrower, mode.name, asset))
        paid = min(amount, debt)

        self.vault.transfer_in(asset, caller, paid)
        self._burn_debt(borrower, reserve, paid, mode)
        reserve.refresh_rates()

        self._emit(
            ProtocolEventType.REPAY,
            reserve,
            actor=caller,
            on_behalf_of=borrower,
            amount=paid,
            rate_mode=int(mode),
            requested=str(amount) if amount != MAX_AMOUNT else "MAX",
        )
        self._emit_reserve_update(reserve)
        return paid

    @_mutating
    def liquidation_call(
        self,
        caller: str,
        collateral_asset: str,
        debt_asset: str,
        user: str,
        debt_to_cover: int,
        receive_claim: bool = False,
    ) -> LiquidationPlan:
        """Repay part of an unhealthy account's debt and seize its collateral at a bonus."""
        collateral_reserve = self._usable_reserve(collateral_asset)
        debt_reserve = self._usable_reserve(debt_asset)
        self._accrue(collateral_reserve)
        if debt_reserve is not collateral_reserve:
            self._accrue(debt_reserve)

        plan = self.risk_engine.compute_liquidation_amounts(
            collateral_asset, debt_asset, user, debt_to_cover, self._now
        )

        self.vault.transfer_in(debt_asset, caller, plan.debt_to_cover)
        variable_debt = self._debt_of(user, debt_reserve, InterestRateMode.VARIABLE)
        variable_part = min(plan.debt_to_cover, variable_debt)
        if variable_part > 0:
            self._burn_debt(user, debt_reserve, variable_part, InterestRateMode.VARIABLE)
        stable_part = plan.debt_to_cover - variable_part
        if stable_part > 0:
            self._burn_debt(user, debt_reserve, stable_part, InterestRateMode.STABLE)

        supply_token = self.store.supply_tokens[collateral_asset]
        user_scaled = supply_token.scaled_balance_of(user)
        seize = plan.collateral_to_seize
        if seize >= ray_mul(user_scaled, collateral_reserve.liquidity_index):
            seize_scaled = user_scaled
        else:
            seize_scaled = min(user_scaled, ray_div(seize, collateral_reserve.liquidity_index))

        if receive_claim:
            liquidator_first = supply_token.scaled_balance_of(caller) == 0
            supply_token.transfer_scaled(user, caller, seize_scaled)
            liquidator_config = self.store.user_config(caller)
            if liquidator_first and not liquidator_config.is_using_as_collateral(collateral_reserve.id):
                liquidator_config.set_using_as_collateral(collateral_reserve.id, True)
                self._emit(
                    ProtocolEventType.COLLATERAL_ENABLED, collateral_reserve, actor=caller, on_behalf_of=caller
                )
        else:
            supply_token.burn_scaled(user, seize_scaled)
            collateral_reserve.record_withdraw(seize, seize_scaled)
            self.vault.transfer_out(collateral_asset, caller, seize)

        user_config = self.store.user_config(user)
        if supply_token.scaled_balance_of(user) == 0:
            user_config.set_using_as_collateral(collateral_reserve.id, False)
            self._emit(ProtocolEventType.COLLATERAL_DISABLED, collateral_reserve, actor=caller, on_behalf_of=user)

        collateral_reserve.refresh_rates()
        debt_reserve.refresh_rates()
        logger.info(
            "Liquidation executed user=%s liquidator=%s debt_asset=%s covered=%s collateral_asset=%s seized=%s",
            user,
            caller,
            debt_asset,
            plan.debt_to_cover,
            collateral_asset,
            seize,
        )
        self._emit(
            ProtocolEventType.LIQUIDATION_CALL,
            debt_reserve,
            actor=caller,
            on_behalf_of=user,
            amount=plan.debt_to_cover,
            collateral_asset=collateral_asset,
            collateral_seized=str(seize),
            receive_claim=receive_claim,
            health_factor=str(plan.health_factor),
            close_factor_bps=plan.close_factor_bps,
        )
        self._emit_reserve_update(debt_reserve)
        if collateral_reserve is not debt_reserve:
            self._emit_reserve_update(collateral_reserve)
        return plan

    @_mutating
    def flash_loan(
        self,
        caller: str,
        receiver: FlashLoanReceiver,
        assets: Sequence[str],
        amounts: Sequence[int],
        modes: Optional[Sequence[int]] = None,
        on_behalf_of: Optional[str] = None,
        params: Optional[Any] = None,
    ) -> List[int]:
        """Lend ``amounts`` for the duration of one receiver callback.

        For ``modes[i] == 0`` the receiver must have approved principal plus
        premium to the pool's custodian; any other mode keeps the funds and
        opens debt of that mode for ``on_behalf_of`` (default ``caller``).
        Returns the premiums charged per asset.
        """
        assets = list(assets)
        amounts = list(amounts)
        modes = list(modes) if modes is not None else [InterestRateMode.NONE] * len(assets)
        if not assets or len(assets) != len(amounts) or len(assets) != len(modes):
            raise InvalidAmount("assets, amounts and modes must be non-empty and of equal length")
        if len(set(assets)) != len(assets):
            raise InvalidAmount("flash loan assets must be distinct")

        reserves = [self._usable_reserve(asset) for asset in assets]
        for asset, amount in zip(assets, amounts):
            if amount <= 0:
                raise InvalidAmount("flash loan amount for {0} must be > 0".format(asset))
        for reserve in reserves:
            self._accrue(reserve)

        premiums = [percent_mul(amount, self.flash_loan_premium_bps) for amount in amounts]
        for reserve, amount in zip(reserves, amounts):
            available = reserve.available_liquidity()
            if amount > available:
                raise InsufficientLiquidity(
                    "flash loan {0} exceeds available liquidity {1} asset={2}".format(
                        amount, available, reserve.asset
                    )
                )
            self.vault.transfer_out(reserve.asset, receiver.address, amount)

        succeeded = receiver.execute_operation(list(assets), list(amounts), list(premiums), caller, params)
        if not succeeded:
            raise FlashLoanNotRepaid("receiver {0} reported failure".format(receiver.address))

        borrower = on_behalf_of or caller
        for reserve, amount, premium, raw_mode in zip(reserves, amounts, premiums, modes):
            if int(raw_mode) == InterestRateMode.NONE:
                try:
                    self.vault.transfer_in(reserve.asset, receiver.address, amount + premium)
                except TransferFailed as exc:
                    raise FlashLoanNotRepaid(
                        "flash loan of {0} {1} plus premium {2} not returned".format(amount, reserve.asset, premium)
                    ) from exc
                reserve.cumulate_to_liquidity_index(premium)
                reserve.refresh_rates()
            else:
                self._open_debt(caller, borrower, reserve, amount, _rate_mode(raw_mode))
            self._emit(
                ProtocolEventType.FLASH_LOAN,
                reserve,
                actor=caller,
                on_behalf_of=receiver.address,
                amount=amount,
                premium=str(premium),
                mode=int(raw_mode),
            )
            self._emit_reserve_update(reserve)
        return premiums

    @_mutating
    def set_user_use_reserve_as_collateral(self, caller: str, asset: str, use_as_collateral: bool) -> None:
        """Opt a supplied reserve in or out of the caller's collateral set."""
        reserve = self._usable_reserve(asset)
        self._accrue(reserve)
        if self.store.supply_tokens[asset].scaled_balance_of(caller) == 0:
            raise InvalidAmount("user={0} has no supply in asset={1}".format(caller, asset))
        user_config = self.store.user_config(caller)
        if user_config.is_using_as_collateral(reserve.id) == use_as_collateral:
            return
        if not use_as_collateral:
            self.risk_engine.validate_disable_collateral(caller, asset, self._now)
        user_config.set_using_as_collateral(reserve.id, use_as_collateral)
        event_type = (
            ProtocolEventType.COLLATERAL_ENABLED if use_as_collateral else ProtocolEventType.COLLATERAL_DISABLED
        )
        self._emit(event_type, reserve, actor=caller, on_behalf_of=caller)

    @_mutating
    def approve_delegation(self, caller: str, asset: str, delegatee: str, amount: int) -> None:
        """Let ``delegatee`` open up to ``amount`` of debt on the caller's account."""
        self.store.get_reserve(asset)
        if amount < 0:
            raise InvalidAmount("delegation amount must be >= 0")
        self.store.set_borrow_allowance(asset, caller, delegatee, amount)
        logger.info("Borrow delegation set asset=%s delegator=%s delegatee=%s amount=%s", asset, caller, delegatee, amount)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @_mutating
    def add_reserve(self, actor: str, config: ReserveConfigModel) -> ReserveDataView:
        """Register a new asset pool."""
        self._authorize(actor, ProtocolAction.ADD_RESERVE)
        reserve = self.store.add_reserve(config, self._now)
        if config.is_native:
            self.vault.register_native(config.asset)
        self._emit(
            ProtocolEventType.RESERVE_INITIALIZED,
            reserve,
            actor=actor,
            reserve_id=reserve.id,
            decimals=config.decimals,
        )
        return reserve.to_view()

    @_mutating
    def configure_reserve_as_collateral(
        self,
        actor: str,
        asset: str,
        collateral_factor_bps: int,
        liquidation_threshold_bps: int,
        liquidation_bonus_bps: int,
        borrow_factor_bps: Optional[int] = None,
        max_utilization_bps: Optional[int] = None,
    ) -> ReserveDataView:
        """Update the risk parameters of an existing reserve."""
        self._authorize(actor, ProtocolAction.CONFIGURE_RESERVE)
        reserve = self._existing_reserve(asset)
        self._accrue(reserve)
        updates = {
            "collateral_factor_bps": collateral_factor_bps,
            "liquidation_threshold_bps": liquidation_threshold_bps,
            "liquidation_bonus_bps": liquidation_bonus_bps,
        }
        if borrow_factor_bps is not None:
            updates["borrow_factor_bps"] = borrow_factor_bps
        if max_utilization_bps is not None:
            updates["max_utilization_bps"] = max_utilization_bps
        self._reconfigure(reserve, updates)
        self._emit(ProtocolEventType.RESERVE_CONFIGURED, reserve, actor=actor, **updates)
        return reserve.to_view()

    @_mutating
    def set_interest_rate_params(
        self,
        actor: str,
        asset: str,
        base_rate_bps: int,
        kink_rate_bps: int,
        multiplier_bps: int,
        jump_multiplier_bps: Optional[int] = None,
        reserve_factor_bps: Optional[int] = None,
    ) -> ReserveDataView:
        """Replace the interest curve; interest up to now accrues at the old rates."""
        self._authorize(actor, ProtocolAction.CONFIGURE_RESERVE)
        reserve = self._existing_reserve(asset)
        self._accrue(reserve)
        updates = {
            "base_rate_bps": base_rate_bps,
            "kink_rate_bps": kink_rate_bps,
            "multiplier_bps": multiplier_bps,
            "jump_multiplier_bps": jump_multiplier_bps,
        }
        if reserve_factor_bps is not None:
            updates["reserve_factor_bps"] = reserve_factor_bps
        self._reconfigure(reserve, updates)
        reserve.refresh_rates()
        self._emit(ProtocolEventType.RESERVE_CONFIGURED, reserve, actor=actor, **updates)
        self._emit_reserve_update(reserve)
        return reserve.to_view()

    @_mutating
    def set_reserve_freeze(self, actor: str, asset: str, frozen: bool) -> None:
        self._authorize(actor, ProtocolAction.FREEZE_RESERVE)
        reserve = self._existing_reserve(asset)
        reserve.is_frozen = frozen
        self._emit(ProtocolEventType.RESERVE_CONFIGURED, reserve, actor=actor, is_frozen=frozen)

    @_mutating
    def set_reserve_pause(self, actor: str, asset: str, paused: bool) -> None:
        self._authorize(actor, ProtocolAction.PAUSE_RESERVE)
        reserve = self._existing_reserve(asset)
        reserve.is_paused = paused
        self._emit(ProtocolEventType.RESERVE_CONFIGURED, reserve, actor=actor, is_paused=paused)

    @_mutating
    def pause(self, actor: str) -> None:
        self._authorize(actor, ProtocolAction.PAUSE_PROTOCOL)
        self.store.paused = True
        self._emit(ProtocolEventType.PAUSED, None, actor=actor)

    @_mutating
    def unpause(self, actor: str) -> None:
        self._authorize(actor, ProtocolAction.PAUSE_PROTOCOL)
        self.store.paused = False
        self._emit(ProtocolEventType.UNPAUSED, None, actor=actor)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_user_account_data(self, user: str) -> UserAccountSnapshot:
        with self._lock:
            return self.risk_engine.get_account_snapshot(user, self._clock())

    def get_reserve_data(self, asset: str) -> ReserveDataView:
        with self._lock:
            return self._existing_reserve(asset).to_view()

    def get_reserve_normalized_income(self, asset: str) -> int:
        with self._lock:
            return self._existing_reserve(asset).normalized_income(self._clock())

    def get_reserve_normalized_variable_debt(self, asset: str) -> int:
        with self._lock:
            return self._existing_reserve(asset).normalized_variable_debt(self._clock())

    def get_user_reserve_data(self, user: str, asset: str) -> UserReserveView:
        with self._lock:
            now = self._clock()
            reserve = self._existing_reserve(asset)
            balances = self.risk_engine.reserve_balances(user, asset, now)
            return UserReserveView(
                user=user,
                asset=asset,
                scaled_supply_balance=self.store.supply_tokens[asset].scaled_balance_of(user),
                supply_balance=balances.supplied,
                scaled_variable_debt=self.store.variable_debt_tokens[asset].scaled_balance_of(user),
                variable_debt=balances.variable_debt,
                stable_debt=balances.stable_debt,
                stable_rate=self.store.stable_debt_tokens[asset].user_rate(user),
                usage_as_collateral_enabled=balances.used_as_collateral,
            )

    def list_reserves(self) -> List[ReserveDataView]:
        with self._lock:
            return [reserve.to_view() for reserve in self.store.reserves.values()]

    def list_users(self) -> List[str]:
        with self._lock:
            return self.store.users()

    def events(self, since: int = 0) -> List[ProtocolEventModel]:
        """Events with ``sequence > since`` in emission order."""
        with self._lock:
            return [event for event in self.store.events if event.sequence > since]

    def subscribe(self, subscriber: EventSubscriber) -> None:
        """Receive every committed event after its operation completes."""
        self._subscribers.append(subscriber)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _authorize(self, actor: str, action: ProtocolAction) -> None:
        if not self._is_authorized(actor, action):
            logger.warning("Unauthorized admin action actor=%s action=%s", actor, action.value)
            raise Unauthorized("{0} may not perform {1}".format(actor, action.value))

    def _existing_reserve(self, asset: str) -> ReserveLedger:
        return self.store.get_reserve(asset)

    def _usable_reserve(self, asset: str) -> ReserveLedger:
        if self.store.paused:
            raise ProtocolPaused("protocol is paused")
        reserve = self.store.get_reserve(asset)
        if reserve.is_paused:
            raise ProtocolPaused("reserve {0} is paused".format(asset))
        return reserve

    def _accrue(self, reserve: ReserveLedger) -> None:
        result = reserve.accrue(self._now)
        if result.treasury_scaled > 0:
            self.store.supply_tokens[reserve.asset].mint_scaled(self.treasury, result.treasury_scaled)

    def _reconfigure(self, reserve: ReserveLedger, updates: dict) -> None:
        payload = reserve.config.model_dump()
        payload.update(updates)
        try:
            config = ReserveConfigModel.from_dict(payload)
        except ModelValidationError as exc:
            raise InvalidAmount("invalid reserve configuration for {0}: {1}".format(reserve.asset, exc)) from exc
        reserve.apply_config(config)

    def _debt_of(self, user: str, reserve: ReserveLedger, mode: InterestRateMode) -> int:
        if mode == InterestRateMode.STABLE:
            return self.store.stable_debt_tokens[reserve.asset].balance_of(user, self._now)
        return self.store.variable_debt_tokens[reserve.asset].balance_of_underlying(
            user, reserve.variable_borrow_index
        )

    def _open_debt(
        self,
        caller: str,
        borrower: str,
        reserve: ReserveLedger,
        amount: int,
        mode: InterestRateMode,
    ) -> None:
        """Validate and book new debt; the caller moves the funds."""
        asset = reserve.asset
        if not reserve.config.borrowing_enabled:
            raise BorrowingNotEnabled("borrowing disabled for asset={0}".format(asset))
        if mode == InterestRateMode.STABLE and not reserve.config.stable_borrowing_enabled:
            raise BorrowingNotEnabled("stable borrowing disabled for asset={0}".format(asset))
        if borrower != caller:
            allowance = self.store.borrow_allowance(asset, borrower, caller)
            if allowance < amount:
                raise Unauthorized(
                    "borrow allowance {0} from {1} to {2} is below {3}".format(allowance, borrower, caller, amount)
                )
            self.store.set_borrow_allowance(asset, borrower, caller, allowance - amount)

        self.risk_engine.validate_borrow(borrower, asset, amount, self._now)
        if mode == InterestRateMode.STABLE:
            rate = reserve.current_stable_borrow_rate
            reserve.record_stable_borrow(amount, rate)
            self.store.stable_debt_tokens[asset].mint(borrower, amount, rate, self._now)
            borrow_rate = rate
        else:
            reserve.record_borrow(amount)
            self.store.variable_debt_tokens[asset].mint(borrower, amount, reserve.variable_borrow_index)
            borrow_rate = reserve.current_variable_borrow_rate
        self.store.user_config(borrower).set_borrowing(reserve.id, True)
        reserve.refresh_rates()
        self._emit(
            ProtocolEventType.BORROW,
            reserve,
            actor=caller,
            on_behalf_of=borrower,
            amount=amount,
            rate_mode=int(mode),
            borrow_rate=str(borrow_rate),
        )

    def _burn_debt(self, borrower: str, reserve: ReserveLedger, amount: int, mode: InterestRateMode) -> None:
        asset = reserve.asset
        if mode == InterestRateMode.STABLE:
            stable_token = self.store.stable_debt_tokens[asset]
            user_rate = stable_token.user_rate(borrower)
            stable_token.burn(borrower, amount, self._now)
            reserve.record_stable_repay(amount, user_rate)
        else:
            debt_token = self.store.variable_debt_tokens[asset]
            user_scaled = debt_token.scaled_balance_of(borrower)
            if amount >= ray_mul(user_scaled, reserve.variable_borrow_index):
                debt_token.burn_scaled(borrower, user_scaled)
                reserve.record_repay(amount, user_scaled)
            else:
                scaled = debt_token.burn(borrower, amount, reserve.variable_borrow_index)
                reserve.record_repay(amount, scaled)

        remaining = self.store.variable_debt_tokens[asset].scaled_balance_of(
            borrower
        ) + self.store.stable_debt_tokens[asset].principal_of(borrower)
        if remaining == 0:
            self.store.user_config(borrower).set_borrowing(reserve.id, False)

    def _emit(
        self,
        event_type: ProtocolEventType,
        reserve: Optional[ReserveLedger],
        actor: Optional[str] = None,
        on_behalf_of: Optional[str] = None,
        amount: int = 0,
        **details: Any,
    ) -> ProtocolEventModel:
        event = ProtocolEventModel(
            sequence=len(self.store.events) + 1,
            event_type=event_type,
            timestamp=self._now,
            asset=reserve.asset if reserve is not None else None,
            actor=actor,
            on_behalf_of=on_behalf_of,
            amount=amount,
            liquidity_index=reserve.liquidity_index if reserve is not None else None,
            variable_borrow_index=reserve.variable_borrow_index if reserve is not None else None,
            details=details,
        )
        self.store.events.append(event)
        logger.info(
            "Event seq=%s type=%s asset=%s actor=%s on_behalf_of=%s amount=%s",
            event.sequence,
            event_type.value,
            event.asset,
            actor,
            on_behalf_of,
            amount,
        )
        return event

    def _emit_reserve_update(self, reserve: ReserveLedger) -> None:
        self._emit(
            ProtocolEventType.RESERVE_DATA_UPDATED,
            reserve,
            liquidity_rate=str(reserve.current_liquidity_rate),
            variable_borrow_rate=str(reserve.current_variable_borrow_rate),
            stable_borrow_rate=str(reserve.current_stable_borrow_rate),
            utilization=str(reserve.utilization),
        )

    def _notify(self, events: List[ProtocolEventModel]) -> None:
        for event in events:
            for subscriber in list(self._subscribers):
                try:
                    subscriber(event)
                except Exception:
                    logger.exception("Event subscriber failed for event seq=%s", event.sequence)
