"""Wire the lending protocol components from application settings."""

from dataclasses import dataclass
import logging

from common.protocol_constants import human_to_raw_price
from core.config import AppSettings
from models.exceptions import ModelValidationError
from models.reserves import ReserveConfigModel
from services.ledger_store import LedgerStore
from services.asset_vault import AssetVault
from services.lending_pool import LendingPool, admin_authorizer
from services.price_oracle import Clock, ManualPriceFeed, PriceOracle, system_clock
from services.risk_engine import RiskEngine


logger = logging.getLogger(__name__)


@dataclass
class ProtocolContext:
    """Handles to every long-lived protocol component."""

    settings: AppSettings
    store: LedgerStore
    price_feed: ManualPriceFeed
    oracle: PriceOracle
    vault: AssetVault
    risk_engine: RiskEngine
    pool: LendingPool


def build_protocol(settings: AppSettings, clock: Clock = system_clock) -> ProtocolContext:
    """Create a pool with the configured reserves and initial prices.

    Raises:
        ModelValidationError: A configured reserve fails validation.
    """
    store = LedgerStore()
    price_feed = ManualPriceFeed(clock=clock)
    oracle = PriceOracle(
        default_source=price_feed,
        clock=clock,
        staleness_window_sec=settings.oracle_staleness_window_sec,
        heartbeat_sec=settings.oracle_heartbeat_sec,
        deviation_threshold_bps=settings.oracle_deviation_threshold_bps,
    )
    vault = AssetVault(custodian=settings.custodian_account)
    risk_engine = RiskEngine(
        store,
        oracle,
        severe_health_factor=settings.severe_health_factor,
        health_warning_band=settings.health_warning_band,
        close_factor_bps=settings.close_factor_bps,
    )
    pool = LendingPool(
        store,
        oracle,
        vault,
        clock=clock,
        risk_engine=risk_engine,
        is_authorized=admin_authorizer(settings.admin_accounts),
        treasury=settings.treasury_account,
        flash_loan_premium_bps=settings.flash_loan_premium_bps,
    )

    if settings.reserves and not settings.admin_accounts:
        logger.warning("Reserves configured but no admin account; skipping reserve setup.")
    elif settings.reserves:
        admin = settings.admin_accounts[0]
        for entry in settings.reserves:
            try:
                config = ReserveConfigModel.from_dict(entry)
            except ModelValidationError:
                logger.exception("Invalid reserve configuration entry=%s", entry)
                raise
            pool.add_reserve(admin, config)

    for asset, price in settings.initial_prices.items():
        price_feed.set_price(asset, human_to_raw_price(price))

    logger.info(
        "Protocol initialized reserves=%d prices=%d",
        len(store.reserves),
        len(settings.initial_prices),
    )
    return ProtocolContext(
        settings=settings,
        store=store,
        price_feed=price_feed,
        oracle=oracle,
        vault=vault,
        risk_engine=risk_engine,
        pool=pool,
    )
