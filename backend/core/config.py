"""Configuration loading utilities for YAML-based application settings."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .logging_config import get_logger


logger = get_logger(__name__)
_BASE_DIR = Path(__file__).resolve().parent
_CONFIG_PATH = _BASE_DIR / "config.yml"


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from YAML configuration file."""

    app_name: str
    debug: bool
    host: str
    port: int
    cors_origins: List[str]
    admin_accounts: List[str]
    treasury_account: str
    custodian_account: str
    flash_loan_premium_bps: int
    close_factor_bps: int
    severe_health_factor: float
    health_warning_band: float
    oracle_staleness_window_sec: int
    oracle_heartbeat_sec: int
    oracle_deviation_threshold_bps: int
    liquidator_enabled: bool
    liquidator_auto_execute: bool
    liquidator_address: Optional[str]
    liquidator_poll_interval_sec: int
    liquidator_borrowers: List[str]
    reserves: List[Dict[str, Any]] = field(default_factory=list)
    initial_prices: Dict[str, float] = field(default_factory=dict)


def _to_bool(value: Any, default: bool = False) -> bool:
    """Convert value to bool with a default fallback."""
    try:
        if isinstance(value, bool):
            return value
        return value.strip().lower() in {"1", "true", "yes", "on"}
    except (AttributeError, ValueError):
        logger.warning("Invalid boolean value '%s'. Using default=%s", value, default)
        return default


def _to_int(value: Any, default: int) -> int:
    """Convert value to int with a default fallback."""
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer value '%s'. Using default=%s", value, default)
        return default


def _to_float(value: Any, default: float) -> float:
    """Convert value to float with a default fallback."""
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid float value '%s'. Using default=%s", value, default)
        return default


def _to_list(value: Any) -> List[str]:
    """Convert list-like or comma-separated value to list[str]."""
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]


def _to_reserve_list(value: Any) -> List[Dict[str, Any]]:
    """Keep mapping entries of the reserve list; validation happens at pool setup."""
    if not isinstance(value, list):
        if value is not None:
            logger.warning("Invalid reserves section '%s'. Expected a list.", value)
        return []
    reserves = []
    for entry in value:
        if isinstance(entry, dict):
            reserves.append(dict(entry))
        else:
            logger.warning("Skipping malformed reserve entry '%s'.", entry)
    return reserves


def _to_price_map(value: Any) -> Dict[str, float]:
    """Convert ``{asset: usd_price}`` mapping, dropping unparsable prices."""
    if not isinstance(value, dict):
        return {}
    prices = {}
    for asset, price in value.items():
        parsed = _to_float(price, -1.0)
        if parsed > 0:
            prices[str(asset)] = parsed
    return prices


def _read_config(path: Optional[Union[str, Path]] = None) -> dict:
    """Read and parse YAML configuration."""
    config_path = Path(path) if path is not None else _CONFIG_PATH
    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            config_data = yaml.safe_load(config_file) or {}
        logger.info("Configuration loaded from %s", config_path)
        return config_data
    except FileNotFoundError:
        logger.warning("Config file not found at %s. Falling back to defaults.", config_path)
        return {}
    except Exception:
        logger.exception("Failed to load config file from %s", config_path)
        return {}


def get_env(key: str, default: Optional[str] = None, path: Optional[Union[str, Path]] = None) -> Optional[str]:
    """Read one config value using dot-notation keys."""
    try:
        data = _read_config(path)
        current: Any = data
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        if current is None:
            return default
        return str(current)
    except Exception:
        logger.exception("Failed to read config key '%s'.", key)
        return default


def load_settings(path: Optional[Union[str, Path]] = None) -> AppSettings:
    """Load and validate application settings from `config.yml` (or ``path``)."""
    config = _read_config(path)
    app_cfg = config.get("app", {}) or {}
    protocol_cfg = config.get("protocol", {}) or {}
    oracle_cfg = config.get("oracle", {}) or {}
    liquidator_cfg = config.get("liquidator", {}) or {}

    return AppSettings(
        app_name=str(app_cfg.get("name", "Reserve Lending API")),
        debug=_to_bool(app_cfg.get("debug", False), False),
        host=str(app_cfg.get("host", "127.0.0.1")),
        port=_to_int(app_cfg.get("port", 8000), 8000),
        cors_origins=_to_list(app_cfg.get("cors_origins", ["http://localhost:4200"])),
        admin_accounts=_to_list(protocol_cfg.get("admin_accounts", ["admin"])),
        treasury_account=str(protocol_cfg.get("treasury", "treasury")),
        custodian_account=str(protocol_cfg.get("custodian", "lending_pool")),
        flash_loan_premium_bps=_to_int(protocol_cfg.get("flash_loan_premium_bps", 9), 9),
        close_factor_bps=_to_int(protocol_cfg.get("close_factor_bps", 5000), 5000),
        severe_health_factor=_to_float(protocol_cfg.get("severe_health_factor", 0.85), 0.85),
        health_warning_band=_to_float(protocol_cfg.get("health_warning_band", 1.1), 1.1),
        oracle_staleness_window_sec=_to_int(oracle_cfg.get("staleness_window_sec", 3600), 3600),
        oracle_heartbeat_sec=_to_int(oracle_cfg.get("heartbeat_sec", 3600), 3600),
        oracle_deviation_threshold_bps=_to_int(oracle_cfg.get("deviation_threshold_bps", 1000), 1000),
        liquidator_enabled=_to_bool(liquidator_cfg.get("enabled", False), False),
        liquidator_auto_execute=_to_bool(liquidator_cfg.get("auto_execute", False), False),
        liquidator_address=liquidator_cfg.get("address"),
        liquidator_poll_interval_sec=_to_int(liquidator_cfg.get("poll_interval_sec", 10), 10),
        liquidator_borrowers=_to_list(liquidator_cfg.get("borrowers", [])),
        reserves=_to_reserve_list(config.get("reserves", [])),
        initial_prices=_to_price_map(config.get("prices", {})),
    )
