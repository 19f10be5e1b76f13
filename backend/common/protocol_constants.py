"""Canonical protocol constants and display conversions.

Scaling conventions used across the ledger:

    amounts          integer units of the asset (``10 ** decimals`` per token)
    prices / values  WAD-scaled (1e18) USD
    indices / rates  RAY-scaled (1e27); rates are annualized
    risk parameters  basis points (10_000 == 100 %)
    health factor    RAY-scaled, ``MAX_UINT256`` when there is no debt
"""

from __future__ import annotations

import math

# ---------------------------------------------------------------------------
# Fixed-point scaling factors
# ---------------------------------------------------------------------------
WAD: int = 10**18
HALF_WAD: int = WAD // 2
RAY: int = 10**27
HALF_RAY: int = RAY // 2
WAD_RAY_RATIO: int = 10**9

PERCENTAGE_FACTOR: int = 10_000
HALF_PERCENTAGE_FACTOR: int = PERCENTAGE_FACTOR // 2

MAX_UINT256: int = 2**256 - 1

SECONDS_PER_YEAR: int = 365 * 24 * 60 * 60

# ---------------------------------------------------------------------------
# Protocol risk parameters  (basis points unless stated)
# ---------------------------------------------------------------------------
HEALTH_FACTOR_LIQUIDATION_THRESHOLD: int = RAY  # 1.0
LIQUIDATION_CLOSE_FACTOR_BPS: int = 5_000  # 50 %
DEFAULT_SEVERE_HEALTH_FACTOR: float = 0.85
DEFAULT_HEALTH_WARNING_BAND: float = 1.1
FLASH_LOAN_PREMIUM_BPS: int = 9  # 0.09 %

# Sentinel meaning "the caller's full balance" for withdraw / repay.
MAX_AMOUNT: int = MAX_UINT256

# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------

def bps_to_ray(bps: int) -> int:
    """Convert a basis-point quantity into a RAY-scaled fraction.

    Example:  500  ->  0.05e27
    """
    return int(bps) * RAY // PERCENTAGE_FACTOR


def human_to_ray(value: float) -> int:
    """Convert a human-readable ratio (for example ``0.85``) into RAY scale."""
    return int(round(value * PERCENTAGE_FACTOR)) * RAY // PERCENTAGE_FACTOR


def raw_to_human_hf(raw_hf: int) -> float:
    """Convert a RAY-scaled health factor to a human-readable float.

    Returns ``math.inf`` for the ``MAX_UINT256`` no-debt sentinel.
    """
    if raw_hf >= MAX_UINT256:
        return math.inf
    return raw_hf / RAY


def raw_to_human_value(raw_value: int) -> float:
    """Convert a WAD-scaled USD value or price into a float."""
    return raw_value / WAD


def human_to_raw_price(human_price: float) -> int:
    """Convert a human-readable USD price to an 18-decimal integer."""
    return int(round(human_price * 10**8)) * 10**10


def rate_to_apy(rate_ray: int) -> float:
    """Annual percentage yield for an annualized RAY rate compounded per second.

    Mirrors the dashboard formula ``((1 + r/secs) ** secs - 1) * 100``.
    """
    per_second = (rate_ray / RAY) / SECONDS_PER_YEAR
    return (math.pow(1.0 + per_second, SECONDS_PER_YEAR) - 1.0) * 100.0


def utilization_percent(total_debt: int, total_supplied: int) -> float:
    """Utilization in percent with two decimals of integer precision."""
    if total_supplied == 0:
        return 0.0
    return ((total_debt * PERCENTAGE_FACTOR) // total_supplied) / 100
