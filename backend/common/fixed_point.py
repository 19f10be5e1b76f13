"""Deterministic fixed-point arithmetic for WAD (1e18) and RAY (1e27) scales.

All operations use half-up rounding (add half the divisor before the integer
division) and work on the unsigned range ``[0, 2**256 - 1]``. Overflow is
detected *before* the multiplication is carried out, so a result is either
exact-with-rounding or an ``ArithmeticOverflow`` is raised; nothing wraps or
saturates.
"""

from __future__ import annotations

from models.exceptions import ArithmeticOverflow

from .protocol_constants import (
    HALF_PERCENTAGE_FACTOR,
    HALF_RAY,
    HALF_WAD,
    MAX_UINT256,
    PERCENTAGE_FACTOR,
    RAY,
    SECONDS_PER_YEAR,
    WAD,
    WAD_RAY_RATIO,
)


def _require_unsigned(*values: int) -> None:
    for value in values:
        if value < 0 or value > MAX_UINT256:
            raise ArithmeticOverflow("operand out of unsigned range: {0}".format(value))


def _mul_half_up(a: int, b: int, unit: int, half_unit: int) -> int:
    _require_unsigned(a, b)
    if b != 0 and a > (MAX_UINT256 - half_unit) // b:
        raise ArithmeticOverflow("multiplication overflow")
    return (a * b + half_unit) // unit


def _div_half_up(a: int, b: int, unit: int) -> int:
    _require_unsigned(a, b)
    if b == 0:
        raise ArithmeticOverflow("division by zero")
    half_b = b // 2
    if a > (MAX_UINT256 - half_b) // unit:
        raise ArithmeticOverflow("division overflow")
    return (a * unit + half_b) // b


def wad_mul(a: int, b: int) -> int:
    return _mul_half_up(a, b, WAD, HALF_WAD)


def wad_div(a: int, b: int) -> int:
    return _div_half_up(a, b, WAD)


def ray_mul(a: int, b: int) -> int:
    return _mul_half_up(a, b, RAY, HALF_RAY)


def ray_div(a: int, b: int) -> int:
    return _div_half_up(a, b, RAY)


def percent_mul(amount: int, bps: int) -> int:
    """Return ``amount * bps / 10_000`` rounded half up (percentOf)."""
    return _mul_half_up(amount, bps, PERCENTAGE_FACTOR, HALF_PERCENTAGE_FACTOR)


def percent_div(amount: int, bps: int) -> int:
    """Return ``amount * 10_000 / bps`` rounded half up."""
    return _div_half_up(amount, bps, PERCENTAGE_FACTOR)


def mul_div(a: int, b: int, denominator: int) -> int:
    """Return ``a * b / denominator`` rounded half up, overflow-checked."""
    _require_unsigned(a, b, denominator)
    if denominator == 0:
        raise ArithmeticOverflow("division by zero")
    half = denominator // 2
    if b != 0 and a > (MAX_UINT256 - half) // b:
        raise ArithmeticOverflow("multiplication overflow")
    return (a * b + half) // denominator


def wad_to_ray(a: int) -> int:
    _require_unsigned(a)
    if a > MAX_UINT256 // WAD_RAY_RATIO:
        raise ArithmeticOverflow("wad_to_ray overflow")
    return a * WAD_RAY_RATIO


def ray_to_wad(a: int) -> int:
    _require_unsigned(a)
    return (a + WAD_RAY_RATIO // 2) // WAD_RAY_RATIO


def ray_pow(base: int, exponent: int) -> int:
    """Raise a RAY value to an integer power by exponentiation by squaring.

    Every squaring and accumulation goes through :func:`ray_mul`, so the
    result is bit-for-bit reproducible across implementations that share the
    same half-up rounding.
    """
    _require_unsigned(base, exponent)
    result = base if exponent % 2 != 0 else RAY
    exponent //= 2
    while exponent:
        base = ray_mul(base, base)
        if exponent % 2 != 0:
            result = ray_mul(result, base)
        exponent //= 2
    return result


def compounded_interest(annual_rate: int, elapsed_seconds: int) -> int:
    """Growth factor (RAY) of an annual RAY rate compounded every second."""
    if elapsed_seconds == 0:
        return RAY
    per_second = annual_rate // SECONDS_PER_YEAR
    return ray_pow(RAY + per_second, elapsed_seconds)


def min_value(a: int, b: int) -> int:
    return a if a <= b else b


def max_value(a: int, b: int) -> int:
    return a if a >= b else b
