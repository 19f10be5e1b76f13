"""Common reusable utility exports."""

from .fixed_point import (
    compounded_interest,
    mul_div,
    percent_div,
    percent_mul,
    ray_div,
    ray_mul,
    ray_pow,
    wad_div,
    wad_mul,
)
from .interest_rate_model import InterestRateModel, InterestRateParams, RateSnapshot

__all__ = [
    "compounded_interest",
    "mul_div",
    "percent_div",
    "percent_mul",
    "ray_div",
    "ray_mul",
    "ray_pow",
    "wad_div",
    "wad_mul",
    "InterestRateModel",
    "InterestRateParams",
    "RateSnapshot",
]
