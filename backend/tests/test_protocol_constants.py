"""Unit tests for protocol constants and display conversions."""

from __future__ import annotations

import math
import sys
import unittest
from pathlib import Path

# Ensure backend is importable
_BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from common.protocol_constants import (
    FLASH_LOAN_PREMIUM_BPS,
    HEALTH_FACTOR_LIQUIDATION_THRESHOLD,
    LIQUIDATION_CLOSE_FACTOR_BPS,
    MAX_AMOUNT,
    MAX_UINT256,
    RAY,
    SECONDS_PER_YEAR,
    WAD,
    bps_to_ray,
    human_to_raw_price,
    human_to_ray,
    rate_to_apy,
    raw_to_human_hf,
    raw_to_human_value,
    utilization_percent,
)


class TestConstants(unittest.TestCase):
    """Verify scaling factors and protocol defaults."""

    def test_scales(self) -> None:
        self.assertEqual(WAD, 10**18)
        self.assertEqual(RAY, 10**27)
        self.assertEqual(SECONDS_PER_YEAR, 31_536_000)

    def test_liquidation_defaults(self) -> None:
        self.assertEqual(HEALTH_FACTOR_LIQUIDATION_THRESHOLD, RAY)
        self.assertEqual(LIQUIDATION_CLOSE_FACTOR_BPS, 5000)
        self.assertEqual(FLASH_LOAN_PREMIUM_BPS, 9)

    def test_max_amount_is_uint256_max(self) -> None:
        self.assertEqual(MAX_AMOUNT, MAX_UINT256)


class TestConversions(unittest.TestCase):
    """Verify decimal conversions."""

    def test_bps_to_ray(self) -> None:
        self.assertEqual(bps_to_ray(500), 5 * 10**25)
        self.assertEqual(bps_to_ray(10_000), RAY)

    def test_human_to_ray(self) -> None:
        self.assertEqual(human_to_ray(0.85), 85 * 10**25)
        self.assertEqual(human_to_ray(1.1), 11 * 10**26)

    def test_raw_to_human_hf(self) -> None:
        self.assertAlmostEqual(raw_to_human_hf(19 * 10**26), 1.9)
        self.assertTrue(math.isinf(raw_to_human_hf(MAX_UINT256)))

    def test_price_conversions(self) -> None:
        # $2000 per token in WAD
        self.assertEqual(human_to_raw_price(2000.0), 2000 * WAD)
        self.assertEqual(human_to_raw_price(0.99995), 99_995 * 10**13)
        self.assertAlmostEqual(raw_to_human_value(1600 * WAD), 1600.0)


class TestDisplayHelpers(unittest.TestCase):
    """Dashboard helpers."""

    def test_apy_of_five_percent_rate(self) -> None:
        self.assertAlmostEqual(rate_to_apy(bps_to_ray(500)), 5.127, places=2)

    def test_zero_rate_has_zero_apy(self) -> None:
        self.assertEqual(rate_to_apy(0), 0.0)

    def test_utilization_percent(self) -> None:
        self.assertEqual(utilization_percent(600, 1_000), 60.0)
        self.assertEqual(utilization_percent(1, 3), 33.33)
        self.assertEqual(utilization_percent(5, 0), 0.0)


if __name__ == "__main__":
    unittest.main()
