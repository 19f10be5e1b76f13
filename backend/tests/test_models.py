"""Unit tests for reserve configuration, event and view models."""

import sys
import unittest
from pathlib import Path

from pydantic import ValidationError

# Ensure backend is importable
_BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from models.accounts import UserAccountSnapshot
from models.enums import PositionStatus, ProtocolEventType
from models.events import ProtocolEventModel
from models.exceptions import (
    CloseFactorExceeded,
    HealthFactorTooLow,
    InvalidAmount,
    LendingError,
    ModelValidationError,
)
from models.reserves import ReserveConfigModel


class ModelValidationTests(unittest.TestCase):
    """Test model happy paths and business rules."""

    def test_reserve_config_happy_path(self) -> None:
        """Create a valid reserve config with defaults."""
        config = ReserveConfigModel(asset="WETH", symbol=" weth ", decimals=18)
        self.assertEqual(config.symbol, "WETH")
        self.assertEqual(config.collateral_factor_bps, 8000)
        self.assertEqual(config.liquidation_threshold_bps, 8500)
        self.assertTrue(config.borrowing_enabled)

    def test_threshold_below_collateral_factor_is_rejected(self) -> None:
        """Reject invalid threshold relationships."""
        with self.assertRaises(ValidationError):
            ReserveConfigModel(asset="DAI", collateral_factor_bps=9000, liquidation_threshold_bps=8500)

    def test_threshold_with_bonus_must_fit_in_collateral(self) -> None:
        """A liquidation must never seize more than the collateral backing the threshold."""
        with self.assertRaises(ValidationError):
            ReserveConfigModel(
                asset="DAI",
                collateral_factor_bps=9000,
                liquidation_threshold_bps=9500,
                liquidation_bonus_bps=600,
            )
        config = ReserveConfigModel(
            asset="DAI",
            collateral_factor_bps=9000,
            liquidation_threshold_bps=9500,
            liquidation_bonus_bps=500,
        )
        self.assertEqual(config.liquidation_bonus_bps, 500)

    def test_out_of_range_bps_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            ReserveConfigModel(asset="DAI", reserve_factor_bps=10_001)
        with self.assertRaises(ValidationError):
            ReserveConfigModel(asset="DAI", kink_rate_bps=0)

    def test_jump_multiplier_defaults_to_multiplier(self) -> None:
        config = ReserveConfigModel(asset="DAI", multiplier_bps=400)
        self.assertEqual(config.effective_jump_multiplier_bps, 400)
        config = ReserveConfigModel(asset="DAI", multiplier_bps=400, jump_multiplier_bps=7500)
        self.assertEqual(config.effective_jump_multiplier_bps, 7500)

    def test_from_dict_wraps_validation_errors(self) -> None:
        """Translate pydantic failures into the model-layer exception."""
        config = ReserveConfigModel.from_dict({"asset": "USDC", "decimals": 6})
        self.assertEqual(config.decimals, 6)
        with self.assertRaises(ModelValidationError):
            ReserveConfigModel.from_dict({"asset": "USDC", "decimals": -1})

    def test_to_dict_excludes_unset_optionals(self) -> None:
        payload = ReserveConfigModel(asset="USDC").to_dict()
        self.assertNotIn("symbol", payload)
        self.assertNotIn("jump_multiplier_bps", payload)
        self.assertEqual(payload["asset"], "USDC")


class EventAndViewModelTests(unittest.TestCase):
    """Event records and account snapshots."""

    def test_protocol_event_defaults(self) -> None:
        event = ProtocolEventModel(sequence=1, event_type=ProtocolEventType.DEPOSIT, timestamp=10, asset="DAI")
        self.assertEqual(event.amount, 0)
        self.assertEqual(event.details, {})
        self.assertEqual(event.to_dict()["event_type"], ProtocolEventType.DEPOSIT)

    def test_protocol_event_sequence_starts_at_one(self) -> None:
        with self.assertRaises(ValidationError):
            ProtocolEventModel(sequence=0, event_type=ProtocolEventType.BORROW, timestamp=0)

    def test_account_snapshot_rejects_negative_values(self) -> None:
        snapshot = UserAccountSnapshot(user="alice", health_factor=10**27)
        self.assertEqual(snapshot.status, PositionStatus.HEALTHY)
        with self.assertRaises(ValidationError):
            UserAccountSnapshot(user="alice", total_debt_value=-1, health_factor=0)


class ExceptionHierarchyTests(unittest.TestCase):
    """Error codes surfaced to API callers."""

    def test_close_factor_exceeded_is_an_invalid_amount(self) -> None:
        self.assertTrue(issubclass(CloseFactorExceeded, InvalidAmount))
        self.assertEqual(CloseFactorExceeded.code, "CLOSE_FACTOR_EXCEEDED")

    def test_codes_are_distinct(self) -> None:
        codes = {cls.code for cls in LendingError.__subclasses__()}
        self.assertEqual(len(codes), len(LendingError.__subclasses__()))
        self.assertIn(HealthFactorTooLow.code, codes)


if __name__ == "__main__":
    unittest.main()
