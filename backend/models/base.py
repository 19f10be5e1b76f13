"""Shared base models and common type aliases."""

import logging
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict

from .exceptions import ModelValidationError


logger = logging.getLogger(__name__)

Amount = int
PercentageBps = int
Ray = int
Wad = int


class BaseDomainModel(BaseModel):
    """Base schema for ledger configuration, events and read views."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=False,
    )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize model into a plain dictionary.

        Returns:
            Dict[str, Any]: Serialized model payload.

        Raises:
            ModelValidationError: If serialization fails.
        """
        try:
            return self.model_dump(exclude_none=True)
        except Exception as exc:
            logger.exception("Failed to serialize %s", self.__class__.__name__)
            raise ModelValidationError(str(exc))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BaseDomainModel":
        """Create model instance from a plain dictionary.

        Args:
            data: Raw payload, for example a ``config.yml`` section.

        Returns:
            BaseDomainModel: Typed domain instance.

        Raises:
            ModelValidationError: If payload parsing fails.
        """
        try:
            return cls(**dict(data))
        except Exception as exc:
            logger.exception("Failed to parse payload for %s", cls.__name__)
            raise ModelValidationError(str(exc))
