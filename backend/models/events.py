"""Protocol event model used for observability and ledger reconstruction."""

from typing import Any, Dict, Optional

from pydantic import Field

from .base import Amount, BaseDomainModel, Ray
from .enums import ProtocolEventType


class ProtocolEventModel(BaseDomainModel):
    """One state mutation, in emission order."""

    sequence: int = Field(..., ge=1)
    event_type: ProtocolEventType = Field(...)
    timestamp: int = Field(..., ge=0)

    asset: Optional[str] = Field(default=None)
    actor: Optional[str] = Field(default=None)
    on_behalf_of: Optional[str] = Field(default=None)
    amount: Amount = Field(default=0, ge=0)

    liquidity_index: Optional[Ray] = Field(default=None, ge=0)
    variable_borrow_index: Optional[Ray] = Field(default=None, ge=0)
    details: Dict[str, Any] = Field(default_factory=dict)
