# lawnly/schemas/common.py
"""Response shapes shared by every router."""

from typing import Any, Dict, Optional

from pydantic import BaseModel

from ..events.side_effects import OperationResult


class OperationResponse(BaseModel):
    """Outcome of a state-changing operation; side effects stay server-side."""

    success: bool
    message: Optional[str] = None
    booking_id: Optional[str] = None
    data: Dict[str, Any] = {}

    @classmethod
    def from_result(cls, result: OperationResult) -> "OperationResponse":
        return cls(
            success=result.success,
            message=result.message,
            booking_id=result.booking_id,
            data=dict(result.data),
        )
