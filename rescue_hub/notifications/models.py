from pydantic import BaseModel
from typing import Optional

NOTIFICATION_TYPES = ("new_emergency", "volunteer_assigned", "status_update", "emergency_resolved")


class DispatchResult(BaseModel):
    """Outcome of one push dispatch, counted per device token."""
    success_count: int = 0
    failure_count: int = 0
    error: Optional[str] = None

    def __add__(self, other: "DispatchResult") -> "DispatchResult":
        return DispatchResult(
            success_count=self.success_count + other.success_count,
            failure_count=self.failure_count + other.failure_count,
            error=self.error or other.error,
        )
