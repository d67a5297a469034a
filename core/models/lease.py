# ============================================================================
# RESOURCE LEASE MODEL
# ============================================================================
# STATUS: Core - Lease-based per-record coordination
# PURPOSE: Time-bounded exclusive claim on one resource record
# CREATED: 06 OCT 2026
# ============================================================================
"""
Resource Lease Model

A lease is the explicit form of the `locked_at` column. Acquiring one
writes `locked_at = now`, and that timestamp becomes the token every later
write must present.

Key properties:
- Lease expires automatically `duration_seconds` after the token
- A new worker can acquire an expired lease immediately
- Releases and commits are ignored once the token no longer matches
- Crash recovery is bounded by the lease duration
"""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field

from core.models.resource import utc_now


class Lease(BaseModel):
    """
    Exclusive claim on one record.

    If token + duration_seconds <= NOW(), the lease is expired and the
    record can be claimed by another worker.
    """

    record_id: str = Field(max_length=64)
    token: datetime = Field(description="locked_at value written at acquisition")
    duration_seconds: float = Field(gt=0, le=3600)
    holder_id: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Worker that acquired the lease (logging only)"
    )

    model_config = {"frozen": True}

    @property
    def expires_at(self) -> datetime:
        return self.token + timedelta(seconds=self.duration_seconds)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """
        Check if the lease has expired.

        Args:
            now: Current time (defaults to utc_now)

        Returns:
            True once token + duration has been reached
        """
        if now is None:
            now = utc_now()
        return now >= self.expires_at

    def remaining_seconds(self, now: Optional[datetime] = None) -> float:
        if now is None:
            now = utc_now()
        return max(0.0, (self.expires_at - now).total_seconds())


__all__ = ["Lease"]
