# ============================================================================
# RESOURCE RECORD MODEL
# ============================================================================
# STATUS: Core model - Reconcilable resource record
# PURPOSE: Persisted desired state / actual phase / lease triple per resource
# CREATED: 06 OCT 2026
# EXPORTS: ResourceRecord, ResourceStatus, utc_now
# DEPENDENCIES: pydantic
# ============================================================================
"""
Resource Record Model

One ResourceRecord exists per managed object. All kinds share this shape
and live in a single table; the `kind` column is the variant tag and the
kind-specific driver payload travels in `spec`.

Ownership of the fields:
- state:      external actors (API) and the cascade notifier
- phase:      the transition executor
- locked_at:  the lease manager (token of the current lease)
- message:    the transition executor (last error / status note)
"""

from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

from core.contracts import DesiredState, Phase, ResourceData, ResourceKind

MESSAGE_MAX_LENGTH = 2000


def utc_now() -> datetime:
    """Timezone-aware current time. Default clock for the engine."""
    return datetime.now(timezone.utc)


class ResourceRecord(ResourceData):
    """
    Reconcilable resource record.

    Maps to: ctrl.resources table
    Primary Key: id

    Lifecycle:
        1. Created with the kind's initial state and in-progress phase
        2. Claimed by one worker at a time through a lease on locked_at
        3. Moved one table edge per lease by the transition executor
        4. Logically destroyed when phase reaches DELETED
    """

    # =========================================================================
    # SQL DDL METADATA (Used by PydanticToSQL generator)
    # =========================================================================
    __sql_table__: ClassVar[str] = "resources"
    __sql_schema__: ClassVar[str] = "ctrl"
    __sql_primary_key__: ClassVar[List[str]] = ["id"]
    __sql_indexes__: ClassVar[List[tuple]] = [
        ("idx_resources_kind_state_phase", ["kind", "state", "phase"]),
        ("idx_resources_owner", ["owner_key", "kind"]),
        ("idx_resources_parent", ["parent_id"], "parent_id IS NOT NULL"),
        ("idx_resources_locked", ["locked_at"], "locked_at IS NOT NULL"),
        ("idx_resources_expires", ["expires_at"], "expires_at IS NOT NULL"),
    ]

    parent_id: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Owning record id, for children joined by parent rather than owner_key"
    )

    # Reconciliation triple
    state: DesiredState = Field(default=DesiredState.ACTIVE)
    phase: Phase = Field(default=Phase.CREATING)
    locked_at: Optional[datetime] = Field(
        default=None,
        description="Start of the current lease; also the lease token"
    )

    message: Optional[str] = Field(
        default=None,
        max_length=MESSAGE_MAX_LENGTH,
        description="Last error or status note"
    )
    retry_count: int = Field(
        default=0,
        ge=0,
        description="Consecutive retryable outcomes on the current edge"
    )

    # Kind-specific payload handed to drivers
    spec: Dict[str, Any] = Field(default_factory=dict)

    # Time-based cascade trigger (subscriptions)
    expires_at: Optional[datetime] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @computed_field
    @property
    def is_deleted(self) -> bool:
        """Check if the record has reached the terminal deleted phase."""
        return self.phase == Phase.DELETED

    def status(self, converged: bool = False) -> "ResourceStatus":
        """Read-only projection for observers."""
        return ResourceStatus(
            id=self.id,
            kind=self.kind,
            owner_key=self.owner_key,
            state=self.state,
            phase=self.phase,
            message=self.message,
            retry_count=self.retry_count,
            updated_at=self.updated_at,
            converged=converged,
        )


class ResourceStatus(BaseModel):
    """Status read: phase, message and freshness of one record."""
    id: str
    kind: ResourceKind
    owner_key: str
    state: DesiredState
    phase: Phase
    message: Optional[str] = None
    retry_count: int = 0
    updated_at: datetime
    converged: bool = False


def truncate_message(message: Optional[str]) -> Optional[str]:
    """Clamp a driver message to the column width."""
    if message is None:
        return None
    return message[:MESSAGE_MAX_LENGTH]


__all__ = ["ResourceRecord", "ResourceStatus", "utc_now", "truncate_message"]
