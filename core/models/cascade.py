# ============================================================================
# CASCADE RULE MODELS
# ============================================================================
# STATUS: Core model - Desired-state propagation rules
# PURPOSE: Describe ownership edges between resource kinds as data
# CREATED: 08 OCT 2026
# EXPORTS: CascadeJoin, CascadeRule, ExpiryRule, CascadeEvent
# DEPENDENCIES: pydantic
# ============================================================================
"""
Cascade Rule Models

Ownership between resources is expressed as one-directional rules rather
than foreign keys. A rule reads "when a <parent_kind> record wants
<parent_state>, every owned <child_kinds> record currently wanting one of
<child_from_states> should want <child_state>".

Children are found either through the shared owner_key (an application
and its storage, database and domains share the appid) or through
parent_id (a bucket domain points at its bucket).
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from core.contracts import DesiredState, ResourceKind


class CascadeJoin(str, Enum):
    """How a child record is matched to its parent."""
    OWNER_KEY = "owner_key"    # child.owner_key = parent.owner_key
    PARENT = "parent"          # child.parent_id = parent.id


class CascadeRule(BaseModel):
    """One ownership edge."""
    name: str = Field(..., max_length=64)
    parent_kind: ResourceKind
    parent_state: DesiredState
    child_kinds: List[ResourceKind] = Field(..., min_length=1)
    child_state: DesiredState
    child_from_states: List[DesiredState] = Field(..., min_length=1)
    join: CascadeJoin = CascadeJoin.OWNER_KEY
    parent_expired: bool = Field(
        default=False,
        description="Only parents whose expires_at has passed trigger the rule"
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def never_undelete(self) -> "CascadeRule":
        if DesiredState.DELETED in self.child_from_states and self.child_state != DesiredState.DELETED:
            raise ValueError(f"Cascade rule {self.name} would withdraw a deletion")
        if self.child_state in self.child_from_states:
            raise ValueError(f"Cascade rule {self.name} rewrites children already in {self.child_state.value}")
        return self


class ExpiryRule(BaseModel):
    """
    Time-based desired-state change on the record itself.

    Records of `kind` whose expires_at is older than `grace_seconds`
    move from one of `from_states` to `new_state`.
    """
    name: str = Field(..., max_length=64)
    kind: ResourceKind
    from_states: List[DesiredState] = Field(..., min_length=1)
    new_state: DesiredState
    grace_seconds: int = Field(default=0, ge=0)

    model_config = {"frozen": True}


class CascadeEvent(BaseModel):
    """One desired-state write made by the cascade notifier."""
    rule: str
    record_id: str
    kind: ResourceKind
    new_state: DesiredState
    parent_id: Optional[str] = None
    applied_at: datetime


__all__ = ["CascadeJoin", "CascadeRule", "ExpiryRule", "CascadeEvent"]
