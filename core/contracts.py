# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# STATUS: Foundation - Core enums and base contracts
# PURPOSE: Status enums and identity contracts shared by every resource kind
# CREATED: 06 OCT 2026
# EXPORTS: ResourceKind, DesiredState, Phase, Action, OutcomeStatus, ResourceData
# DEPENDENCIES: enum, pydantic
# ============================================================================
"""
Base contracts for the control plane reconciliation engine.

Every managed resource (application, bucket, database, domain, ...) is
stored in the same record shape and distinguished by its ResourceKind.
The enums defined here cross every boundary:
- SQL (PostgreSQL enum types)
- HTTP (API payloads)
- Python (transition tables, drivers)
"""

from enum import Enum

from pydantic import BaseModel, Field


# ============================================================================
# RESOURCE KINDS
# ============================================================================

class ResourceKind(str, Enum):
    """Variant tag for every record the engine reconciles."""
    APPLICATION = "application"
    STORAGE_USER = "storage_user"
    BUCKET = "bucket"
    DATABASE = "database"
    RUNTIME_DOMAIN = "runtime_domain"
    BUCKET_DOMAIN = "bucket_domain"
    WEBSITE_DOMAIN = "website_domain"
    CRON_TRIGGER = "cron_trigger"
    SUBSCRIPTION = "subscription"
    SUBSCRIPTION_RENEWAL = "subscription_renewal"
    CHARGE_ORDER = "charge_order"


# ============================================================================
# STATE ENUMS
# ============================================================================

class DesiredState(str, Enum):
    """
    What the owner wants.

    Written by external actors (API) and by the cascade notifier only.
    DELETED is sticky: once requested it is never withdrawn.
    """
    ACTIVE = "active"        # Provisioned kinds: exists and is usable
    RUNNING = "running"      # Applications: workload started
    STOPPED = "stopped"      # Applications: workload scaled to zero
    DELETED = "deleted"      # Torn down

    def is_deleted(self) -> bool:
        return self == DesiredState.DELETED


class Phase(str, Enum):
    """
    Where provisioning currently stands.

    Written by the transition executor only.

    State transitions (provisioned kinds):
        CREATING -> CREATED -> DELETING -> DELETED
                 -> FAILED  -> DELETING -> DELETE_FAILED

    FAILED is left once deletion is requested. DELETE_FAILED is final:
    the teardown itself failed and needs an operator.

    Applications add STARTING/STARTED and STOPPING/STOPPED between
    CREATED and DELETING.
    """
    CREATING = "creating"
    CREATED = "created"
    STARTING = "starting"
    STARTED = "started"
    STOPPING = "stopping"
    STOPPED = "stopped"
    DELETING = "deleting"
    DELETED = "deleted"
    FAILED = "failed"
    DELETE_FAILED = "delete_failed"

    def is_in_progress(self) -> bool:
        """Check if this phase is the middle of a transition."""
        return self in (Phase.CREATING, Phase.STARTING, Phase.STOPPING, Phase.DELETING)

    def is_terminal(self) -> bool:
        """Check if no automatic transition leaves this phase."""
        return self in (Phase.DELETED, Phase.FAILED, Phase.DELETE_FAILED)


class Action(str, Enum):
    """
    Work attached to a transition table edge.

    BEGIN_* actions only move the record into an in-progress phase and
    never reach a driver. The rest are executed by the kind's driver.
    """
    PROVISION = "provision"
    BEGIN_START = "begin_start"
    START = "start"
    BEGIN_STOP = "begin_stop"
    STOP = "stop"
    BEGIN_TEARDOWN = "begin_teardown"
    TEARDOWN = "teardown"

    def requires_driver(self) -> bool:
        return not self.value.startswith("begin_")


class OutcomeStatus(str, Enum):
    """Three-way result of a driver call."""
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


# ============================================================================
# BASE DATA CONTRACTS
# ============================================================================

class ResourceData(BaseModel):
    """
    Essential resource identity - the minimum fields that cross boundaries.
    """
    id: str = Field(..., max_length=64, description="Immutable record identity")
    kind: ResourceKind
    owner_key: str = Field(..., max_length=64, description="Cross-resource join key (e.g. appid)")

    model_config = {"frozen": False}


__all__ = [
    "ResourceKind",
    "DesiredState",
    "Phase",
    "Action",
    "OutcomeStatus",
    "ResourceData",
]
