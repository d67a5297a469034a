# ============================================================================
# CORE MODULE
# ============================================================================
# STATUS: Core module initialization
# PURPOSE: Export core contracts, models, and schema utilities
# CREATED: 06 OCT 2026
# ============================================================================

from core.contracts import Action, DesiredState, OutcomeStatus, Phase, ResourceKind
from core.models import Lease, ResourceRecord, ResourceStatus
from core.schema import PydanticToSQL

__all__ = [
    # Enums
    "ResourceKind",
    "DesiredState",
    "Phase",
    "Action",
    "OutcomeStatus",
    # Models
    "ResourceRecord",
    "ResourceStatus",
    "Lease",
    # Schema
    "PydanticToSQL",
]
