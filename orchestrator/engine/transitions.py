# ============================================================================
# TRANSITION TABLES
# ============================================================================
# STATUS: Core - Per-kind state machine configuration
# PURPOSE: (desired state, phase) -> action -> next phase, as data
# CREATED: 10 OCT 2026
# ============================================================================
"""
Transition Tables

Every kind is described by a KindSpec. Its table maps the pair
(desired state, current phase) to the single action that moves the
record one step closer to convergence. A pair missing from the table is
either converged or waiting for an external desired-state change.

Two shapes are shipped:

    Provisioned kinds (bucket, database, domains, payments, ...):

        active  / creating                   -> provision      -> created
        deleted / creating, created, failed  -> begin_teardown -> deleting
        deleted / deleting                   -> teardown       -> deleted

    Applications add a start/stop cycle:

        running / creating                   -> provision      -> created
        running / created, stopped, stopping -> begin_start    -> starting
        running / starting                   -> start          -> started
        stopped / creating                   -> provision      -> created
        stopped / created, started, starting -> begin_stop     -> stopping
        stopped / stopping                   -> stop           -> stopped
        deleted / any but deleting, deleted  -> begin_teardown -> deleting
        deleted / deleting                   -> teardown       -> deleted

FAILED only appears as a source phase under desired state DELETED, so a
failed record is picked up again only once deletion is requested. A
failed teardown ends in DELETE_FAILED, which no row leaves, so a record
gets one teardown retry budget and no more.
"""

import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from core.config import Defaults, get_defaults
from core.contracts import Action, DesiredState, Phase, ResourceKind
from core.errors import TransitionTableError
from core.models import ResourceRecord
from .backoff import RetryPolicy

logger = logging.getLogger(__name__)

TransitionKey = Tuple[DesiredState, Phase]


class Transition(BaseModel):
    """One table edge."""
    action: Action
    next_phase: Phase

    model_config = {"frozen": True}


class KindSpec(BaseModel):
    """
    Reconciliation configuration for one resource kind.
    """
    kind: ResourceKind
    allowed_states: List[DesiredState] = Field(..., min_length=1)
    initial_state: DesiredState
    initial_phase: Phase = Phase.CREATING
    failed_phase: Phase = Phase.FAILED
    delete_failed_phase: Phase = Phase.DELETE_FAILED
    transitions: Dict[TransitionKey, Transition]
    # Phase at which each desired state counts as reached
    converged: Dict[DesiredState, Phase]
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    lease_seconds: float = Field(default=60.0, gt=0)

    def plan(self, state: DesiredState, phase: Phase) -> Optional[Transition]:
        return self.transitions.get((state, phase))

    def failure_phase(self, transition: Transition) -> Phase:
        """Phase committed when the edge fails for good."""
        if transition.action == Action.TEARDOWN:
            return self.delete_failed_phase
        return self.failed_phase

    def is_converged(self, record: ResourceRecord) -> bool:
        return self.converged.get(record.state) == record.phase

    def candidate_pairs(self) -> List[TransitionKey]:
        """(state, phase) pairs the scheduler has to look at."""
        return list(self.transitions.keys())

    def allows(self, state: DesiredState) -> bool:
        return state in self.allowed_states


def validate_kind_spec(spec: KindSpec) -> KindSpec:
    """
    Check a kind's table against the engine rules.

    Raises:
        TransitionTableError on the first violation
    """
    name = spec.kind.value

    if not spec.allows(spec.initial_state):
        raise TransitionTableError(f"{name}: initial state {spec.initial_state.value} not allowed")
    if not spec.allows(DesiredState.DELETED):
        raise TransitionTableError(f"{name}: every kind must accept deletion")

    for (state, phase), transition in spec.transitions.items():
        edge = f"{name}: {state.value}/{phase.value} -> {transition.next_phase.value}"

        if not spec.allows(state):
            raise TransitionTableError(f"{edge} uses a state the kind does not allow")
        if phase in (Phase.DELETED, spec.delete_failed_phase):
            raise TransitionTableError(f"{edge} leaves the terminal {phase.value} phase")
        if phase == spec.failed_phase and state != DesiredState.DELETED:
            raise TransitionTableError(f"{edge} recovers from failure without deletion")
        if state == DesiredState.DELETED and transition.next_phase not in (Phase.DELETING, Phase.DELETED):
            raise TransitionTableError(f"{edge} does not lead towards deletion")
        if transition.next_phase == phase:
            raise TransitionTableError(f"{edge} does not move the record")

    for state, phase in spec.converged.items():
        if (state, phase) in spec.transitions:
            raise TransitionTableError(
                f"{name}: converged pair {state.value}/{phase.value} has an outgoing edge"
            )

    return spec


# ============================================================================
# SHIPPED TABLES
# ============================================================================

def _teardown_rows(from_phases: List[Phase]) -> Dict[TransitionKey, Transition]:
    rows = {
        (DesiredState.DELETED, phase): Transition(action=Action.BEGIN_TEARDOWN, next_phase=Phase.DELETING)
        for phase in from_phases
    }
    rows[(DesiredState.DELETED, Phase.DELETING)] = Transition(
        action=Action.TEARDOWN, next_phase=Phase.DELETED
    )
    return rows


PROVISIONED_TABLE: Dict[TransitionKey, Transition] = {
    (DesiredState.ACTIVE, Phase.CREATING): Transition(action=Action.PROVISION, next_phase=Phase.CREATED),
    **_teardown_rows([Phase.CREATING, Phase.CREATED, Phase.FAILED]),
}

PROVISIONED_CONVERGED: Dict[DesiredState, Phase] = {
    DesiredState.ACTIVE: Phase.CREATED,
    DesiredState.DELETED: Phase.DELETED,
}

APPLICATION_TABLE: Dict[TransitionKey, Transition] = {
    (DesiredState.RUNNING, Phase.CREATING): Transition(action=Action.PROVISION, next_phase=Phase.CREATED),
    (DesiredState.RUNNING, Phase.CREATED): Transition(action=Action.BEGIN_START, next_phase=Phase.STARTING),
    (DesiredState.RUNNING, Phase.STOPPED): Transition(action=Action.BEGIN_START, next_phase=Phase.STARTING),
    (DesiredState.RUNNING, Phase.STOPPING): Transition(action=Action.BEGIN_START, next_phase=Phase.STARTING),
    (DesiredState.RUNNING, Phase.STARTING): Transition(action=Action.START, next_phase=Phase.STARTED),
    (DesiredState.STOPPED, Phase.CREATING): Transition(action=Action.PROVISION, next_phase=Phase.CREATED),
    (DesiredState.STOPPED, Phase.CREATED): Transition(action=Action.BEGIN_STOP, next_phase=Phase.STOPPING),
    (DesiredState.STOPPED, Phase.STARTED): Transition(action=Action.BEGIN_STOP, next_phase=Phase.STOPPING),
    (DesiredState.STOPPED, Phase.STARTING): Transition(action=Action.BEGIN_STOP, next_phase=Phase.STOPPING),
    (DesiredState.STOPPED, Phase.STOPPING): Transition(action=Action.STOP, next_phase=Phase.STOPPED),
    **_teardown_rows([
        Phase.CREATING, Phase.CREATED, Phase.STARTING, Phase.STARTED,
        Phase.STOPPING, Phase.STOPPED, Phase.FAILED,
    ]),
}

APPLICATION_CONVERGED: Dict[DesiredState, Phase] = {
    DesiredState.RUNNING: Phase.STARTED,
    DesiredState.STOPPED: Phase.STOPPED,
    DesiredState.DELETED: Phase.DELETED,
}

PROVISIONED_KINDS = [
    ResourceKind.STORAGE_USER,
    ResourceKind.BUCKET,
    ResourceKind.DATABASE,
    ResourceKind.RUNTIME_DOMAIN,
    ResourceKind.BUCKET_DOMAIN,
    ResourceKind.WEBSITE_DOMAIN,
    ResourceKind.CRON_TRIGGER,
    ResourceKind.SUBSCRIPTION,
    ResourceKind.SUBSCRIPTION_RENEWAL,
    ResourceKind.CHARGE_ORDER,
]


def build_kind_spec(kind: ResourceKind, defaults: Optional[Defaults] = None) -> KindSpec:
    """Build the shipped KindSpec for one kind, with configured retry and lease."""
    defaults = defaults or get_defaults()

    retry = RetryPolicy(
        max_attempts=defaults.retry.get_max_attempts(kind.value),
        backoff=defaults.retry.backoff,
        initial_delay_seconds=defaults.retry.initial_delay_seconds,
        max_delay_seconds=defaults.retry.max_delay_seconds,
    )
    lease_seconds = defaults.lease.get_lease_seconds(kind.value)

    if kind == ResourceKind.APPLICATION:
        spec = KindSpec(
            kind=kind,
            allowed_states=[DesiredState.RUNNING, DesiredState.STOPPED, DesiredState.DELETED],
            initial_state=DesiredState.RUNNING,
            transitions=APPLICATION_TABLE,
            converged=APPLICATION_CONVERGED,
            retry=retry,
            lease_seconds=lease_seconds,
        )
    else:
        spec = KindSpec(
            kind=kind,
            allowed_states=[DesiredState.ACTIVE, DesiredState.DELETED],
            initial_state=DesiredState.ACTIVE,
            transitions=PROVISIONED_TABLE,
            converged=PROVISIONED_CONVERGED,
            retry=retry,
            lease_seconds=lease_seconds,
        )
    return validate_kind_spec(spec)


def default_kinds(defaults: Optional[Defaults] = None) -> Dict[ResourceKind, KindSpec]:
    """KindSpecs for every shipped kind."""
    kinds = {ResourceKind.APPLICATION: build_kind_spec(ResourceKind.APPLICATION, defaults)}
    for kind in PROVISIONED_KINDS:
        kinds[kind] = build_kind_spec(kind, defaults)
    logger.debug(f"Built transition tables for {len(kinds)} kinds")
    return kinds


__all__ = [
    "Transition",
    "TransitionKey",
    "KindSpec",
    "validate_kind_spec",
    "PROVISIONED_TABLE",
    "PROVISIONED_CONVERGED",
    "APPLICATION_TABLE",
    "APPLICATION_CONVERGED",
    "PROVISIONED_KINDS",
    "build_kind_spec",
    "default_kinds",
]
