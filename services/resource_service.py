# ============================================================================
# RESOURCE SERVICE
# ============================================================================
# STATUS: Core - External-actor boundary
# PURPOSE: Provision records, write desired states, read status
# CREATED: 12 OCT 2026
# ============================================================================
"""
Resource Service

The only writer of desired state besides the cascade notifier:
- Provision a record with its kind's initial state and phase
- Change a record's desired state (validated against the kind)
- Read status projections

Writes never touch phase or the lease; the reconciler picks the change
up on its next cycle.
"""

import hashlib
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.contracts import DesiredState, ResourceKind
from core.errors import InvalidDesiredState, ResourceNotFound, UnsupportedKind
from core.logging import ComponentType, log_checkpoint, log_context
from core.models import ResourceRecord, ResourceStatus, utc_now
from infrastructure.locking import Clock
from orchestrator.cascade import CascadeNotifier
from orchestrator.engine.transitions import KindSpec
from repositories.base import ResourceStore

logger = logging.getLogger(__name__)


class ResourceService:
    """Service for resource provisioning and desired-state changes."""

    def __init__(
        self,
        store: ResourceStore,
        kinds: Dict[ResourceKind, KindSpec],
        cascade: Optional[CascadeNotifier] = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize resource service.

        Args:
            store: Shared resource store
            kinds: KindSpec per reconciled kind
            cascade: Optional notifier for immediate fan-out after writes
            clock: Time source (injected by tests)
        """
        self.store = store
        self.kinds = kinds
        self.cascade = cascade
        self.clock = clock

    def _kind_spec(self, kind: ResourceKind) -> KindSpec:
        spec = self.kinds.get(kind)
        if spec is None:
            raise UnsupportedKind(kind.value)
        return spec

    async def provision(
        self,
        kind: ResourceKind,
        owner_key: str,
        spec: Optional[Dict[str, Any]] = None,
        parent_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        state: Optional[DesiredState] = None,
        idempotency_key: Optional[str] = None,
    ) -> ResourceRecord:
        """
        Create a new record.

        Args:
            kind: Resource kind
            owner_key: Cross-resource join key (appid)
            spec: Kind-specific payload for the driver
            parent_id: Owning record, for parent-joined kinds
            expires_at: Expiry time (subscriptions)
            state: Initial desired state (default: the kind's)
            idempotency_key: Repeated calls with the same key return the
                same record

        Returns:
            Created (or existing) ResourceRecord

        Raises:
            UnsupportedKind, InvalidDesiredState, ResourceNotFound (parent)
        """
        kind_spec = self._kind_spec(kind)
        state = state or kind_spec.initial_state

        if not kind_spec.allows(state) or state == DesiredState.DELETED:
            raise InvalidDesiredState(f"{kind.value} cannot be provisioned as {state.value}")

        record_id = self._generate_resource_id(kind, owner_key, idempotency_key)
        if idempotency_key:
            existing = await self.store.get(record_id)
            if existing:
                logger.info(f"Returning existing {kind.value} {record_id}")
                return existing

        if parent_id and await self.store.get(parent_id) is None:
            raise ResourceNotFound(parent_id)

        now = self.clock()
        record = ResourceRecord(
            id=record_id,
            kind=kind,
            owner_key=owner_key,
            parent_id=parent_id,
            state=state,
            phase=kind_spec.initial_phase,
            spec=spec or {},
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        record, created = await self.store.get_or_create(record)
        if not created:
            # Lost a race with a concurrent call using the same key
            logger.info(f"Returning existing {kind.value} {record_id}")
            return record

        with log_context(
            record_id=record.id,
            kind=kind.value,
            owner_key=owner_key,
            component=ComponentType.SERVICE.value,
        ):
            log_checkpoint("resource_provisioned", {"state": state.value})
        return record

    async def set_desired_state(self, record_id: str, state: DesiredState) -> ResourceRecord:
        """
        Change what the owner wants.

        Setting the current state again is a no-op. Deletion is final.

        Raises:
            ResourceNotFound, InvalidDesiredState
        """
        record = await self.store.get(record_id)
        if record is None:
            raise ResourceNotFound(record_id)

        kind_spec = self._kind_spec(record.kind)
        if not kind_spec.allows(state):
            raise InvalidDesiredState(
                f"{record.kind.value} does not support desired state {state.value}",
                record_id=record_id,
            )
        if record.state == DesiredState.DELETED and state != DesiredState.DELETED:
            raise InvalidDesiredState(
                f"{record.kind.value} {record_id} is being deleted; deletion cannot be withdrawn",
                record_id=record_id,
            )
        if record.state == state:
            return record

        updated = await self.store.set_desired_state(record_id, state, self.clock())
        if updated is None:
            # Deleted or removed between the read and the write
            if await self.store.get(record_id) is None:
                raise ResourceNotFound(record_id)
            raise InvalidDesiredState(
                f"{record.kind.value} {record_id} is being deleted; deletion cannot be withdrawn",
                record_id=record_id,
            )

        with log_context(
            record_id=record_id,
            kind=record.kind.value,
            owner_key=record.owner_key,
            component=ComponentType.SERVICE.value,
        ):
            log_checkpoint("desired_state_changed", {
                "from_state": record.state.value,
                "to_state": state.value,
            })

        if self.cascade is not None:
            await self.cascade.propagate(updated)

        return updated

    async def get(self, record_id: str) -> ResourceRecord:
        record = await self.store.get(record_id)
        if record is None:
            raise ResourceNotFound(record_id)
        return record

    async def get_status(self, record_id: str) -> ResourceStatus:
        """Phase, message and freshness of one record."""
        return self._status(await self.get(record_id))

    async def list_status(
        self,
        owner_key: str,
        kind: Optional[ResourceKind] = None,
    ) -> List[ResourceStatus]:
        """Status of every record of one owner, optionally one kind."""
        records = await self.store.list_by_owner(owner_key, kind)
        return [self._status(r) for r in records]

    def _status(self, record: ResourceRecord) -> ResourceStatus:
        kind_spec = self.kinds.get(record.kind)
        return record.status(converged=bool(kind_spec and kind_spec.is_converged(record)))

    def _generate_resource_id(
        self,
        kind: ResourceKind,
        owner_key: str,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """
        Generate a record ID.

        If idempotency_key is provided, hashes kind + owner + key.
        Otherwise a random UUID.
        """
        if idempotency_key:
            content = f"{kind.value}:{owner_key}:{idempotency_key}"
            return hashlib.sha256(content.encode()).hexdigest()[:32]
        return uuid.uuid4().hex


__all__ = ["ResourceService"]
