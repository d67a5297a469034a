# ============================================================================
# IN-MEMORY RESOURCE STORE
# ============================================================================
# STATUS: Core - Process-local store with the same atomic semantics
# PURPOSE: Local development (STORE_BACKEND=memory) and the test-suite
# CREATED: 08 OCT 2026
# ============================================================================
"""
In-Memory Resource Store

Dict-backed ResourceStore. Each method runs under one mutex without
awaiting, so every conditional write is atomic with respect to all
workers sharing the instance, exactly like the single-statement UPDATEs
of the PostgreSQL store.

Records are copied on the way in and out; callers never hold a reference
into the store.
"""

import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from core.contracts import DesiredState, Phase, ResourceKind
from core.models import CascadeJoin, CascadeRule, ExpiryRule, ResourceRecord
from .base import CascadeWrite, RepositoryError, ResourceStore


class MemoryResourceStore(ResourceStore):
    """Repository for ResourceRecords held in process memory."""

    def __init__(self):
        super().__init__()
        self._records: Dict[str, ResourceRecord] = {}
        self._mutex = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def create(self, record: ResourceRecord) -> ResourceRecord:
        with self._mutex:
            if record.id in self._records:
                raise RepositoryError(
                    f"resource creation failed for {record.id}: duplicate id",
                    operation="resource creation",
                    entity_id=record.id,
                )
            self._records[record.id] = record.model_copy(deep=True)
        self.logger.debug(f"Created {record.kind.value} {record.id} (owner={record.owner_key})")
        return record

    async def get_or_create(self, record: ResourceRecord) -> Tuple[ResourceRecord, bool]:
        with self._mutex:
            existing = self._records.get(record.id)
            if existing is not None:
                return existing.model_copy(deep=True), False
            self._records[record.id] = record.model_copy(deep=True)
        self.logger.debug(f"Created {record.kind.value} {record.id} (owner={record.owner_key})")
        return record, True

    async def get(self, record_id: str) -> Optional[ResourceRecord]:
        with self._mutex:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record else None

    async def list_by_owner(
        self,
        owner_key: str,
        kind: Optional[ResourceKind] = None,
    ) -> List[ResourceRecord]:
        with self._mutex:
            matches = [
                r.model_copy(deep=True) for r in self._records.values()
                if r.owner_key == owner_key and (kind is None or r.kind == kind)
            ]
        return sorted(matches, key=lambda r: r.created_at)

    async def set_desired_state(
        self,
        record_id: str,
        state: DesiredState,
        now: datetime,
    ) -> Optional[ResourceRecord]:
        with self._mutex:
            record = self._records.get(record_id)
            if record is None:
                return None
            if record.state == DesiredState.DELETED and state != DesiredState.DELETED:
                return None
            record.state = state
            record.retry_count = 0
            record.updated_at = now
            return record.model_copy(deep=True)

    async def list_candidates(
        self,
        kind: ResourceKind,
        pairs: Sequence[Tuple[DesiredState, Phase]],
        now: datetime,
        lease_seconds: float,
        limit: int,
    ) -> List[ResourceRecord]:
        wanted = set(pairs)
        stale_before = now - timedelta(seconds=lease_seconds)
        with self._mutex:
            matches = [
                r for r in self._records.values()
                if r.kind == kind
                and (r.state, r.phase) in wanted
                and (r.locked_at is None or r.locked_at <= stale_before)
            ]
            # Never-locked first, then oldest updated_at
            matches.sort(key=lambda r: (r.locked_at is not None, r.updated_at))
            return [r.model_copy(deep=True) for r in matches[:limit]]

    async def try_lock(
        self,
        record_id: str,
        now: datetime,
        lease_seconds: float,
    ) -> Optional[datetime]:
        stale_before = now - timedelta(seconds=lease_seconds)
        with self._mutex:
            record = self._records.get(record_id)
            if record is None:
                return None
            if record.locked_at is not None and record.locked_at > stale_before:
                return None
            record.locked_at = now
            return now

    async def unlock(self, record_id: str, token: datetime) -> bool:
        with self._mutex:
            record = self._records.get(record_id)
            if record is None or record.locked_at != token:
                return False
            record.locked_at = None
            return True

    async def relock(self, record_id: str, token: datetime, locked_at: datetime) -> bool:
        with self._mutex:
            record = self._records.get(record_id)
            if record is None or record.locked_at != token:
                return False
            record.locked_at = locked_at
            return True

    async def commit(
        self,
        record_id: str,
        token: datetime,
        *,
        phase: Phase,
        message: Optional[str],
        retry_count: int,
        locked_at: Optional[datetime],
        now: datetime,
    ) -> bool:
        with self._mutex:
            record = self._records.get(record_id)
            if record is None or record.locked_at != token:
                return False
            record.phase = phase
            record.message = message
            record.retry_count = retry_count
            record.locked_at = locked_at
            record.updated_at = now
            return True

    async def cascade(
        self,
        rule: CascadeRule,
        now: datetime,
        parent_id: Optional[str] = None,
    ) -> List[CascadeWrite]:
        writes: List[CascadeWrite] = []
        with self._mutex:
            parents = [
                p for p in self._records.values()
                if p.kind == rule.parent_kind
                and p.state == rule.parent_state
                and (parent_id is None or p.id == parent_id)
                and (not rule.parent_expired or (p.expires_at is not None and p.expires_at <= now))
            ]
            for parent in parents:
                for child in self._records.values():
                    if child.id == parent.id or child.kind not in rule.child_kinds:
                        continue
                    if child.state not in rule.child_from_states:
                        continue
                    if rule.join == CascadeJoin.OWNER_KEY and child.owner_key != parent.owner_key:
                        continue
                    if rule.join == CascadeJoin.PARENT and child.parent_id != parent.id:
                        continue
                    child.state = rule.child_state
                    child.retry_count = 0
                    child.updated_at = now
                    writes.append((child.id, child.kind, parent.id))
        return writes

    async def expire(self, rule: ExpiryRule, now: datetime) -> List[str]:
        cutoff = now - timedelta(seconds=rule.grace_seconds)
        expired: List[str] = []
        with self._mutex:
            for record in self._records.values():
                if record.kind != rule.kind or record.state not in rule.from_states:
                    continue
                if record.expires_at is None or record.expires_at > cutoff:
                    continue
                record.state = rule.new_state
                record.retry_count = 0
                record.updated_at = now
                expired.append(record.id)
        return expired


__all__ = ["MemoryResourceStore"]
