# ============================================================================
# RESOURCE REPOSITORY
# ============================================================================
# STATUS: Core - Resource record persistence
# PURPOSE: PostgreSQL access for ctrl.resources with atomic lease writes
# CREATED: 08 OCT 2026
# ============================================================================
"""
Resource Repository

PostgreSQL implementation of ResourceStore.

Every concurrency-relevant write is one UPDATE ... WHERE ... RETURNING
statement, so a claim, a release or a transition result can never
interleave with another worker's write to the same row.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.contracts import DesiredState, Phase, ResourceKind
from core.models import CascadeJoin, CascadeRule, ExpiryRule, ResourceRecord
from .base import CascadeWrite, ResourceStore
from .database import TABLE_RESOURCES

logger = logging.getLogger(__name__)


class PostgresResourceStore(ResourceStore):
    """Repository for ResourceRecord entities."""

    _INSERT = """
        INSERT INTO {} (
            id, kind, owner_key, parent_id, state, phase,
            locked_at, message, retry_count, spec, expires_at,
            created_at, updated_at
        ) VALUES (
            %(id)s, %(kind)s, %(owner_key)s, %(parent_id)s,
            %(state)s, %(phase)s, %(locked_at)s, %(message)s,
            %(retry_count)s, %(spec)s, %(expires_at)s,
            %(created_at)s, %(updated_at)s
        )
    """

    def __init__(self, pool: AsyncConnectionPool):
        super().__init__()
        self.pool = pool

    @staticmethod
    def _insert_params(record: ResourceRecord) -> Dict[str, Any]:
        return {
            "id": record.id,
            "kind": record.kind.value,
            "owner_key": record.owner_key,
            "parent_id": record.parent_id,
            "state": record.state.value,
            "phase": record.phase.value,
            "locked_at": record.locked_at,
            "message": record.message,
            "retry_count": record.retry_count,
            "spec": Json(record.spec),
            "expires_at": record.expires_at,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }

    async def create(self, record: ResourceRecord) -> ResourceRecord:
        with self._error_context("resource creation", record.id):
            async with self.pool.connection() as conn:
                await conn.execute(
                    sql.SQL(self._INSERT).format(TABLE_RESOURCES),
                    self._insert_params(record),
                )
        logger.info(f"Created {record.kind.value} {record.id} (owner={record.owner_key})")
        return record

    async def get_or_create(self, record: ResourceRecord) -> Tuple[ResourceRecord, bool]:
        """
        Insert unless the id exists (idempotent by id).

        Returns:
            Tuple of (record, created). created=False returns the stored row.
        """
        with self._error_context("resource creation", record.id):
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row

                result = await conn.execute(
                    sql.SQL(self._INSERT + "ON CONFLICT (id) DO NOTHING RETURNING *").format(
                        TABLE_RESOURCES
                    ),
                    self._insert_params(record),
                )
                row = await result.fetchone()
                if row is not None:
                    logger.info(f"Created {record.kind.value} {record.id} (owner={record.owner_key})")
                    return self._row_to_record(row), True

                result = await conn.execute(
                    sql.SQL("SELECT * FROM {} WHERE id = %s").format(TABLE_RESOURCES),
                    (record.id,),
                )
                row = await result.fetchone()
                return self._row_to_record(row), False

    async def get(self, record_id: str) -> Optional[ResourceRecord]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE id = %s").format(TABLE_RESOURCES),
                (record_id,),
            )
            row = await result.fetchone()
            return self._row_to_record(row) if row else None

    async def list_by_owner(
        self,
        owner_key: str,
        kind: Optional[ResourceKind] = None,
    ) -> List[ResourceRecord]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            if kind is None:
                result = await conn.execute(
                    sql.SQL("""
                    SELECT * FROM {} WHERE owner_key = %s ORDER BY created_at ASC
                    """).format(TABLE_RESOURCES),
                    (owner_key,),
                )
            else:
                result = await conn.execute(
                    sql.SQL("""
                    SELECT * FROM {} WHERE owner_key = %s AND kind = %s
                    ORDER BY created_at ASC
                    """).format(TABLE_RESOURCES),
                    (owner_key, kind.value),
                )
            rows = await result.fetchall()
            return [self._row_to_record(row) for row in rows]

    async def set_desired_state(
        self,
        record_id: str,
        state: DesiredState,
        now: datetime,
    ) -> Optional[ResourceRecord]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET state = %(state)s, retry_count = 0, updated_at = %(now)s
                WHERE id = %(id)s
                  AND (state <> 'deleted' OR %(state)s = 'deleted')
                RETURNING *
                """).format(TABLE_RESOURCES),
                {"id": record_id, "state": state.value, "now": now},
            )
            row = await result.fetchone()
            return self._row_to_record(row) if row else None

    async def list_candidates(
        self,
        kind: ResourceKind,
        pairs: Sequence[Tuple[DesiredState, Phase]],
        now: datetime,
        lease_seconds: float,
        limit: int,
    ) -> List[ResourceRecord]:
        if not pairs:
            return []

        pair_clauses = sql.SQL(" OR ").join(
            sql.SQL("(state = {} AND phase = {})").format(
                sql.Literal(state.value), sql.Literal(phase.value)
            )
            for state, phase in pairs
        )
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {}
                WHERE kind = %(kind)s
                  AND ({})
                  AND (locked_at IS NULL OR locked_at <= %(stale_before)s)
                ORDER BY locked_at ASC NULLS FIRST, updated_at ASC
                LIMIT %(limit)s
                """).format(TABLE_RESOURCES, pair_clauses),
                {
                    "kind": kind.value,
                    "stale_before": now - timedelta(seconds=lease_seconds),
                    "limit": limit,
                },
            )
            rows = await result.fetchall()
            return [self._row_to_record(row) for row in rows]

    # =========================================================================
    # LEASE WRITES
    # =========================================================================

    async def try_lock(
        self,
        record_id: str,
        now: datetime,
        lease_seconds: float,
    ) -> Optional[datetime]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET locked_at = %(now)s
                WHERE id = %(id)s
                  AND (locked_at IS NULL OR locked_at <= %(stale_before)s)
                RETURNING locked_at
                """).format(TABLE_RESOURCES),
                {
                    "id": record_id,
                    "now": now,
                    "stale_before": now - timedelta(seconds=lease_seconds),
                },
            )
            row = await result.fetchone()
            return row["locked_at"] if row else None

    async def unlock(self, record_id: str, token: datetime) -> bool:
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {} SET locked_at = NULL
                WHERE id = %s AND locked_at = %s
                """).format(TABLE_RESOURCES),
                (record_id, token),
            )
            return result.rowcount > 0

    async def relock(self, record_id: str, token: datetime, locked_at: datetime) -> bool:
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {} SET locked_at = %s
                WHERE id = %s AND locked_at = %s
                """).format(TABLE_RESOURCES),
                (locked_at, record_id, token),
            )
            return result.rowcount > 0

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
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {} SET
                    phase = %(phase)s,
                    message = %(message)s,
                    retry_count = %(retry_count)s,
                    locked_at = %(locked_at)s,
                    updated_at = %(now)s
                WHERE id = %(id)s
                  AND locked_at = %(token)s
                """).format(TABLE_RESOURCES),
                {
                    "id": record_id,
                    "token": token,
                    "phase": phase.value,
                    "message": message,
                    "retry_count": retry_count,
                    "locked_at": locked_at,
                    "now": now,
                },
            )
            if result.rowcount == 0:
                logger.warning(
                    f"Lease token mismatch committing {record_id} -> {phase.value}; "
                    f"result discarded"
                )
                return False
            return True

    # =========================================================================
    # CASCADE WRITES
    # =========================================================================

    async def cascade(
        self,
        rule: CascadeRule,
        now: datetime,
        parent_id: Optional[str] = None,
    ) -> List[CascadeWrite]:
        if rule.join == CascadeJoin.PARENT:
            join = sql.SQL("c.parent_id = p.id")
        else:
            join = sql.SQL("c.owner_key = p.owner_key")

        filters = [sql.SQL("")]
        if rule.parent_expired:
            filters.append(sql.SQL(" AND p.expires_at IS NOT NULL AND p.expires_at <= %(now)s"))
        if parent_id is not None:
            filters.append(sql.SQL(" AND p.id = %(parent_id)s"))

        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                UPDATE {table} AS c
                SET state = %(child_state)s, retry_count = 0, updated_at = %(now)s
                FROM {table} AS p
                WHERE p.kind = %(parent_kind)s
                  AND p.state = %(parent_state)s
                  {filters}
                  AND c.id <> p.id
                  AND {join}
                  AND c.kind::text = ANY(%(child_kinds)s)
                  AND c.state::text = ANY(%(from_states)s)
                RETURNING c.id AS id, c.kind AS kind, p.id AS parent_id
                """).format(table=TABLE_RESOURCES, filters=sql.Composed(filters), join=join),
                {
                    "child_state": rule.child_state.value,
                    "now": now,
                    "parent_kind": rule.parent_kind.value,
                    "parent_state": rule.parent_state.value,
                    "parent_id": parent_id,
                    "child_kinds": [k.value for k in rule.child_kinds],
                    "from_states": [s.value for s in rule.child_from_states],
                },
            )
            rows = await result.fetchall()
            return [(row["id"], ResourceKind(row["kind"]), row["parent_id"]) for row in rows]

    async def expire(self, rule: ExpiryRule, now: datetime) -> List[str]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET state = %(new_state)s, retry_count = 0, updated_at = %(now)s
                WHERE kind = %(kind)s
                  AND state::text = ANY(%(from_states)s)
                  AND expires_at IS NOT NULL
                  AND expires_at <= %(cutoff)s
                RETURNING id
                """).format(TABLE_RESOURCES),
                {
                    "new_state": rule.new_state.value,
                    "now": now,
                    "kind": rule.kind.value,
                    "from_states": [s.value for s in rule.from_states],
                    "cutoff": now - timedelta(seconds=rule.grace_seconds),
                },
            )
            rows = await result.fetchall()
            return [row["id"] for row in rows]

    async def ping(self) -> bool:
        try:
            async with self.pool.connection() as conn:
                await conn.execute("SELECT 1")
        except Exception as e:
            logger.warning(f"Resource store ping failed: {e}")
            return False
        return True

    def _row_to_record(self, row: Dict[str, Any]) -> ResourceRecord:
        """Convert database row to ResourceRecord model."""
        return ResourceRecord(
            id=row["id"],
            kind=ResourceKind(row["kind"]),
            owner_key=row["owner_key"],
            parent_id=row.get("parent_id"),
            state=DesiredState(row["state"]),
            phase=Phase(row["phase"]),
            locked_at=row.get("locked_at"),
            message=row.get("message"),
            retry_count=row.get("retry_count") or 0,
            spec=row.get("spec") or {},
            expires_at=row.get("expires_at"),
            created_at=row["created_at"],
            updated_at=row.get("updated_at") or row["created_at"],
        )


__all__ = ["PostgresResourceStore"]
