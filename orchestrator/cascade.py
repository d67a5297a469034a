# ============================================================================
# CASCADE NOTIFIER
# ============================================================================
# STATUS: Core - Desired-state propagation
# PURPOSE: Push parent desired-state changes down to owned resources
# CREATED: 11 OCT 2026
# ============================================================================
"""
Cascade Notifier

Applies the ownership graph as desired-state writes on children. It
never touches phases and never calls drivers; the children are then
reconciled by their own kind loops.

Two entry points:
- run_pass():    level-triggered sweep over every rule. Catches anything
                 missed by a crashed process or a direct database write.
- propagate():   immediate fan-out below one record, called after an
                 external desired-state write.

Each rule is one atomic store statement, so a child is either rewritten
completely or not at all, and a DELETED child is never resurrected.
"""

import logging
from collections import deque
from typing import List, Optional

from core.config import CascadeDefaults, get_defaults
from core.contracts import DesiredState, ResourceKind
from core.logging import ComponentType, log_checkpoint, log_context
from core.models import CascadeEvent, CascadeJoin, CascadeRule, ExpiryRule, ResourceRecord, utc_now
from infrastructure.locking import Clock
from repositories.base import CascadeWrite, ResourceStore

logger = logging.getLogger(__name__)


# ============================================================================
# DEFAULT OWNERSHIP GRAPH
# ============================================================================

APPLICATION_OWNED_KINDS = [
    ResourceKind.STORAGE_USER,
    ResourceKind.BUCKET,
    ResourceKind.DATABASE,
    ResourceKind.RUNTIME_DOMAIN,
    ResourceKind.WEBSITE_DOMAIN,
    ResourceKind.CRON_TRIGGER,
]

# Ordered parents before children so one pass settles a whole chain
DEFAULT_RULES: List[CascadeRule] = [
    CascadeRule(
        name="subscription_expired_stops_application",
        parent_kind=ResourceKind.SUBSCRIPTION,
        parent_state=DesiredState.ACTIVE,
        parent_expired=True,
        child_kinds=[ResourceKind.APPLICATION],
        child_state=DesiredState.STOPPED,
        child_from_states=[DesiredState.RUNNING],
    ),
    CascadeRule(
        name="subscription_deleted_deletes_application",
        parent_kind=ResourceKind.SUBSCRIPTION,
        parent_state=DesiredState.DELETED,
        child_kinds=[ResourceKind.APPLICATION],
        child_state=DesiredState.DELETED,
        child_from_states=[DesiredState.RUNNING, DesiredState.STOPPED],
    ),
    CascadeRule(
        name="application_deleted_deletes_resources",
        parent_kind=ResourceKind.APPLICATION,
        parent_state=DesiredState.DELETED,
        child_kinds=APPLICATION_OWNED_KINDS,
        child_state=DesiredState.DELETED,
        child_from_states=[DesiredState.ACTIVE],
    ),
    CascadeRule(
        name="bucket_deleted_deletes_bucket_domain",
        parent_kind=ResourceKind.BUCKET,
        parent_state=DesiredState.DELETED,
        child_kinds=[ResourceKind.BUCKET_DOMAIN],
        child_state=DesiredState.DELETED,
        child_from_states=[DesiredState.ACTIVE],
        join=CascadeJoin.PARENT,
    ),
]


def default_expiry_rules(settings: Optional[CascadeDefaults] = None) -> List[ExpiryRule]:
    """Expired subscriptions are deleted after the grace period."""
    settings = settings or get_defaults().cascade
    return [
        ExpiryRule(
            name="subscription_expired_deleted",
            kind=ResourceKind.SUBSCRIPTION,
            from_states=[DesiredState.ACTIVE],
            new_state=DesiredState.DELETED,
            grace_seconds=settings.expired_grace_seconds,
        ),
    ]


# ============================================================================
# NOTIFIER
# ============================================================================

class CascadeNotifier:
    """
    Applies cascade and expiry rules against the shared store.
    """

    def __init__(
        self,
        store: ResourceStore,
        rules: Optional[List[CascadeRule]] = None,
        expiry_rules: Optional[List[ExpiryRule]] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.rules = list(DEFAULT_RULES if rules is None else rules)
        self.expiry_rules = list(default_expiry_rules() if expiry_rules is None else expiry_rules)
        self.clock = clock

        self._passes = 0
        self._writes = 0

    def _events(self, rule: CascadeRule, writes: List[CascadeWrite], now) -> List[CascadeEvent]:
        events = []
        for child_id, child_kind, parent_id in writes:
            event = CascadeEvent(
                rule=rule.name,
                record_id=child_id,
                kind=child_kind,
                new_state=rule.child_state,
                parent_id=parent_id,
                applied_at=now,
            )
            with log_context(record_id=child_id, kind=child_kind.value):
                log_checkpoint("cascade_applied", {
                    "rule": rule.name,
                    "parent_id": parent_id,
                    "new_state": rule.child_state.value,
                })
            events.append(event)
        return events

    async def run_pass(self) -> List[CascadeEvent]:
        """
        Apply every expiry rule, then every cascade rule, once.

        Returns:
            One event per child record written
        """
        now = self.clock()
        events: List[CascadeEvent] = []

        with log_context(component=ComponentType.CASCADE.value, operation="cascade_pass"):
            for expiry in self.expiry_rules:
                expired = await self.store.expire(expiry, now)
                for record_id in expired:
                    with log_context(record_id=record_id, kind=expiry.kind.value):
                        log_checkpoint("expiry_applied", {
                            "rule": expiry.name,
                            "new_state": expiry.new_state.value,
                        })
                    events.append(CascadeEvent(
                        rule=expiry.name,
                        record_id=record_id,
                        kind=expiry.kind,
                        new_state=expiry.new_state,
                        applied_at=now,
                    ))

            for rule in self.rules:
                writes = await self.store.cascade(rule, now)
                events.extend(self._events(rule, writes, now))

        self._passes += 1
        self._writes += len(events)
        if events:
            logger.info(f"Cascade pass wrote {len(events)} desired states")
        return events

    async def propagate(self, record: ResourceRecord) -> List[CascadeEvent]:
        """
        Fan out below one record immediately.

        Follows the chain breadth-first: a deleted subscription deletes
        its application, which in turn deletes the application's
        resources, all within this call.
        """
        now = self.clock()
        events: List[CascadeEvent] = []
        pending = deque([(record.kind, record.id, record.state)])
        seen = {record.id}

        with log_context(component=ComponentType.CASCADE.value, operation="propagate"):
            while pending:
                kind, parent_id, state = pending.popleft()
                for rule in self.rules:
                    if rule.parent_kind != kind or rule.parent_state != state:
                        continue
                    writes = await self.store.cascade(rule, now, parent_id=parent_id)
                    events.extend(self._events(rule, writes, now))
                    for child_id, child_kind, _ in writes:
                        if child_id not in seen:
                            seen.add(child_id)
                            pending.append((child_kind, child_id, rule.child_state))

        self._writes += len(events)
        return events

    @property
    def stats(self):
        return {"passes": self._passes, "writes": self._writes}


__all__ = ["CascadeNotifier", "DEFAULT_RULES", "APPLICATION_OWNED_KINDS", "default_expiry_rules"]
