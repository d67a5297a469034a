# ============================================================================
# RETRY / BACKOFF CONTROLLER
# ============================================================================
# STATUS: Core - Driver outcome classification
# PURPOSE: Decide between success, retry after a delay, and failure
# CREATED: 10 OCT 2026
# ============================================================================
"""
Retry / Backoff Controller

Turns a driver Outcome into a RetryDecision, using the attempt counter
stored on the record (retry_count):

    Success                   -> success, counter reset
    Fatal                     -> fail
    Retryable, attempts left  -> retry after delay, counter + 1
    Retryable, last attempt   -> fail ("retries exhausted after N attempts")

A record therefore reaches its failed phase after exactly max_attempts
driver invocations on the same edge.
"""

import logging
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field

from core.contracts import OutcomeStatus, ResourceKind
from core.models import ResourceRecord, truncate_message
from drivers.registry import Outcome

logger = logging.getLogger(__name__)


class RetryPolicy(BaseModel):
    """Retry configuration for a kind."""
    max_attempts: int = Field(default=5, ge=1, le=20)
    backoff: str = Field(default="exponential", pattern="^(fixed|exponential|linear)$")
    initial_delay_seconds: int = Field(default=5, ge=0)
    max_delay_seconds: int = Field(default=300, ge=0)

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt after `attempt` (1-based)."""
        attempt = max(1, attempt)
        if self.backoff == "fixed":
            delay = self.initial_delay_seconds
        elif self.backoff == "linear":
            delay = self.initial_delay_seconds * attempt
        else:
            delay = self.initial_delay_seconds * (2 ** (attempt - 1))
        return float(min(delay, self.max_delay_seconds))


class DecisionStatus(str, Enum):
    SUCCESS = "success"
    RETRY = "retry"
    FAIL = "fail"


class RetryDecision(BaseModel):
    """What the executor should commit for one driver outcome."""
    status: DecisionStatus
    delay_seconds: float = 0.0
    retry_count: int = 0
    message: Optional[str] = None


class BackoffController:
    """
    Stateless outcome classifier.

    Policies are looked up per kind; kinds without one use the default.
    """

    def __init__(
        self,
        policies: Optional[Dict[ResourceKind, RetryPolicy]] = None,
        default_policy: Optional[RetryPolicy] = None,
    ):
        self.policies = dict(policies or {})
        self.default_policy = default_policy or RetryPolicy()

    def policy_for(self, kind: ResourceKind) -> RetryPolicy:
        return self.policies.get(kind, self.default_policy)

    def decide(self, record: ResourceRecord, outcome: Outcome) -> RetryDecision:
        if outcome.status == OutcomeStatus.SUCCESS:
            return RetryDecision(status=DecisionStatus.SUCCESS)

        reason = outcome.reason or outcome.status.value

        if outcome.status == OutcomeStatus.FATAL:
            return RetryDecision(
                status=DecisionStatus.FAIL,
                retry_count=record.retry_count,
                message=truncate_message(reason),
            )

        policy = self.policy_for(record.kind)
        attempt = record.retry_count + 1

        if attempt >= policy.max_attempts:
            logger.warning(
                f"{record.kind.value} {record.id}: retries exhausted after {attempt} attempts"
            )
            return RetryDecision(
                status=DecisionStatus.FAIL,
                retry_count=attempt,
                message=truncate_message(f"retries exhausted after {attempt} attempts: {reason}"),
            )

        return RetryDecision(
            status=DecisionStatus.RETRY,
            delay_seconds=policy.delay_for(attempt),
            retry_count=attempt,
            message=truncate_message(reason),
        )


__all__ = ["RetryPolicy", "DecisionStatus", "RetryDecision", "BackoffController"]
