# ============================================================================
# ORCHESTRATOR ENGINE
# ============================================================================
# STATUS: Core - Engine components
# PURPOSE: Transition tables, outcome classification, edge execution
# CREATED: 10 OCT 2026
# ============================================================================
"""
Orchestrator Engine Components

- transitions: per-kind transition tables as data
- backoff: retry policy and outcome classification
- executor: one table edge per lease
"""

from orchestrator.engine.backoff import (
    RetryPolicy,
    RetryDecision,
    DecisionStatus,
    BackoffController,
)
from orchestrator.engine.transitions import (
    Transition,
    KindSpec,
    validate_kind_spec,
    build_kind_spec,
    default_kinds,
    PROVISIONED_TABLE,
    APPLICATION_TABLE,
)
from orchestrator.engine.executor import (
    TransitionExecutor,
    ExecutionResult,
    ExecutionStatus,
)

__all__ = [
    # Backoff
    "RetryPolicy",
    "RetryDecision",
    "DecisionStatus",
    "BackoffController",
    # Transitions
    "Transition",
    "KindSpec",
    "validate_kind_spec",
    "build_kind_spec",
    "default_kinds",
    "PROVISIONED_TABLE",
    "APPLICATION_TABLE",
    # Executor
    "TransitionExecutor",
    "ExecutionResult",
    "ExecutionStatus",
]
