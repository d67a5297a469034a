# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# STATUS: Core - Reconciliation loop
# PURPOSE: Converge every resource record towards its desired state
# CREATED: 11 OCT 2026
# ============================================================================
"""
Orchestrator Module

The reconciliation loop, the transition engine and the cascade notifier.

Usage:
    from orchestrator import Reconciler

    reconciler = Reconciler(store, executor, cascade)
    await reconciler.start()
"""

from .cascade import CascadeNotifier, DEFAULT_RULES, default_expiry_rules
from .loop import Reconciler, CycleStats

__all__ = ["Reconciler", "CycleStats", "CascadeNotifier", "DEFAULT_RULES", "default_expiry_rules"]
