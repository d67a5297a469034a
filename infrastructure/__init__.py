# ============================================================================
# INFRASTRUCTURE MODULE
# ============================================================================
# STATUS: Infrastructure - Concurrency control
# PURPOSE: Lease management on top of the shared resource store
# CREATED: 09 OCT 2026
# ============================================================================
"""
Infrastructure module.

Provides:
- LeaseManager: compare-and-set leases on individual resource records
"""

from .locking import LeaseManager, Clock

__all__ = ["LeaseManager", "Clock"]
