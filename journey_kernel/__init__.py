"""
Journey Kernel

A data-defined, per-tenant member journey state machine with:
- Versioned journey definitions validated at publish time
- One pinned instance per member and journey code
- Append-only transition log
- Approval-gated transitions with best-effort board projection
- Optimistic concurrency on instance state
"""

__version__ = "0.1.0"
