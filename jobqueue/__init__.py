"""
Tenant Job Queue

A single-node job queue with atomic leasing, bounded retries with dead-lettering,
idempotent submission, and per-tenant admission control.
"""

__version__ = "1.0.0"
