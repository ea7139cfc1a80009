"""
Payables Kernel - invoice reconciliation and approval core

An append-only invoice approval system with:
- Explicit lifecycle transition table
- Optimistic concurrency on status changes
- Full auditability via per-entity hash chain
- Write-once risk assessment fields
"""

__version__ = "0.1.0"
