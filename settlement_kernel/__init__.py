"""
Settlement Kernel

Domain types, persistence and audit plumbing for monthly owner
reconciliations:
- Closed tagged union of reconciliation line items
- Append-only, hash-chained reconciliation audit log
- Structured JSON logging and typed errors
- SQLAlchemy models and read-only selectors over the line-item store
"""

__version__ = "0.1.0"
