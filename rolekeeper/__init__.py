"""
Rolekeeper authorization engine.

Hierarchical roles, explicit permission grants, delegated administration,
expiring role assignments and an immutable audit trail.
"""

__version__ = "1.0.0"
