"""
Role holdings: grant, revoke, temporary assignment and role queries.

Import RoleAssignmentService from
rolekeeper.kernel.assignments.role_assignment_service; this package only
re-exports the holding queries the other services build on.
"""

from rolekeeper.kernel.assignments.holdings import RoleHolding, current_holdings, max_level

__all__ = ["RoleHolding", "current_holdings", "max_level"]
