"""
Authorization for MDB_GUARD.

Evaluates declared collection permissions against the client's caller
identity and scopes storage criteria to owned items.
"""

from .access import evaluate_access, scope_to_owner

__all__ = ["evaluate_access", "scope_to_owner"]
