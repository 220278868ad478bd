"""
roles.py - Role table backing the vault's permission checks

Privileged operations call RoleTable.require() before their body. Roles are
plain strings mapped to sets of accounts.
"""

from __future__ import annotations
from typing import Dict, Set

from .core import MissingRole


class RoleTable:
    """
    Mapping of role name -> accounts holding it.

    Example:
        roles = RoleTable()
        roles.grant(ADMIN_ROLE, "gov")
        roles.require(ADMIN_ROLE, "gov")      # passes
        roles.require(ADMIN_ROLE, "mallory")  # raises MissingRole
    """

    def __init__(self):
        self._members: Dict[str, Set[str]] = {}

    def has_role(self, role: str, account: str) -> bool:
        return account in self._members.get(role, ())

    def require(self, role: str, account: str) -> None:
        """Raise MissingRole unless account holds role."""
        if not self.has_role(role, account):
            raise MissingRole(f"{account} is missing role {role}")

    def grant(self, role: str, account: str) -> None:
        self._members.setdefault(role, set()).add(account)

    def revoke(self, role: str, account: str) -> None:
        members = self._members.get(role)
        if members is not None:
            members.discard(account)

    def members(self, role: str) -> Set[str]:
        return set(self._members.get(role, ()))

    def __repr__(self) -> str:
        counts = {role: len(accounts) for role, accounts in self._members.items()}
        return f"RoleTable({counts})"
