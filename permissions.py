"""Role to capability table.

The frontend reads this table from ``GET /auth/permissions/table`` instead of
keeping its own copy.
"""

from typing import Dict, FrozenSet

ROLES = ("student", "teacher", "coordinator")

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    "student": frozenset({
        "view:curriculum",
        "view:library",
        "mark:attendance",
        "add:subjects",
        "view:events",
        "view:members",
    }),
    "teacher": frozenset({
        "view:curriculum",
        "view:library",
        "crud:curriculum",
        "crud:library",
        "view:events",
        "view:members",
        "add:students",
    }),
    "coordinator": frozenset({
        "view:curriculum",
        "view:library",
        "crud:curriculum",
        "crud:library",
        "crud:clubs",
        "crud:events",
        "add:students",
        "view:events",
        "view:members",
    }),
}


def permissions_for(role: str) -> FrozenSet[str]:
    return ROLE_PERMISSIONS.get(role, frozenset())


def has_permission(role: str, capability: str) -> bool:
    return capability in permissions_for(role)


def permission_table() -> Dict[str, list]:
    return {role: sorted(ROLE_PERMISSIONS[role]) for role in ROLES}
