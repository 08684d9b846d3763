# visit_core/actors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from visit_core.models import UserRole
from visit_core.workflows import ROLES, normalize_role, roles_have_permission


@dataclass(frozen=True)
class Actor:
    """
    Resolved identity performing a workflow operation.

    `role` is the single role shown in audit rows and the UI. `roles` is every
    role the user holds; permissions are checked against all of them. An
    actor built with `role` only (service accounts, tests) is treated as
    holding just that role.

    `user` is kept only so audit rows can link back to the account.
    """

    id: Optional[int]
    username: str
    role: str
    roles: FrozenSet[str] = field(default=frozenset(), compare=False)
    user: object = field(default=None, compare=False, repr=False)

    @property
    def is_resolved(self) -> bool:
        return bool(self.username and self.role)

    @property
    def held_roles(self) -> FrozenSet[str]:
        if self.roles:
            return self.roles
        return frozenset({self.role}) if self.role else frozenset()

    def has_permission(self, permission: str) -> bool:
        return roles_have_permission(self.held_roles, permission)


def _primary_role(roles) -> str:
    """
    Display role: the first of `roles` in ROLES order.
    """
    for role in ROLES:
        if role in roles:
            return role
    return ""


def resolve_actor(user) -> Optional[Actor]:
    """
    Build an Actor from an authenticated Django user.

    Superusers are treated as SUDO. Returns None for anonymous users.
    """
    if not user or not getattr(user, "is_authenticated", False):
        return None

    if getattr(user, "is_superuser", False):
        roles = frozenset({"SUDO"})
    else:
        roles = frozenset(
            normalize_role(r)
            for r in UserRole.objects.filter(user=user).values_list("role", flat=True)
        )

    return Actor(
        id=user.pk,
        username=user.get_username(),
        role=_primary_role(roles),
        roles=roles,
        user=user,
    )
