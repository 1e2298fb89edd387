"""
Actors (``admissions_kernel.domain.actors``).

Responsibility
--------------
Identifies who performs an operation.  Humans are ``Actor`` values handed
in by the caller; automatic transitions run as ``SYSTEM_ACTOR``, which
bypasses permission checks and is recorded by id in history and audit.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

ADMIN_ROLE = "admin"

SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


@dataclass(frozen=True)
class Actor:
    """A user (or the system) performing a workflow operation.

    Contract:
        ``roles`` and ``permissions`` are what the caller's identity layer
        asserts.  The PermissionSource decides what they grant.
    """

    actor_id: UUID
    roles: tuple[str, ...] = ()
    permissions: frozenset[str] = frozenset()
    elevated: bool = False
    is_system: bool = False

    @property
    def is_admin(self) -> bool:
        """Elevated scope: an explicit flag or the admin role."""
        return self.elevated or ADMIN_ROLE in self.roles

    @classmethod
    def user(
        cls,
        actor_id: UUID,
        roles: tuple[str, ...] | list[str] = (),
        permissions: frozenset[str] | set[str] = frozenset(),
    ) -> Actor:
        return cls(actor_id=actor_id, roles=tuple(roles), permissions=frozenset(permissions))


SYSTEM_ACTOR = Actor(actor_id=SYSTEM_ACTOR_ID, is_system=True)
"""Sentinel actor for automatic transitions."""


def system_actor(actor_id: UUID | None = None) -> Actor:
    """The system actor, optionally under a configured id."""
    if actor_id is None or actor_id == SYSTEM_ACTOR_ID:
        return SYSTEM_ACTOR
    return Actor(actor_id=actor_id, is_system=True)
