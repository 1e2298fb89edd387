"""
Transition authorization (``admissions_kernel.domain.authorization``).

Responsibility
--------------
Two independent gates on a transition:

* ``is_available`` -- are the transition's conditions satisfied by the
  application right now?  (AND over the ordered condition list; an empty
  list is always available.)
* ``user_has_permission`` -- may this actor execute it?  (OR over the
  required permissions; an empty set is open to everyone; the system actor
  and admins always pass.)

Architecture position
---------------------
**Kernel domain layer** -- pure.  The PermissionSource port is the only
collaborator; implementations live outside the kernel
(``admissions_services.role_permissions``) or are the static default below.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol
from uuid import UUID

from admissions_kernel.domain.actors import Actor
from admissions_kernel.domain.graph import TransitionEdge
from admissions_kernel.domain.requirements import EvaluationContext


class PermissionSource(Protocol):
    """Answers whether an actor holds any of a set of permissions."""

    def actor_has_any_permission(
        self, actor: Actor, permission_ids: frozenset[str]
    ) -> bool: ...


class StaticPermissionSource:
    """In-memory permission grants keyed by actor id.

    The actor's own ``permissions`` field counts as well, so callers that
    resolve grants upstream can pass them straight through.
    """

    def __init__(self, grants: Mapping[UUID, frozenset[str] | set[str]] | None = None):
        self._grants: dict[UUID, frozenset[str]] = {
            actor_id: frozenset(perms) for actor_id, perms in (grants or {}).items()
        }

    def grant(self, actor_id: UUID, *permissions: str) -> None:
        self._grants[actor_id] = self._grants.get(actor_id, frozenset()) | set(permissions)

    def actor_has_any_permission(
        self, actor: Actor, permission_ids: frozenset[str]
    ) -> bool:
        held = actor.permissions | self._grants.get(actor.actor_id, frozenset())
        return bool(held & permission_ids)


class TransitionAuthorizer:
    """Evaluates availability and permission for transitions."""

    def __init__(self, permission_source: PermissionSource):
        self._permission_source = permission_source

    def is_available(self, transition: TransitionEdge, context: EvaluationContext) -> bool:
        """True iff every condition holds (``context.stage`` is the source)."""
        return all(condition.evaluate(context) for condition in transition.conditions)

    def user_has_permission(self, transition: TransitionEdge, actor: Actor) -> bool:
        required = transition.required_permissions
        if not required:
            return True
        if actor.is_system or actor.is_admin:
            return True
        return self._permission_source.actor_has_any_permission(actor, frozenset(required))
