"""
admissions_services.role_permissions -- config-driven permission source.

Responsibility:
    Implements the kernel's ``PermissionSource`` port from the
    ``permissions`` map of the active configuration set: an actor holds a
    permission when one of its roles is listed for it, or when the
    permission was asserted directly on the ``Actor``.

Architecture position:
    Services layer.  Consumes ``EngineSettings`` from admissions_config and
    is handed to ``WorkflowEngine`` by the orchestrator.

Invariants:
    - The kernel stays identity-agnostic; roles come in on the Actor.
    - Admin and system bypasses live in the kernel's authorizer, not here.
"""

from __future__ import annotations

from admissions_config.schema import EngineSettings
from admissions_kernel.domain.actors import Actor


class RolePermissionSource:
    """Role -> permission grants taken from configuration."""

    def __init__(self, settings: EngineSettings):
        self._settings = settings

    def permissions_for(self, actor: Actor) -> frozenset[str]:
        """Every permission the actor holds, by role or directly."""
        return actor.permissions | self._settings.permissions_for_roles(actor.roles)

    def actor_has_any_permission(
        self, actor: Actor, permission_ids: frozenset[str]
    ) -> bool:
        return bool(self.permissions_for(actor) & permission_ids)

    def actor_has_permission(self, actor: Actor, permission_id: str) -> bool:
        return self.actor_has_any_permission(actor, frozenset({permission_id}))
