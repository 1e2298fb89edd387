"""
Transition authorization.

Covers:
- Availability is an AND over the condition list
- Permission is an OR over required permissions
- System actor and admins bypass permission checks
"""

from uuid import uuid4

from admissions_kernel.domain.actors import SYSTEM_ACTOR, Actor, system_actor
from admissions_kernel.domain.authorization import (
    StaticPermissionSource,
    TransitionAuthorizer,
)
from admissions_kernel.domain.conditions import parse_conditions
from admissions_kernel.domain.graph import TransitionEdge
from admissions_kernel.domain.requirements import EvaluationContext


def _edge(conditions=(), permissions=()):
    return TransitionEdge(
        id=uuid4(),
        workflow_id=uuid4(),
        source_stage_id=uuid4(),
        target_stage_id=uuid4(),
        name="Accept",
        priority=1,
        conditions=parse_conditions(list(conditions)),
        required_permissions=frozenset(permissions),
    )


def _ctx(**attributes):
    return EvaluationContext(application_id=uuid4(), attributes=attributes)


class TestAvailability:

    def test_no_conditions_always_available(self):
        authorizer = TransitionAuthorizer(StaticPermissionSource())
        assert authorizer.is_available(_edge(), _ctx())

    def test_all_conditions_must_hold(self):
        edge = _edge(
            [
                {"field": "is_submitted", "value": True},
                {"field": "application_fee_paid", "value": True},
            ]
        )
        authorizer = TransitionAuthorizer(StaticPermissionSource())
        assert not authorizer.is_available(edge, _ctx(is_submitted=True))
        assert authorizer.is_available(
            edge, _ctx(is_submitted=True, application_fee_paid=True)
        )


class TestPermission:

    def test_open_transition(self):
        authorizer = TransitionAuthorizer(StaticPermissionSource())
        assert authorizer.user_has_permission(_edge(), Actor.user(uuid4()))

    def test_any_required_permission_suffices(self):
        user = Actor.user(uuid4())
        source = StaticPermissionSource({user.actor_id: {"complete_review"}})
        authorizer = TransitionAuthorizer(source)
        edge = _edge(permissions=["complete_review", "make_admission_decision"])
        assert authorizer.user_has_permission(edge, user)
        assert not authorizer.user_has_permission(edge, Actor.user(uuid4()))

    def test_permissions_asserted_on_actor(self):
        user = Actor.user(uuid4(), permissions={"make_admission_decision"})
        authorizer = TransitionAuthorizer(StaticPermissionSource())
        assert authorizer.user_has_permission(
            _edge(permissions=["make_admission_decision"]), user
        )

    def test_system_and_admin_bypass(self):
        authorizer = TransitionAuthorizer(StaticPermissionSource())
        edge = _edge(permissions=["make_admission_decision"])
        assert authorizer.user_has_permission(edge, SYSTEM_ACTOR)
        assert authorizer.user_has_permission(edge, Actor.user(uuid4(), roles=["admin"]))
        assert authorizer.user_has_permission(
            edge, Actor(actor_id=uuid4(), elevated=True)
        )

    def test_grant_accumulates(self):
        user = Actor.user(uuid4())
        source = StaticPermissionSource()
        source.grant(user.actor_id, "a")
        source.grant(user.actor_id, "b")
        assert source.actor_has_any_permission(user, frozenset({"b"}))


class TestSystemActor:

    def test_default_and_configured_ids(self):
        assert system_actor() is SYSTEM_ACTOR
        custom = system_actor(uuid4())
        assert custom.is_system
        assert custom.actor_id != SYSTEM_ACTOR.actor_id
