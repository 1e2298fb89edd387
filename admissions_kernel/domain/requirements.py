"""
Stage requirement evaluation (``admissions_kernel.domain.requirements``).

Responsibility
--------------
Answers "has this application satisfied what the stage asks for?":
required documents present, present documents verified, required actions
completed.  Also provides the evaluation context that transition
conditions read.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.  Documents arrive as
``DocumentRecord`` snapshots fetched by the caller through the
``DocumentSource`` port; nothing here touches the database.

Invariants enforced
-------------------
* Evaluation never mutates the application, the documents or the stage.
* ``missing_documents`` preserves the stage's declared order.
* A required action with no registered predicate is met iff its id is in
  the application's ``completed_actions`` attribute.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from admissions_kernel.domain.conditions import MISSING
from admissions_kernel.domain.graph import StageNode
from admissions_kernel.logging_config import get_logger

logger = get_logger("domain.requirements")

COMPLETED_ACTIONS_FIELD = "completed_actions"


@dataclass(frozen=True)
class DocumentRecord:
    """Snapshot of one submitted document."""

    document_type: str
    verified: bool = False
    document_id: UUID | None = None
    verified_at: datetime | None = None


class DocumentSource(Protocol):
    """Read port onto the surrounding document system."""

    def documents_for(self, application_id: UUID) -> Sequence[DocumentRecord]: ...


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


class PredicateRegistry:
    """Named boolean checks over an EvaluationContext.

    Used for stage ``required_actions`` and for ``Predicate`` conditions.
    A name with no registered evaluator falls back to membership in the
    application's ``completed_actions`` attribute.
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, Callable[[EvaluationContext], bool]] = {}

    def register(
        self, name: str, evaluator: Callable[[EvaluationContext], bool]
    ) -> None:
        """Register an evaluator for a predicate by name."""
        self._evaluators[name] = evaluator

    def names(self) -> frozenset[str]:
        return frozenset(self._evaluators)

    def evaluate(self, name: str, context: EvaluationContext) -> bool:
        """Evaluate a predicate. Returns True if it holds."""
        fn = self._evaluators.get(name)
        if fn is None:
            return name in context.completed_actions
        try:
            return bool(fn(context))
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "predicate_evaluation_error",
                extra={"predicate_name": name, "error": str(e)},
            )
            return False


def _flag(field_name: str) -> Callable[[EvaluationContext], bool]:
    def check(context: EvaluationContext) -> bool:
        return context.field_value(field_name) is True

    check.__doc__ = f"Attribute '{field_name}' is true."
    return check


def _action_or_flag(action: str, field_name: str) -> Callable[[EvaluationContext], bool]:
    flag = _flag(field_name)

    def check(context: EvaluationContext) -> bool:
        return action in context.completed_actions or flag(context)

    return check


def default_predicate_registry() -> PredicateRegistry:
    """Return a PredicateRegistry with the built-in admissions actions."""
    registry = PredicateRegistry()
    registry.register("submit_application", _action_or_flag("submit_application", "is_submitted"))
    registry.register(
        "pay_application_fee",
        _action_or_flag("pay_application_fee", "application_fee_paid"),
    )
    registry.register(
        "provide_additional_info",
        _action_or_flag("provide_additional_info", "additional_info_provided"),
    )
    registry.register(
        "complete_interview",
        _action_or_flag("complete_interview", "interview_completed"),
    )
    registry.register(
        "pay_enrollment_deposit",
        _action_or_flag("pay_enrollment_deposit", "enrollment_deposit_paid"),
    )
    return registry


# ---------------------------------------------------------------------------
# Evaluation context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EvaluationContext:
    """
    Everything a condition or requirement may read for one application.

    Contract:
        ``stage`` is the stage being evaluated (for transitions, the
        source stage).  Implements the ConditionContext protocol.
    """

    application_id: UUID
    attributes: Mapping[str, Any]
    documents: tuple[DocumentRecord, ...] = ()
    stage: StageNode | None = None
    predicates: PredicateRegistry = field(default_factory=PredicateRegistry)

    def for_stage(self, stage: StageNode | None) -> EvaluationContext:
        return EvaluationContext(
            application_id=self.application_id,
            attributes=self.attributes,
            documents=self.documents,
            stage=stage,
            predicates=self.predicates,
        )

    @property
    def completed_actions(self) -> frozenset[str]:
        raw = self.attributes.get(COMPLETED_ACTIONS_FIELD) or ()
        if isinstance(raw, str):
            return frozenset({raw})
        return frozenset(str(item) for item in raw)

    def field_value(self, path: str) -> Any:
        current: Any = self.attributes
        for part in path.split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            else:
                return MISSING
        return current

    def present_types(self) -> frozenset[str]:
        return frozenset(d.document_type for d in self.documents)

    def has_document(self, document_type: str) -> bool:
        return any(d.document_type == document_type for d in self.documents)

    def document_verified(self, document_type: str) -> bool:
        return any(
            d.document_type == document_type and d.verified for d in self.documents
        )

    def all_documents_verified(self) -> bool:
        if any(not d.verified for d in self.documents):
            return False
        if self.stage is None:
            return True
        return all(self.document_verified(t) for t in self.stage.required_documents)

    def stage_requirements_met(self) -> bool:
        if self.stage is None:
            return True
        return RequirementEvaluator().requirements_met(self.stage, self).met

    def predicate(self, name: str) -> bool:
        return self.predicates.evaluate(name, self)


# ---------------------------------------------------------------------------
# Requirement check
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequirementCheck:
    """Result of RequirementEvaluator.requirements_met."""

    met: bool
    missing_documents: tuple[str, ...] = ()
    verification: str | None = None
    other: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "met": self.met,
            "missing_documents": list(self.missing_documents),
            "verification": self.verification,
            "other": list(self.other),
        }


class RequirementEvaluator:
    """Checks a stage's required documents and required actions."""

    def requirements_met(
        self, stage: StageNode, context: EvaluationContext
    ) -> RequirementCheck:
        present = context.present_types()
        missing_documents = tuple(
            t for t in stage.required_documents if t not in present
        )

        unverified = sorted({d.document_type for d in context.documents if not d.verified})
        verification = None
        if unverified:
            verification = "Documents pending verification: " + ", ".join(unverified)

        stage_context = context.for_stage(stage)
        other = tuple(
            action for action in stage.required_actions
            if not context.predicates.evaluate(action, stage_context)
        )

        met = not missing_documents and verification is None and not other
        return RequirementCheck(
            met=met,
            missing_documents=missing_documents,
            verification=verification,
            other=other,
        )
