"""
Transition condition language (``admissions_kernel.domain.conditions``).

Responsibility
--------------
Pure value objects describing *when* a transition is available, plus the
parser that turns stored JSON into them and the serializer that turns them
back.  Conditions are data, never executable code, so a workflow definition
can be validated, diffed and audited.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``services/``, ``selectors/``, or outer layers.

Variants
--------
==========================  ============================================
``DocumentPresent``         a document of the given type exists
``DocumentVerified``        a document of the given type exists and is verified
``AllDocumentsVerified``    source stage's required documents present and
                            verified, and no present document unverified
``StageRequirementsMet``    source stage's full requirement check passes
``FieldEquals``             application attribute at ``path`` equals ``value``
``FieldCompare``            attribute compared with one of ``OPERATORS``
``Predicate``               named predicate from the PredicateRegistry
``And`` / ``Or`` / ``Not``  boolean combinators
==========================  ============================================

Invariants enforced
-------------------
* Unknown variants and operators are rejected at parse time
  (InvalidConditionError), never at evaluation time.
* Evaluation never raises for missing or incomparable data: the
  condition is simply false.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from admissions_kernel.exceptions import InvalidConditionError

MISSING = object()
"""Returned by ConditionContext.field_value for an absent field."""


class ConditionContext(Protocol):
    """What a condition may look at while it is evaluated."""

    def field_value(self, path: str) -> Any:
        """Attribute at a dotted path, or MISSING."""
        ...

    def has_document(self, document_type: str) -> bool: ...

    def document_verified(self, document_type: str) -> bool: ...

    def all_documents_verified(self) -> bool: ...

    def stage_requirements_met(self) -> bool: ...

    def predicate(self, name: str) -> bool: ...


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


def _contains(left: Any, right: Any) -> bool:
    if isinstance(left, str):
        return isinstance(right, str) and right in left
    if isinstance(left, (list, tuple, set, frozenset, dict)):
        return right in left
    return False


def _member(left: Any, right: Any) -> bool:
    if not isinstance(right, (list, tuple, set, frozenset)):
        return False
    return left in right


def _starts_with(left: Any, right: Any) -> bool:
    return isinstance(left, str) and isinstance(right, str) and left.startswith(right)


def _ends_with(left: Any, right: Any) -> bool:
    return isinstance(left, str) and isinstance(right, str) and left.endswith(right)


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "=": lambda a, b: a == b,
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<>": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "in": _member,
    "not_in": lambda a, b: isinstance(b, (list, tuple, set, frozenset)) and a not in b,
    "contains": _contains,
    "not_contains": lambda a, b: not _contains(a, b),
    "starts_with": _starts_with,
    "ends_with": _ends_with,
}


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentPresent:
    document_type: str

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.has_document(self.document_type)


@dataclass(frozen=True)
class DocumentVerified:
    document_type: str

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.document_verified(self.document_type)


@dataclass(frozen=True)
class AllDocumentsVerified:
    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.all_documents_verified()


@dataclass(frozen=True)
class StageRequirementsMet:
    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.stage_requirements_met()


@dataclass(frozen=True)
class FieldEquals:
    path: str
    value: Any

    def evaluate(self, ctx: ConditionContext) -> bool:
        actual = ctx.field_value(self.path)
        if actual is MISSING:
            return False
        return actual == self.value


@dataclass(frozen=True)
class FieldCompare:
    """Compare an attribute with a literal using one of OPERATORS.

    A missing field is false for every operator, including the negative
    ones (``!=``, ``not_in``, ``not_contains``).
    """

    path: str
    operator: str
    value: Any

    def evaluate(self, ctx: ConditionContext) -> bool:
        actual = ctx.field_value(self.path)
        if actual is MISSING:
            return False
        try:
            return bool(OPERATORS[self.operator](actual, self.value))
        except TypeError:
            return False


@dataclass(frozen=True)
class Predicate:
    name: str

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.predicate(self.name)


@dataclass(frozen=True)
class And:
    items: tuple[Condition, ...]

    def evaluate(self, ctx: ConditionContext) -> bool:
        return all(item.evaluate(ctx) for item in self.items)


@dataclass(frozen=True)
class Or:
    items: tuple[Condition, ...]

    def evaluate(self, ctx: ConditionContext) -> bool:
        return any(item.evaluate(ctx) for item in self.items)


@dataclass(frozen=True)
class Not:
    item: Condition

    def evaluate(self, ctx: ConditionContext) -> bool:
        return not self.item.evaluate(ctx)


Condition = (
    DocumentPresent
    | DocumentVerified
    | AllDocumentsVerified
    | StageRequirementsMet
    | FieldEquals
    | FieldCompare
    | Predicate
    | And
    | Or
    | Not
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

# Legacy flat conditions name these pseudo-fields instead of a type.
_LEGACY_DOCUMENT_FIELDS = {
    "all_documents_verified": AllDocumentsVerified,
    "stage_requirements_met": StageRequirementsMet,
}


def _require_str(raw: Mapping[str, Any], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidConditionError(f"'{key}' must be a non-empty string", raw)
    return value


def _parse_items(raw: Mapping[str, Any], key: str) -> tuple[Condition, ...]:
    items = raw.get(key)
    if not isinstance(items, list):
        raise InvalidConditionError(f"'{key}' must be a list of conditions", raw)
    return tuple(parse_condition(item) for item in items)


def _parse_legacy(raw: Mapping[str, Any]) -> Condition:
    field_name = _require_str(raw, "field")
    operator = raw.get("operator", "=")
    value = raw.get("value")

    if operator in ("all", "any"):
        items = value if isinstance(value, list) else raw.get("conditions")
        parsed = _parse_items({"conditions": items}, "conditions")
        return And(parsed) if operator == "all" else Or(parsed)

    if operator not in OPERATORS:
        raise InvalidConditionError(f"unknown operator '{operator}'", raw)

    legacy = _LEGACY_DOCUMENT_FIELDS.get(field_name)
    if legacy is not None and operator in ("=", "==") and isinstance(value, bool):
        return legacy() if value else Not(legacy())

    if operator in ("=", "=="):
        return FieldEquals(path=field_name, value=value)
    return FieldCompare(path=field_name, operator=operator, value=value)


def parse_condition(raw: Any) -> Condition:
    """
    Parse one stored condition expression.

    Accepts the tagged form ``{"type": ..., ...}``, the flat form
    ``{"field": ..., "operator": ..., "value": ...}`` and flat groups
    ``{"operator": "all"|"any", "conditions": [...]}``.

    Raises:
        InvalidConditionError: On any unknown variant, unknown operator or
            malformed field.
    """
    if not isinstance(raw, Mapping):
        raise InvalidConditionError("condition must be a mapping", raw)

    kind = raw.get("type")
    if kind is None:
        if raw.get("operator") in ("all", "any") and "field" not in raw:
            parsed = _parse_items(raw, "conditions")
            return And(parsed) if raw["operator"] == "all" else Or(parsed)
        if "field" in raw:
            return _parse_legacy(raw)
        raise InvalidConditionError("condition has no 'type'", raw)

    if kind == "document_present":
        return DocumentPresent(_require_str(raw, "document_type"))
    if kind == "document_verified":
        return DocumentVerified(_require_str(raw, "document_type"))
    if kind == "all_documents_verified":
        return AllDocumentsVerified()
    if kind == "stage_requirements_met":
        return StageRequirementsMet()
    if kind == "field_equals":
        return FieldEquals(path=_require_str(raw, "path"), value=raw.get("value"))
    if kind == "field_compare":
        operator = _require_str(raw, "operator")
        if operator not in OPERATORS:
            raise InvalidConditionError(f"unknown operator '{operator}'", raw)
        return FieldCompare(
            path=_require_str(raw, "path"),
            operator=operator,
            value=raw.get("value"),
        )
    if kind == "predicate":
        return Predicate(_require_str(raw, "name"))
    if kind == "and":
        return And(_parse_items(raw, "conditions"))
    if kind == "or":
        return Or(_parse_items(raw, "conditions"))
    if kind == "not":
        return Not(parse_condition(raw.get("condition")))

    raise InvalidConditionError(f"unknown condition type '{kind}'", raw)


def parse_conditions(raw: Sequence[Any] | None) -> tuple[Condition, ...]:
    """Parse a stored condition list (None or [] means no conditions)."""
    if not raw:
        return ()
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        raise InvalidConditionError("conditions must be a list", raw)
    return tuple(parse_condition(item) for item in raw)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def condition_to_dict(condition: Condition) -> dict[str, Any]:
    """Render a condition in the tagged JSON form."""
    match condition:
        case DocumentPresent(document_type=doc):
            return {"type": "document_present", "document_type": doc}
        case DocumentVerified(document_type=doc):
            return {"type": "document_verified", "document_type": doc}
        case AllDocumentsVerified():
            return {"type": "all_documents_verified"}
        case StageRequirementsMet():
            return {"type": "stage_requirements_met"}
        case FieldEquals(path=path, value=value):
            return {"type": "field_equals", "path": path, "value": value}
        case FieldCompare(path=path, operator=op, value=value):
            return {"type": "field_compare", "path": path, "operator": op, "value": value}
        case Predicate(name=name):
            return {"type": "predicate", "name": name}
        case And(items=items):
            return {"type": "and", "conditions": [condition_to_dict(i) for i in items]}
        case Or(items=items):
            return {"type": "or", "conditions": [condition_to_dict(i) for i in items]}
        case Not(item=item):
            return {"type": "not", "condition": condition_to_dict(item)}
    raise InvalidConditionError(f"not a condition: {condition!r}")


def referenced_predicates(conditions: Sequence[Condition]) -> frozenset[str]:
    """Names of every Predicate reachable from the given conditions."""
    names: set[str] = set()
    stack: list[Condition] = list(conditions)
    while stack:
        cond = stack.pop()
        if isinstance(cond, Predicate):
            names.add(cond.name)
        elif isinstance(cond, (And, Or)):
            stack.extend(cond.items)
        elif isinstance(cond, Not):
            stack.append(cond.item)
    return frozenset(names)
