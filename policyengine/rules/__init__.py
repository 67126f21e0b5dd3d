"""Rule records, predicate context, and the engine's reserved rules.

A rule is plain data plus an opaque predicate. Predicates are dispatched by the
``target`` node-kind tag; there is no rule class hierarchy. A predicate has the
signature ``predicate(node, context) -> MatchResult`` and must not mutate the
node, its ancestry, or any shared state.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from string import Formatter
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, Mapping, Optional, Union

from policyengine.model import NodeKind, SourceUnit, Span
from policyengine.severity import Severity

if TYPE_CHECKING:
    from policyengine.registry import RegistryConfig


class Category(str, Enum):
    ANNOTATION_POLICY = "annotation-policy"
    DOCUMENTATION = "documentation"
    NAMING = "naming"
    RESOURCE_LIFECYCLE = "resource-lifecycle"
    CONCURRENCY = "concurrency"
    EXCEPTION_HANDLING = "exception-handling"
    ENGINE = "engine"


_DECLARATIONS = {NodeKind.TYPE, NodeKind.METHOD, NodeKind.FIELD, NodeKind.DECLARATION}

CATEGORY_TARGETS: Dict[Category, FrozenSet[NodeKind]] = {
    Category.ANNOTATION_POLICY: frozenset(_DECLARATIONS | {NodeKind.ANNOTATION}),
    Category.DOCUMENTATION: frozenset(_DECLARATIONS | {NodeKind.DOC}),
    Category.NAMING: frozenset(_DECLARATIONS),
    Category.RESOURCE_LIFECYCLE: frozenset({NodeKind.TYPE, NodeKind.METHOD, NodeKind.DECLARATION}),
    Category.CONCURRENCY: frozenset(_DECLARATIONS | {NodeKind.ANNOTATION}),
    Category.EXCEPTION_HANDLING: frozenset({NodeKind.METHOD}),
    Category.ENGINE: frozenset(),
}


@dataclass(frozen=True)
class Match:
    """A positive predicate result with optional span override and message values."""

    span: Optional[Span] = None
    values: Mapping[str, Any] = field(default_factory=dict)


def match(span: Optional[Span] = None, **values: Any) -> Match:
    return Match(span=span, values=values)


MatchResult = Union[None, bool, Match]


@dataclass(frozen=True)
class RuleContext:
    """Read-only inputs shared with a predicate for one unit."""

    unit: SourceUnit
    rule: "Rule"
    config: "RegistryConfig"

    @property
    def params(self) -> Mapping[str, Any]:
        return self.rule.params

    @property
    def permissive(self) -> bool:
        return self.config.permissive


Predicate = Callable[[Any, RuleContext], MatchResult]


@dataclass(frozen=True)
class Rule:
    """One policy rule: identifier, metadata, parameters, and predicate."""

    id: str
    category: Category
    target: Optional[NodeKind]
    severity: Severity
    message: str
    predicate: Optional[Predicate] = field(default=None, compare=False, repr=False)
    description: str = ""
    params: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", Category(self.category))
        object.__setattr__(self, "severity", Severity.parse(self.severity))
        if self.target is not None:
            object.__setattr__(self, "target", NodeKind(self.target))
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    @property
    def is_engine_rule(self) -> bool:
        return self.category is Category.ENGINE

    def render(self, node: Any, unit: SourceUnit, values: Mapping[str, Any]) -> str:
        """Fill the message template from the matched node and match values."""

        context: Dict[str, Any] = {"rule_id": self.id, "name": getattr(node, "name", "")}
        kind = getattr(node, "kind", None)
        context["kind"] = kind.value if isinstance(kind, NodeKind) else type(node).__name__.lower()
        declaration = node
        if not hasattr(node, "qualified_name"):
            # annotations and doc comments report their declaration's name
            declaration = getattr(node, "target", None) or getattr(node, "owner", None)
        if declaration is not None:
            context["qualified_name"] = unit.qualified_name(declaration)
        context.update(values)
        return self.message.format_map(context)


RENDER_FIELDS = frozenset({"rule_id", "name", "kind", "qualified_name"})


def template_fields(template: str) -> FrozenSet[str]:
    """Return the top-level field names a message template references.

    Raises ``ValueError`` for unbalanced braces.
    """

    names = set()
    for _, field_name, _, _ in Formatter().parse(template):
        if field_name is not None:
            names.add(re.split(r"[.\[]", field_name, maxsplit=1)[0])
    return frozenset(names)


# ----------------------------------------------------------------------
# Reserved engine rules
# ----------------------------------------------------------------------
MODEL_ERROR = "engine/model-error"
RULE_FAILURE = "engine/rule-failure"
SUPPRESSION_SYNTAX = "engine/suppression-syntax"
CONFIGURATION_ERROR = "engine/configuration-error"

ENGINE_RULES = (
    Rule(
        id=MODEL_ERROR,
        category=Category.ENGINE,
        target=None,
        severity=Severity.ERROR,
        message="Source unit skipped: {detail}",
        description="The parser output for a unit breaks a symbol-model invariant.",
    ),
    Rule(
        id=RULE_FAILURE,
        category=Category.ENGINE,
        target=None,
        severity=Severity.ERROR,
        message="Rule '{failed_rule}' raised an internal error: {detail}",
        description="A rule predicate raised while evaluating a node.",
    ),
    Rule(
        id=SUPPRESSION_SYNTAX,
        category=Category.ENGINE,
        target=None,
        severity=Severity.INFO,
        message="Ignored suppression directive '{directive}': {detail}",
        description="An inline suppression directive cannot be applied.",
    ),
    Rule(
        id=CONFIGURATION_ERROR,
        category=Category.ENGINE,
        target=None,
        severity=Severity.ERROR,
        message="Policy configuration rejected: {detail}",
        description="The rule registry could not be built.",
    ),
)

ENGINE_RULE_IDS = frozenset(rule.id for rule in ENGINE_RULES)


def engine_rule(rule_id: str) -> Rule:
    for rule in ENGINE_RULES:
        if rule.id == rule_id:
            return rule
    raise KeyError(rule_id)
