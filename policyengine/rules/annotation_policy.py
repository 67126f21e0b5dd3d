"""Annotation allow/ban policy and nullness marker consistency."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence

from policyengine.errors import RuleDefinitionError
from policyengine.model import Annotation, Declaration, NodeKind, TypeDeclaration
from policyengine.registry import PolicyPack
from policyengine.severity import Severity

from . import Category, MatchResult, Rule, RuleContext, match

BANNED_RULE = "annotation/banned"
UNLISTED_RULE = "annotation/unlisted"
CAUTION_RULE = "annotation/caution-arguments"
NULLNESS_RULE = "annotation/conflicting-nullness"

NULLABLE_MARKERS = ("Nullable", "CheckForNull")
NON_NULL_MARKERS = ("NonNull", "Nonnull", "NotNull")


class Tier(str, Enum):
    ALLOWED = "allowed"
    CAUTION = "caution"
    BANNED = "banned"


@dataclass(frozen=True)
class AnnotationEntry:
    """Policy for one annotation name.

    A caution entry may carry a sub-policy: ``requires`` lists argument values
    that must be present, optionally only when the decorated declaration (or
    one of its members) carries the ``when_marked`` annotation.
    """

    tier: Tier
    reason: str = ""
    requires: Mapping[str, Any] = field(default_factory=dict)
    when_marked: Optional[str] = None


DEFAULT_ANNOTATION_TABLE: Dict[str, AnnotationEntry] = {
    "Override": AnnotationEntry(Tier.ALLOWED),
    "Deprecated": AnnotationEntry(Tier.ALLOWED),
    "FunctionalInterface": AnnotationEntry(Tier.ALLOWED),
    "SafeVarargs": AnnotationEntry(Tier.ALLOWED),
    "SuppressWarnings": AnnotationEntry(Tier.ALLOWED),
    "Nullable": AnnotationEntry(Tier.ALLOWED),
    "NonNull": AnnotationEntry(Tier.ALLOWED),
    "GuardedBy": AnnotationEntry(Tier.ALLOWED),
    "ThreadSafe": AnnotationEntry(Tier.ALLOWED),
    "Immutable": AnnotationEntry(Tier.ALLOWED),
    "Sensitive": AnnotationEntry(Tier.ALLOWED),
    "Getter": AnnotationEntry(Tier.ALLOWED),
    "Builder": AnnotationEntry(Tier.ALLOWED),
    "ToString": AnnotationEntry(
        Tier.CAUTION,
        reason="generated toString would print sensitive fields",
        requires={"onlyExplicitlyIncluded": True},
        when_marked="Sensitive",
    ),
    "EqualsAndHashCode": AnnotationEntry(
        Tier.CAUTION,
        reason="generated equality must not depend on sensitive fields",
        requires={"onlyExplicitlyIncluded": True},
        when_marked="Sensitive",
    ),
    "Data": AnnotationEntry(Tier.BANNED, reason="generates mutable accessors and unrestricted toString"),
    "SneakyThrows": AnnotationEntry(Tier.BANNED, reason="hides checked exceptions from callers"),
    "Cleanup": AnnotationEntry(Tier.BANNED, reason="use a resource scope instead"),
}


def parse_annotation_table(raw: Mapping[str, Any]) -> Dict[str, AnnotationEntry]:
    """Normalize a table given as entries or plain mappings (e.g. from YAML)."""

    if not isinstance(raw, Mapping):
        raise RuleDefinitionError("Annotation table must be a mapping of name to policy")
    table: Dict[str, AnnotationEntry] = {}
    for name, value in raw.items():
        if isinstance(value, AnnotationEntry):
            table[str(name)] = value
            continue
        if isinstance(value, str):
            value = {"tier": value}
        if not isinstance(value, Mapping):
            raise RuleDefinitionError(f"Annotation policy for '{name}' must be a mapping or a tier name")
        try:
            tier = Tier(str(value.get("tier", "allowed")).strip().lower())
        except ValueError:
            raise RuleDefinitionError(f"Unknown tier for annotation '{name}': {value.get('tier')!r}") from None
        requires = value.get("requires") or {}
        if not isinstance(requires, Mapping):
            raise RuleDefinitionError(f"'requires' for annotation '{name}' must be a mapping")
        table[str(name)] = AnnotationEntry(
            tier=tier,
            reason=str(value.get("reason", "")),
            requires=dict(requires),
            when_marked=value.get("when_marked"),
        )
    return table


# ----------------------------------------------------------------------
# Predicates
# ----------------------------------------------------------------------
def banned_annotation(annotation: Annotation, context: RuleContext) -> MatchResult:
    entry = _entry_for(annotation, context)
    if entry is None or entry.tier is not Tier.BANNED:
        return None
    return match(annotation=annotation.name, reason=entry.reason or "banned by policy")


def unlisted_annotation(annotation: Annotation, context: RuleContext) -> MatchResult:
    if context.permissive:
        return None
    if _entry_for(annotation, context) is not None:
        return None
    return match(annotation=annotation.name)


def caution_arguments(annotation: Annotation, context: RuleContext) -> MatchResult:
    entry = _entry_for(annotation, context)
    if entry is None or entry.tier is not Tier.CAUTION or not entry.requires:
        return None
    target = annotation.target
    if entry.when_marked and (target is None or not _is_marked(target, entry.when_marked)):
        return None
    missing = [
        f"{name}={expected!r}"
        for name, expected in entry.requires.items()
        if not _same_literal(annotation.argument(name), expected)
    ]
    if not missing:
        return None
    return match(
        annotation=annotation.name,
        missing=", ".join(missing),
        reason=entry.reason or "caution-tier annotation",
        target=target.name if target is not None else "?",
    )


def conflicting_nullness(declaration: Declaration, context: RuleContext) -> MatchResult:
    nullable = [name for name in context.params.get("nullable", NULLABLE_MARKERS) if declaration.has_annotation(name)]
    non_null = [name for name in context.params.get("non_null", NON_NULL_MARKERS) if declaration.has_annotation(name)]
    if nullable and non_null:
        return match(nullable=nullable[0], non_null=non_null[0])
    return None


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _entry_for(annotation: Annotation, context: RuleContext) -> Optional[AnnotationEntry]:
    table: Mapping[str, AnnotationEntry] = context.params.get("table", {})
    candidates = (annotation.name, context.unit.resolve_name(annotation.simple_name), annotation.simple_name)
    for candidate in candidates:
        entry = table.get(candidate)
        if entry is not None:
            return entry
    return None


def _is_marked(declaration: Declaration, marker: str) -> bool:
    if declaration.has_annotation(marker):
        return True
    if isinstance(declaration, TypeDeclaration):
        return any(member.has_annotation(marker) for member in declaration.members)
    return False


def _same_literal(actual: Any, expected: Any) -> bool:
    if actual is None:
        return False
    if actual == expected:
        return True
    return str(actual).strip().lower() == str(expected).strip().lower()


# ----------------------------------------------------------------------
# Pack builders
# ----------------------------------------------------------------------
def build_pack(
    table: Optional[Mapping[str, Any]] = None,
    *,
    name: str = "annotation-policy",
    version: str = "1",
) -> PolicyPack:
    entries = parse_annotation_table(DEFAULT_ANNOTATION_TABLE if table is None else table)
    params = {"table": entries}
    rules = (
        Rule(
            id=BANNED_RULE,
            category=Category.ANNOTATION_POLICY,
            target=NodeKind.ANNOTATION,
            severity=Severity.ERROR,
            message="Annotation @{annotation} is banned: {reason}",
            predicate=banned_annotation,
            description="Banned annotations are never allowed, whatever their arguments.",
            params=params,
        ),
        Rule(
            id=UNLISTED_RULE,
            category=Category.ANNOTATION_POLICY,
            target=NodeKind.ANNOTATION,
            severity=Severity.ERROR,
            message="Annotation @{annotation} is not on the allow-list",
            predicate=unlisted_annotation,
            description="Closed-world policy: annotations missing from the table are banned unless permissive.",
            params=params,
        ),
        Rule(
            id=CAUTION_RULE,
            category=Category.ANNOTATION_POLICY,
            target=NodeKind.ANNOTATION,
            severity=Severity.WARNING,
            message="Annotation @{annotation} on '{target}' must set {missing} ({reason})",
            predicate=caution_arguments,
            description="Caution-tier annotations must carry the arguments their sub-policy requires.",
            params=params,
        ),
    )
    return PolicyPack(name=name, rules=rules, version=version)


def build_nullness_pack(
    nullable: Sequence[str] = NULLABLE_MARKERS,
    non_null: Sequence[str] = NON_NULL_MARKERS,
    *,
    name: str = "nullness",
    version: str = "1",
) -> PolicyPack:
    rule = Rule(
        id=NULLNESS_RULE,
        category=Category.ANNOTATION_POLICY,
        target=NodeKind.DECLARATION,
        severity=Severity.ERROR,
        message="{kind} '{name}' is marked both @{nullable} and @{non_null}",
        predicate=conflicting_nullness,
        description="A declaration cannot be nullable and non-null at once.",
        params={"nullable": tuple(nullable), "non_null": tuple(non_null)},
    )
    return PolicyPack(name=name, rules=(rule,), version=version)
