"""Concurrency-safety annotations: lock references and immutable types."""

from __future__ import annotations

from typing import Sequence

from policyengine.model import Annotation, FieldDeclaration, NodeKind
from policyengine.registry import PolicyPack
from policyengine.severity import Severity

from . import Category, MatchResult, Rule, RuleContext, match

GUARDED_BY_RULE = "concurrency/guarded-by-unknown-lock"
MUTABLE_FIELD_RULE = "concurrency/immutable-mutable-field"

GUARD_ANNOTATION = "GuardedBy"
THREAD_SAFE_MARKERS = ("Immutable", "ThreadSafe")
IMPLICIT_LOCKS = ("this",)


def guarded_by_unknown_lock(annotation: Annotation, context: RuleContext) -> MatchResult:
    if annotation.simple_name != context.params.get("annotation", GUARD_ANNOTATION):
        return None
    lock = annotation.argument("value")
    if lock is None or not str(lock).strip():
        return match(lock="", detail="names no lock")
    lock = str(lock).strip()
    if lock in IMPLICIT_LOCKS or lock.endswith(".class"):
        return None
    target = annotation.target
    owner = target.enclosing_type() if target is not None else None
    if owner is None:
        return match(lock=lock, detail="is not inside a type")
    # "this.lock" and "Outer.this.lock" both name a field called "lock"
    field_name = lock.rsplit(".", 1)[-1]
    for enclosing in [owner, *owner.ancestors()]:
        if any(item.name == field_name for item in enclosing.fields()):
            return None
    return match(lock=lock, detail=f"names '{lock}', which is not a field of {owner.name}")


def immutable_mutable_field(declaration: FieldDeclaration, context: RuleContext) -> MatchResult:
    owner = declaration.enclosing_type()
    if owner is None:
        return None
    markers = context.params.get("markers", THREAD_SAFE_MARKERS)
    marker = next((name for name in markers if owner.has_annotation(name)), None)
    if marker is None:
        return None
    if declaration.has_modifier("final") or declaration.has_annotation(GUARD_ANNOTATION):
        return None
    if declaration.has_modifier("volatile") and marker != "Immutable":
        return None
    return match(owner=owner.name, marker=marker)


def build_pack(
    markers: Sequence[str] = THREAD_SAFE_MARKERS,
    *,
    annotation: str = GUARD_ANNOTATION,
    name: str = "concurrency",
    version: str = "1",
) -> PolicyPack:
    rules = (
        Rule(
            id=GUARDED_BY_RULE,
            category=Category.CONCURRENCY,
            target=NodeKind.ANNOTATION,
            severity=Severity.ERROR,
            message="@{name} {detail}",
            predicate=guarded_by_unknown_lock,
            description="A guard annotation names 'this', a class literal, or a field of an enclosing type.",
            params={"annotation": annotation},
        ),
        Rule(
            id=MUTABLE_FIELD_RULE,
            category=Category.CONCURRENCY,
            target=NodeKind.FIELD,
            severity=Severity.WARNING,
            message="Field '{name}' of @{marker} type {owner} is neither final nor guarded",
            predicate=immutable_mutable_field,
            description="Fields of immutable or thread-safe types are final or explicitly guarded.",
            params={"markers": tuple(markers)},
        ),
    )
    return PolicyPack(name=name, rules=rules, version=version)
