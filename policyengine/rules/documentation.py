"""Documentation comment policy: tag order, deprecation, summary, coverage."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from policyengine.model import SENTENCE_END, Declaration, DocComment, NodeKind
from policyengine.registry import PolicyPack
from policyengine.severity import Severity

from . import Category, MatchResult, Rule, RuleContext, match

TAG_ORDER_RULE = "doc/tag-order"
DEPRECATION_RULE = "doc/deprecation-mismatch"
SUMMARY_RULE = "doc/summary-period"
MISSING_DOC_RULE = "doc/missing-public"

CANONICAL_TAG_ORDER = ("param", "return", "throws", "see", "since", "deprecated")
SINGLE_TAGS = ("return", "since", "deprecated")
TAG_ALIASES = {"exception": "throws"}


def tag_order(doc: DocComment, context: RuleContext) -> MatchResult:
    """Tags must form a subsequence of the canonical order; throws sorted by name."""

    order = tuple(context.params.get("order", CANONICAL_TAG_ORDER))
    single = set(context.params.get("single", SINGLE_TAGS))
    rank = {kind: index for index, kind in enumerate(order)}

    previous_rank = -1
    previous_kind: Optional[str] = None
    seen = set()
    last_throws: Optional[str] = None
    for tag in doc.tags:
        kind = TAG_ALIASES.get(tag.kind, tag.kind)
        if kind not in rank:
            continue
        if rank[kind] < previous_rank:
            return match(span=tag.span, tag=kind, detail=f"@{kind} must come before @{previous_kind}")
        if kind in single and kind in seen:
            return match(span=tag.span, tag=kind, detail=f"@{kind} may appear only once")
        if kind == "throws":
            subject = tag.subject
            if last_throws is not None and subject.lower() < last_throws.lower():
                return match(
                    span=tag.span,
                    tag=kind,
                    detail=f"@throws {subject} must come before @throws {last_throws}",
                )
            last_throws = subject
        seen.add(kind)
        previous_rank = rank[kind]
        previous_kind = kind
    return None


def deprecation_mismatch(declaration: Declaration, context: RuleContext) -> MatchResult:
    annotation = context.params.get("annotation", "Deprecated")
    annotated = declaration.has_annotation(annotation)
    tagged = declaration.doc is not None and declaration.doc.has_tag("deprecated")
    if annotated == tagged:
        return None
    if tagged:
        return match(detail=f"has a @deprecated doc tag but no @{annotation} annotation")
    return match(detail=f"has a @{annotation} annotation but no @deprecated doc tag")


def summary_period(doc: DocComment, context: RuleContext) -> MatchResult:
    """The first period followed by whitespace must end the summary.

    Abbreviations such as "e.g." end the sentence early and are reported; this
    is the documented behaviour of the heuristic.
    """

    owner = doc.owner.name if doc.owner is not None else "?"
    summary = doc.summary.strip()
    if not summary:
        return match(owner=owner, detail="summary fragment is missing")
    if not doc.terminal_period:
        return match(owner=owner, detail="summary fragment does not end with a period")
    first = SENTENCE_END.search(summary)
    if first is not None and first.end() < len(summary):
        return match(owner=owner, detail=f"summary sentence ends early at '{summary[: first.start() + 1]}'")
    return None


def missing_public_doc(declaration: Declaration, context: RuleContext) -> MatchResult:
    kinds = context.params.get("kinds", ("type", "method"))
    if declaration.kind.value not in kinds:
        return None
    if not declaration.is_public or declaration.doc is not None:
        return None
    return True


def build_pack(
    order: Sequence[str] = CANONICAL_TAG_ORDER,
    single: Iterable[str] = SINGLE_TAGS,
    *,
    deprecation_annotation: str = "Deprecated",
    missing_doc_severity: Severity = Severity.WARNING,
    name: str = "documentation",
    version: str = "1",
) -> PolicyPack:
    rules = (
        Rule(
            id=TAG_ORDER_RULE,
            category=Category.DOCUMENTATION,
            target=NodeKind.DOC,
            severity=Severity.WARNING,
            message="Doc tag @{tag} is out of order: {detail}",
            predicate=tag_order,
            description="Block tags follow param*, return?, throws* (alphabetical), see*, since?, deprecated?.",
            params={"order": tuple(order), "single": tuple(single)},
        ),
        Rule(
            id=DEPRECATION_RULE,
            category=Category.DOCUMENTATION,
            target=NodeKind.DECLARATION,
            severity=Severity.ERROR,
            message="{kind} '{name}' {detail}",
            predicate=deprecation_mismatch,
            description="The @deprecated tag and the deprecation annotation appear together.",
            params={"annotation": deprecation_annotation},
        ),
        Rule(
            id=SUMMARY_RULE,
            category=Category.DOCUMENTATION,
            target=NodeKind.DOC,
            severity=Severity.WARNING,
            message="Documentation of '{owner}': {detail}",
            predicate=summary_period,
            description="The summary fragment ends at its first period followed by whitespace.",
        ),
        Rule(
            id=MISSING_DOC_RULE,
            category=Category.DOCUMENTATION,
            target=NodeKind.DECLARATION,
            severity=missing_doc_severity,
            message="Public {kind} '{qualified_name}' has no documentation comment",
            predicate=missing_public_doc,
            description="Public types and methods carry a documentation comment.",
            params={"kinds": ("type", "method")},
        ),
    )
    return PolicyPack(name=name, rules=rules, version=version)
