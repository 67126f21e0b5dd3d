"""Exception-handling policy for method bodies."""

from __future__ import annotations

from typing import Sequence

from policyengine.model import MethodDeclaration, NodeKind
from policyengine.registry import PolicyPack
from policyengine.severity import Severity

from . import Category, MatchResult, Rule, RuleContext, match

EMPTY_HANDLER_RULE = "exception/empty-handler"
BROAD_CATCH_RULE = "exception/broad-catch"

BROAD_TYPES = ("Throwable", "Exception", "RuntimeException")


def empty_handler(method: MethodDeclaration, context: RuleContext) -> MatchResult:
    for handler in method.handlers:
        if handler.body_empty and not handler.has_comment:
            return match(span=handler.span, caught=" | ".join(handler.caught_types))
    return None


def broad_catch(method: MethodDeclaration, context: RuleContext) -> MatchResult:
    broad = set(context.params.get("types", BROAD_TYPES))
    for handler in method.handlers:
        for caught in handler.caught_types:
            if caught.rsplit(".", 1)[-1] in broad:
                return match(span=handler.span, caught=caught)
    return None


def build_pack(
    broad_types: Sequence[str] = BROAD_TYPES,
    *,
    name: str = "exception-handling",
    version: str = "1",
) -> PolicyPack:
    rules = (
        Rule(
            id=EMPTY_HANDLER_RULE,
            category=Category.EXCEPTION_HANDLING,
            target=NodeKind.METHOD,
            severity=Severity.WARNING,
            message="Empty handler for {caught} in '{name}' swallows the exception without a comment",
            predicate=empty_handler,
        ),
        Rule(
            id=BROAD_CATCH_RULE,
            category=Category.EXCEPTION_HANDLING,
            target=NodeKind.METHOD,
            severity=Severity.WARNING,
            message="'{name}' catches {caught}; catch the specific exceptions instead",
            predicate=broad_catch,
            params={"types": tuple(broad_types)},
        ),
    )
    return PolicyPack(name=name, rules=rules, version=version)
