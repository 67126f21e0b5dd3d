"""Resource-lifecycle policy for auto-closing types."""

from __future__ import annotations

from typing import Sequence

from policyengine.model import MethodDeclaration, NodeKind
from policyengine.registry import PolicyPack
from policyengine.severity import Severity

from . import Category, MatchResult, Rule, RuleContext, match

CLOSE_THROWS_RULE = "resource/close-throws"

AUTO_CLOSING_TYPES = ("AutoCloseable", "Closeable")
CLOSING_METHOD = "close"


def close_throws(method: MethodDeclaration, context: RuleContext) -> MatchResult:
    """Flag a closing operation that declares checked exceptions.

    Idempotence cannot be checked structurally; a non-empty throws clause
    contradicts the idempotent, non-throwing close contract instead.
    """

    if method.name != context.params.get("method", CLOSING_METHOD) or method.parameters:
        return None
    owner = method.enclosing_type()
    if owner is None:
        return None
    capabilities = context.params.get("capabilities", AUTO_CLOSING_TYPES)
    capability = next((name for name in capabilities if owner.implements(name)), None)
    if capability is None or not method.throws:
        return None
    return match(owner=owner.name, capability=capability, throws=", ".join(method.throws))


def build_pack(
    capabilities: Sequence[str] = AUTO_CLOSING_TYPES,
    method: str = CLOSING_METHOD,
    *,
    name: str = "resource-lifecycle",
    version: str = "1",
) -> PolicyPack:
    rule = Rule(
        id=CLOSE_THROWS_RULE,
        category=Category.RESOURCE_LIFECYCLE,
        target=NodeKind.METHOD,
        severity=Severity.WARNING,
        message="{owner}.{name}() implements {capability} but declares throws {throws}; closing must not throw",
        predicate=close_throws,
        description="The zero-argument closing operation of an auto-closing type declares no checked exceptions.",
        params={"capabilities": tuple(capabilities), "method": method},
    )
    return PolicyPack(name=name, rules=(rule,), version=version)
