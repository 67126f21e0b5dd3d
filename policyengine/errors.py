"""Exception taxonomy for the policy engine."""

from __future__ import annotations


class PolicyEngineError(Exception):
    """Base class for all engine errors."""


class ModelError(PolicyEngineError):
    """The symbol model handed over by the parser breaks a structural invariant.

    Raised during ingestion or validation of a single source unit. The unit is
    skipped and reported; the run continues.
    """

    def __init__(self, message: str, unit: str | None = None) -> None:
        super().__init__(message)
        self.unit = unit


class RuleDefinitionError(PolicyEngineError):
    """A rule or registry configuration is inconsistent. Fatal at startup."""


class DuplicateRuleError(RuleDefinitionError):
    """Two rules share one identifier."""

    def __init__(self, rule_id: str, first_pack: str | None = None, second_pack: str | None = None) -> None:
        origin = ""
        if first_pack or second_pack:
            origin = f" (packs: {first_pack or '?'}, {second_pack or '?'})"
        super().__init__(f"Duplicate rule identifier '{rule_id}'{origin}")
        self.rule_id = rule_id


class PackLoadError(RuleDefinitionError):
    """A policy pack document cannot be turned into rules."""


class RulePredicateError(PolicyEngineError):
    """A rule predicate raised while inspecting a node."""

    def __init__(self, rule_id: str, cause: BaseException) -> None:
        super().__init__(f"Rule '{rule_id}' failed: {type(cause).__name__}: {cause}")
        self.rule_id = rule_id
        self.cause = cause


class SuppressionSyntaxError(PolicyEngineError):
    """An inline suppression directive cannot be parsed."""

    def __init__(self, message: str, directive: str) -> None:
        super().__init__(message)
        self.directive = directive
