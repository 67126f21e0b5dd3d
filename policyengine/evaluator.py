"""Apply a rule registry to one source unit."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from .errors import ModelError, RulePredicateError
from .model import Declaration, NodeKind, SourceUnit, Span, SuppressionDirective, validate_unit
from .registry import RuleRegistry
from .result import Finding
from .rules import MODEL_ERROR, RULE_FAILURE, Match, Rule, RuleContext

logger = logging.getLogger(__name__)

UNIT_FALLBACK_SPAN = Span(1, 1, 1, 1)


@dataclass(frozen=True)
class UnitResult:
    """Everything the aggregator needs from one evaluated unit."""

    unit: str
    findings: Tuple[Finding, ...]
    suppressions: Tuple[SuppressionDirective, ...] = ()
    skipped: bool = False


def evaluate_unit(unit: SourceUnit, registry: RuleRegistry) -> UnitResult:
    """Return the findings for ``unit``.

    A unit that fails validation yields a single model-error finding. A rule
    whose predicate raises yields one rule-failure finding and is not called
    again for this unit; every other rule keeps running.
    """

    try:
        validate_unit(unit)
    except ModelError as exc:
        return model_error_result(unit.path, exc, registry)

    evaluation = _UnitEvaluation(unit, registry)
    for declaration in unit.walk():
        evaluation.visit(declaration)
    logger.debug("event=unit_evaluated unit=%s findings=%d", unit.path, len(evaluation.findings))
    return UnitResult(unit=unit.path, findings=tuple(evaluation.findings), suppressions=unit.suppressions)


def model_error_result(unit_path: str, error: Exception, registry: RuleRegistry) -> UnitResult:
    """Report a unit the engine refused to analyse."""

    logger.warning("event=unit_skipped unit=%s reason=%s", unit_path, error)
    rule = registry.get(MODEL_ERROR)
    finding = Finding(
        rule=rule.id,
        severity=rule.severity,
        unit=unit_path,
        span=UNIT_FALLBACK_SPAN,
        message=rule.message.format(detail=str(error)),
    )
    return UnitResult(unit=unit_path, findings=(finding,), skipped=True)


class _UnitEvaluation:
    """Per-unit traversal state. Never shared between workers."""

    def __init__(self, unit: SourceUnit, registry: RuleRegistry) -> None:
        self.unit = unit
        self.registry = registry
        self.findings: List[Finding] = []
        self._failed: Set[str] = set()
        self._contexts: Dict[str, RuleContext] = {}

    def visit(self, declaration: Declaration) -> None:
        self._apply(declaration.kind, declaration, declaration.span)
        for annotation in declaration.annotations:
            self._apply(NodeKind.ANNOTATION, annotation, annotation.span)
        if declaration.doc is not None:
            self._apply(NodeKind.DOC, declaration.doc, declaration.doc.span)

    def _apply(self, kind: NodeKind, node: Any, span: Span) -> None:
        for rule in self.registry.rules_for(kind):
            if rule.id in self._failed:
                continue
            try:
                finding = self._check(rule, node, span)
            except Exception as exc:
                self._record_failure(RulePredicateError(rule.id, exc), span)
                continue
            if finding is not None:
                self.findings.append(finding)

    def _check(self, rule: Rule, node: Any, span: Span) -> Optional[Finding]:
        result = rule.predicate(node, self._context(rule))
        if not result:
            return None
        values: Dict[str, Any] = {}
        if isinstance(result, Match):
            values = dict(result.values)
            span = result.span or span
        return Finding(
            rule=rule.id,
            severity=rule.severity,
            unit=self.unit.path,
            span=span,
            message=rule.render(node, self.unit, values),
        )

    def _context(self, rule: Rule) -> RuleContext:
        context = self._contexts.get(rule.id)
        if context is None:
            context = RuleContext(unit=self.unit, rule=rule, config=self.registry.config)
            self._contexts[rule.id] = context
        return context

    def _record_failure(self, error: RulePredicateError, span: Span) -> None:
        logger.warning("event=rule_failed rule=%s unit=%s error=%s", error.rule_id, self.unit.path, error.cause)
        self._failed.add(error.rule_id)
        rule = self.registry.get(RULE_FAILURE)
        detail = f"{type(error.cause).__name__}: {error.cause}"
        self.findings.append(
            Finding(
                rule=rule.id,
                severity=rule.severity,
                unit=self.unit.path,
                span=span,
                message=rule.message.format(failed_rule=error.rule_id, detail=detail),
            )
        )
