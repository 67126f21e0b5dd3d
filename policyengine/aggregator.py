"""Merge per-unit findings into one deterministic analysis report."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Tuple

from .errors import SuppressionSyntaxError
from .evaluator import UnitResult
from .model import Span, SuppressionDirective
from .registry import RuleRegistry
from .result import AnalysisReport, Finding
from .rules import ENGINE_RULE_IDS, SUPPRESSION_SYNTAX

logger = logging.getLogger(__name__)

ALL_RULES = "all"
DIRECTIVE_PATTERN = re.compile(r"^\s*disable\s*[:=]?\s*(?P<targets>.*?)\s*$", re.IGNORECASE)
TARGET_PATTERN = re.compile(r"^[A-Za-z0-9_.\-/]+$")


@dataclass(frozen=True)
class SuppressionScope:
    span: Span
    targets: FrozenSet[str]

    def covers(self, finding: Finding) -> bool:
        if not self.span.contains(finding.span):
            return False
        if finding.rule in self.targets:
            return True
        # "all" never hides the engine's own diagnostics
        return ALL_RULES in self.targets and finding.rule not in ENGINE_RULE_IDS


def parse_directive(text: str, registry: RuleRegistry) -> FrozenSet[str]:
    """Return the rule identifiers (or ``all``) a directive names.

    Grammar: ``disable[:=] <target>(, <target>)*`` where a target is ``all`` or
    a rule identifier known to the registry.
    """

    matched = DIRECTIVE_PATTERN.match(text)
    if matched is None:
        raise SuppressionSyntaxError("expected 'disable <rule-id|all>[, ...]'", text)
    raw_targets = matched.group("targets")
    if not raw_targets:
        raise SuppressionSyntaxError("directive names no rule", text)

    targets = set()
    for part in raw_targets.split(","):
        target = part.strip()
        if not target or not TARGET_PATTERN.match(target):
            raise SuppressionSyntaxError(f"invalid rule reference {part.strip()!r}", text)
        if target.lower() == ALL_RULES:
            targets.add(ALL_RULES)
            continue
        if target not in registry:
            raise SuppressionSyntaxError(f"unknown rule '{target}'", text)
        targets.add(target)
    return frozenset(targets)


class Aggregator:
    """Collect unit batches in any order; sort once when the report is built."""

    def __init__(self, registry: RuleRegistry) -> None:
        self._registry = registry
        self._lock = threading.Lock()
        self._results: List[UnitResult] = []

    def add(self, result: UnitResult) -> None:
        with self._lock:
            self._results.append(result)

    def extend(self, results: Iterable[UnitResult]) -> None:
        for result in results:
            self.add(result)

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def build_report(self, cancelled: bool = False) -> AnalysisReport:
        with self._lock:
            results = list(self._results)

        findings: List[Finding] = []
        for result in results:
            scopes, directive_findings = self._suppression_scopes(result)
            for finding in result.findings:
                if any(scope.covers(finding) for scope in scopes):
                    finding = finding.suppress()
                findings.append(finding)
            findings.extend(directive_findings)

        ordered = _deduplicate(findings)
        units = sorted({result.unit for result in results})
        report = AnalysisReport.from_findings(ordered, units=units, cancelled=cancelled)
        logger.info(
            "event=report_built units=%d findings=%d errors=%d suppressed=%d",
            len(units),
            len(ordered),
            report.summary.error,
            report.summary.suppressed,
        )
        return report

    def _suppression_scopes(self, result: UnitResult) -> Tuple[List[SuppressionScope], List[Finding]]:
        scopes: List[SuppressionScope] = []
        problems: List[Finding] = []
        for directive in result.suppressions:
            try:
                targets = parse_directive(directive.text, self._registry)
            except SuppressionSyntaxError as exc:
                problems.append(self._directive_finding(result.unit, directive, exc))
                continue
            scopes.append(SuppressionScope(span=directive.span, targets=targets))
        return scopes, problems

    def _directive_finding(
        self, unit: str, directive: SuppressionDirective, error: SuppressionSyntaxError
    ) -> Finding:
        rule = self._registry.get(SUPPRESSION_SYNTAX)
        return Finding(
            rule=rule.id,
            severity=rule.severity,
            unit=unit,
            span=directive.span,
            message=rule.message.format(directive=error.directive, detail=str(error)),
        )


def aggregate(results: Iterable[UnitResult], registry: RuleRegistry, cancelled: bool = False) -> AnalysisReport:
    aggregator = Aggregator(registry)
    aggregator.extend(results)
    return aggregator.build_report(cancelled=cancelled)


def _deduplicate(findings: Iterable[Finding]) -> List[Finding]:
    """Collapse findings sharing an identity; keep the first in sort order."""

    seen: Dict[tuple, Finding] = {}
    for finding in sorted(findings, key=lambda item: (item.sort_key, item.suppressed)):
        seen.setdefault(finding.identity, finding)
    return list(seen.values())
