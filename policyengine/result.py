"""Findings, severity summary, and the final analysis report."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from typing import Dict, List, Sequence, Tuple

from .model import Span
from .rules import CONFIGURATION_ERROR, ENGINE_RULE_IDS, engine_rule
from .severity import SEVERITY_ORDER, Severity

CONFIGURATION_UNIT = "<configuration>"


@dataclass(frozen=True)
class Finding:
    """Capture a single rule violation at a location."""

    rule: str
    severity: Severity
    unit: str
    span: Span
    message: str
    suppressed: bool = False

    @property
    def identity(self) -> tuple:
        """Deduplication key; engine findings also keep their message apart."""

        if self.rule in ENGINE_RULE_IDS:
            return (self.rule, self.unit, self.span, self.message)
        return (self.rule, self.unit, self.span)

    @property
    def sort_key(self) -> tuple:
        return (
            self.unit,
            self.span.start_line,
            self.span.start_column,
            self.rule,
            self.span.end_line,
            self.span.end_column,
            self.message,
        )

    def suppress(self) -> "Finding":
        return replace(self, suppressed=True)

    def to_dict(self) -> Dict[str, object]:
        return {
            "rule": self.rule,
            "severity": self.severity.value,
            "unit": self.unit,
            "span": self.span.to_dict(),
            "message": self.message,
            "suppressed": self.suppressed,
        }


@dataclass
class Summary:
    """Aggregate active finding counts by severity."""

    error: int = 0
    warning: int = 0
    info: int = 0
    suppressed: int = 0

    def increment(self, finding: Finding) -> None:
        if finding.suppressed:
            self.suppressed += 1
            return
        attr = finding.severity.value
        setattr(self, attr, getattr(self, attr) + 1)

    def to_dict(self) -> Dict[str, int]:
        data = asdict(self)
        data["total"] = self.total
        return data

    def as_rows(self) -> List[Tuple[str, int]]:
        """Return severity/count pairs ordered for reporting."""

        return [(severity.value, getattr(self, severity.value)) for severity in SEVERITY_ORDER]

    def count(self, severity: Severity) -> int:
        return getattr(self, severity.value)

    @property
    def total(self) -> int:
        return sum(getattr(self, severity.value) for severity in SEVERITY_ORDER)


@dataclass
class AnalysisReport:
    """Ordered findings plus the summary computed over active findings."""

    findings: Tuple[Finding, ...] = ()
    summary: Summary = field(default_factory=Summary)
    units: Tuple[str, ...] = ()
    cancelled: bool = False

    @classmethod
    def from_findings(
        cls,
        findings: Sequence[Finding],
        units: Sequence[str] = (),
        cancelled: bool = False,
    ) -> "AnalysisReport":
        summary = Summary()
        for finding in findings:
            summary.increment(finding)
        return cls(findings=tuple(findings), summary=summary, units=tuple(units), cancelled=cancelled)

    @classmethod
    def configuration_failure(cls, error: Exception) -> "AnalysisReport":
        """Build the one-entry report emitted when the registry cannot be built."""

        rule = engine_rule(CONFIGURATION_ERROR)
        finding = Finding(
            rule=rule.id,
            severity=rule.severity,
            unit=CONFIGURATION_UNIT,
            span=Span(1, 1, 1, 1),
            message=rule.message.format(detail=str(error)),
        )
        return cls.from_findings([finding])

    @property
    def passed(self) -> bool:
        return self.summary.error == 0

    @property
    def active_findings(self) -> List[Finding]:
        return [finding for finding in self.findings if not finding.suppressed]

    def exit_code(self) -> int:
        return 0 if self.passed else 1

    def to_dict(self) -> Dict[str, object]:
        return {
            "summary": self.summary.to_dict(),
            "units": list(self.units),
            "cancelled": self.cancelled,
            "passed": self.passed,
            "findings": [finding.to_dict() for finding in self.findings],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=True)


def format_summary_table(report: AnalysisReport, max_findings: int = 20) -> str:
    """Create a human-readable summary table for console output."""

    lines: List[str] = []
    lines.append("Policy Summary")
    lines.append("=" * 40)
    header = f"{'Severity':<10} | {'Count':>5}"
    lines.append(header)
    lines.append("-" * len(header))
    for severity, count in report.summary.as_rows():
        lines.append(f"{severity:<10} | {count:>5}")
    lines.append("-" * len(header))
    status = "PASS" if report.passed else "FAIL"
    lines.append(f"Status    : {status}")
    lines.append(f"Units     : {len(report.units)}")
    lines.append(f"Findings  : {report.summary.total}")
    if report.summary.suppressed:
        lines.append(f"Suppressed: {report.summary.suppressed}")
    if report.cancelled:
        lines.append("Cancelled : run stopped before all units were analysed")

    findings = report.active_findings[:max_findings]
    if findings:
        lines.append("")
        lines.append("Findings")
        lines.append("-" * 40)
        for finding in findings:
            lines.append(f"{finding.unit}:{finding.span.start_line}:{finding.span.start_column} "
                         f"[{finding.severity.value}] {finding.rule}")
            lines.append(f"  {finding.message}")
        remaining = len(report.active_findings) - len(findings)
        if remaining > 0:
            lines.append(f"... {remaining} more")
    return "\n".join(lines)
