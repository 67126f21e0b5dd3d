"""Command-line entry point for the policy engine."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

from .catalog import BUILTIN_PACKS, DEFAULT_PACKS, build_builtin_pack
from .errors import ModelError, RuleDefinitionError
from .evaluator import UnitResult, model_error_result
from .loaders import load_pack, load_unit
from .model import SourceUnit
from .registry import PolicyPack, RegistryConfig, RuleRegistry
from .result import AnalysisReport, format_summary_table
from .runner import analyze
from .utils import iter_document_files

logger = logging.getLogger(__name__)

CONFIGURATION_EXIT_CODE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="policy-engine",
        description="Evaluate coding-standard policy packs against parsed symbol models",
    )
    parser.add_argument(
        "units",
        nargs="+",
        help="Symbol-model documents (JSON/YAML) or directories containing them.",
    )
    parser.add_argument(
        "--pack",
        dest="packs",
        action="append",
        default=[],
        choices=sorted(BUILTIN_PACKS),
        help="Built-in policy pack to enable (repeatable). Defaults to the standard set.",
    )
    parser.add_argument(
        "--pack-file",
        dest="pack_files",
        action="append",
        default=[],
        help="YAML/JSON policy pack document to load (repeatable).",
    )
    parser.add_argument(
        "--permissive",
        action="store_true",
        help="Allow annotations that are missing from the annotation table.",
    )
    parser.add_argument(
        "--severity",
        dest="severities",
        action="append",
        default=[],
        metavar="RULE=LEVEL",
        help="Override a rule's severity, e.g. doc/missing-public=error (repeatable).",
    )
    parser.add_argument(
        "--disable",
        dest="disabled",
        action="append",
        default=[],
        metavar="RULE",
        help="Disable a rule for this run (repeatable).",
    )
    parser.add_argument("--workers", type=int, default=None, help="Parallel evaluation workers.")
    parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Console report format (defaults to text).",
    )
    parser.add_argument(
        "--out",
        "--output",
        dest="output_path",
        type=str,
        default=None,
        help="Path to write the JSON report (e.g., artifacts/policy.json).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity on stderr.",
    )
    return parser


def parse_severity_overrides(values: Iterable[str]) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    for value in values:
        rule_id, sep, level = value.partition("=")
        if not sep or not rule_id.strip() or not level.strip():
            raise RuleDefinitionError(f"Severity override must look like RULE=LEVEL, got {value!r}")
        overrides[rule_id.strip()] = level.strip()
    return overrides


def build_registry(args: argparse.Namespace) -> RuleRegistry:
    packs: List[PolicyPack] = []
    builtin_names = args.packs or ([] if args.pack_files else list(DEFAULT_PACKS))
    packs.extend(build_builtin_pack(name) for name in builtin_names)
    packs.extend(load_pack(path) for path in args.pack_files)
    config = RegistryConfig(
        permissive=args.permissive,
        severity_overrides=parse_severity_overrides(args.severities),
        disabled_rules=frozenset(args.disabled),
    )
    return RuleRegistry.from_packs(packs, config)


def load_units(paths: Sequence[str], registry: RuleRegistry) -> Tuple[List[SourceUnit], List[UnitResult]]:
    """Load every document; unreadable ones become model-error results."""

    units: List[SourceUnit] = []
    failures: List[UnitResult] = []
    for path in iter_document_files(paths):
        try:
            units.append(load_unit(path))
        except ModelError as exc:
            failures.append(model_error_result(exc.unit or str(path), exc, registry))
    return units, failures


def run_analysis(args: argparse.Namespace) -> AnalysisReport:
    registry = build_registry(args)
    units, failures = load_units(args.units, registry)
    return analyze(units, registry, workers=args.workers, extra_results=failures)


def write_output(report: AnalysisReport, output_path: str | None, report_format: str) -> None:
    print(format_summary_table(report))

    payload = report.to_json()
    if output_path:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(payload, encoding="utf-8")
        print(f"\nReport written to {output_path}")
    elif report_format == "json":
        print("\nJSON Report")
        print(payload)


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s %(message)s")

    try:
        report = run_analysis(args)
    except RuleDefinitionError as exc:
        logger.error("event=configuration_rejected error=%s", exc)
        write_output(AnalysisReport.configuration_failure(exc), args.output_path, args.format)
        return CONFIGURATION_EXIT_CODE

    write_output(report, args.output_path, args.format)
    return report.exit_code()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
