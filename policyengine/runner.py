"""Evaluate many source units in parallel and aggregate the results."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Iterable, List, Optional

from .aggregator import Aggregator
from .evaluator import UnitResult, evaluate_unit, model_error_result
from .model import SourceUnit
from .registry import RuleRegistry
from .result import AnalysisReport

logger = logging.getLogger(__name__)


def default_workers() -> int:
    return min(32, os.cpu_count() or 1)


def analyze(
    units: Iterable[SourceUnit],
    registry: RuleRegistry,
    *,
    workers: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
    extra_results: Iterable[UnitResult] = (),
) -> AnalysisReport:
    """Run every unit through the evaluator and return the ordered report.

    Units are independent, so they are evaluated on a thread pool that shares
    the read-only registry. Setting ``cancel_event`` (or interrupting the
    caller) stops the run between units: units not yet started are skipped and
    a unit that finishes after the abort is dropped whole. The report is then
    flagged as cancelled. ``extra_results`` carries units that already failed
    ingestion.
    """

    cancel = cancel_event or threading.Event()
    aggregator = Aggregator(registry)
    aggregator.extend(extra_results)
    pending: List[SourceUnit] = list(units)
    max_workers = max(1, workers or default_workers())
    logger.info("event=run_started units=%d workers=%d", len(pending), max_workers)

    try:
        if max_workers == 1:
            for unit in pending:
                result = _evaluate_guarded(unit, registry, cancel)
                if result is not None:
                    aggregator.add(result)
        else:
            _run_pool(pending, registry, cancel, aggregator, max_workers)
    except KeyboardInterrupt:
        logger.warning("event=run_interrupted completed=%d", len(aggregator))
        cancel.set()

    if cancel.is_set():
        logger.warning("event=run_cancelled completed=%d requested=%d", len(aggregator), len(pending))
    return aggregator.build_report(cancelled=cancel.is_set())


def _run_pool(
    units: List[SourceUnit],
    registry: RuleRegistry,
    cancel: threading.Event,
    aggregator: Aggregator,
    max_workers: int,
) -> None:
    pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="policy-eval")
    try:
        futures: List[Future] = [pool.submit(_evaluate_guarded, unit, registry, cancel) for unit in units]
        for future in as_completed(futures):
            result = future.result()
            if result is not None:
                aggregator.add(result)
    except BaseException:
        cancel.set()
        raise
    finally:
        pool.shutdown(wait=True, cancel_futures=cancel.is_set())


def _evaluate_guarded(unit: SourceUnit, registry: RuleRegistry, cancel: threading.Event) -> Optional[UnitResult]:
    if cancel.is_set():
        return None
    try:
        result = evaluate_unit(unit, registry)
    except Exception as exc:
        logger.exception("event=unit_failed unit=%s", unit.path)
        result = model_error_result(unit.path, exc, registry)
    if cancel.is_set():
        logger.debug("event=unit_discarded unit=%s", unit.path)
        return None
    return result
