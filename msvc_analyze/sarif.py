"""Merging of per-file SARIF logs into one deduplicated report."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Set, Union

from .config import SARIF_SCHEMA, SARIF_VERSION
from .errors import AggregationError
from .models import Finding, MergedReport

logger = logging.getLogger(__name__)


def _is_position(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def finding_from_result(result: Dict[str, Any]) -> Finding:
    """Validate a SARIF result and extract its dedup key.

    Results without a rule, message, or full location are rejected instead of
    dropped so nothing is silently lost from the merged report.
    """
    if not isinstance(result, dict):
        raise AggregationError(f"Found malformed warning, resolve before continuing: {result!r}")

    rule_id = result.get("ruleId")
    if not rule_id or not isinstance(rule_id, str):
        raise AggregationError("Found warning with no ID, resolve before continuing")

    message = result.get("message")
    text = message.get("text") if isinstance(message, dict) else None
    if not text or not isinstance(text, str):
        raise AggregationError(f"Found warning with no message, resolve before continuing: {rule_id}")

    locations = result.get("locations")
    first = locations[0] if isinstance(locations, list) and locations else None
    physical = first.get("physicalLocation") if isinstance(first, dict) else None
    if not physical:
        raise AggregationError(f"Found warning with no location, resolve before continuing:\n{rule_id}: {text}")

    artifact = physical.get("artifactLocation") if isinstance(physical, dict) else None
    region = physical.get("region") if isinstance(physical, dict) else None
    uri = artifact.get("uri") if isinstance(artifact, dict) else None
    line = region.get("startLine") if isinstance(region, dict) else None
    column = region.get("startColumn") if isinstance(region, dict) else None
    if not isinstance(uri, str) or not _is_position(line) or not _is_position(column):
        raise AggregationError(
            f"Found warning with invalid location, resolve before continuing:\n{rule_id}: {text}"
        )

    return Finding(rule_id=rule_id, message=text, uri=uri, line=line, column=column)


class ResultCache:
    """Seen (file, rule, line, column, message) keys for one merge."""

    def __init__(self) -> None:
        self._seen: Set[tuple] = set()

    def __len__(self) -> int:
        return len(self._seen)

    def add_if_unique(self, finding: Finding) -> bool:
        if finding.key in self._seen:
            return False
        self._seen.add(finding.key)
        return True


def read_report(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise AggregationError(f"Failed to read SARIF log: {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise AggregationError(f"Malformed SARIF log: {path}: {exc}") from exc
    if not isinstance(document, dict):
        raise AggregationError(f"Malformed SARIF log: {path}: top level is not an object")
    return document


def _runs(log: Dict[str, Any]) -> List[Dict[str, Any]]:
    if not isinstance(log, dict):
        raise AggregationError("Malformed SARIF log: top level is not an object")
    runs = log.get("runs") or []
    if not isinstance(runs, list) or not all(isinstance(run, dict) for run in runs):
        raise AggregationError("Malformed SARIF log: 'runs' must be a list of objects")
    return runs


def _results(run: Dict[str, Any]) -> List[Any]:
    results = run.get("results") or []
    if not isinstance(results, list):
        raise AggregationError("Malformed SARIF log: 'results' must be a list")
    return results


def merge_logs(logs: Iterable[Dict[str, Any]]) -> MergedReport:
    """Merge parsed SARIF documents, keeping the first copy of every finding."""
    report = MergedReport()
    cache = ResultCache()
    duplicates = 0

    for log in logs:
        for run in _runs(log):
            if report.tool is None and run.get("tool") is not None:
                report.tool = run["tool"]

            for result in _results(run):
                finding = finding_from_result(result)
                if cache.add_if_unique(finding):
                    report.results.append(result)
                    report.findings.append(finding)
                else:
                    duplicates += 1

    logger.debug("Merged %d unique results, dropped %d duplicates", len(report.results), duplicates)
    return report


def merge_reports(report_paths: Iterable[Union[str, Path]]) -> MergedReport:
    return merge_logs(read_report(path) for path in report_paths)


def to_sarif(report: MergedReport) -> Dict[str, Any]:
    return {
        "version": SARIF_VERSION,
        "$schema": SARIF_SCHEMA,
        "runs": [
            {
                "tool": report.tool,
                "results": report.results,
            }
        ],
    }


def write_report(report: MergedReport, output_path: Union[str, Path]) -> Path:
    output_path = Path(output_path)
    try:
        output_path.write_text(json.dumps(to_sarif(report)), encoding="utf-8")
    except OSError as exc:
        raise AggregationError(f"Failed to write combined SARIF result file: {exc}") from exc
    return output_path


def load_merged_report(path: Union[str, Path]) -> MergedReport:
    """Parse a report written by :func:`write_report` back into memory."""
    log = read_report(path)
    run = (_runs(log) or [{}])[0]
    report = MergedReport(tool=run.get("tool"))
    for result in _results(run):
        report.results.append(result)
        report.findings.append(finding_from_result(result))
    return report


def combine_sarif(result_path: Union[str, Path], sarif_files: Iterable[Union[str, Path]]) -> MergedReport:
    """Merge ``sarif_files`` and write the combined report to ``result_path``.

    Nothing is written when any input is malformed.
    """
    report = merge_reports(list(sarif_files))
    write_report(report, result_path)
    return report
