"""Runs the full pipeline: CMake replies, command synthesis, analysis, merge."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple

from . import runner
from .cmake_api import load_cmake_api_replies
from .commands import build_invocations, cleanup_logs
from .config import DEFAULT_RESULTS_NAME
from .errors import AnalysisFailedError, ConfigurationError, SynthesisError
from .models import AnalysisInvocation, AnalyzeOptions, MergedReport
from .paths import resolve_path
from .sarif import combine_sarif
from .toolchains import resolve_toolchains

logger = logging.getLogger(__name__)


class AnalysisSession:
    """Owns the temporary SARIF logs of one run and deletes them on exit."""

    def __init__(self, build_dir: str, options: AnalyzeOptions) -> None:
        self.build_dir = build_dir
        self.options = options
        self.invocations: List[AnalysisInvocation] = []

    def __enter__(self) -> "AnalysisSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        cleanup_logs([invocation.sarif_log for invocation in self.invocations])

    @property
    def sarif_logs(self) -> List[str]:
        return [invocation.sarif_log for invocation in self.invocations]

    def prepare(self) -> List[AnalysisInvocation]:
        reply_index = load_cmake_api_replies(self.build_dir)
        toolchains = resolve_toolchains(reply_index.toolchains_path)
        self.invocations = build_invocations(reply_index, toolchains, self.options)
        if not self.invocations:
            raise SynthesisError("No C/C++ files were found in the project that could be analyzed.")
        return self.invocations

    def analyze(self) -> List[str]:
        """Run every invocation in order and return the sources that failed."""
        failed: List[str] = []
        for invocation in self.invocations:
            logger.info("Running analysis on: %s", invocation.source)
            result = runner.run_analysis(invocation, cwd=self.build_dir)
            if not result.ok:
                failed.append(invocation.source)
        return failed

    def merge(self, result_path: str) -> MergedReport:
        return combine_sarif(result_path, self.sarif_logs)


def resolve_build_dir(build_dir: str, project_root: str) -> str:
    resolved = resolve_path(build_dir, project_root)
    if not os.path.isdir(resolved):
        raise ConfigurationError("CMake build directory does not exist. Ensure CMake is already configured.")
    return resolved


def resolve_result_path(build_dir: str, options: AnalyzeOptions, output: Optional[str] = None) -> str:
    requested = output or options.results_path
    if not requested:
        return os.path.join(build_dir, DEFAULT_RESULTS_NAME)
    result_path = resolve_path(requested, options.project_root)
    if not os.path.isdir(os.path.dirname(result_path)):
        raise ConfigurationError("Directory of the 'resultPath' file must already exist.")
    return result_path


def run(build_dir: str, options: AnalyzeOptions, output: Optional[str] = None) -> Tuple[Path, MergedReport]:
    """Analyze every source under ``build_dir`` and write the merged SARIF.

    Returns ``(result_path, merged_report)``.
    """
    build_dir = resolve_build_dir(build_dir, options.project_root)
    result_path = resolve_result_path(build_dir, options, output)

    with AnalysisSession(build_dir, options) as session:
        session.prepare()
        failed = session.analyze()
        if failed:
            raise AnalysisFailedError(failed)
        report = session.merge(result_path)

    logger.info("Wrote %d unique results to %s", len(report.findings), result_path)
    return Path(result_path), report
