"""Exception hierarchy for msvc-analyze."""

from __future__ import annotations

from typing import List, Optional


class MsvcAnalyzeError(Exception):
    """Base class for every error surfaced to the user."""


class ConfigurationError(MsvcAnalyzeError):
    """Invalid build directory, option value, or config file."""


class MetadataError(MsvcAnalyzeError):
    """Missing or malformed CMake file API data."""


class ToolchainError(MetadataError):
    """No usable MSVC toolchain, or an unrecognized installation layout."""

    def __init__(self, message: str, layout_error: Optional[object] = None) -> None:
        super().__init__(message)
        self.layout_error = layout_error


class SynthesisError(MsvcAnalyzeError):
    """Failure while building analyze commands."""


class AnalysisFailedError(MsvcAnalyzeError):
    """One or more compiler invocations returned a non-zero exit code."""

    def __init__(self, failed_sources: List[str]) -> None:
        self.failed_sources = list(failed_sources)
        names = ",".join(_basename(source) for source in self.failed_sources)
        super().__init__(f"Analysis failed due to compiler errors in files: {names}")


class AggregationError(MsvcAnalyzeError):
    """Malformed SARIF input or failure writing the merged report."""


def _basename(path: str) -> str:
    return path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
