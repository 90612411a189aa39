"""Core data models shared by metadata loading, synthesis, and aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ReplyIndex:
    """Locations extracted from the newest ``index-*.json`` CMake API reply."""

    codemodel_path: Optional[str]
    toolchains_path: Optional[str]
    version_string: str
    index_path: str = ""


@dataclass(frozen=True)
class IncludePath:
    path: str
    is_system: bool = False


@dataclass(frozen=True)
class ToolchainDescriptor:
    language: str
    compiler_path: str
    compiler_version: str
    toolset_version: str
    host_arch: str
    target_arch: str
    implicit_includes: List[IncludePath] = field(default_factory=list)


@dataclass
class CompileUnit:
    source: str
    language: str
    args: str = ""
    standard: Optional[str] = None
    includes: List[IncludePath] = field(default_factory=list)
    defines: List[str] = field(default_factory=list)


@dataclass
class AnalysisInvocation:
    source: str
    compiler: str
    args: List[str]
    env: Dict[str, str]
    sarif_log: str


@dataclass
class ExecResult:
    """Outcome of a synchronous external process call."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class Finding:
    rule_id: str
    message: str
    uri: str
    line: int
    column: int

    @property
    def key(self) -> tuple:
        return (self.uri, self.rule_id, self.line, self.column, self.message)


@dataclass
class MergedReport:
    """Single-run SARIF report holding the deduplicated results.

    ``results`` keeps the raw SARIF result objects so nothing the compiler
    emitted beyond the dedup key is lost; ``findings`` is the parallel list of
    parsed keys.
    """

    tool: Optional[Dict[str, Any]] = None
    results: List[Dict[str, Any]] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)


@dataclass
class AnalyzeOptions:
    """Options that change how compile and analyze commands are built."""

    build_configuration: Optional[str] = None
    ignore_system_headers: bool = True
    load_implicit_compiler_env: bool = True
    ignored_target_paths: List[str] = field(default_factory=list)
    ignored_include_paths: List[str] = field(default_factory=list)
    ruleset: Optional[str] = None
    additional_args: str = ""
    results_path: Optional[str] = None
    project_root: str = "."
