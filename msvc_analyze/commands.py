"""Synthesis of per-source ``cl.exe /analyze`` command lines.

Compile data comes from the CMake codemodel and target replies; analyze flags
and environment are computed once per compiler and shared by every source that
compiler builds.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from . import runner
from .cmake_api import parse_reply_file
from .config import (
    COMMAND_PROMPT_LEVELS_UP,
    COMMAND_PROMPT_SUBPATH,
    ESPX_ENGINE_NAME,
    RULESET_LEVELS_UP,
    RULESET_SUBPATH,
    VC_ENV_SCRIPT,
)
from .errors import ConfigurationError, MetadataError, SynthesisError
from .models import AnalysisInvocation, AnalyzeOptions, CompileUnit, IncludePath, ReplyIndex, ToolchainDescriptor
from .paths import contains_subdirectory, levels_up, resolve_path, split_args

logger = logging.getLogger(__name__)

ANALYZE_BASE_ARGS = ["/analyze:only", "/analyze:quiet", "/analyze:log:format:sarif", "/nologo"]


# ------------------------------------------------------------------
# Compile units
# ------------------------------------------------------------------

def compile_unit_from_group(group: Dict[str, Any], source: str) -> CompileUnit:
    standard = group.get("languageStandard") or {}
    return CompileUnit(
        source=source,
        language=group.get("language", ""),
        standard=standard.get("standard"),
        args=" ".join(f["fragment"] for f in group.get("compileCommandFragments") or []),
        includes=[IncludePath(inc["path"], bool(inc.get("isSystem", False))) for inc in group.get("includes") or []],
        defines=[d["define"] for d in group.get("defines") or []],
    )


def select_configuration(configurations: List[Dict[str, Any]], build_configuration: Optional[str]) -> Dict[str, Any]:
    """Pick the codemodel configuration to analyze."""
    if not configurations:
        raise MetadataError("CMake codemodel does not list any configurations.")

    if len(configurations) > 1:
        if not build_configuration:
            raise ConfigurationError("buildConfiguration is required for multi-config CMake Generators.")
        matches = [c for c in configurations if c.get("name") == build_configuration]
        if not matches:
            raise ConfigurationError("buildConfiguration does not match any available in CMake project.")
        return matches[0]

    only = configurations[0]
    if build_configuration and only.get("name") != build_configuration:
        raise ConfigurationError(
            f"buildConfiguration does not match '{only.get('name')}' configuration used by CMake."
        )
    return only


def _target_units(target: Dict[str, Any], source_root: str) -> List[CompileUnit]:
    sources = target.get("sources", [])
    units = []
    for group in target.get("compileGroups") or []:
        for source_index in group.get("sourceIndexes", []):
            source = os.path.normpath(os.path.join(source_root, sources[source_index]["path"]))
            units.append(compile_unit_from_group(group, source))
    return units


def load_compile_units(
    reply_index: ReplyIndex,
    build_configuration: Optional[str] = None,
    excluded_target_paths: Optional[List[str]] = None,
) -> List[CompileUnit]:
    """One CompileUnit per compiled source of every non-excluded target."""
    codemodel_path = reply_index.codemodel_path
    if not codemodel_path or not Path(codemodel_path).exists():
        raise MetadataError("Failed to load codemodel response from CMake API")

    excluded = excluded_target_paths or []
    codemodel = parse_reply_file(Path(codemodel_path))
    reply_dir = Path(codemodel_path).parent
    try:
        source_root = codemodel["paths"]["source"]
        configuration = select_configuration(codemodel["configurations"], build_configuration)
        directories = configuration["directories"]
        targets = configuration["targets"]
    except (KeyError, TypeError) as exc:
        raise MetadataError(f"Malformed CMake codemodel reply: missing {exc}") from exc

    units: List[CompileUnit] = []
    for target_info in targets:
        try:
            target_dir = os.path.join(source_root, directories[target_info["directoryIndex"]]["source"])
            json_file = target_info["jsonFile"]
        except (KeyError, IndexError, TypeError) as exc:
            raise MetadataError(f"Malformed target entry in CMake codemodel reply: {target_info!r}") from exc

        if contains_subdirectory(excluded, target_dir):
            logger.debug("Skipping excluded target %s", target_info.get("name"))
            continue

        target = parse_reply_file(reply_dir / json_file)
        try:
            units.extend(_target_units(target, source_root))
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise MetadataError(f"Malformed CMake target reply: {json_file}: {exc!r}") from exc

    return units


# ------------------------------------------------------------------
# Shared analyze arguments
# ------------------------------------------------------------------

def find_espx_engine(toolchain: ToolchainDescriptor) -> str:
    """EspXEngine.dll only ships in the host bin directory of a Visual Studio release."""
    host_dir = levels_up(toolchain.compiler_path, 2)
    espx_engine = os.path.join(host_dir, toolchain.host_arch, ESPX_ENGINE_NAME)
    if not os.path.exists(espx_engine):
        raise SynthesisError(f"Unable to find: {espx_engine}")
    return espx_engine


def find_ruleset_directory(toolchain: ToolchainDescriptor) -> Optional[str]:
    directory = os.path.join(levels_up(toolchain.compiler_path, RULESET_LEVELS_UP), str(RULESET_SUBPATH))
    return directory if os.path.isdir(directory) else None


def find_ruleset(ruleset: Optional[str], project_root: str, ruleset_directory: Optional[str]) -> Optional[str]:
    """Look for ``ruleset`` in the project first, then among the official rulesets."""
    if not ruleset:
        return None

    local_path = resolve_path(ruleset, project_root)
    if os.path.exists(local_path):
        logger.info("Found local ruleset: %s", local_path)
        return local_path

    if ruleset_directory is not None:
        official_path = os.path.join(ruleset_directory, ruleset)
        if os.path.exists(official_path):
            logger.info("Found official ruleset: %s", official_path)
            return official_path
    else:
        logger.warning("Unable to find official rulesets shipped with Visual Studio.")

    raise SynthesisError(f"Unable to find local or official ruleset specified: {ruleset}")


def common_analyze_arguments(toolchain: ToolchainDescriptor, options: AnalyzeOptions) -> List[str]:
    args = list(ANALYZE_BASE_ARGS)
    args.append(f"/analyze:plugin{find_espx_engine(toolchain)}")

    ruleset_directory = find_ruleset_directory(toolchain)
    ruleset_path = find_ruleset(options.ruleset, options.project_root, ruleset_directory)
    if ruleset_path is not None:
        args.append(f"/analyze:ruleset{ruleset_path}")
        # official rulesets reference their siblings by name
        if ruleset_directory is not None:
            args.append(f"/analyze:rulesetdirectory{ruleset_directory}")
    else:
        logger.warning("Ruleset is not being used, all warnings will be enabled.")

    if options.ignore_system_headers:
        args.append("/external:W0")
        args.append("/analyze:external-")

    try:
        args.extend(split_args(options.additional_args))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid additional_args \"{options.additional_args}\": {exc}") from exc
    return args


# ------------------------------------------------------------------
# Shared environment
# ------------------------------------------------------------------

def parse_env_output(stdout: str, names: tuple = ("INCLUDE", "LIB")) -> Dict[str, str]:
    env = {name: "" for name in names}
    for line in stdout.splitlines():
        name, sep, value = line.partition("=")
        if sep and name in env:
            env[name] = value
    return env


def extract_environment(toolchain: ToolchainDescriptor) -> Dict[str, str]:
    """INCLUDE and LIB as set by the Visual Studio command prompt for ``toolchain``.

    MSVC leaves ``toolchain.implicit.includeDirectories`` empty in the CMake
    reply, so the standard library locations have to come from vcvarsall.bat.
    """
    command_prompt = os.path.join(
        levels_up(toolchain.compiler_path, COMMAND_PROMPT_LEVELS_UP), str(COMMAND_PROMPT_SUBPATH)
    )
    if toolchain.host_arch == toolchain.target_arch:
        arch = toolchain.host_arch
    else:
        arch = f"{toolchain.host_arch}_{toolchain.target_arch}"

    logger.info("Extracting environment from VS Command Prompt")
    result = runner.run_process([str(VC_ENV_SCRIPT), command_prompt, arch, toolchain.toolset_version])
    if not result.ok:
        logger.debug(result.stdout)
        raise SynthesisError("Failed to run VS Command Prompt to collect implicit includes/libs")
    return parse_env_output(result.stdout)


def _append(base: str, extra: str) -> str:
    return ";".join(part for part in (base, extra) if part)


def common_analyze_environment(
    toolchain: ToolchainDescriptor,
    options: AnalyzeOptions,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    environ = os.environ if environ is None else environ
    env = {
        # compatibility mode, GitHub code scanning rejects some SARIF options
        "CAEmitSarifLog": "1",
        "CAExcludePath": environ.get("CAExcludePath", ""),
        "INCLUDE": environ.get("INCLUDE", ""),
        "LIB": environ.get("LIB", ""),
    }

    if options.load_implicit_compiler_env:
        prompt_env = extract_environment(toolchain)
        # implicit includes are searched but never analyzed
        env["CAExcludePath"] = _append(env["CAExcludePath"], prompt_env["INCLUDE"])
        env["INCLUDE"] = _append(env["INCLUDE"], prompt_env["INCLUDE"])
        env["LIB"] = _append(env["LIB"], prompt_env["LIB"])

    return env


@dataclass
class ToolchainTable:
    """Analyze arguments and environment keyed by compiler path.

    Built once before any dispatch and only read afterwards.
    """

    toolchains: Dict[str, ToolchainDescriptor]
    args: Dict[str, List[str]] = field(default_factory=dict)
    env: Dict[str, Dict[str, str]] = field(default_factory=dict)


def build_toolchain_table(
    toolchains: Dict[str, ToolchainDescriptor],
    options: AnalyzeOptions,
    environ: Optional[Mapping[str, str]] = None,
) -> ToolchainTable:
    table = ToolchainTable(toolchains=dict(toolchains))
    for toolchain in toolchains.values():
        if toolchain.compiler_path not in table.args:
            table.args[toolchain.compiler_path] = common_analyze_arguments(toolchain, options)
            table.env[toolchain.compiler_path] = common_analyze_environment(toolchain, options, environ)
    return table


# ------------------------------------------------------------------
# Invocations
# ------------------------------------------------------------------

def allocate_sarif_log() -> str:
    fd, path = tempfile.mkstemp(suffix=".sarif")
    os.close(fd)
    return path


def cleanup_logs(paths: List[str]) -> None:
    for path in paths:
        if os.path.exists(path):
            os.unlink(path)


def include_argument(include: IncludePath, options: AnalyzeOptions) -> str:
    if (options.ignore_system_headers and include.is_system) or contains_subdirectory(
        options.ignored_include_paths, include.path
    ):
        return f"/external:I{include.path}"
    return f"/I{include.path}"


def compile_arguments(unit: CompileUnit, toolchain: ToolchainDescriptor, options: AnalyzeOptions) -> List[str]:
    """Compile flags, includes, defines and source for ``unit``, without analyze flags."""
    try:
        args = split_args(unit.args)
    except ValueError as exc:
        raise SynthesisError(f"Failed to parse compile flags for {unit.source}: {exc}") from exc
    for include in list(unit.includes) + list(toolchain.implicit_includes):
        args.append(include_argument(include, options))
    for define in unit.defines:
        args.append(f"/D{define}")
    args.append(unit.source)
    return args


def create_invocations(
    units: List[CompileUnit],
    table: ToolchainTable,
    options: AnalyzeOptions,
) -> List[AnalysisInvocation]:
    """Pair every unit that has an MSVC toolchain with a fresh SARIF log.

    On any failure the logs allocated so far are removed before the error propagates.
    """
    invocations: List[AnalysisInvocation] = []
    try:
        for unit in units:
            toolchain = table.toolchains.get(unit.language)
            if toolchain is None:
                logger.debug("No MSVC toolchain for %s (%s), skipping", unit.source, unit.language)
                continue

            args = compile_arguments(unit, toolchain, options)
            try:
                sarif_log = allocate_sarif_log()
            except OSError as exc:
                raise SynthesisError(f"Failed to create temporary file to write SARIF: {exc}") from exc

            args.append(f"/analyze:log{sarif_log}")
            args.extend(table.args[toolchain.compiler_path])
            invocations.append(
                AnalysisInvocation(
                    source=unit.source,
                    compiler=toolchain.compiler_path,
                    args=args,
                    env=table.env[toolchain.compiler_path],
                    sarif_log=sarif_log,
                )
            )
    except Exception:
        cleanup_logs([invocation.sarif_log for invocation in invocations])
        raise
    return invocations


def build_invocations(
    reply_index: ReplyIndex,
    toolchains: Dict[str, ToolchainDescriptor],
    options: AnalyzeOptions,
    environ: Optional[Mapping[str, str]] = None,
) -> List[AnalysisInvocation]:
    """Everything needed to analyze each source file in the CMake project."""
    units = load_compile_units(reply_index, options.build_configuration, options.ignored_target_paths)
    table = build_toolchain_table(toolchains, options, environ)
    return create_invocations(units, table, options)
