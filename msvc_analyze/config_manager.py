"""Analysis options from ``msvc-analyze.toml`` merged with command-line values."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import toml

from .config import CONFIG_FILE_NAME
from .errors import ConfigurationError
from .models import AnalyzeOptions
from .paths import split_paths

logger = logging.getLogger(__name__)

BOOL_KEYS = ("ignore_system_headers", "load_implicit_compiler_env")
STRING_KEYS = ("build_configuration", "ruleset", "additional_args", "results_path")
PATH_LIST_KEYS = ("ignored_paths", "ignored_target_paths", "ignored_include_paths")
KNOWN_KEYS = BOOL_KEYS + STRING_KEYS + PATH_LIST_KEYS


def find_config_file(project_root: Path, explicit: Optional[Path] = None) -> Optional[Path]:
    if explicit is not None:
        if not explicit.is_file():
            raise ConfigurationError(f"Config file not found: {explicit}")
        return explicit
    candidate = project_root / CONFIG_FILE_NAME
    return candidate if candidate.is_file() else None


def load_config(config_file: Optional[Path]) -> Dict[str, Any]:
    """Read the ``[analysis]`` table, or an empty dict when there is no file."""
    if config_file is None:
        return {}
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        raise ConfigurationError(f"Failed to load config file {config_file}: {exc}") from exc

    section = data.get("analysis", {})
    if not isinstance(section, dict):
        raise ConfigurationError(f"[analysis] in {config_file} must be a table")

    for key in section:
        if key not in KNOWN_KEYS:
            logger.warning("Ignoring unknown option '%s' in %s", key, config_file)
    return {key: value for key, value in section.items() if key in KNOWN_KEYS}


def _check_types(values: Dict[str, Any]) -> None:
    for key, value in values.items():
        if key in BOOL_KEYS and not isinstance(value, bool):
            raise ConfigurationError(f"Option '{key}' must be true or false")
        if key in STRING_KEYS and not isinstance(value, str):
            raise ConfigurationError(f"Option '{key}' must be a string")
        if key in PATH_LIST_KEYS and not (
            isinstance(value, str) or (isinstance(value, list) and all(isinstance(v, str) for v in value))
        ):
            raise ConfigurationError(f"Option '{key}' must be a ';' separated string or a list of strings")


def build_options(
    project_root: Path,
    file_values: Optional[Dict[str, Any]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> AnalyzeOptions:
    """Combine file values and CLI overrides (``None`` means not given)."""
    values: Dict[str, Any] = dict(file_values or {})
    values.update({key: value for key, value in (overrides or {}).items() if value is not None})
    _check_types(values)

    def paths(key: str) -> List[str]:
        return split_paths(values.get(key), project_root)

    ignored = paths("ignored_paths")
    return AnalyzeOptions(
        build_configuration=values.get("build_configuration") or None,
        ignore_system_headers=values.get("ignore_system_headers", True),
        load_implicit_compiler_env=values.get("load_implicit_compiler_env", True),
        ignored_target_paths=ignored + paths("ignored_target_paths"),
        ignored_include_paths=ignored + paths("ignored_include_paths"),
        ruleset=values.get("ruleset") or None,
        additional_args=values.get("additional_args") or "",
        results_path=values.get("results_path") or None,
        project_root=str(project_root),
    )


def load_options(
    project_root: Union[str, Path],
    config_file: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> AnalyzeOptions:
    project_root = Path(project_root)
    return build_options(project_root, load_config(find_config_file(project_root, config_file)), overrides)
