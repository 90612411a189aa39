"""MSVC toolchain discovery from the CMake ``toolchains`` reply."""

from __future__ import annotations

import enum
import logging
import ntpath
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .cmake_api import parse_reply_file
from .config import HOST_ARCH_DIRS, SUPPORTED_COMPILER_ID, SUPPORTED_LANGUAGES, TOOLSET_LEVELS_UP
from .errors import ToolchainError
from .models import IncludePath, ToolchainDescriptor

logger = logging.getLogger(__name__)


class LayoutError(enum.Enum):
    PATH_TOO_SHORT = "compiler path is too short for a Visual Studio layout"
    UNKNOWN_HOST_DIR = "unknown MSVC toolset layout"


@dataclass(frozen=True)
class ToolchainLayout:
    toolset_version: str = ""
    host_arch: str = ""
    target_arch: str = ""
    error: Optional[LayoutError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _split_components(compiler_path: str) -> list:
    # CMake reports forward slashes even on Windows, so accept either separator.
    module = ntpath if "\\" in compiler_path else posixpath
    parts = []
    head = module.normpath(compiler_path)
    while True:
        head, tail = module.split(head)
        if not tail:
            break
        parts.append(tail)
    return parts


def derive_layout(compiler_path: str) -> ToolchainLayout:
    """Read toolset version and architectures from the position of ``cl.exe``.

    Expects ``.../MSVC/<toolset>/bin/Host<host>/<target>/cl.exe``.
    """
    parts = _split_components(compiler_path)
    if len(parts) <= TOOLSET_LEVELS_UP:
        return ToolchainLayout(error=LayoutError.PATH_TOO_SHORT)

    target_arch = parts[1]
    host_dir = parts[2]
    toolset_version = parts[TOOLSET_LEVELS_UP]
    host_arch = HOST_ARCH_DIRS.get(host_dir)
    if host_arch is None:
        return ToolchainLayout(error=LayoutError.UNKNOWN_HOST_DIR)

    return ToolchainLayout(toolset_version=toolset_version, host_arch=host_arch, target_arch=target_arch)


def toolchain_from_reply(toolchain: Dict[str, Any]) -> ToolchainDescriptor:
    compiler = toolchain.get("compiler") or {}
    path = compiler.get("path")
    if not path:
        raise ToolchainError(f"Toolchain for language {toolchain.get('language')} has no compiler path")

    layout = derive_layout(path)
    logger.debug("Host arch %s, target arch %s for %s", layout.host_arch, layout.target_arch, path)
    if not layout.ok:
        raise ToolchainError(f"{layout.error.value}: {path}", layout_error=layout.error)

    implicit = (compiler.get("implicit") or {}).get("includeDirectories") or []
    return ToolchainDescriptor(
        language=toolchain["language"],
        compiler_path=path,
        compiler_version=compiler.get("version", ""),
        toolset_version=layout.toolset_version,
        host_arch=layout.host_arch,
        target_arch=layout.target_arch,
        implicit_includes=[IncludePath(include, True) for include in implicit],
    )


def resolve_toolchains(toolchains_path: Optional[str]) -> Dict[str, ToolchainDescriptor]:
    """Map each supported language to the first MSVC toolchain reported for it."""
    if not toolchains_path or not Path(toolchains_path).exists():
        raise ToolchainError("Failed to load toolchains response from CMake API")

    reply = parse_reply_file(Path(toolchains_path))
    toolchain_map: Dict[str, ToolchainDescriptor] = {}
    for language in SUPPORTED_LANGUAGES:
        match = next(
            (
                t for t in reply.get("toolchains", [])
                if t.get("language") == language
                and (t.get("compiler") or {}).get("id") == SUPPORTED_COMPILER_ID
            ),
            None,
        )
        if match is not None:
            toolchain_map[language] = toolchain_from_reply(match)

    if not toolchain_map:
        raise ToolchainError("Action requires use of MSVC for either/both C or C++.")
    return toolchain_map
