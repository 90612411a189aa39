"""Constants and default locations for msvc-analyze."""

from __future__ import annotations

import os
from pathlib import Path

# CMake file API
CMAKE_API_CLIENT_NAME = "client-msvc-ca-action"
CMAKE_API_DIR = Path(".cmake") / "api" / "v1"
QUERY_FILE_NAME = "query.json"
QUERY_REQUESTS = [
    {"kind": "codemodel", "version": 2},
    {"kind": "toolchains", "version": 1},
]
MIN_CMAKE_VERSION = "3.20.5"

# Toolchains
SUPPORTED_COMPILER_ID = "MSVC"
SUPPORTED_LANGUAGES = ("C", "CXX")
HOST_ARCH_DIRS = {"Hostx86": "x86", "Hostx64": "x64"}
ESPX_ENGINE_NAME = "EspXEngine.dll"

# Levels above cl.exe in a Visual Studio installation,
# e.g. <VS>/VC/Tools/MSVC/<toolset>/bin/Host<arch>/<arch>/cl.exe
TOOLSET_LEVELS_UP = 4
COMMAND_PROMPT_LEVELS_UP = 7
RULESET_LEVELS_UP = 8
COMMAND_PROMPT_SUBPATH = Path("Auxiliary") / "Build" / "vcvarsall.bat"
RULESET_SUBPATH = Path("Team Tools") / "Static Analysis Tools" / "Rule Sets"

VC_ENV_SCRIPT = Path(__file__).resolve().parent / "vc_env.bat"

# SARIF
SARIF_VERSION = "2.1.0"
SARIF_SCHEMA = "https://schemastore.azurewebsites.net/schemas/json/sarif-2.1.0-rtm.5.json"
DEFAULT_RESULTS_NAME = "results.sarif"

# Options
CONFIG_FILE_NAME = "msvc-analyze.toml"
WORKSPACE_ENV_VAR = "GITHUB_WORKSPACE"


def default_project_root() -> Path:
    """Root that relative option paths are resolved against."""
    workspace = os.environ.get(WORKSPACE_ENV_VAR)
    return Path(workspace) if workspace else Path.cwd()
