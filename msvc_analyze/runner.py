"""Synchronous calls into external programs (cmake, cl.exe, vc_env.bat)."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from typing import Dict, List, Optional

from .errors import ConfigurationError, MetadataError
from .models import AnalysisInvocation, ExecResult

logger = logging.getLogger(__name__)

# Exit code reported when the executable could not be started at all.
SPAWN_FAILED = 127


def run_process(
    args: List[str],
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> ExecResult:
    """Run ``args`` to completion and capture its output."""
    logger.debug("Running: %s", " ".join(args))
    try:
        result = subprocess.run(
            args,
            cwd=cwd,
            env=env,
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        return ExecResult(exit_code=SPAWN_FAILED, stderr=str(exc))
    return ExecResult(exit_code=result.returncode, stdout=result.stdout or "", stderr=result.stderr or "")


def find_executable(name: str) -> str:
    path = shutil.which(name)
    if not path:
        raise ConfigurationError(f"Unable to locate executable: {name}")
    return path


def reconfigure(build_root: str) -> None:
    """Re-run CMake on an existing build tree so it writes file API replies."""
    cmake = find_executable("cmake")
    logger.info("Running CMake to generate reply data.")
    result = run_process([cmake, build_root])
    if not result.ok:
        logger.debug(result.stdout)
        raise MetadataError(
            f"CMake failed to reconfigure project with exit code {result.exit_code}: {result.stderr.strip()}"
        )


def run_analysis(invocation: AnalysisInvocation, cwd: str) -> ExecResult:
    """Run one analyze invocation with its environment layered over ours."""
    env = dict(os.environ)
    env.update(invocation.env)
    result = run_process([invocation.compiler] + invocation.args, cwd=cwd, env=env)
    if result.stdout.strip():
        logger.info(result.stdout.rstrip())
    if not result.ok:
        logger.debug("Compilation failed with exit code %s: %s", result.exit_code, result.stderr)
        logger.debug("Environment: %s", invocation.env)
    return result
