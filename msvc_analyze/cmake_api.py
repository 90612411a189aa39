"""Reader for the CMake file API (``.cmake/api/v1``).

The flow is:

- write a client query asking for ``codemodel`` v2 and ``toolchains`` v1
- re-run CMake on the build tree so it answers the query
- pick the newest ``index-*.json`` reply and locate the requested responses
- refuse CMake versions that predate the data we depend on
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from . import runner
from .config import (
    CMAKE_API_CLIENT_NAME,
    CMAKE_API_DIR,
    MIN_CMAKE_VERSION,
    QUERY_FILE_NAME,
    QUERY_REQUESTS,
)
from .errors import ConfigurationError, MetadataError
from .models import ReplyIndex
from .paths import is_directory_empty

logger = logging.getLogger(__name__)


def create_api_query(api_dir: Path) -> Path:
    """Write the client query file unless an identical one already exists."""
    query_dir = Path(api_dir) / "query" / CMAKE_API_CLIENT_NAME
    query_file = query_dir / QUERY_FILE_NAME
    payload = {"requests": QUERY_REQUESTS}

    if query_file.exists():
        try:
            if json.loads(query_file.read_text(encoding="utf-8")) == payload:
                return query_file
        except (OSError, json.JSONDecodeError):
            logger.debug("Rewriting unreadable query file %s", query_file)

    try:
        query_dir.mkdir(parents=True, exist_ok=True)
        query_file.write_text(json.dumps(payload), encoding="utf-8")
    except OSError as exc:
        raise MetadataError(f"Failed to write {QUERY_FILE_NAME} file for CMake API: {exc}") from exc
    return query_file


def parse_reply_file(reply_file: Path) -> Dict[str, Any]:
    """Read and parse one JSON reply document."""
    reply_file = Path(reply_file)
    if not reply_file.exists():
        raise MetadataError(f"Failed to find CMake API reply file: {reply_file}")
    try:
        return json.loads(reply_file.read_text(encoding="utf-8"))
    except OSError as exc:
        raise MetadataError(f"Failed to read CMake API reply file: {reply_file}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise MetadataError(f"Malformed CMake API reply file: {reply_file}: {exc}") from exc


def find_latest_index(reply_dir: Path) -> Optional[Path]:
    """Newest ``index-*.json`` file, where newest means lexicographically greatest name."""
    reply_dir = Path(reply_dir)
    if not reply_dir.is_dir():
        return None
    candidates = [p.name for p in reply_dir.iterdir() if p.name.startswith("index-")]
    if not candidates:
        return None
    return reply_dir / max(candidates)


def _response_path(reply_dir: Path, responses: List[Dict[str, Any]], kind: str) -> Optional[str]:
    for response in responses:
        if response.get("kind") == kind and response.get("jsonFile"):
            return str(Path(reply_dir) / response["jsonFile"])
    return None


def read_reply_index(reply_dir: Path, index_reply: Dict[str, Any], index_path: str = "") -> ReplyIndex:
    """Extract this client's response locations from a parsed index reply."""
    try:
        responses = index_reply["reply"][CMAKE_API_CLIENT_NAME][QUERY_FILE_NAME]["responses"]
        version = index_reply["cmake"]["version"]["string"]
    except (KeyError, TypeError) as exc:
        raise MetadataError(
            f"CMake API index reply has no responses for client '{CMAKE_API_CLIENT_NAME}': missing {exc}"
        ) from exc

    return ReplyIndex(
        codemodel_path=_response_path(reply_dir, responses, "codemodel"),
        toolchains_path=_response_path(reply_dir, responses, "toolchains"),
        version_string=str(version),
        index_path=index_path,
    )


def load_reply_index(api_dir: Path) -> ReplyIndex:
    reply_dir = Path(api_dir) / "reply"
    index_file = find_latest_index(reply_dir)
    if index_file is None:
        raise MetadataError("Failed to find CMake API index reply file.")

    reply_index = read_reply_index(reply_dir, parse_reply_file(index_file), str(index_file))
    logger.info("Loaded '%s' reply generated from CMake API.", index_file)
    return reply_index


def _version_tuple(version: str) -> Tuple[int, ...]:
    parts = []
    for piece in version.split("."):
        digits = ""
        for char in piece:
            if not char.isdigit():
                break
            digits += char
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


def check_cmake_version(version: str, minimum: str = MIN_CMAKE_VERSION) -> None:
    """Raise if ``version`` is older than ``minimum``.

    Components compare numerically and suffixes such as ``-rc1`` are ignored.
    """
    if _version_tuple(version) < _version_tuple(minimum):
        raise MetadataError(f"CMake version {version} is not supported, requires CMake version >= {minimum}")


def load_cmake_api_replies(build_root: str) -> ReplyIndex:
    """Query, regenerate, and load the CMake file API replies for ``build_root``."""
    if is_directory_empty(build_root):
        raise ConfigurationError("CMake build root must exist, be non-empty and be configured with CMake")

    api_dir = Path(build_root) / CMAKE_API_DIR
    create_api_query(api_dir)
    runner.reconfigure(os.fspath(build_root))

    reply_index = load_reply_index(api_dir)
    check_cmake_version(reply_index.version_string)
    return reply_index
