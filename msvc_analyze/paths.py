"""Path and option-string helpers."""

from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import Iterable, List, Optional, Union

PathLike = Union[str, Path]


def normalize(path: PathLike) -> str:
    return os.path.normcase(os.path.normpath(str(path)))


def is_directory_empty(target_dir: Optional[PathLike]) -> bool:
    """True when the directory is unset, missing, or has no entries."""
    if not target_dir:
        return True
    path = Path(target_dir)
    if not path.is_dir():
        return True
    return not any(path.iterdir())


def contains_subdirectory(parent_dirs: Iterable[PathLike], target_dir: PathLike) -> bool:
    """True if ``target_dir`` equals or lies below any of ``parent_dirs``."""
    target = normalize(target_dir)
    for parent_dir in parent_dirs:
        parent = normalize(parent_dir)
        if target == parent:
            return True
        prefix = parent if parent.endswith(os.sep) else parent + os.sep
        if target.startswith(prefix):
            return True
    return False


def levels_up(path: PathLike, levels: int) -> str:
    """Directory ``levels`` steps above the file ``path``.

    ``levels_up(".../bin/Hostx64/x64/cl.exe", 1)`` is ``.../bin/Hostx64/x64``.
    """
    result = os.path.normpath(str(path))
    for _ in range(levels):
        result = os.path.dirname(result)
    return result


def resolve_path(unresolved: PathLike, root: PathLike) -> str:
    """Make ``unresolved`` absolute by anchoring relative paths at ``root``."""
    unresolved = str(unresolved)
    if os.path.isabs(unresolved):
        return os.path.normpath(unresolved)
    return os.path.normpath(os.path.join(str(root), unresolved))


def split_paths(value: Union[str, Iterable[str], None], root: PathLike, separator: str = ";") -> List[str]:
    """Split a separated path list and resolve every non-empty entry."""
    if not value:
        return []
    entries = value.split(separator) if isinstance(value, str) else list(value)
    return [resolve_path(entry.strip(), root) for entry in entries if entry and entry.strip()]


def split_args(text: Optional[str]) -> List[str]:
    """Tokenize a command line string.

    Whitespace separates arguments, double quotes group them and are removed.
    Backslashes are kept verbatim so Windows paths and ``/D`` values survive.
    """
    if not text:
        return []
    lexer = shlex.shlex(text, posix=True)
    lexer.whitespace_split = True
    lexer.quotes = '"'
    lexer.escape = ""
    lexer.commenters = ""
    return list(lexer)
