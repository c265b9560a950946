"""Working-directory sandbox for every path a tool touches."""

import os
import re
import shlex
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

import pathspec

from ..errors import PathSecurityError
from ..logger import get_logger

_log = get_logger(__name__)

IGNORE_FILENAME = ".patchwrightignore"

_RANGE_SUFFIX = re.compile(r"^(.*)\[(\d+|\$)?(?:,(\d+|\$))?\]$")
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


def is_within_root(path: Union[str, Path], root: Union[str, Path]) -> bool:
    """True if ``path`` resolves to ``root`` or somewhere beneath it.

    Symlinks are followed on both sides. A backslash is just another
    filename character on POSIX, so ``a\\b`` stays inside the root here.
    """
    root_real = os.path.realpath(str(root))
    candidate = os.path.realpath(os.path.join(root_real, str(path)))
    return candidate == root_real or candidate.startswith(root_real + os.sep)


def validate_path(path: str, root: Union[str, Path],
                  restricted: Optional[Iterable[str]] = None) -> Path:
    """Return the canonical path or raise ``PathSecurityError``."""
    if not path or not path.strip():
        raise PathSecurityError(path, "is empty")
    if not is_within_root(path, root):
        raise PathSecurityError(path, f"is outside the project directory ({root})")
    resolved = Path(os.path.realpath(os.path.join(os.path.realpath(str(root)), path)))
    if restricted and resolved.name in set(restricted):
        raise PathSecurityError(path, "is a restricted file")
    return resolved


def load_ignore_spec(project_root: Union[str, Path],
                     fallback_dir: Optional[Union[str, Path]] = None) -> Optional[pathspec.PathSpec]:
    """Gitignore-style patterns from the project's ignore file.

    The project file wins; ``fallback_dir`` holds the user-wide one.
    """
    candidates = [Path(project_root) / IGNORE_FILENAME]
    if fallback_dir is not None:
        candidates.append(Path(fallback_dir) / IGNORE_FILENAME)
    for candidate in candidates:
        if not candidate.is_file():
            continue
        try:
            lines = candidate.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            _log.warning("Ignoring unreadable %s: %s", candidate, e)
            return None
        _log.info("Loaded ignore patterns from %s", candidate)
        return pathspec.GitIgnoreSpec.from_lines(lines)
    return None


def is_suspicious_path(path: str) -> bool:
    """Parse-time filter: parent segments, absolute roots and backslashes."""
    if not path:
        return True
    if "\\" in path:
        return True
    if path.startswith(("/", "~")) or _DRIVE_PREFIX.match(path):
        return True
    return any(part == ".." for part in path.split("/"))


def split_path_expressions(spec: str) -> List[str]:
    """Split a read spec like ``a.py "b c.py[1,10]"`` into path expressions.

    Raises ``ValueError`` on unbalanced quotes.
    """
    return shlex.split(spec)


def parse_path_range(expr: str) -> Tuple[str, Optional[Tuple[int, Optional[int]]]]:
    """``file.py[10,20]`` -> ``("file.py", (10, 20))``; ``$`` maps to ``None``."""
    m = _RANGE_SUFFIX.match(expr)
    if not m:
        return expr, None
    path, start_raw, end_raw = m.groups()
    start = 1 if not start_raw or start_raw == "$" else int(start_raw)
    end = None if not end_raw or end_raw == "$" else int(end_raw)
    return path, (start, end)
