"""Git queries behind the ignore and tracked-file checks."""

import subprocess
from pathlib import Path
from typing import Optional, Union

from ..logger import get_logger

_log = get_logger(__name__)


def find_git_root(path: Union[str, Path]) -> Optional[Path]:
    current = Path(path).resolve()
    while current != current.parent:
        if (current / ".git").exists():
            return current
        current = current.parent
    return None


class GitOps:
    """Read-only view of the repository around the project root.

    Outside a repository nothing is ignored and nothing is tracked.
    """

    def __init__(self, project_root: Union[str, Path]):
        self.root = Path(project_root).resolve()
        self.git_root = find_git_root(self.root)

    @property
    def available(self) -> bool:
        return self.git_root is not None

    def _run(self, *args) -> Optional[subprocess.CompletedProcess]:
        try:
            return subprocess.run(
                ["git"] + list(args), capture_output=True, text=True,
                cwd=str(self.root), timeout=15,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            _log.warning("git %s failed: %s", args[0], e)
            return None

    def is_ignored(self, rel_path: str) -> bool:
        """True when git ignores ``rel_path``; the file need not exist yet."""
        if not self.available:
            return False
        # check-ignore exits 0 for ignored paths, 1 otherwise.
        result = self._run("check-ignore", "-q", "--", rel_path)
        return result is not None and result.returncode == 0

    def is_tracked(self, rel_path: str) -> bool:
        if not self.available:
            return False
        result = self._run("ls-files", "--error-unmatch", "--", rel_path)
        return result is not None and result.returncode == 0
