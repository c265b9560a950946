"""File operations behind the read, write and replace tools."""

from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import pathspec

from ..errors import FileOperationError, PatchSyntaxError, PathSecurityError
from ..logger import get_logger
from ..tokenizer import count_tokens
from .compactor import compact_file
from .git_ops import GitOps
from .patch import PatchResult, apply_patch
from .security import IGNORE_FILENAME, parse_path_range, split_path_expressions, validate_path

_log = get_logger(__name__)

Range = Optional[Tuple[int, Optional[int]]]

# Whole-file reads longer than this many characters get a structural overview.
COMPACT_CHAR_THRESHOLD = 2000

COMPACTION_NOTICE = (
    "#### COMPACTION NOTICE\n"
    "Parts of the following file(s) are collapsed. Line numbers in the collapse "
    "comments are absolute. Request a line range (e.g. file.py[20,60]) to see "
    "collapsed content; ranged reads are never compacted."
)


class FileOps:
    def __init__(self, project_root: str, restricted_files: Optional[Iterable[str]] = None,
                 max_file_size_mb: int = 10, read_token_limit: int = 2000,
                 model: Optional[str] = None,
                 ignore_spec: Optional[pathspec.PathSpec] = None,
                 git: Optional[GitOps] = None,
                 require_tracked_edits: bool = True,
                 compact_threshold: int = COMPACT_CHAR_THRESHOLD):
        self.project_root = Path(project_root).resolve()
        self.restricted_files = set(restricted_files or ())
        self.max_file_bytes = max_file_size_mb * 1024 * 1024
        self.read_token_limit = read_token_limit
        self.model = model
        self.ignore_spec = ignore_spec
        self.git = git
        self.require_tracked_edits = require_tracked_edits
        self.compact_threshold = compact_threshold

    def _relative(self, fp: Path) -> str:
        return fp.relative_to(self.project_root).as_posix()

    def _resolve(self, path: str) -> Path:
        fp = validate_path(path, self.project_root, self.restricted_files)
        rel = self._relative(fp)
        if self.ignore_spec is not None and self.ignore_spec.match_file(rel):
            raise PathSecurityError(path, f"is ignored by {IGNORE_FILENAME}")
        if self.git is not None and self.git.is_ignored(rel):
            raise PathSecurityError(path, "is ignored by git")
        return fp

    def _read_text(self, fp: Path, path: str) -> str:
        if not fp.exists():
            raise FileOperationError(f"File not found: {path}")
        if not fp.is_file():
            raise FileOperationError(f"Not a file: {path}")
        size = fp.stat().st_size
        if size > self.max_file_bytes:
            raise FileOperationError(
                f"{path} exceeds the size limit ({self.max_file_bytes // (1024 * 1024)}MB)"
            )
        try:
            # newline="" keeps CRLF so patches can preserve line endings.
            with open(fp, encoding="utf-8", newline="") as f:
                return f.read()
        except UnicodeDecodeError:
            raise FileOperationError(f"Cannot read binary file: {path}")
        except OSError as e:
            raise FileOperationError(f"Cannot read {path}: {e}")

    # ── read ──

    def parse_read_spec(self, spec: str) -> List[Tuple[str, Range]]:
        """Tokenize a read spec into ``(path, range)`` pairs, validating each path."""
        try:
            expressions = split_path_expressions(spec)
        except ValueError as e:
            raise FileOperationError(f"Cannot parse read paths {spec!r}: {e}")
        if not expressions:
            raise FileOperationError("At least one file path is required.")
        requests = [parse_path_range(expr) for expr in expressions]
        for path, _ in requests:
            self._resolve(path)
        return requests

    def read(self, spec: str) -> str:
        sections = []
        any_compacted = False
        for path, line_range in self.parse_read_spec(spec):
            section, compacted = self._read_one(path, line_range)
            sections.append(section)
            any_compacted = any_compacted or compacted
        if any_compacted:
            sections.insert(0, COMPACTION_NOTICE)
        return "\n\n".join(sections)

    def _read_one(self, path: str, line_range: Range) -> Tuple[str, bool]:
        fp = self._resolve(path)
        content = self._read_text(fp, path)
        lines = content.splitlines()
        total = len(lines)

        if line_range is None:
            start, end = (1, total) if total else (0, 0)
        else:
            start = max(1, line_range[0])
            end = total if line_range[1] is None else min(line_range[1], total)
            if start > total:
                raise FileOperationError(f"Invalid range: start line {start} is beyond end of {path} ({total} lines)")
            if end < start:
                raise FileOperationError(f"Invalid range: end line {end} is before start line {start}")

        body = "\n".join(lines[start - 1:end])
        compacted = False
        if line_range is not None:
            tokens = count_tokens(body, self.model)
            if tokens > self.read_token_limit:
                _log.warning("Ranged read of %s refused: %d tokens > %d", path, tokens, self.read_token_limit)
                return (
                    f"#### {path} ERROR\n"
                    f"Requested range exceeds token limit ({tokens} > {self.read_token_limit}). "
                    "Please request a smaller range."
                ), False
        elif len(body) > self.compact_threshold:
            body, compacted = compact_file(path, body)
            if not compacted and count_tokens(body, self.model) > self.read_token_limit:
                _log.warning("%s exceeds the token limit and has no overview format", path)

        ext = fp.suffix.lstrip(".") or "txt"
        label = " [COMPACTED OVERVIEW]" if compacted else ""
        return f"#### {path} (lines {start}-{end}){label}\n```{ext}\n{body}\n```", compacted

    # ── write ──

    def write(self, path: str, content: str) -> str:
        fp = self._resolve(path)
        if fp.is_dir():
            raise FileOperationError(f"Is a directory: {path}")
        # Tag formatting puts the body on the line after <write ...>.
        if content.startswith("\r\n"):
            content = content[2:]
        elif content.startswith("\n"):
            content = content[1:]
        existed = fp.exists()
        try:
            fp.parent.mkdir(parents=True, exist_ok=True)
            with open(fp, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            raise FileOperationError(f"Cannot write {path}: {e}")
        verb = "Overwrote" if existed else "Created"
        return f"{verb} {path} ({len(content.splitlines())} lines)"

    # ── replace ──

    def replace(self, path: str, patch_text: str) -> PatchResult:
        if not patch_text or not patch_text.strip():
            raise PatchSyntaxError("replace requires SEARCH/REPLACE blocks as content")
        fp = self._resolve(path)
        content = self._read_text(fp, path)
        if self.git is not None and self.require_tracked_edits and not self.git.is_tracked(self._relative(fp)):
            raise FileOperationError(
                f"Edit denied: {path} is not tracked by git. Only tracked files can be edited."
            )
        result = apply_patch(content, patch_text, path)
        try:
            with open(fp, "w", encoding="utf-8", newline="") as f:
                f.write(result.content)
        except OSError as e:
            raise FileOperationError(f"Cannot write {path}: {e}")
        return result
