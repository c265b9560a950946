"""SEARCH/REPLACE block engine.

Blocks are located against the original file, checked for overlap, then
spliced in one pass so the result never depends on application order.
"""

import re
from dataclasses import dataclass, field
from typing import List, Tuple

from ..errors import (
    ConflictMarkerError,
    NotFoundError,
    OverlapError,
    PatchSyntaxError,
    TooManyBlocksError,
)

SEARCH_MARKER = "<<<<<<< SEARCH"
SEPARATOR = "======="
REPLACE_MARKER = ">>>>>>> REPLACE"
MAX_BLOCKS = 50

_CONFLICT_LINE = re.compile(r"^(<{7} |>{7} )", re.MULTILINE)


@dataclass
class PatchBlock:
    index: int  # 1-based, as shown to the model
    search: str
    replace: str
    start: int = -1  # char offsets in the original content
    end: int = -1
    start_line: int = 0  # 1-based inclusive
    end_line: int = 0


@dataclass
class PatchResult:
    content: str
    blocks: List[PatchBlock] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.blocks)

    @property
    def line_ranges(self) -> List[Tuple[int, int]]:
        return sorted((b.start_line, b.end_line) for b in self.blocks)

    def summary(self, path: str) -> str:
        ranges = ", ".join(f"{s}-{e}" for s, e in self.line_ranges)
        return f"Replaced {self.applied_count} block(s) in {path}. Line ranges: {ranges}"


def parse_blocks(text: str) -> List[PatchBlock]:
    """Parse every SEARCH/REPLACE block in ``text``; lines outside blocks are ignored."""
    lines = text.replace("\r\n", "\n").split("\n")
    blocks: List[PatchBlock] = []
    i = 0
    while i < len(lines):
        if lines[i].strip() != SEARCH_MARKER:
            i += 1
            continue
        index = len(blocks) + 1
        i += 1
        search_lines = []
        while i < len(lines) and lines[i].strip() != SEPARATOR:
            if lines[i].strip() in (SEARCH_MARKER, REPLACE_MARKER):
                raise PatchSyntaxError(f"Block {index}: missing separator '{SEPARATOR}' before '{lines[i].strip()}'")
            search_lines.append(lines[i])
            i += 1
        if i >= len(lines):
            raise PatchSyntaxError(f"Block {index}: missing separator '{SEPARATOR}'")
        i += 1

        replace_lines = []
        while i < len(lines) and lines[i].strip() != REPLACE_MARKER:
            if lines[i].strip() == SEARCH_MARKER:
                raise PatchSyntaxError(f"Block {index}: missing '{REPLACE_MARKER}' marker")
            replace_lines.append(lines[i])
            i += 1
        if i >= len(lines):
            raise PatchSyntaxError(f"Block {index}: missing '{REPLACE_MARKER}' marker")
        i += 1

        search = "\n".join(search_lines)
        if not search.strip():
            raise PatchSyntaxError(f"Block {index}: SEARCH section is empty")
        blocks.append(PatchBlock(index=index, search=search, replace="\n".join(replace_lines)))

    if not blocks:
        raise PatchSyntaxError(
            "No SEARCH/REPLACE blocks found. Use format:\n"
            f"{SEARCH_MARKER}\n[content]\n{SEPARATOR}\n[replacement]\n{REPLACE_MARKER}"
        )
    return blocks


def detect_line_ending(content: str) -> str:
    return "\r\n" if "\r\n" in content else "\n"


def contains_conflict_markers(content: str) -> bool:
    return bool(_CONFLICT_LINE.search(content))


def locate_blocks(content: str, blocks: List[PatchBlock]) -> None:
    """Resolve each block's first exact occurrence; mutates the blocks."""
    eol = detect_line_ending(content)
    for block in blocks:
        search = block.search.replace("\n", eol) if eol != "\n" else block.search
        pos = content.find(search)
        if pos < 0:
            raise NotFoundError(block.index, block.search)
        block.start = pos
        block.end = pos + len(search)
        block.start_line = content.count("\n", 0, pos) + 1
        span = content[pos:block.end]
        # A trailing newline ends the last line; it does not start a new one.
        block.end_line = block.start_line + span.rstrip("\r\n").count("\n")


def check_overlaps(blocks: List[PatchBlock]) -> None:
    ordered = sorted(blocks, key=lambda b: (b.start_line, b.end_line))
    for prev, cur in zip(ordered, ordered[1:]):
        if cur.start_line <= prev.end_line:
            first, second = sorted((prev.index, cur.index))
            raise OverlapError(first, second)


def apply_patch(content: str, patch_text: str, path: str = "file") -> PatchResult:
    """Validate every block against ``content`` and return the patched text.

    Nothing is written here; the caller persists ``PatchResult.content``.
    """
    if contains_conflict_markers(content):
        raise ConflictMarkerError(path)

    blocks = parse_blocks(patch_text)
    if len(blocks) > MAX_BLOCKS:
        raise TooManyBlocksError(len(blocks), MAX_BLOCKS)

    locate_blocks(content, blocks)
    check_overlaps(blocks)

    eol = detect_line_ending(content)
    pieces = []
    cursor = 0
    for block in sorted(blocks, key=lambda b: b.start):
        replacement = block.replace.replace("\n", eol) if eol != "\n" else block.replace
        pieces.append(content[cursor:block.start])
        pieces.append(replacement)
        cursor = block.end
    pieces.append(content[cursor:])

    return PatchResult(content="".join(pieces), blocks=blocks)
