"""Structural overviews of large files for whole-file reads.

Long bodies are replaced by a single comment naming their absolute line
range, so the model can ask for exactly that range afterwards. Ranged reads
are never compacted.
"""

import re
from pathlib import Path
from typing import List, Tuple

_LEADING_SPACE = re.compile(r"^\s*")


def _indent(line: str) -> str:
    return _LEADING_SPACE.match(line).group(0)


def _collapsed(first: int, last: int) -> str:
    return f"... [lines {first}-{last} collapsed]"


class BraceCompactor:
    """C-family sources and JSON/CSS: collapse ``{ ... }`` blocks."""

    extensions = (".ts", ".tsx", ".js", ".jsx", ".php", ".json", ".css", ".scss")

    def compact(self, lines: List[str], start_line: int) -> List[str]:
        # Pass 1: pair each line ending in "{" with the line that closes it.
        closing = [-1] * len(lines)
        stack: List[Tuple[int, int]] = []
        depth = 0
        for i, line in enumerate(lines):
            if line.strip().endswith("{"):
                stack.append((i, depth))
            depth += line.count("{") - line.count("}")
            while stack and depth <= stack[-1][1]:
                opened, _ = stack.pop()
                if i > opened:
                    closing[opened] = i

        # Pass 2: collapse outermost blocks with more than one inner line.
        result = []
        i = 0
        while i < len(lines):
            end = closing[i]
            if end != -1 and end - i - 1 > 1:
                result.append(lines[i])
                result.append(f"{_indent(lines[i])}  // {_collapsed(start_line + i + 1, start_line + end - 1)}")
                result.append(lines[end])
                i = end + 1
                continue
            result.append(lines[i])
            i += 1
        return result


class IndentationCompactor:
    """Python and YAML: collapse whatever is indented under a ``...:`` line."""

    extensions = (".py", ".yml", ".yaml")

    def compact(self, lines: List[str], start_line: int) -> List[str]:
        result = []
        i = 0
        while i < len(lines):
            line = lines[i]
            stripped = line.strip()
            result.append(line)
            if stripped.endswith(":") and not stripped.startswith("#"):
                base = len(_indent(line))
                j = i + 1
                while j < len(lines):
                    if lines[j].strip() and len(_indent(lines[j])) <= base:
                        break
                    j += 1
                if j - i - 1 > 1:
                    result.append(f"{' ' * (base + 2)}# {_collapsed(start_line + i + 1, start_line + j - 1)}")
                    i = j
                    continue
            i += 1
        return result


class TagCompactor:
    """Markup: collapse from an opening tag or ``@directive`` to its closer."""

    extensions = (".html", ".htm", ".xml")

    def compact(self, lines: List[str], start_line: int) -> List[str]:
        result = []
        i = 0
        while i < len(lines):
            line = lines[i]
            stripped = line.strip()
            is_directive = stripped.startswith("@")
            is_tag = (stripped.startswith("<") and not stripped.startswith("</")
                      and not stripped.endswith("/>"))
            result.append(line)
            if is_directive or is_tag:
                j = i + 1
                while j < len(lines):
                    following = lines[j].strip()
                    if is_directive and following.startswith(("@end", "@else")):
                        break
                    if is_tag and following.startswith("</"):
                        break
                    j += 1
                if j - i - 1 > 1:
                    result.append(f"{_indent(line)}  <!-- {_collapsed(start_line + i + 1, start_line + j - 1)} -->")
                    i = j
                    continue
            i += 1
        return result


COMPACTORS = (BraceCompactor(), IndentationCompactor(), TagCompactor())


def compactor_for(path: str):
    suffix = Path(path).suffix.lower()
    for compactor in COMPACTORS:
        if suffix in compactor.extensions:
            return compactor
    return None


def compact_file(path: str, content: str, start_line: int = 1) -> Tuple[str, bool]:
    """Return ``(text, compacted)``. Unknown file types come back unchanged."""
    compactor = compactor_for(path)
    if compactor is None:
        return content, False
    compacted = "\n".join(compactor.compact(content.split("\n"), start_line))
    return compacted, len(compacted) < len(content)
