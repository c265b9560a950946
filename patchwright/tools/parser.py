"""Extract <read>/<write>/<replace> tool tags from assistant text."""

import re
from dataclasses import dataclass
from typing import List, Optional

from ..logger import get_logger
from .security import is_suspicious_path, parse_path_range, split_path_expressions

_log = get_logger(__name__)

TOOL_KINDS = ("read", "write", "replace")

# One pass over the text keeps calls in document order. The attribute value
# may hold the other quote character (multi-file reads quote spaced names).
_TAG_PATTERN = re.compile(
    r"<read\s+path=(?P<rq>[\"'])(?P<rpath>(?:(?!(?P=rq)).)+)(?P=rq)\s*/>"
    r"|<(?P<tag>write|replace)\s+path=(?P<q>[\"'])(?P<path>(?:(?!(?P=q)).)+)(?P=q)\s*>"
    r"(?P<body>.*?)</(?P=tag)\s*>",
    re.DOTALL,
)


@dataclass
class ToolCall:
    kind: str
    path: str
    raw: str
    content: Optional[str] = None

    def label(self) -> str:
        return f"{self.kind}: {self.path}"


def _path_is_safe(kind: str, path: str) -> bool:
    if kind != "read":
        return not is_suspicious_path(path)
    try:
        expressions = split_path_expressions(path)
    except ValueError:
        return False
    if not expressions:
        return False
    return all(not is_suspicious_path(parse_path_range(expr)[0]) for expr in expressions)


def parse_tool_calls(text: str) -> List[ToolCall]:
    """Return every well-formed tool tag in ``text`` whose path passes the filter.

    Unsafe paths are logged and skipped; scanning continues past them.
    """
    calls: List[ToolCall] = []
    if not text:
        return calls

    for m in _TAG_PATTERN.finditer(text):
        if m.group("rpath") is not None:
            kind, path, content = "read", m.group("rpath"), None
        else:
            kind, path, content = m.group("tag"), m.group("path"), m.group("body")

        if not _path_is_safe(kind, path):
            _log.warning("Dropped %s tool call with unsafe path: %r", kind, path)
            continue
        calls.append(ToolCall(kind=kind, path=path, raw=m.group(0), content=content))

    return calls
