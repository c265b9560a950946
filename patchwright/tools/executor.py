"""Dispatch parsed tool calls to file operations."""

from ..errors import PatchSyntaxError, UnknownToolError
from ..logger import get_logger
from .file_ops import FileOps
from .parser import ToolCall

_log = get_logger(__name__)


class ToolExecutor:
    """Runs one ToolCall and returns the report text for the model.

    Every path is re-validated by FileOps, whatever the parser already checked.
    ToolError subclasses propagate; the agent turns them into result entries.
    """

    def __init__(self, files: FileOps):
        self.files = files

    def dispatch(self, call: ToolCall) -> str:
        _log.info("Executing %s", call.label())
        if call.kind == "read":
            return self.files.read(call.path)
        if call.kind == "write":
            return self.files.write(call.path, call.content or "")
        if call.kind == "replace":
            if not call.content or not call.content.strip():
                raise PatchSyntaxError("replace requires SEARCH/REPLACE blocks as content")
            result = self.files.replace(call.path, call.content)
            return f"{result.summary(call.path)} ({result.applied_count} applied)"
        raise UnknownToolError(call.kind)
