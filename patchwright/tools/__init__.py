from .executor import ToolExecutor
from .file_ops import FileOps
from .git_ops import GitOps
from .parser import TOOL_KINDS, ToolCall, parse_tool_calls
__all__ = ["ToolExecutor", "FileOps", "GitOps", "ToolCall", "TOOL_KINDS", "parse_tool_calls"]
