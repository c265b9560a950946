"""Structured error types for the agent system."""


class AgentError(Exception):
    """Base error for all agent operations."""
    pass


class ConfigurationError(AgentError):
    """Raised when the credential or provider setup is unusable."""
    pass


class CancellationError(AgentError):
    """Raised when the user cancels an in-flight stream."""

    def __init__(self, message: str = "Interrupted by user"):
        super().__init__(message)


class TransportError(AgentError):
    """Provider or network failure while talking to the model."""
    pass


class PersistenceError(AgentError):
    """Raised when a session file cannot be written or read back."""
    pass


class ToolError(AgentError):
    """Per-call failure; reported back to the model, never fatal."""
    pass


class PathSecurityError(ToolError):
    """Raised when a path escapes the working directory or is restricted."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Access denied: '{path}' {reason}")


class FileOperationError(ToolError):
    pass


class UnknownToolError(ToolError):
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown tool: {kind}")


class PatchError(ToolError):
    """Base error for search/replace failures."""
    pass


class PatchSyntaxError(PatchError):
    pass


class NotFoundError(PatchError):
    def __init__(self, index: int, search: str):
        self.index = index
        self.search = search
        preview = search if len(search) <= 200 else search[:200] + "..."
        super().__init__(f"Search block {index} not found in file:\n{preview}")


class OverlapError(PatchError):
    def __init__(self, first: int, second: int):
        self.blocks = (first, second)
        super().__init__(
            f"Overlapping replacement blocks: block {first} and block {second} "
            "touch the same lines. Merge them into one block."
        )


class TooManyBlocksError(PatchError):
    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(f"Too many replacement blocks: {count} (max {limit})")


class ConflictMarkerError(PatchError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"{path} contains unresolved merge conflict markers. Resolve them before editing."
        )
