"""patchwright: streaming coding assistant that edits files through tagged tool calls."""

__version__ = "0.4.0"
