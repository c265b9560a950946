"""Streaming LLM client via litellm, with explicit cancellation."""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

import litellm

from .errors import CancellationError, TransportError
from .logger import get_logger

litellm.suppress_debug_info = True

_log = get_logger(__name__)


DEFAULT_SYSTEM_PROMPT = """\
You are patchwright, a coding assistant working inside the user's current directory.
You cannot touch files directly. Instead, emit tool tags in your reply; the user
reviews every tag and chooses which ones run. Results arrive in the next user message.

## Tools
- Read one or more files, optionally a line range (`$` means end of file):
  <read path="src/app.py"/>
  <read path="src/app.py[10,40] 'docs/my notes.md'"/>
- Create or overwrite a whole file:
  <write path="src/new_module.py">
  file content
  </write>
- Edit an existing file with one or more SEARCH/REPLACE blocks:
  <replace path="src/app.py">
  <<<<<<< SEARCH
  exact existing lines
  =======
  new lines
  >>>>>>> REPLACE
  </replace>

## Rules
- Paths are relative to the working directory. Never use `..`, absolute paths or backslashes.
- SEARCH text must match the file exactly, including indentation.
- Blocks in one <replace> must not touch the same lines; at most 50 blocks per call.
- Read a file before editing it. Prefer <replace> over rewriting whole files.
- <replace> only edits files tracked by git.
- Large files may come back as a [COMPACTED OVERVIEW]. Read the collapsed line range to see the rest.
- Respond in the same language the user uses.
"""


@dataclass
class StreamChunk:
    content: str = ""
    reasoning: str = ""


class CancellationToken:
    """Set once by the interrupt handler; checked by the stream loop."""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self):
        if self._cancelled:
            raise CancellationError()


class LLMClient:
    """Passes api_key/api_base directly to litellm, avoiding env-var pollution
    when switching between providers."""

    def __init__(self, api_key: Optional[str] = None, api_base: Optional[str] = None):
        self.api_key = api_key
        self.api_base = api_base

    def submit(self, model: str, messages: List[Dict[str, Any]],
               options: Optional[Dict[str, Any]] = None,
               token: Optional[CancellationToken] = None) -> Iterator[StreamChunk]:
        """Stream one completion. Yields StreamChunk deltas.

        Raises CancellationError once ``token`` fires, TransportError on any
        provider or network failure.
        """
        token = token or CancellationToken()
        kwargs: Dict[str, Any] = dict(options or {})
        kwargs.update({
            "model": model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "stream": True,
        })
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_key:
            kwargs["api_key"] = self.api_key

        token.raise_if_cancelled()
        try:
            response_stream = litellm.completion(**kwargs)
        except CancellationError:
            raise
        except litellm.exceptions.AuthenticationError as e:
            raise TransportError(f"Auth failed. Check API key.\n{e}") from e
        except litellm.exceptions.APIConnectionError as e:
            raise TransportError(f"Cannot connect: model={model}, base={self.api_base or 'default'}\n{e}") from e
        except Exception as e:
            if token.cancelled:
                raise CancellationError() from e
            raise TransportError(f"LLM error: {type(e).__name__}: {e}") from e

        try:
            for chunk in response_stream:
                token.raise_if_cancelled()
                if not getattr(chunk, "choices", None):
                    continue
                delta = chunk.choices[0].delta
                content = getattr(delta, "content", None) or ""
                # DeepSeek-style reasoning models stream a separate channel.
                reasoning = getattr(delta, "reasoning_content", None) or ""
                if content or reasoning:
                    yield StreamChunk(content=content, reasoning=reasoning)
        except CancellationError:
            raise
        except Exception as e:
            if token.cancelled:
                raise CancellationError() from e
            raise TransportError(f"Stream interrupted: {type(e).__name__}: {e}") from e
        token.raise_if_cancelled()


class ClientFactory:
    """Caches one LLMClient per (api_key, api_base)."""

    def __init__(self):
        self._clients: Dict[Tuple[Optional[str], Optional[str]], LLMClient] = {}

    def get(self, api_key: Optional[str], api_base: Optional[str] = None) -> LLMClient:
        key = (api_key, api_base)
        client = self._clients.get(key)
        if client is None:
            _log.debug("Creating client for %s", api_base or "default base")
            client = LLMClient(api_key=api_key, api_base=api_base)
            self._clients[key] = client
        return client
