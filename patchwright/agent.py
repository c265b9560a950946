"""REPL session state machine: user turn, streamed reply, tool proposal, auto-trigger."""

import signal
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.status import Status
from rich.text import Text

from .config import Config, ProviderPreset
from .errors import CancellationError, ConfigurationError, ToolError, TransportError
from .llm import CancellationToken, ClientFactory, LLMClient
from .logger import get_logger
from .session import SessionStore, generate_session_id
from .tools import FileOps, GitOps, ToolCall, ToolExecutor, parse_tool_calls
from .ui import EXIT, ReplUI

_log = get_logger(__name__)
console = Console()

__all__ = ["Agent", "TurnState"]

INTERRUPT_MARKER = "\n\n[Response interrupted by user]"
REASONING_NO_TOKENS = "[INTERRUPTED BEFORE TOKENS ARRIVED]"
REASONING_DURING_STREAM = "[INTERRUPTED DURING STREAMING]"
TOOL_NOT_RUN = "Not run: interrupted by user"

AGENT_BORDER = "cyan"
TOOL_BORDER = "#30363D"


class TurnState(Enum):
    IDLE = "idle"
    USER_TURN_COMMITTED = "user_turn_committed"
    ASSISTANT_STREAMING = "assistant_streaming"
    SUCCEEDED = "succeeded"
    INTERRUPTED = "interrupted"
    FAILED = "failed"
    TOOL_PROPOSAL = "tool_proposal"
    TOOL_SELECTION = "tool_selection"
    TOOL_EXECUTION = "tool_execution"
    AUTO_TRIGGER = "auto_trigger"


def strip_interrupt_marker(content: str) -> str:
    if content.endswith(INTERRUPT_MARKER):
        return content[: -len(INTERRUPT_MARKER)]
    return content


def format_tool_result(call: ToolCall, status: str, body: Optional[str] = None) -> str:
    header = f"### Tool: {call.kind} on {call.path}"
    if status == "success":
        return f"{header}\nStatus: Success\nOutput:\n{body}"
    if status == "error":
        return f"{header}\nStatus: Error\n{body}"
    return f"{header}\nStatus: Denied by user"


class Agent:
    """One REPL session. Owns the message log, the pending tool-result buffer
    and the interrupt handling for the lifetime of ``start()``."""

    def __init__(self, config: Config, clients: ClientFactory, ui: ReplUI,
                 store: SessionStore, provider_name: Optional[str] = None,
                 executor: Optional[ToolExecutor] = None):
        self.config = config
        self.clients = clients
        self.ui = ui
        self.store = store
        self.provider_name = provider_name
        self.executor = executor

        self.state = TurnState.IDLE
        self.provider: Optional[ProviderPreset] = None
        self.client: Optional[LLMClient] = None
        self.session_id: Optional[str] = None
        self.messages: List[Dict[str, Any]] = []
        self.pending = ""
        self.should_exit = False

        self._auto_trigger = False
        self._active_token: Optional[CancellationToken] = None
        self._interrupted = False
        self._critical_depth = 0
        self._deferred_interrupt = False

    # ── Lifecycle ──────────────────────────────

    def initialize(self):
        api_key = self.config.require_api_key()
        system_prompt = self.config.load_system_prompt()
        self.provider = self._select_provider()

        self.client = self.clients.get(api_key, self.provider.api_base or self.config.api_base)
        if self.executor is None:
            files = FileOps(
                self.config.project_root or ".",
                restricted_files=self.config.restricted_files,
                max_file_size_mb=self.config.max_file_size_mb,
                read_token_limit=self.config.read_token_limit,
                model=self.provider.model,
                ignore_spec=self.config.ignore_spec(),
                git=GitOps(self.config.project_root or "."),
                require_tracked_edits=self.config.require_tracked_edits,
            )
            self.executor = ToolExecutor(files)

        self.session_id = generate_session_id()
        self.messages = [{"role": "system", "content": system_prompt}]
        self._persist()
        _log.info("Session %s started with provider %s (%s)",
                  self.session_id, self.provider.name, self.provider.model)

    def _select_provider(self) -> ProviderPreset:
        name = self.provider_name or self.config.active_provider
        if name:
            preset = self.config.get_provider(name)
            if preset is None:
                raise ConfigurationError(
                    f"Unknown provider '{name}'. Available: {', '.join(self.config.providers) or '(none)'}"
                )
            return preset

        providers = self.config.list_providers()
        if not providers:
            raise ConfigurationError("No provider configured.")
        if len(providers) == 1:
            return providers[0]
        preset = self.ui.select_provider(providers)
        if preset is None:
            raise ConfigurationError("No provider selected.")
        return preset

    def request_exit(self):
        self.should_exit = True

    def start(self):
        """Run turns until exit. SIGINT is ours only while this runs."""
        previous_handler = signal.getsignal(signal.SIGINT)
        signal.signal(signal.SIGINT, self._on_sigint)
        try:
            while not self.should_exit:
                if self._auto_trigger:
                    self._auto_trigger = False
                    self._commit_user_message("")
                elif not self.handle_user_turn():
                    continue
                self._run_assistant_cycle()
            self._flush_pending()
        finally:
            signal.signal(signal.SIGINT, previous_handler)
            self.state = TurnState.IDLE
        console.print("\n[dim]Goodbye![/dim]")

    # ── Turns ──────────────────────────────────

    def handle_user_turn(self) -> bool:
        """Read one user message. True when a message was committed."""
        self.state = TurnState.IDLE
        try:
            text = self.ui.read_user_message()
        except KeyboardInterrupt:
            self.handle_interrupt()
            return False

        if text is None:
            return False
        if text is EXIT:
            self.should_exit = True
            return False
        self._commit_user_message(text)
        return True

    def _commit_user_message(self, text: str):
        if self.pending and text:
            content = f"{self.pending}\n\n{text}"
        else:
            content = self.pending or text
        self.pending = ""
        self._append({"role": "user", "content": content})
        self.state = TurnState.USER_TURN_COMMITTED

    def _run_assistant_cycle(self):
        outcome = self.handle_assistant_turn()
        if outcome == TurnState.FAILED:
            return

        content = strip_interrupt_marker(self.messages[-1]["content"])
        calls = parse_tool_calls(content)
        if not calls:
            self.state = TurnState.IDLE
            return

        if self._handle_tool_calls(calls):
            self.state = TurnState.AUTO_TRIGGER
            self._auto_trigger = True
        else:
            self.state = TurnState.IDLE

    def handle_assistant_turn(self) -> TurnState:
        """Stream one reply. Retries on transport failure only if the user asks."""
        while True:
            self.state = TurnState.ASSISTANT_STREAMING
            try:
                content, reasoning = self._stream_reply()
            except TransportError as e:
                self.state = TurnState.FAILED
                _log.warning("Assistant turn failed: %s", e)
                if self.ui.ask_retry(e):
                    continue
                self.should_exit = True
                return TurnState.FAILED

            if self._interrupted:
                self.state = TurnState.INTERRUPTED
                if not content and not reasoning:
                    reasoning = REASONING_NO_TOKENS
                else:
                    reasoning = f"{reasoning}\n{REASONING_DURING_STREAM}" if reasoning else REASONING_DURING_STREAM
                if content:
                    content = content.rstrip() + INTERRUPT_MARKER
                console.print("\n  [#E3B341]⚠ Stream interrupted by user[/#E3B341]")
            else:
                self.state = TurnState.SUCCEEDED

            msg: Dict[str, Any] = {"role": "assistant", "content": content}
            if reasoning:
                msg["reasoning"] = reasoning
            outcome = self.state
            self._append(msg)
            return outcome

    def _stream_reply(self):
        """Return accumulated (content, reasoning). Buffers start empty per attempt."""
        content = ""
        reasoning = ""
        token = CancellationToken()
        self._interrupted = False

        thinking = Status("  [#6E7681]thinking…[/#6E7681]", console=console,
                          spinner="dots", spinner_style="#7FA6D9")
        started = False
        try:
            self._active_token = token
            thinking.start()
            chunks = self.client.submit(self.provider.model, self.messages,
                                        self.provider.options, token)
            for chunk in chunks:
                if not started:
                    thinking.stop()
                    console.print()
                    started = True
                if chunk.reasoning:
                    reasoning += chunk.reasoning
                    # Show thinking only before primary content appears
                    if not content:
                        console.print(chunk.reasoning, style="dim", end="",
                                      markup=False, highlight=False)
                if chunk.content:
                    if not content and reasoning:
                        console.print()
                    content += chunk.content
                    console.print(chunk.content, end="", markup=False, highlight=False)
        except (CancellationError, KeyboardInterrupt):
            token.cancel()
        finally:
            # The token stays active until the spinner is down; a Ctrl-C
            # while stopping it still counts as a stream interrupt.
            try:
                thinking.stop()
            except (CancellationError, KeyboardInterrupt):
                token.cancel()
            finally:
                self._active_token = None

        if token.cancelled:
            self._interrupted = True
        if started:
            console.print()
        return content, reasoning

    # ── Tools ──────────────────────────────────

    def _handle_tool_calls(self, calls: List[ToolCall]) -> bool:
        """Propose, select, execute. True if at least one selected call ran."""
        self.state = TurnState.TOOL_PROPOSAL
        for i, call in enumerate(calls, 1):
            self._render_tool_call(call, i, len(calls))

        self.state = TurnState.TOOL_SELECTION
        chosen = set(self.ui.select_tools(calls))

        self.state = TurnState.TOOL_EXECUTION
        ran = False
        # A Ctrl-C here is held until every call has its result entry.
        with self._critical_section():
            for i, call in enumerate(calls):
                if i not in chosen:
                    self._add_pending(format_tool_result(call, "denied"))
                    console.print(f"  [#E3B341]↳ skipped[/#E3B341] [#6E7681]{escape(call.label())}[/#6E7681]")
                    continue
                if self._deferred_interrupt:
                    self._add_pending(format_tool_result(call, "error", TOOL_NOT_RUN))
                    continue

                ran = True
                try:
                    output = self.executor.dispatch(call)
                except ToolError as e:
                    _log.info("Tool %s failed: %s", call.label(), e)
                    self._add_pending(format_tool_result(call, "error", str(e)))
                    console.print(f"     [#F85149]{escape(str(e))}[/#F85149]")
                    continue
                self._add_pending(format_tool_result(call, "success", output))
                self._render_result(call, output)
        return ran

    def _add_pending(self, entry: str):
        self.pending = f"{self.pending}\n\n{entry}" if self.pending else entry

    def _render_tool_call(self, call: ToolCall, index: int, total: int):
        body = call.content.strip("\n") if call.content else ""
        lines = body.splitlines()
        if len(lines) > 30:
            body = "\n".join(lines[:30]) + f"\n… {len(lines) - 30} more lines"
        title = f"[bold #E6EDF3]{call.kind}[/bold #E6EDF3] [#6E7681]{escape(call.path)}[/#6E7681]"
        if total > 1:
            title = f"[#6E7681]{index}/{total}[/#6E7681] " + title
        console.print()
        console.print(Panel(
            Text(body) if body else Text("(no content)", style="dim"),
            title=title, title_align="left",
            border_style=TOOL_BORDER, padding=(0, 1), expand=False,
        ))

    def _render_result(self, call: ToolCall, output: str):
        first_line = output.splitlines()[0] if output else ""
        if call.kind == "read":
            lines = output.count("\n") + 1
            console.print(f"     [#57DB9C]✓ read {escape(call.path)}[/#57DB9C] [#6E7681]({lines} lines)[/#6E7681]")
        else:
            console.print(f"     [#57DB9C]✓ {escape(first_line)}[/#57DB9C]")

    # ── Interrupts ─────────────────────────────

    @contextmanager
    def _critical_section(self):
        """Saves and tool writes run to completion; SIGINT waits for them."""
        self._critical_depth += 1
        try:
            yield
        finally:
            self._critical_depth -= 1
            if self._critical_depth == 0 and self._deferred_interrupt:
                self._deferred_interrupt = False
                self.handle_interrupt()

    def _on_sigint(self, signum, frame):
        if self._critical_depth:
            _log.info("Interrupt deferred until the current write completes")
            self._deferred_interrupt = True
            return
        streaming = self._active_token is not None
        self.handle_interrupt()
        if streaming:
            # Break out of a blocked network read.
            raise CancellationError()

    def handle_interrupt(self):
        if self._active_token is not None:
            self._active_token.cancel()
            self._interrupted = True
            return
        self._flush_pending()
        raise SystemExit(0)

    # ── Persistence ────────────────────────────

    def _append(self, msg: Dict[str, Any]):
        self.messages.append(msg)
        self._persist()

    def _persist(self):
        with self._critical_section():
            self.store.save(self.session_id, self.messages)

    def _flush_pending(self):
        if not self.pending:
            return
        content = self.pending
        self.pending = ""
        self._append({"role": "user", "content": content})
