"""Terminal UI primitives: prompt, provider picker, tool picker."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.styles import Style
from rich.console import Console

from .config import ProviderPreset
from .tools.parser import ToolCall

THEME_ACCENT = "#7FA6D9"
THEME_PROMPT = "#B7C6D8"

PTK_STYLE = Style.from_dict({
    "scrollbar.background": "bg:default",
    "scrollbar.button": "bg:default",
})

EXIT = object()
EXIT_COMMANDS = ("exit", "/exit", "/quit")


def build_banner(version: str) -> str:
    return (
        f"[bold {THEME_ACCENT}]patchwright[/bold {THEME_ACCENT}] "
        f"[dim]v{version} · tag-driven coding assistant[/dim]"
    )


def make_prompt_html() -> HTML:
    return HTML(
        f'<style fg="{THEME_PROMPT}">patchwright</style>'
        f'<style fg="#66788A"> › </style>'
    )


def render_startup(console, config, provider: ProviderPreset, session_id: str) -> None:
    key_status = "[green]✓[/green]" if config.resolve_api_key() else "[red]✗[/red]"
    console.print(
        f"[dim]provider[/dim] [bold]{provider.name}[/bold] [dim]→[/dim] {provider.model}"
        f" [dim]• key[/dim] {key_status}"
    )
    console.print(f"[dim]project[/dim] {config.project_root}")
    console.print(f"[dim]session[/dim] {session_id}")
    console.print("[dim]exit to quit · Esc → Enter for newline · Ctrl+C to cancel a reply[/dim]")
    console.print()


def _short(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 1)] + "…"


class ReplUI:
    """Everything that blocks on the user. The agent only talks to this class."""

    def __init__(self, console: Console, history_file: str | Path | None = None):
        self.console = console
        self.history_file = history_file
        self._session = None
        self._kb = None

    def _prompt_session(self):
        if self._session is None:
            from prompt_toolkit import PromptSession
            from prompt_toolkit.history import FileHistory, InMemoryHistory
            from prompt_toolkit.key_binding import KeyBindings

            if self.history_file:
                Path(self.history_file).parent.mkdir(parents=True, exist_ok=True)
                history = FileHistory(str(self.history_file))
            else:
                history = InMemoryHistory()
            self._session = PromptSession(history=history, multiline=False, style=PTK_STYLE)

            self._kb = KeyBindings()

            @self._kb.add("escape", "enter")
            def _newline(event):
                event.current_buffer.insert_text("\n")

        return self._session

    def read_user_message(self):
        """Return the text, ``EXIT``, or None when the line was blank.

        Ctrl-C surfaces as KeyboardInterrupt for the caller to route.
        """
        session = self._prompt_session()
        try:
            text = session.prompt(make_prompt_html(), key_bindings=self._kb)
        except EOFError:
            return EXIT
        text = text.strip()
        if not text:
            return None
        if text.lower() in EXIT_COMMANDS:
            return EXIT
        return text

    def ask_retry(self, error) -> bool:
        self.console.print(f"\n[red]  Request failed: {error}[/red]")
        try:
            ans = self.console.input(
                "  [#E3B341]?[/#E3B341] "
                "[bold #E6EDF3](r)[/bold #E6EDF3][#8B949E]etry[/#8B949E] / "
                "[bold #E6EDF3](e)[/bold #E6EDF3][#8B949E]xit[/#8B949E]: "
            ).strip().lower()
        except (KeyboardInterrupt, EOFError):
            return False
        return ans in ("r", "retry", "")

    def select_provider(self, providers: Sequence[ProviderPreset]) -> ProviderPreset | None:
        """Minimal provider picker with inline filtering."""
        from prompt_toolkit.application import Application
        from prompt_toolkit.key_binding import KeyBindings
        from prompt_toolkit.layout.containers import HSplit, Window
        from prompt_toolkit.layout.controls import FormattedTextControl
        from prompt_toolkit.layout.layout import Layout

        providers = list(providers)
        if not providers:
            return None

        query = [""]
        visible = [list(range(len(providers)))]
        cursor = [0]
        result = [None]

        def refresh_visible():
            lowered = query[0].strip().lower()
            if not lowered:
                visible[0] = list(range(len(providers)))
            else:
                visible[0] = [
                    idx
                    for idx, p in enumerate(providers)
                    if lowered in p.name.lower()
                    or lowered in p.model.lower()
                    or lowered in (p.description or "").lower()
                ]
            if not visible[0]:
                cursor[0] = 0
                return
            cursor[0] = min(max(cursor[0], 0), len(visible[0]) - 1)

        def get_text():
            lines = []
            lines.append((f"bold {THEME_ACCENT}", " provider\n"))
            lines.append(("#66788A", " ↑↓ move • type filter • Enter select • Esc clear/cancel\n"))
            q = query[0].strip()
            lines.append(("#7AA7E8" if q else "#66788A", f" filter: {q or '(all)'}\n"))
            lines.append(("", "\n"))

            if not visible[0]:
                lines.append(("#D08770", " no matching providers\n"))
                return lines

            name_width = max(14, min(24, max(len(providers[i].name) for i in visible[0]) + 1))
            for pos, idx in enumerate(visible[0]):
                p = providers[idx]
                is_current = pos == cursor[0]
                pointer = "›" if is_current else " "
                row_style = "bold #E7EEF8" if is_current else "#C8D8EE"
                desc = _short((p.description or p.model).strip(), 54)
                lines.append((row_style, f" {pointer} {p.name:<{name_width}} {desc}\n"))
            return lines

        refresh_visible()
        kb = KeyBindings()

        @kb.add("up")
        def _up(_event):
            if visible[0]:
                cursor[0] = max(0, cursor[0] - 1)

        @kb.add("down")
        def _down(_event):
            if visible[0]:
                cursor[0] = min(len(visible[0]) - 1, cursor[0] + 1)

        @kb.add("backspace")
        def _backspace(_event):
            if query[0]:
                query[0] = query[0][:-1]
                refresh_visible()

        @kb.add("escape")
        def _escape(event):
            if query[0]:
                query[0] = ""
                refresh_visible()
                return
            result[0] = None
            event.app.exit()

        @kb.add("c-c")
        def _cancel(event):
            result[0] = None
            event.app.exit()

        @kb.add("enter")
        def _select(event):
            if visible[0]:
                result[0] = providers[visible[0][cursor[0]]]
            event.app.exit()

        @kb.add("<any>")
        def _type(event):
            data = event.key_sequence[0].data
            if not data or len(data) != 1 or not data.isprintable() or data in ("\r", "\n", "\t"):
                return
            query[0] += data
            refresh_visible()

        control = FormattedTextControl(get_text)
        window = Window(content=control, always_hide_cursor=True)
        app = Application(layout=Layout(HSplit([window])), key_bindings=kb, full_screen=False)

        try:
            app.run()
        except (KeyboardInterrupt, EOFError):
            return None
        return result[0]

    def select_tools(self, calls: Sequence[ToolCall]) -> list[int]:
        """Multi-select over proposed tool calls. Returns the chosen indexes.

        Everything starts checked; Esc or Ctrl-C denies all.
        """
        from prompt_toolkit.application import Application
        from prompt_toolkit.key_binding import KeyBindings
        from prompt_toolkit.layout.containers import HSplit, Window
        from prompt_toolkit.layout.controls import FormattedTextControl
        from prompt_toolkit.layout.layout import Layout

        if not calls:
            return []

        selected = set(range(len(calls)))
        cursor = [0]
        result = [None]

        def get_text():
            lines = []
            lines.append((f"bold {THEME_ACCENT}", " run tools\n"))
            lines.append(("#66788A", " ↑↓/jk move • Space toggle • a all • c clear • Enter run • Esc deny all\n"))
            lines.append(("", "\n"))
            for idx, call in enumerate(calls):
                checked = idx in selected
                is_current = idx == cursor[0]
                pointer = "›" if is_current else " "
                marker = "✓" if checked else "·"
                if is_current:
                    row_style = "bold #E7EEF8"
                elif checked:
                    row_style = "#57DB9C"
                else:
                    row_style = "#C8D8EE"
                lines.append((row_style, f" {pointer} {marker} {call.kind:<8} {_short(call.path, 60)}\n"))
            lines.append(("#66788A", f"\n selected {len(selected)}/{len(calls)}"))
            return lines

        kb = KeyBindings()

        @kb.add("up")
        @kb.add("k")
        def _up(_event):
            cursor[0] = max(0, cursor[0] - 1)

        @kb.add("down")
        @kb.add("j")
        def _down(_event):
            cursor[0] = min(len(calls) - 1, cursor[0] + 1)

        @kb.add(" ")
        def _toggle(_event):
            if cursor[0] in selected:
                selected.remove(cursor[0])
            else:
                selected.add(cursor[0])

        @kb.add("a")
        def _all(_event):
            selected.update(range(len(calls)))

        @kb.add("c")
        def _clear(_event):
            selected.clear()

        @kb.add("escape")
        @kb.add("c-c")
        def _deny(event):
            result[0] = []
            event.app.exit()

        @kb.add("enter")
        def _run(event):
            result[0] = sorted(selected)
            event.app.exit()

        control = FormattedTextControl(get_text)
        window = Window(content=control, always_hide_cursor=True)
        app = Application(layout=Layout(HSplit([window])), key_bindings=kb, full_screen=False)

        try:
            app.run()
        except (KeyboardInterrupt, EOFError):
            return []
        return result[0] if result[0] is not None else []
