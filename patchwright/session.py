"""Session persistence: crash-safe save and load of the message log."""

import json
import os
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from .errors import PersistenceError
from .logger import get_logger

_log = get_logger(__name__)

VALID_ROLES = ("system", "user", "assistant")


def generate_session_id() -> str:
    """Local timestamp plus 6 random hex chars, e.g. ``20261018-142530-3f9a1c``."""
    return f"{datetime.now().strftime('%Y%m%d-%H%M%S')}-{secrets.token_hex(3)}"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _clean_message(raw: Any) -> Optional[Dict[str, str]]:
    if not isinstance(raw, dict):
        return None
    role = raw.get("role")
    content = raw.get("content")
    if role not in VALID_ROLES or not isinstance(content, str):
        return None
    msg = {"role": role, "content": content}
    if isinstance(raw.get("reasoning"), str):
        msg["reasoning"] = raw["reasoning"]
    return msg


class SessionStore:
    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory).expanduser()

    def _path(self, session_id: str) -> Path:
        return self.directory / f"{session_id}.json"

    def save(self, session_id: str, messages: List[Dict[str, Any]]):
        """Write via a temp sibling and ``os.replace`` so readers never see a partial file."""
        target = self._path(session_id)
        tmp = target.with_name(target.name + ".tmp")
        data = {
            "sessionId": session_id,
            "messages": messages,
            "updatedAt": _utc_now(),
        }
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, target)
        except (OSError, TypeError, ValueError) as e:
            try:
                tmp.unlink()
            except OSError:
                pass
            raise PersistenceError(f"Cannot save session {session_id}: {e}") from e

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Return ``{sessionId, messages, updatedAt}`` or None.

        Invalid messages are dropped, never repaired.
        """
        path = self._path(session_id)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Session {session_id} is not valid JSON: {e}") from e
        except OSError as e:
            raise PersistenceError(f"Cannot read session {session_id}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("messages"), list):
            _log.warning("Session %s has no message list; ignoring", session_id)
            return None

        messages = []
        for i, raw in enumerate(data["messages"]):
            msg = _clean_message(raw)
            if msg is None:
                _log.warning("Session %s: dropped invalid message #%d", session_id, i)
                continue
            messages.append(msg)

        return {
            "sessionId": data.get("sessionId") or session_id,
            "messages": messages,
            "updatedAt": data.get("updatedAt") or _utc_now(),
        }

    def list(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        # glob("*.json") never matches the "*.json.tmp" siblings.
        return sorted(p.stem for p in self.directory.glob("*.json") if p.is_file())

    def summaries(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Per-session message count and updatedAt, newest first."""
        rows = []
        for session_id in self.list():
            try:
                data = self.load(session_id)
            except PersistenceError as e:
                _log.warning("Skipping unreadable session: %s", e)
                continue
            if data is None:
                continue
            rows.append({
                "id": session_id,
                "messages": len(data["messages"]),
                "updated_at": data["updatedAt"],
            })
        rows.sort(key=lambda r: r["updated_at"], reverse=True)
        return rows[:limit] if limit else rows


def render_session_timeline(messages: List[Dict[str, Any]], console: Console):
    """Render a stored conversation as a tree, one node per message."""
    tree = Tree("[bold cyan]Session Timeline[/bold cyan]")

    for msg in messages:
        role = msg.get("role", "unknown")
        content = msg.get("content", "")
        preview = content[:80] + "..." if len(content) > 80 else content
        preview = escape(preview.replace("\n", " "))

        if role == "user":
            tree.add(f"[bold]User:[/bold] {preview}")
        elif role == "assistant":
            node = tree.add(f"[green]Assistant:[/green] {preview or '(empty)'}")
            if msg.get("reasoning"):
                node.add(f"[dim]reasoning: {escape(msg['reasoning'][:60])}[/dim]")
        elif role == "system":
            tree.add(f"[yellow]System: {escape(content[:60])}...[/yellow]")

    console.print()
    console.print(tree)
