"""
patchwright: tag-driven coding assistant for your terminal.

Command: patchwright run
"""

import os
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import HISTORY_FILE, Config
from .errors import AgentError
from .logger import setup_logger

console = Console()


def _fail(error) -> None:
    console.print(f"[red]Error: {escape(str(error))}[/red]")
    sys.exit(1)


@click.group(invoke_without_command=True)
@click.pass_context
def cli(ctx):
    """patchwright: tag-driven coding assistant for your terminal."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.option("--provider", "-p", default=None, help="Provider preset name")
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def run(provider, project_dir, verbose):
    """Start an interactive session."""
    from .agent import Agent
    from .llm import ClientFactory
    from .session import SessionStore
    from .ui import ReplUI, build_banner, render_startup

    project_root = Path(project_dir).resolve()
    if not project_root.is_dir():
        _fail(f"'{project_dir}' is not a valid directory.")

    console.print(build_banner(__version__))
    os.environ.setdefault("PROMPT_TOOLKIT_NO_CPR", "1")
    config = Config.load(str(project_root))
    if verbose:
        config.verbose = True
    log = setup_logger(verbose=config.verbose)

    # Tools resolve relative paths against the working directory.
    os.chdir(project_root)

    agent = Agent(
        config=config,
        clients=ClientFactory(),
        ui=ReplUI(console, history_file=HISTORY_FILE),
        store=SessionStore(config.sessions_path),
        provider_name=provider,
    )
    try:
        agent.initialize()
        render_startup(console, config, agent.provider, agent.session_id)
        agent.start()
    except AgentError as e:
        log.error("Fatal: %s", e)
        _fail(e)


@cli.command()
@click.option("--limit", "-n", default=20, show_default=True, help="Number of sessions to list")
@click.option("--project-dir", "-d", default=".", help="Project directory")
def sessions(limit, project_dir):
    """List stored sessions, newest first."""
    from .session import SessionStore

    config = Config.load(project_dir)
    store = SessionStore(config.sessions_path)
    rows = store.summaries(limit=limit)
    if not rows:
        console.print("[dim]No saved sessions.[/dim]")
        return

    table = Table(show_header=True, header_style="bold #7FA6D9", box=None)
    table.add_column("Session")
    table.add_column("Messages", justify="right")
    table.add_column("Updated", style="dim")
    for row in rows:
        table.add_row(row["id"], str(row["messages"]), row["updated_at"])
    console.print(table)


@cli.command()
@click.argument("session_id")
@click.option("--project-dir", "-d", default=".", help="Project directory")
def show(session_id, project_dir):
    """Print a stored conversation."""
    from .session import SessionStore, render_session_timeline

    config = Config.load(project_dir)
    store = SessionStore(config.sessions_path)
    try:
        data = store.load(session_id)
    except AgentError as e:
        _fail(e)
    if data is None:
        _fail(f"Session '{session_id}' not found.")

    console.print(f"[bold]{escape(data['sessionId'])}[/bold] [dim]updated {data['updatedAt']}[/dim]")
    render_session_timeline(data["messages"], console)


@cli.command("config")
@click.option("--project-dir", "-d", default=".", help="Project directory")
def config_cmd(project_dir):
    """Show configuration."""
    cfg = Config.load(project_dir)
    table = Table(show_header=False, box=None)
    table.add_column(style="dim")
    table.add_column()
    for key, value in cfg.summary().items():
        table.add_row(key, escape(str(value)))
    console.print(table)


if __name__ == "__main__":
    cli()
