#!/usr/bin/env python3
"""Workspace Sessions - coding-agent sessions across workspaces.

Entry point for the CLI application.
"""

import argparse
import asyncio
import json
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import SessionsConfig

console = Console()


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )


def make_executor(args, config: SessionsConfig):
    from .execution import DockerExecutor, LocalExecutor

    if args.local:
        return LocalExecutor(timeout=config.exec_timeout)
    return DockerExecutor(timeout=config.exec_timeout)


async def with_dispatcher(args, config: SessionsConfig, action):
    """Run action(dispatcher), closing any worker connections afterwards."""
    from .dispatcher import SessionDispatcher

    executor = make_executor(args, config)
    worker_cache = None
    if getattr(args, "worker", False):
        from .worker import WorkerClientCache, local_host_resolver, make_client_factory

        resolver = local_host_resolver if args.local else None
        worker_cache = WorkerClientCache(make_client_factory(executor, config, resolve_host=resolver))

    dispatcher = SessionDispatcher(executor, config, worker_cache=worker_cache)
    try:
        return await action(dispatcher)
    finally:
        if worker_cache is not None:
            await worker_cache.clear()


def cmd_providers(args, config: SessionsConfig):
    """List supported agents and where their sessions live."""
    table = Table(title="Session providers")
    table.add_column("Agent")
    table.add_column("Type")
    table.add_column("Storage")

    storage = {
        "claude-code": config.claude_projects_dir,
        "opencode": config.opencode_storage_dir,
        "codex": config.codex_sessions_dir,
    }
    from .providers import get_all_providers

    for provider in get_all_providers(config):
        table.add_row(provider.display_name, provider.agent_type.value, storage[provider.agent_type.value])
    console.print(table)


def cmd_list(args, config: SessionsConfig):
    """List sessions in a target, newest first."""
    items = asyncio.run(with_dispatcher(args, config, lambda d: d.list_sessions(args.target)))
    if args.agent:
        items = [item for item in items if item.agent_type.value == args.agent]
    items = items[: args.limit]

    if args.json:
        print(json.dumps([item.to_dict() for item in items], indent=2))
        return
    if not items:
        console.print(f"No sessions found in {args.target}.")
        return

    table = Table(title=f"Sessions in {args.target}")
    table.add_column("ID", no_wrap=True)
    table.add_column("Agent")
    table.add_column("Project")
    table.add_column("Msgs", justify="right")
    table.add_column("Last activity")
    table.add_column("Name / first prompt")
    for item in items:
        preview = item.name or (item.first_prompt or "").replace("\n", " ")[:60]
        table.add_row(
            item.id, item.agent_type.value, item.project_path,
            str(item.message_count), item.last_activity, preview,
        )
    console.print(table)


def cmd_show(args, config: SessionsConfig):
    """Print a session transcript."""
    from .recent import RecentSessionsCache

    async def fetch(dispatcher):
        if args.agent:
            return await dispatcher.get_session_messages(args.target, args.session_id, args.agent, args.project)
        return await dispatcher.find_session_messages(args.target, args.session_id)

    transcript = asyncio.run(with_dispatcher(args, config, fetch))
    if transcript is None:
        console.print(f"[red]Session not found:[/red] {args.session_id}")
        sys.exit(1)

    RecentSessionsCache(config.state_dir).record_access(args.target, transcript.id, transcript.agent_type)

    if args.json:
        print(json.dumps(transcript.to_dict(), indent=2))
        return

    console.print(f"[bold]{transcript.id}[/bold] ({transcript.agent_type.value}, {len(transcript.messages)} messages)")
    console.print()
    for msg in transcript.messages:
        stamp = f" [dim]{msg.timestamp}[/dim]" if msg.timestamp else ""
        if msg.type == "tool_use":
            console.print(f"[yellow]tool_use[/yellow] {msg.tool_name}{stamp}")
            if msg.tool_input:
                console.print(msg.tool_input[:500], markup=False)
        elif msg.type == "tool_result":
            console.print(f"[yellow]tool_result[/yellow]{stamp}")
            console.print((msg.content or "")[:500], markup=False)
        else:
            color = "cyan" if msg.type == "user" else "green"
            console.print(f"[{color}]{msg.type}[/{color}]{stamp}")
            console.print(msg.content or "", markup=False)
        console.print()


def cmd_search(args, config: SessionsConfig):
    """Search session contents in a target."""
    results = asyncio.run(with_dispatcher(args, config, lambda d: d.search_sessions(args.target, args.query)))

    if args.json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
        return
    if not results:
        console.print(f"No matches found for: {args.query}")
        return

    table = Table(title=f"{len(results)} sessions matching {args.query!r}")
    table.add_column("Session", no_wrap=True)
    table.add_column("Agent")
    table.add_column("Matches", justify="right")
    table.add_column("File")
    for result in results:
        table.add_row(result.session_id, result.agent_type.value, str(result.match_count), result.file_path)
    console.print(table)


def cmd_delete(args, config: SessionsConfig):
    """Delete a session's native files."""
    from .recent import RecentSessionsCache

    result = asyncio.run(with_dispatcher(
        args, config, lambda d: d.delete_session(args.target, args.session_id, args.agent)
    ))
    if not result.success:
        console.print(f"[red]Delete failed:[/red] {result.error}")
        sys.exit(1)

    RecentSessionsCache(config.state_dir).remove_session(args.target, args.session_id)
    console.print(f"Deleted {args.agent} session {args.session_id}")


def cmd_recent(args, config: SessionsConfig):
    """Show recently opened sessions."""
    from .recent import RecentSessionsCache

    recent = RecentSessionsCache(config.state_dir).get_recent(args.limit)
    if not recent:
        console.print("No recent sessions.")
        return

    table = Table(title="Recent sessions")
    table.add_column("Workspace")
    table.add_column("Session", no_wrap=True)
    table.add_column("Agent")
    table.add_column("Last accessed")
    for r in recent:
        table.add_row(r.workspace_name, r.session_id, r.agent_type.value, r.last_accessed)
    console.print(table)


def cmd_registry(args, config: SessionsConfig):
    """Inspect the session registry."""
    from . import registry

    if args.workspace:
        records = asyncio.run(registry.get_sessions_for_workspace(config.state_dir, args.workspace))
    else:
        records = asyncio.run(registry.get_all_sessions(config.state_dir))

    if args.json:
        print(json.dumps([r.to_dict() for r in records], indent=2))
        return
    if not records:
        console.print("Registry is empty.")
        return

    table = Table(title=f"Session registry ({registry.get_store_path(config.state_dir)})")
    table.add_column("Session", no_wrap=True)
    table.add_column("Workspace")
    table.add_column("Agent")
    table.add_column("Agent session", no_wrap=True)
    table.add_column("Project")
    table.add_column("Last activity")
    for r in records:
        table.add_row(
            r.perry_session_id, r.workspace_name, r.agent_type,
            r.agent_session_id or "-", r.project_path or "-", r.last_activity,
        )
    console.print(table)


def cmd_worker(args, config: SessionsConfig):
    """Commands that run inside a target."""
    if args.worker_command == "serve":
        from .worker.server import serve

        serve(host=args.host, port=args.port)
        return

    from .opencode_storage import delete_opencode_session, get_opencode_session_messages, list_opencode_sessions

    if args.sessions_command == "list":
        print(json.dumps([info.to_dict() for info in list_opencode_sessions()]))
    elif args.sessions_command == "messages":
        result = get_opencode_session_messages(args.session_id)
        print(json.dumps({"id": args.session_id, "messages": [m.to_dict() for m in result.messages]}))
    elif args.sessions_command == "delete":
        print(json.dumps(delete_opencode_session(args.session_id).to_dict()))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Discover, read, search and delete coding-agent sessions in workspaces",
        prog="workspace-sessions",
    )
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--local", action="store_true", help="Run commands on this host instead of in a container")
    parser.add_argument("--worker", action="store_true", help="Use the in-target worker for Claude Code and OpenCode")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("providers", help="List supported agents")

    list_parser = subparsers.add_parser("list", help="List sessions in a target")
    list_parser.add_argument("target", help="Container or workspace name")
    list_parser.add_argument("--agent", "-a", choices=["claude-code", "opencode", "codex"], help="Filter to one agent")
    list_parser.add_argument("--limit", "-l", type=int, default=50, help="Max sessions to show")
    list_parser.add_argument("--json", action="store_true", help="JSON output")

    show_parser = subparsers.add_parser("show", help="Show a session transcript")
    show_parser.add_argument("target")
    show_parser.add_argument("session_id")
    show_parser.add_argument("--agent", "-a", choices=["claude-code", "opencode", "codex"])
    show_parser.add_argument("--project", "-p", help="Project path hint")
    show_parser.add_argument("--json", action="store_true", help="JSON output")

    search_parser = subparsers.add_parser("search", help="Search session contents")
    search_parser.add_argument("target")
    search_parser.add_argument("query")
    search_parser.add_argument("--json", action="store_true", help="JSON output")

    delete_parser = subparsers.add_parser("delete", help="Delete a session")
    delete_parser.add_argument("target")
    delete_parser.add_argument("session_id")
    delete_parser.add_argument("--agent", "-a", required=True, choices=["claude-code", "opencode", "codex"])

    recent_parser = subparsers.add_parser("recent", help="Recently opened sessions")
    recent_parser.add_argument("--limit", "-l", type=int, default=10)

    registry_parser = subparsers.add_parser("registry", help="Session registry")
    registry_sub = registry_parser.add_subparsers(dest="registry_command", required=True)
    registry_list = registry_sub.add_parser("list", help="List registry records")
    registry_list.add_argument("--workspace", "-w", help="Only this workspace")
    registry_list.add_argument("--json", action="store_true", help="JSON output")

    worker_parser = subparsers.add_parser("worker", help="Run inside a target")
    worker_sub = worker_parser.add_subparsers(dest="worker_command", required=True)
    serve_parser = worker_sub.add_parser("serve", help="Serve the session index over HTTP")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=None)
    sessions_parser = worker_sub.add_parser("sessions", help="Read OpenCode storage, print JSON")
    sessions_sub = sessions_parser.add_subparsers(dest="sessions_command", required=True)
    sessions_sub.add_parser("list")
    messages_parser = sessions_sub.add_parser("messages")
    messages_parser.add_argument("session_id")
    worker_delete = sessions_sub.add_parser("delete")
    worker_delete.add_argument("session_id")

    return parser


def main(argv=None):
    """Main entry point for workspace-sessions CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from . import __version__
        print(f"workspace-sessions {__version__}")
        return

    setup_logging(args.verbose)
    config = SessionsConfig.from_env()

    if args.command == "worker" and args.worker_command == "serve" and args.port is None:
        args.port = config.worker_port

    commands = {
        "providers": cmd_providers,
        "list": cmd_list,
        "show": cmd_show,
        "search": cmd_search,
        "delete": cmd_delete,
        "recent": cmd_recent,
        "registry": cmd_registry,
        "worker": cmd_worker,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return
    command(args, config)


if __name__ == "__main__":
    main()
