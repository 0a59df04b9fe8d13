"""
Command line entry point for the feedback agent.

Usage:
    feedback-agent ingest <agent_id> notes.pdf slides.pptx
    feedback-agent code-range --prefix 417
    feedback-agent code-range --agent <agent_id>
    feedback-agent export <agent_id> --requester <uid> --format csv
    feedback-agent api --port 8000
"""

import argparse
import mimetypes
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from feedback_agent.config.logging_config import setup_structured_logging
from feedback_agent.config.settings import get_settings
from feedback_agent.core.exceptions import FeedbackAgentError
from feedback_agent.grading import codec
from feedback_agent.storage.document_store import AGENTS, materials_collection

STATUS_STYLES = {
    "ready": "green",
    "needs_review": "yellow",
    "failed": "red",
}


def guess_mime_type(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    return mime or "application/octet-stream"


def command_ingest(args) -> int:
    """Register local files as materials of an agent and ingest them synchronously."""
    from feedback_agent.container import get_services

    console = Console()
    services = get_services()

    table = Table(title=f"Materials for agent {args.agent}")
    table.add_column("File", style="cyan")
    table.add_column("Material ID")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")

    exit_code = 0
    for name in args.files:
        path = Path(name)
        if not path.is_file():
            console.print(f"[red]Not a file: {name}[/red]")
            exit_code = 1
            continue

        material = services.lifecycle.register_material(
            args.agent, path.name, args.mime or guess_mime_type(path), path.read_bytes()
        )
        services.lifecycle.ingest_material(args.agent, material.id)

        final = services.store.get(materials_collection(args.agent), material.id) or {}
        status = final.get("status", "unknown")
        if status != "ready":
            exit_code = 1
        style = STATUS_STYLES.get(status, "white")
        table.add_row(path.name, material.id, f"[{style}]{status}[/{style}]", str(final.get("chunk_count") or 0))
        if final.get("error"):
            console.print(f"[dim]{path.name}: {final['error']}[/dim]")

    console.print(table)
    return exit_code


def command_code_range(args) -> int:
    """Print the accepted verification code range for a prefix or an agent."""
    console = Console()

    prefix = args.prefix
    if prefix is None:
        from feedback_agent.container import get_services

        agent = get_services().store.get(AGENTS, args.agent)
        if agent is None:
            console.print(f"[red]Agent not found: {args.agent}[/red]")
            return 1
        prefix = codec.normalize_prefix(agent.get("verification_prefix")) or codec.derive_prefix(args.agent)

    table = Table(title="Accepted verification codes")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Prefix", str(prefix))
    table.add_row("Minimum", str(codec.get_minimum_accepted_value(prefix)))
    table.add_row("Maximum", str(codec.get_maximum_accepted_value()))
    table.add_row("Human review", codec.SENTINEL_CODE)
    console.print(table)
    return 0


def command_export(args) -> int:
    """Export an agent's submission log to a file or stdout."""
    from feedback_agent.container import get_services

    content = get_services().submissions.export_submissions(
        args.agent, args.requester, args.format, args.start, args.end
    )
    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(content, encoding="utf-8")
        Console().print(f"[green]Exported to {output}[/green]")
    else:
        sys.stdout.write(content + "\n")
    return 0


def command_api(args) -> int:
    """Start the API server."""
    import uvicorn

    console = Console()
    console.print("[bold green]Starting API server[/bold green]")
    console.print(f"Host: {args.host}")
    console.print(f"Port: {args.port}")
    console.print(f"Docs: http://{args.host}:{args.port}/docs")

    uvicorn.run(
        "feedback_agent.api.app:app",
        host=args.host,
        port=args.port,
        workers=args.workers
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="feedback-agent",
        description="Feedback agent - evidence-grounded assessment of student texts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s ingest 3f9c... course-notes.pdf rubric.docx
  %(prog)s code-range --prefix 417
  %(prog)s export 3f9c... --requester teacher-uid --format json --output logs.json
  %(prog)s api --port 8000
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    ingest_parser = subparsers.add_parser("ingest", help="Upload and process reference material")
    ingest_parser.add_argument("agent", help="Agent ID")
    ingest_parser.add_argument("files", nargs="+", help="Files to ingest")
    ingest_parser.add_argument("--mime", help="Force a MIME type instead of guessing from the extension")

    range_parser = subparsers.add_parser("code-range", help="Show accepted verification code values")
    target = range_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--prefix", type=int, help="Verification prefix (200-998)")
    target.add_argument("--agent", help="Agent ID whose prefix to use")

    export_parser = subparsers.add_parser("export", help="Export an agent's submission log")
    export_parser.add_argument("agent", help="Agent ID")
    export_parser.add_argument("--requester", required=True, help="Teacher uid (owner or shared viewer)")
    export_parser.add_argument("--format", default="csv", choices=["csv", "json", "txt"], help="Export format")
    export_parser.add_argument("--start", type=int, help="Earliest timestamp (epoch ms, inclusive)")
    export_parser.add_argument("--end", type=int, help="Latest timestamp (epoch ms, inclusive)")
    export_parser.add_argument("--output", help="Output file (stdout when omitted)")

    api_parser = subparsers.add_parser("api", help="Start API server")
    api_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    api_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    api_parser.add_argument("--workers", type=int, default=1, help="Number of workers")

    return parser


COMMANDS = {
    "ingest": command_ingest,
    "code-range": command_code_range,
    "export": command_export,
    "api": command_api,
}


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    settings = get_settings()
    setup_structured_logging(level=settings.log_level, log_file=settings.log_file, serialize=False)

    try:
        return COMMANDS[args.command](args)
    except FeedbackAgentError as e:
        Console(stderr=True).print(f"[red]Error: {e.message}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
