"""Command-line interface for the ZhiDao research assistant.

Streams the answer to a question with live progress, and manages the local
history of answered questions.
"""

import argparse
import logging
import sys
from typing import List, Optional

from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import ClientConfig, load_config
from .errors import InvalidInputError
from .models import Paper, Stage
from .notifications import CompletedRequest, RequestTracker
from .session import StreamSession
from .state import QueryStateSnapshot
from .storage import ConversationStore

console = Console()

STAGE_LABELS = {
    Stage.EVALUATION: "Evaluating the question",
    Stage.PAPER_RETRIEVAL: "Searching for papers",
    Stage.PAPER_ANALYSIS: "Analyzing papers",
    Stage.ANSWER_GENERATION: "Generating the answer",
}

MAX_PAPERS_SHOWN = 10
JOIN_POLL_SECONDS = 0.2


def render_stages(snapshot: QueryStateSnapshot) -> Table:
    table = Table.grid(padding=(0, 1))
    for stage in Stage:
        if stage in snapshot.completed_stages:
            marker = "[green]✔[/green]"
        elif stage == snapshot.current_stage:
            marker = "[yellow]●[/yellow]"
        else:
            marker = "[dim]○[/dim]"
        table.add_row(marker, STAGE_LABELS[stage])
    return table


def render_papers(papers: List[Paper]) -> Table:
    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("Title", ratio=3)
    table.add_column("Authors", ratio=2)
    table.add_column("Year", width=6)
    table.add_column("", width=4)
    for paper in papers[:MAX_PAPERS_SHOWN]:
        flags = ("★" if paper.is_cited else "") + ("✓" if paper.is_selected else "")
        table.add_row(paper.title, paper.authors, paper.year, flags)
    if len(papers) > MAX_PAPERS_SHOWN:
        table.caption = f"... and {len(papers) - MAX_PAPERS_SHOWN} more"
    return table


def render_snapshot(snapshot: QueryStateSnapshot) -> Group:
    """Build the live view of one query's progress."""
    parts = [render_stages(snapshot)]

    status_style = "red" if snapshot.error else "dim"
    parts.append(Text(snapshot.status_message, style=status_style))

    if snapshot.papers:
        parts.append(render_papers(list(snapshot.papers)))

    if snapshot.answer:
        parts.append(Panel(
            Markdown(snapshot.answer),
            title="📝 Answer",
            border_style="blue",
            padding=(1, 2)
        ))
    return Group(*parts)


def notify_completion(request: CompletedRequest):
    """Ring the terminal bell when an answer is ready."""
    console.bell()
    console.print(f"[dim]Answer ready after {request.duration_seconds:.0f}s[/dim]")


def ask_command(args, config: ClientConfig) -> int:
    """Handle ask command."""
    tracker = RequestTracker([notify_completion])

    with StreamSession(config, tracker=tracker) as session:
        try:
            connection = session.start(args.question)
        except InvalidInputError as e:
            console.print(f"[red]❌ {e}[/red]")
            return 2

        console.print(f"\n[bold blue]🔬 Question: {connection.query}[/bold blue]\n")

        with Live(render_snapshot(session.snapshot()), console=console, refresh_per_second=8) as live:
            unsubscribe = session.subscribe(lambda snapshot: live.update(render_snapshot(snapshot)))
            try:
                while not session.join(timeout=JOIN_POLL_SECONDS):
                    pass
            except KeyboardInterrupt:
                session.cancel()
            finally:
                unsubscribe()
            final = session.snapshot()
            live.update(render_snapshot(final))

    if final.error:
        console.print(f"[red]❌ {final.error}[/red]")
        return 1
    if not final.is_complete:
        console.print("[yellow]Request cancelled[/yellow]")
        return 130

    if not args.no_save:
        store = ConversationStore(config.history_path)
        saved = store.save_from_snapshot(connection.query, final)
        console.print(f"[dim]Saved as {saved.id[:8]}[/dim]")
    return 0


def history_command(args, config: ClientConfig) -> int:
    """Handle history command."""
    store = ConversationStore(config.history_path)
    conversations = store.conversations()

    if not conversations:
        console.print("[dim]No saved conversations[/dim]")
        return 0

    table = Table(title="Saved conversations")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Date", no_wrap=True)
    table.add_column("Question")
    table.add_column("Papers", justify="right")
    for conversation in conversations[:args.limit]:
        table.add_row(
            conversation.id[:8],
            conversation.timestamp.strftime("%Y-%m-%d %H:%M"),
            conversation.query,
            str(len(conversation.papers)),
        )
    console.print(table)
    return 0


def show_command(args, config: ClientConfig) -> int:
    """Handle show command."""
    store = ConversationStore(config.history_path)
    conversation = store.get(args.conversation_id)

    if conversation is None:
        console.print("[red]❌ Conversation not found[/red]")
        return 1

    console.print(f"\n[bold blue]{conversation.query}[/bold blue]")
    console.print(f"[dim]{conversation.timestamp.isoformat()}[/dim]\n")
    console.print(Panel(
        Markdown(conversation.answer or "No answer"),
        title="📝 Answer",
        border_style="blue",
        padding=(1, 2)
    ))
    if conversation.papers:
        console.print(render_papers(conversation.papers))
    return 0


def delete_command(args, config: ClientConfig) -> int:
    """Handle delete command."""
    store = ConversationStore(config.history_path)

    if args.all:
        store.delete_all()
        console.print("[green]✅ All conversations deleted[/green]")
        return 0

    if not args.conversation_id:
        console.print("[red]❌ Give a conversation id or --all[/red]")
        return 2

    if not store.delete(args.conversation_id):
        console.print("[red]❌ Conversation not found[/red]")
        return 1

    console.print("[green]✅ Conversation deleted[/green]")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ZhiDao research assistant CLI"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log stream events"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Ask command
    ask_parser = subparsers.add_parser(
        "ask",
        help="Ask a research question"
    )
    ask_parser.add_argument(
        "question",
        help="Question to answer"
    )
    ask_parser.add_argument(
        "--no-save",
        action="store_true",
        help="Don't save the conversation to history"
    )
    ask_parser.set_defaults(func=ask_command)

    # History command
    history_parser = subparsers.add_parser(
        "history",
        help="List saved conversations"
    )
    history_parser.add_argument(
        "-n", "--limit",
        type=int,
        default=20,
        help="Number of conversations to list (default: 20)"
    )
    history_parser.set_defaults(func=history_command)

    # Show command
    show_parser = subparsers.add_parser(
        "show",
        help="Show a saved conversation"
    )
    show_parser.add_argument(
        "conversation_id",
        help="Conversation id or unique id prefix"
    )
    show_parser.set_defaults(func=show_command)

    # Delete command
    delete_parser = subparsers.add_parser(
        "delete",
        help="Delete saved conversations"
    )
    delete_parser.add_argument(
        "conversation_id",
        nargs="?",
        help="Conversation id or unique id prefix"
    )
    delete_parser.add_argument(
        "--all",
        action="store_true",
        help="Delete every saved conversation"
    )
    delete_parser.set_defaults(func=delete_command)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = load_config()
    except ValueError as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        return 2

    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
