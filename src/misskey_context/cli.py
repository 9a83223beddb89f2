"""CLI for misskey-context (threads, context timelines, emoji, MCP server)."""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated, Any

import typer
from loguru import logger

from misskey_context.api import MisskeyApi
from misskey_context.config import DEFAULT_FEED_LIMIT, DEFAULT_WINDOW, resolve_antenna_id
from misskey_context.core.emoji.cache import EmojiCache
from misskey_context.errors import BackendError, MisskeyContextError, NotFoundError
from misskey_context.logging_config import configure_logging
from misskey_context.models.note import Note, Scope, Thread
from misskey_context.service import ContextService

app = typer.Typer(help="Misskey context: conversation threads and timelines around a note.")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    host: Annotated[
        str | None,
        typer.Option("--host", "-H", help="Instance host (default: $MISSKEY_HOST)"),
    ] = None,
    token: Annotated[
        str | None,
        typer.Option("--token", help="API token (default: $MISSKEY_TOKEN or token file)"),
    ] = None,
) -> None:
    configure_logging(verbose=verbose)
    ctx.obj = {"host": host, "token": token}


def _service(ctx: typer.Context) -> ContextService:
    opts = ctx.obj or {}
    try:
        api = MisskeyApi(opts.get("host"), opts.get("token"))
    except RuntimeError as e:
        logger.error("{}", e)
        raise typer.Exit(1) from e
    return ContextService(api, EmojiCache())


@contextmanager
def _backend_errors() -> Iterator[None]:
    """Map backend failures to exit codes: 2 for not found, 1 otherwise."""
    try:
        yield
    except NotFoundError as e:
        typer.echo(f"Not found: {e.note_id}")
        raise typer.Exit(2) from e
    except MisskeyContextError as e:
        logger.error("Request failed: {}", e)
        if isinstance(e, BackendError) and e.retry_after_seconds:
            typer.echo(f"Retry after {e.retry_after_seconds}s")
        raise typer.Exit(1) from e


def _note_line(note: Note) -> str:
    body = note.text or ""
    if note.cw:
        body = f"[CW: {note.cw}] {body}"
    stamp = note.created_at.strftime("%Y-%m-%d %H:%M:%S")
    return f"{stamp}  {note.user.handle}: {body[:120]}  (id={note.id})"


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _echo_thread(thread: Thread) -> None:
    for note in thread.ancestors:
        typer.echo(f"  ^ {_note_line(note)}")
    typer.echo(f"  * {_note_line(thread.root)}")
    for note in thread.descendants:
        typer.echo(f"    {_note_line(note)}")


@app.command()
def thread(
    ctx: typer.Context,
    note_id: str = typer.Argument(..., help="Root note ID"),
    children: bool = typer.Option(False, "--children", "-c", help="Also fetch direct replies"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show the conversation around a note: ancestors, the note, replies."""
    service = _service(ctx)
    with _backend_errors():
        result = service.conversation_thread(note_id, include_children=children)

    if output_json:
        _echo_json(result.to_dict())
        return
    typer.echo(
        f"Thread for {note_id}: {len(result.ancestors)} ancestors, "
        f"{len(result.descendants)} replies\n"
    )
    _echo_thread(result)


@app.command()
def context(
    ctx: typer.Context,
    note_id: str = typer.Argument(..., help="Anchor note ID"),
    scope: Scope = typer.Option(Scope.GLOBAL, "--scope", "-s", help="Public timeline to use"),
    window: int = typer.Option(DEFAULT_WINDOW, "--window", "-w", help="Notes on each side"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show the public timeline around a note, newest first."""
    service = _service(ctx)
    with _backend_errors():
        try:
            result = service.context_timeline(note_id, scope, window=window)
        except ValueError as e:
            typer.echo(str(e))
            raise typer.Exit(1) from e

    if output_json:
        _echo_json(result.to_dict())
        return
    typer.echo(f"{len(result)} notes around {note_id} ({scope}):\n")
    for note in result:
        marker = "*" if note.id == result.anchor_id else " "
        typer.echo(f"  {marker} {_note_line(note)}")


@app.command()
def feed(
    ctx: typer.Context,
    antenna_id: Annotated[
        str | None,
        typer.Argument(help="Antenna ID (default: $MISSKEY_ANTENNA_ID)"),
    ] = None,
    limit: int = typer.Option(DEFAULT_FEED_LIMIT, "--limit", "-n", help="Max feed notes"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show the conversation thread of every note in an antenna feed."""
    antenna = antenna_id or resolve_antenna_id()
    if not antenna:
        typer.echo("No antenna given and MISSKEY_ANTENNA_ID is not set.")
        raise typer.Exit(1)

    service = _service(ctx)
    with _backend_errors():
        threads = service.feed_threads(antenna, limit=limit)

    if output_json:
        _echo_json({"threads": [t.to_dict() for t in threads], "instanceHost": service.host})
        return
    typer.echo(f"{len(threads)} threads from antenna {antenna}:\n")
    for t in threads:
        _echo_thread(t)
        typer.echo()


@app.command()
def emoji(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Text containing :short-codes:"),
    use_cache: bool = typer.Option(
        True, "--cache/--no-cache", help="Load the instance's emoji catalog first"
    ),
) -> None:
    """Resolve custom emoji short-codes in a piece of text."""
    service = _service(ctx)
    if use_cache:
        service.prime_emoji_cache()
    typer.echo(service.resolve_emoji_text(text))


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from misskey_context.mcp.server import run_mcp_server

    run_mcp_server()
