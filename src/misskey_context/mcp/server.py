"""MCP server exposing Misskey thread, context timeline and emoji tools."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from misskey_context.api import MisskeyApi
from misskey_context.config import DEFAULT_FEED_LIMIT, DEFAULT_WINDOW, resolve_antenna_id
from misskey_context.core.emoji.cache import EmojiCache
from misskey_context.errors import BackendError, MisskeyContextError, NotFoundError
from misskey_context.models.note import Note, Scope
from misskey_context.service import ContextService


def _error(e: MisskeyContextError) -> dict[str, Any]:
    out: dict[str, Any] = {"error": str(e)}
    if isinstance(e, NotFoundError):
        out["not_found"] = True
        out["note_id"] = e.note_id
    elif isinstance(e, BackendError):
        out["status_code"] = e.status_code
        if e.retry_after_seconds is not None:
            out["retry_after"] = e.retry_after_seconds
    return out


def _note_dict(service: ContextService, note: Note, *, render: bool) -> dict[str, Any]:
    data = note.to_dict()
    if render:
        data["html"] = service.render_note_text(note)
    return data


# --- Core functions (testable without MCP context) ---


def misskey_conversation_thread(
    service: ContextService,
    *,
    note_id: str,
    include_children: bool = False,
    render: bool = False,
) -> dict[str, Any]:
    """Reconstruct the conversation around a note.

    Args:
        note_id: Root note ID.
        include_children: Also fetch direct replies.
        render: Add an ``html`` field with custom emoji resolved.
    """
    try:
        thread = service.conversation_thread(note_id, include_children=include_children)
    except MisskeyContextError as e:
        return _error(e)
    if render:
        service.prime_emoji_cache()
    return {
        "root": _note_dict(service, thread.root, render=render),
        "ancestors": [_note_dict(service, n, render=render) for n in thread.ancestors],
        "descendants": [_note_dict(service, n, render=render) for n in thread.descendants],
        "count": len(thread),
    }


def misskey_context_timeline(
    service: ContextService,
    *,
    note_id: str,
    scope: str = "global",
    window: int = DEFAULT_WINDOW,
    render: bool = False,
) -> dict[str, Any]:
    """Get the public timeline around a note, newest first.

    Args:
        note_id: Anchor note ID.
        scope: "global" or "local".
        window: Notes on each side of the anchor (1-100).
        render: Add an ``html`` field with custom emoji resolved.
    """
    if scope not in ("global", "local"):
        return {"error": f"Invalid scope {scope!r}. Must be 'global' or 'local'."}
    try:
        result = service.context_timeline(note_id, Scope(scope), window=window)
    except ValueError as e:
        return {"error": str(e)}
    except MisskeyContextError as e:
        return _error(e)
    if render:
        service.prime_emoji_cache()
    return {
        "anchor_id": result.anchor_id,
        "scope": str(result.scope),
        "notes": [_note_dict(service, n, render=render) for n in result],
        "count": len(result),
    }


def misskey_feed_threads(
    service: ContextService,
    *,
    antenna_id: str | None = None,
    limit: int = DEFAULT_FEED_LIMIT,
) -> dict[str, Any]:
    """Get the conversation thread of each note in an antenna feed.

    Args:
        antenna_id: Antenna ID (default: $MISSKEY_ANTENNA_ID).
        limit: Max feed notes (1-100, default 30).
    """
    antenna = antenna_id or resolve_antenna_id()
    if not antenna:
        return {"error": "No antenna given and MISSKEY_ANTENNA_ID is not set."}
    limit = max(1, min(limit, 100))
    try:
        threads = service.feed_threads(antenna, limit=limit)
    except MisskeyContextError as e:
        return _error(e)
    return {
        "threads": [t.to_dict() for t in threads],
        "instance_host": service.host,
        "count": len(threads),
    }


def misskey_resolve_emoji_text(
    service: ContextService,
    *,
    text: str,
    emojis: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Resolve custom emoji short-codes in text.

    Args:
        text: Text containing :short-codes:.
        emojis: Optional note-scoped short-code to URL map, which wins over the catalog.
    """
    cached = service.prime_emoji_cache()
    return {"html": service.resolve_emoji_text(text, emojis), "catalog_loaded": cached}


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    service: ContextService


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Connect to the configured instance on startup."""
    service = ContextService(MisskeyApi(), EmojiCache())
    logger.info("Serving context for {}", service.host)
    try:
        yield ServerContext(service=service)
    finally:
        service.cache.reset()


mcp_server = FastMCP(
    "misskey-context",
    instructions="""\
Misskey notes form conversations (a note, the notes it replies to, and the
replies it received) and sit on public timelines.

- misskey_conversation_thread_tool: ancestors (oldest first), the note,
  descendants (newest first).
- misskey_context_timeline_tool: the notes posted just before and after a
  note on the global or local timeline, newest first.
- misskey_feed_threads_tool: a thread for every note in an antenna.
- Pass render=true to get an `html` field with custom emoji as <img> tags.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def misskey_conversation_thread_tool(
    ctx: Context,
    note_id: str,
    include_children: bool = False,
    render: bool = False,
) -> dict[str, Any]:
    """Reconstruct the conversation around a note.

    Args:
        note_id: Root note ID.
        include_children: Also fetch direct replies.
        render: Add an html field with custom emoji resolved.
    """
    return await asyncio.to_thread(
        misskey_conversation_thread,
        _ctx(ctx).service,
        note_id=note_id,
        include_children=include_children,
        render=render,
    )


@mcp_server.tool()
async def misskey_context_timeline_tool(
    ctx: Context,
    note_id: str,
    scope: str = "global",
    window: int = DEFAULT_WINDOW,
    render: bool = False,
) -> dict[str, Any]:
    """Get the public timeline around a note, newest first.

    Args:
        note_id: Anchor note ID.
        scope: "global" or "local".
        window: Notes on each side of the anchor (1-100).
        render: Add an html field with custom emoji resolved.
    """
    return await asyncio.to_thread(
        misskey_context_timeline,
        _ctx(ctx).service,
        note_id=note_id,
        scope=scope,
        window=window,
        render=render,
    )


@mcp_server.tool()
async def misskey_feed_threads_tool(
    ctx: Context,
    antenna_id: str | None = None,
    limit: int = DEFAULT_FEED_LIMIT,
) -> dict[str, Any]:
    """Get the conversation thread of each note in an antenna feed.

    Args:
        antenna_id: Antenna ID (default: server's MISSKEY_ANTENNA_ID).
        limit: Max feed notes (1-100, default 30).
    """
    return await asyncio.to_thread(
        misskey_feed_threads, _ctx(ctx).service, antenna_id=antenna_id, limit=limit
    )


@mcp_server.tool()
async def misskey_resolve_emoji_text_tool(
    ctx: Context,
    text: str,
    emojis: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Resolve custom emoji short-codes in text to <img> markup.

    Args:
        text: Text containing :short-codes:.
        emojis: Optional short-code to URL map that wins over the catalog.
    """
    return await asyncio.to_thread(
        misskey_resolve_emoji_text, _ctx(ctx).service, text=text, emojis=emojis
    )


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from misskey_context.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
