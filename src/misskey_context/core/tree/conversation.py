"""Conversation reconstruction: ancestors and replies around a root note."""

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from loguru import logger

from misskey_context.api import fetch_antenna_notes, fetch_children, fetch_conversation, fetch_note
from misskey_context.config import DEFAULT_CONVERSATION_LIMIT, DEFAULT_FEED_LIMIT, FEED_CONCURRENCY
from misskey_context.core.concurrency import run_bounded
from misskey_context.models.note import Note, Thread
from misskey_context.protocols import ApiProtocol


def _created(note: Note) -> datetime:
    return note.created_at


def reconstruct_thread(root: Note, listing: Iterable[Note]) -> Thread:
    """Split a flat conversation listing into ancestors and descendants of ``root``.

    Notes are classified by timestamp rather than by following ``reply_id``,
    so notes whose parent is missing from the listing are still kept.
    Entries repeating ``root.id`` or an earlier entry's id are dropped.

    A note posted at exactly the root's timestamp is an ancestor only if it
    is the root's parent; otherwise it is a descendant.

    Returns:
        Thread with ancestors oldest first and descendants newest first.
        Equal timestamps keep the listing order.
    """
    seen = {root.id}
    ancestors: list[Note] = []
    descendants: list[Note] = []

    for note in listing:
        if note.id in seen:
            continue
        seen.add(note.id)
        if note.created_at < root.created_at or (
            note.created_at == root.created_at and note.id == root.reply_id
        ):
            ancestors.append(note)
        else:
            descendants.append(note)

    return Thread(
        root=root,
        ancestors=tuple(sorted(ancestors, key=_created)),
        descendants=tuple(sorted(descendants, key=_created, reverse=True)),
    )


def reply_chain(thread: Thread) -> tuple[Note, ...]:
    """Walk ``reply_id`` links up from the root through notes in the thread.

    Returns the chain oldest first. When timestamps and reply links agree this
    equals ``thread.ancestors``; a skewed clock on one of the posts makes them
    differ.
    """
    by_id = {n.id: n for n in (*thread.ancestors, *thread.descendants)}
    chain: list[Note] = []
    parent_id = thread.root.reply_id
    while parent_id is not None and parent_id in by_id:
        parent = by_id.pop(parent_id)
        chain.append(parent)
        parent_id = parent.reply_id
    return tuple(reversed(chain))


def _log_chain_mismatch(thread: Thread) -> None:
    chain = reply_chain(thread)
    if [n.id for n in chain] != [n.id for n in thread.ancestors]:
        logger.debug(
            "Thread {}: timestamp ancestors {} differ from reply chain {}",
            thread.root.id,
            [n.id for n in thread.ancestors],
            [n.id for n in chain],
        )


def _fetch_listing(
    api: ApiProtocol, note_id: str, *, include_children: bool, limit: int
) -> list[Note]:
    listing = fetch_conversation(api, note_id, limit=limit)
    if include_children:
        listing.extend(fetch_children(api, note_id, limit=limit))
    return listing


def build_thread(
    api: ApiProtocol,
    root: Note,
    *,
    include_children: bool = False,
    limit: int = DEFAULT_CONVERSATION_LIMIT,
) -> Thread:
    """Build the thread around an already fetched root note.

    The listings are fetched one after the other, so a caller fanning this
    out over many roots controls the number of requests in flight.
    """
    listing = _fetch_listing(api, root.id, include_children=include_children, limit=limit)
    thread = reconstruct_thread(root, listing)
    _log_chain_mismatch(thread)
    return thread


def get_conversation_thread(
    api: ApiProtocol,
    note_id: str,
    *,
    include_children: bool = False,
    limit: int = DEFAULT_CONVERSATION_LIMIT,
) -> Thread:
    """Fetch a note and its conversation and return the reconstructed thread.

    The root note and the conversation listing are fetched concurrently.
    With ``include_children`` the direct replies listing is fetched as well and
    merged after the conversation listing.

    Raises:
        NotFoundError: If the root note does not exist or is not visible.
        BackendError: If any other fetch fails. No partial thread is returned.
        ValidationError: If a response does not have the expected shape.
    """
    calls: list[Callable[[], Any]] = [
        lambda: fetch_note(api, note_id),
        lambda: fetch_conversation(api, note_id, limit=limit),
    ]
    if include_children:
        calls.append(lambda: fetch_children(api, note_id, limit=limit))

    # Root first, so a missing note surfaces as NotFoundError.
    root, *listings = run_bounded(lambda call: call(), calls, max_workers=len(calls))
    listing = [note for part in listings for note in part]

    thread = reconstruct_thread(root, listing)
    _log_chain_mismatch(thread)
    logger.debug(
        "Thread {}: {} ancestors, {} descendants",
        note_id,
        len(thread.ancestors),
        len(thread.descendants),
    )
    return thread


def get_feed_threads(
    api: ApiProtocol,
    antenna_id: str,
    *,
    limit: int = DEFAULT_FEED_LIMIT,
    include_children: bool = False,
) -> list[Thread]:
    """Fetch an antenna feed and build a thread around each of its notes.

    Conversation fetches run with at most ``FEED_CONCURRENCY`` in flight.
    Threads come back in feed order; any failure aborts the whole call.
    """
    feed = fetch_antenna_notes(api, antenna_id, limit=limit)
    logger.info("Antenna {}: building threads for {} notes", antenna_id, len(feed))
    return run_bounded(
        lambda note: build_thread(api, note, include_children=include_children),
        feed,
        max_workers=FEED_CONCURRENCY,
    )
