"""Context timeline: the public timeline slice around an anchor note."""

from collections.abc import Iterable

from loguru import logger

from misskey_context.api import fetch_note, fetch_timeline
from misskey_context.config import DEFAULT_WINDOW, MAX_WINDOW, TIMELINE_CONCURRENCY
from misskey_context.core.concurrency import run_bounded
from misskey_context.models.note import Note, Scope, TimelineWindow
from misskey_context.protocols import ApiProtocol


def merge_timeline_window(*groups: Iterable[Note]) -> tuple[Note, ...]:
    """Merge note groups into one newest-first sequence without duplicate ids.

    The first occurrence of an id (in argument order) is kept, and notes with
    equal timestamps keep that order. Merging an already merged window with
    itself returns the same window.
    """
    seen: set[str] = set()
    merged: list[Note] = []
    for group in groups:
        for note in group:
            if note.id not in seen:
                seen.add(note.id)
                merged.append(note)
    merged.sort(key=lambda n: n.created_at, reverse=True)
    return tuple(merged)


def get_context_timeline(
    api: ApiProtocol,
    anchor_note_id: str,
    scope: Scope | str = Scope.GLOBAL,
    *,
    window: int = DEFAULT_WINDOW,
) -> TimelineWindow:
    """Fetch an anchor note with up to ``window`` older and newer notes around it.

    The older and newer slices are fetched concurrently after the anchor.

    Raises:
        ValueError: If ``scope`` or ``window`` is out of range.
        NotFoundError: If the anchor note does not exist.
        BackendError: If any fetch fails. No partial window is returned.
    """
    scope = Scope(scope)
    if not 1 <= window <= MAX_WINDOW:
        msg = f"window must be between 1 and {MAX_WINDOW}, got {window}"
        raise ValueError(msg)

    anchor = fetch_note(api, anchor_note_id)
    older, newer = run_bounded(
        lambda side: fetch_timeline(api, scope, limit=window, **side),
        [{"until_id": anchor.id}, {"since_id": anchor.id}],
        max_workers=TIMELINE_CONCURRENCY,
    )

    notes = merge_timeline_window(older, [anchor], newer)
    logger.debug(
        "Context {} ({}): {} older, {} newer, {} merged",
        anchor.id,
        scope,
        len(older),
        len(newer),
        len(notes),
    )
    return TimelineWindow(anchor_id=anchor.id, scope=scope, notes=notes)
