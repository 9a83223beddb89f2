"""Tests for conversation reconstruction."""

from datetime import UTC, datetime, timedelta

import pytest

from misskey_context.core.importer.note_reader import parse_note, parse_notes
from misskey_context.core.tree.conversation import (
    build_thread,
    get_conversation_thread,
    get_feed_threads,
    reconstruct_thread,
    reply_chain,
)
from misskey_context.errors import BackendError, NotFoundError, ValidationError
from misskey_context.models.note import Author, Note
from tests.unit.fakes import CONVERSATION_ABC, FakeApi, raw_note

_EPOCH = datetime(2024, 1, 1, tzinfo=UTC)
_AUTHOR = Author(id="u", username="u")


def _note(note_id: str, seconds: int, reply_id: str | None = None) -> Note:
    return Note(
        id=note_id,
        created_at=_EPOCH + timedelta(seconds=seconds),
        user=_AUTHOR,
        reply_id=reply_id,
    )


def _ids(notes: tuple[Note, ...] | list[Note]) -> list[str]:
    return [n.id for n in notes]


def test_reconstruct_splits_chain_around_root() -> None:
    listing = parse_notes(CONVERSATION_ABC)

    thread = reconstruct_thread(listing[1], listing)

    assert thread.root.id == "B"
    assert _ids(thread.ancestors) == ["A"]
    assert _ids(thread.descendants) == ["C"]


def test_reconstruct_orders_ancestors_oldest_first_and_descendants_newest_first() -> None:
    root = _note("r", 50, reply_id="p2")
    listing = [
        _note("d1", 60, "r"),
        _note("p1", 10),
        _note("d3", 90, "d1"),
        _note("p2", 40, "p1"),
        _note("d2", 70, "r"),
    ]

    thread = reconstruct_thread(root, listing)

    assert _ids(thread.ancestors) == ["p1", "p2"]
    assert _ids(thread.descendants) == ["d3", "d2", "d1"]


def test_reconstruct_is_stable_for_equal_timestamps() -> None:
    root = _note("r", 50)
    listing = [_note("x", 10), _note("y", 10), _note("b", 70), _note("a", 70)]

    thread = reconstruct_thread(root, listing)

    assert _ids(thread.ancestors) == ["x", "y"]
    assert _ids(thread.descendants) == ["b", "a"]


def test_reconstruct_drops_root_and_duplicates() -> None:
    root = _note("r", 50)
    listing = [_note("r", 50), _note("a", 10), _note("a", 10), _note("b", 60), _note("b", 60)]

    thread = reconstruct_thread(root, listing)

    all_ids = _ids(thread.ancestors) + _ids(thread.descendants)
    assert "r" not in all_ids
    assert sorted(all_ids) == ["a", "b"]


def test_reconstruct_keeps_notes_with_missing_parents() -> None:
    root = _note("r", 50)
    orphan = _note("o", 80, reply_id="not-in-listing")

    thread = reconstruct_thread(root, [orphan])

    assert _ids(thread.descendants) == ["o"]


def test_reconstruct_places_same_timestamp_parent_in_ancestors() -> None:
    root = _note("r", 50, reply_id="p")
    thread = reconstruct_thread(root, [_note("p", 50), _note("s", 50, "r")])

    assert _ids(thread.ancestors) == ["p"]
    assert _ids(thread.descendants) == ["s"]


def test_reconstruct_covers_the_whole_listing() -> None:
    listing = [_note(f"n{i}", (i * 37) % 101, None) for i in range(40)]
    root = listing[17]

    thread = reconstruct_thread(root, listing)

    assert all(n.created_at <= root.created_at for n in thread.ancestors)
    assert all(n.created_at >= root.created_at for n in thread.descendants)
    assert {n.id for n in (*thread.ancestors, root, *thread.descendants)} == {
        n.id for n in listing
    }
    times = [n.created_at for n in thread.ancestors]
    assert times == sorted(times)
    times = [n.created_at for n in thread.descendants]
    assert times == sorted(times, reverse=True)


def test_reply_chain_follows_reply_links() -> None:
    root = _note("r", 50, reply_id="p2")
    # p2 has a skewed clock and looks newer than the root.
    listing = [_note("p1", 10), _note("p2", 60, "p1"), _note("other", 20)]

    thread = reconstruct_thread(root, listing)

    assert _ids(thread.ancestors) == ["p1", "other"]
    assert _ids(reply_chain(thread)) == ["p1", "p2"]


def test_get_conversation_thread_fetches_root_and_listing(thread_api: FakeApi) -> None:
    thread = get_conversation_thread(thread_api, "B")

    assert _ids(thread.ancestors) == ["A"]
    assert thread.root.id == "B"
    assert _ids(thread.descendants) == ["C"]
    assert thread_api.calls_to("notes/show") == [{"noteId": "B"}]
    assert thread_api.calls_to("notes/conversation") == [{"noteId": "B", "limit": 30}]


def test_get_conversation_thread_merges_children(thread_api: FakeApi) -> None:
    thread_api.add_response(
        "notes/children", [raw_note("C", 30, reply_id="B"), raw_note("D", 40, reply_id="B")]
    )

    thread = get_conversation_thread(thread_api, "B", include_children=True)

    assert _ids(thread.descendants) == ["D", "C"]


def test_get_conversation_thread_raises_not_found_for_missing_root(fake_api: FakeApi) -> None:
    fake_api.add_error("notes/show", 400, code="NO_SUCH_NOTE")
    fake_api.add_error("notes/conversation", 400, code="NO_SUCH_NOTE")

    with pytest.raises(NotFoundError):
        get_conversation_thread(fake_api, "gone")


def test_get_conversation_thread_fails_when_listing_fails(fake_api: FakeApi) -> None:
    fake_api.add_response("notes/show", raw_note("B", 20))
    fake_api.add_error("notes/conversation", 502)

    with pytest.raises(BackendError) as exc_info:
        get_conversation_thread(fake_api, "B")

    assert exc_info.value.status_code == 502


def test_get_conversation_thread_fails_on_malformed_listing(fake_api: FakeApi) -> None:
    fake_api.add_response("notes/show", raw_note("B", 20))
    fake_api.add_response("notes/conversation", [raw_note("A", 10), {"id": "broken"}])

    with pytest.raises(ValidationError, match="broken"):
        get_conversation_thread(fake_api, "B")


def test_get_conversation_thread_runs_fetches_concurrently(thread_api: FakeApi) -> None:
    thread_api.delay = 0.05

    get_conversation_thread(thread_api, "B")

    assert thread_api.max_in_flight == 2


def test_build_thread_uses_known_root(thread_api: FakeApi) -> None:
    root = parse_note(CONVERSATION_ABC[1])

    thread = build_thread(thread_api, root)

    assert _ids(thread.ancestors) == ["A"]
    assert thread_api.calls_to("notes/show") == []


def test_get_feed_threads_keeps_feed_order(fake_api: FakeApi) -> None:
    feed = [raw_note(f"f{i}", 100 - i) for i in range(8)]
    fake_api.add_response("antennas/notes", feed)
    fake_api.add_response(
        "notes/conversation",
        lambda params: [raw_note(f"{params['noteId']}-parent", 1)],
    )

    threads = get_feed_threads(fake_api, "ant1", limit=8)

    assert [t.root.id for t in threads] == [f"f{i}" for i in range(8)]
    assert all(_ids(t.ancestors) == [f"{t.root.id}-parent"] for t in threads)
    assert fake_api.calls_to("antennas/notes") == [{"antennaId": "ant1", "limit": 8}]


def test_get_feed_threads_bounds_concurrency(fake_api: FakeApi) -> None:
    fake_api.delay = 0.02
    fake_api.add_response("antennas/notes", [raw_note(f"f{i}", i) for i in range(12)])
    fake_api.add_response("notes/conversation", [])

    get_feed_threads(fake_api, "ant1", limit=12)

    assert 1 < fake_api.max_in_flight <= 5


def test_get_feed_threads_bounds_concurrency_with_children(fake_api: FakeApi) -> None:
    fake_api.delay = 0.05
    fake_api.add_response("antennas/notes", [raw_note(f"f{i}", i) for i in range(10)])
    fake_api.add_response("notes/conversation", [])
    fake_api.add_response("notes/children", [])

    threads = get_feed_threads(fake_api, "ant1", limit=10, include_children=True)

    assert len(threads) == 10
    assert len(fake_api.calls_to("notes/children")) == 10
    assert fake_api.max_in_flight <= 5


def test_get_feed_threads_fails_fast(fake_api: FakeApi) -> None:
    fake_api.add_response("antennas/notes", [raw_note("f1", 1)])
    fake_api.add_error("notes/conversation", 500)

    with pytest.raises(BackendError):
        get_feed_threads(fake_api, "ant1")
