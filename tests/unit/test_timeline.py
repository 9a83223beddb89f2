"""Tests for the context timeline assembler."""

from typing import Any

import pytest

from misskey_context.core.importer.note_reader import parse_notes
from misskey_context.core.timeline.context import get_context_timeline, merge_timeline_window
from misskey_context.errors import BackendError, NotFoundError
from misskey_context.models.note import Scope
from tests.unit.fakes import FakeApi, raw_note


def _timeline_api(
    fake_api: FakeApi,
    *,
    older: list[dict[str, Any]],
    newer: list[dict[str, Any]],
    endpoint: str = "notes/global-timeline",
) -> FakeApi:
    def answer(params: dict[str, Any]) -> list[dict[str, Any]]:
        return older if "untilId" in params else newer

    fake_api.add_response(endpoint, answer)
    return fake_api


def test_merge_dedupes_and_sorts_newest_first() -> None:
    older = parse_notes([raw_note("X", 5)])
    anchor = parse_notes([raw_note("Y", 10)])
    newer = parse_notes([raw_note("Y", 10), raw_note("Z", 15)])

    merged = merge_timeline_window(older, anchor, newer)

    assert [n.id for n in merged] == ["Z", "Y", "X"]


def test_merge_keeps_first_occurrence() -> None:
    first = parse_notes([raw_note("Y", 10, text="from older")])
    second = parse_notes([raw_note("Y", 10, text="from newer")])

    (merged,) = merge_timeline_window(first, second)

    assert merged.text == "from older"


def test_merge_is_idempotent() -> None:
    notes = parse_notes([raw_note(f"n{i}", (i * 7) % 13) for i in range(13)])
    window = merge_timeline_window(notes)

    assert merge_timeline_window(window, window) == window


def test_merge_is_stable_for_equal_timestamps() -> None:
    notes = parse_notes([raw_note("a", 5), raw_note("b", 5), raw_note("c", 9)])

    assert [n.id for n in merge_timeline_window(notes)] == ["c", "a", "b"]


def test_get_context_timeline_merges_windows_around_anchor(fake_api: FakeApi) -> None:
    fake_api.add_response("notes/show", raw_note("Y", 10))
    _timeline_api(
        fake_api,
        older=[raw_note("X", 5)],
        newer=[raw_note("Y", 10), raw_note("Z", 15)],
    )

    window = get_context_timeline(fake_api, "Y", "global")

    assert [n.id for n in window] == ["Z", "Y", "X"]
    assert window.anchor_id == "Y"
    assert window.scope is Scope.GLOBAL
    ids = [n.id for n in window]
    assert len(ids) == len(set(ids))


def test_get_context_timeline_requests_both_sides_with_limit(fake_api: FakeApi) -> None:
    fake_api.add_response("notes/show", raw_note("Y", 10))
    _timeline_api(fake_api, older=[], newer=[], endpoint="notes/local-timeline")

    get_context_timeline(fake_api, "Y", Scope.LOCAL, window=7)

    calls = fake_api.calls_to("notes/local-timeline")
    assert sorted(calls, key=str) == sorted(
        [{"untilId": "Y", "limit": 7}, {"sinceId": "Y", "limit": 7}], key=str
    )
    assert fake_api.calls_to("notes/global-timeline") == []


def test_get_context_timeline_fetches_sides_concurrently(fake_api: FakeApi) -> None:
    fake_api.add_response("notes/show", raw_note("Y", 10))
    _timeline_api(fake_api, older=[], newer=[])
    fake_api.delay = 0.05

    get_context_timeline(fake_api, "Y")

    assert fake_api.max_in_flight == 2


def test_get_context_timeline_fails_when_one_side_fails(fake_api: FakeApi) -> None:
    fake_api.add_response("notes/show", raw_note("Y", 10))

    def answer(params: dict[str, Any]) -> list[dict[str, Any]]:
        if "sinceId" in params:
            raise BackendError("rate limited", status_code=429, retry_after_seconds=3)
        return [raw_note("X", 5)]

    fake_api.add_response("notes/global-timeline", answer)

    with pytest.raises(BackendError) as exc_info:
        get_context_timeline(fake_api, "Y")

    assert exc_info.value.retry_after_seconds == 3


def test_get_context_timeline_raises_not_found_for_missing_anchor(fake_api: FakeApi) -> None:
    fake_api.add_error("notes/show", 404)

    with pytest.raises(NotFoundError):
        get_context_timeline(fake_api, "gone")

    assert fake_api.calls_to("notes/global-timeline") == []


@pytest.mark.parametrize("window", [0, 101])
def test_get_context_timeline_rejects_bad_window(fake_api: FakeApi, window: int) -> None:
    with pytest.raises(ValueError, match="window"):
        get_context_timeline(fake_api, "Y", window=window)


def test_get_context_timeline_rejects_unknown_scope(fake_api: FakeApi) -> None:
    with pytest.raises(ValueError):
        get_context_timeline(fake_api, "Y", "home")
