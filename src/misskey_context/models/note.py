"""Domain models for notes, threads and timeline windows."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class Scope(StrEnum):
    """Which public timeline a context window is taken from."""

    GLOBAL = "global"
    LOCAL = "local"


def _iso(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Author:
    """The user who posted a note."""

    id: str
    username: str
    name: str | None = None
    host: str | None = None
    avatar_url: str | None = None

    @property
    def handle(self) -> str:
        return f"@{self.username}@{self.host}" if self.host else f"@{self.username}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "host": self.host,
            "avatarUrl": self.avatar_url,
        }


@dataclass(frozen=True)
class Note:
    """A single post.

    Two notes with the same ``id`` are the same note; ``created_at`` is the
    only ordering key.
    """

    id: str
    created_at: datetime
    user: Author
    text: str | None = None
    cw: str | None = None
    reply_id: str | None = None
    files: tuple[str, ...] = ()
    reactions: dict[str, int] = field(default_factory=dict, compare=False)
    emojis: dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def is_thread_root(self) -> bool:
        return self.reply_id is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": _iso(self.created_at),
            "text": self.text,
            "cw": self.cw,
            "replyId": self.reply_id,
            "user": self.user.to_dict(),
            "files": [{"thumbnailUrl": url} for url in self.files],
            "reactions": dict(self.reactions),
            "emojis": dict(self.emojis),
        }


@dataclass(frozen=True)
class Thread:
    """A note with its ancestor chain and reply tree.

    ``ancestors`` is oldest first and ends just before ``root``;
    ``descendants`` is newest first.
    """

    root: Note
    ancestors: tuple[Note, ...] = ()
    descendants: tuple[Note, ...] = ()

    def __len__(self) -> int:
        return len(self.ancestors) + 1 + len(self.descendants)

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root.to_dict(),
            "ancestors": [n.to_dict() for n in self.ancestors],
            "descendants": [n.to_dict() for n in self.descendants],
        }


@dataclass(frozen=True)
class TimelineWindow:
    """Notes around an anchor, newest first, without duplicate ids."""

    anchor_id: str
    scope: Scope
    notes: tuple[Note, ...] = ()

    def __len__(self) -> int:
        return len(self.notes)

    def __iter__(self) -> Iterator[Note]:
        return iter(self.notes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "anchorId": self.anchor_id,
            "scope": str(self.scope),
            "notes": [n.to_dict() for n in self.notes],
        }


@dataclass(frozen=True)
class EmojiEntry:
    """One custom emoji from an instance's catalog."""

    name: str
    url: str
    category: str | None = None
    aliases: tuple[str, ...] = ()
