"""One backend connection plus one emoji cache, behind the read operations."""

from collections.abc import Mapping
from dataclasses import dataclass, field

from misskey_context.config import DEFAULT_FEED_LIMIT, DEFAULT_WINDOW
from misskey_context.core.emoji.cache import EmojiCache
from misskey_context.core.emoji.resolver import prime_emoji_cache, resolve_emoji_text
from misskey_context.core.timeline.context import get_context_timeline
from misskey_context.core.tree.conversation import get_conversation_thread, get_feed_threads
from misskey_context.models.note import Note, Scope, Thread, TimelineWindow
from misskey_context.protocols import ApiProtocol


@dataclass
class ContextService:
    """Read operations bound to one host and credential.

    The cache may be shared between services for different hosts; entries
    are kept per host.
    """

    api: ApiProtocol
    cache: EmojiCache = field(default_factory=EmojiCache)

    @property
    def host(self) -> str:
        return self.api.host

    def conversation_thread(self, note_id: str, *, include_children: bool = False) -> Thread:
        return get_conversation_thread(self.api, note_id, include_children=include_children)

    def context_timeline(
        self,
        anchor_note_id: str,
        scope: Scope | str = Scope.GLOBAL,
        *,
        window: int = DEFAULT_WINDOW,
    ) -> TimelineWindow:
        return get_context_timeline(self.api, anchor_note_id, scope, window=window)

    def feed_threads(self, antenna_id: str, *, limit: int = DEFAULT_FEED_LIMIT) -> list[Thread]:
        return get_feed_threads(self.api, antenna_id, limit=limit)

    def prime_emoji_cache(self) -> bool:
        return prime_emoji_cache(self.cache, self.api)

    def resolve_emoji_text(
        self, text: str | None, local_emoji_map: Mapping[str, str] | None = None
    ) -> str:
        return resolve_emoji_text(text, self.host, local_emoji_map, cache=self.cache)

    def render_note_text(self, note: Note) -> str:
        """Resolve a note's text, preferring the note's own emoji map."""
        return self.resolve_emoji_text(note.text, note.emojis)
