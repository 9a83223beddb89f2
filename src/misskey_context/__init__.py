"""Conversation threads and context timelines for Misskey notes."""

from misskey_context.api import MisskeyApi
from misskey_context.core.emoji.cache import EmojiCache
from misskey_context.core.emoji.resolver import prime_emoji_cache, resolve_emoji_text
from misskey_context.core.timeline.context import get_context_timeline, merge_timeline_window
from misskey_context.core.tree.conversation import (
    get_conversation_thread,
    get_feed_threads,
    reconstruct_thread,
)
from misskey_context.errors import BackendError, NotFoundError, ValidationError
from misskey_context.models.note import Author, Note, Scope, Thread, TimelineWindow
from misskey_context.protocols import ApiProtocol
from misskey_context.service import ContextService

__all__ = [
    "ApiProtocol",
    "Author",
    "BackendError",
    "ContextService",
    "EmojiCache",
    "MisskeyApi",
    "Note",
    "NotFoundError",
    "Scope",
    "Thread",
    "TimelineWindow",
    "ValidationError",
    "get_context_timeline",
    "get_conversation_thread",
    "get_feed_threads",
    "merge_timeline_window",
    "prime_emoji_cache",
    "reconstruct_thread",
    "resolve_emoji_text",
]
