"""Replace ``:name:`` and ``:name@host:`` short-codes with emoji images."""

import html
import re
from collections.abc import Mapping

from loguru import logger

from misskey_context.api import normalize_host
from misskey_context.core.emoji.cache import EmojiCache
from misskey_context.errors import MisskeyContextError
from misskey_context.protocols import ApiProtocol

EMOJI_PATTERN = re.compile(r":([A-Za-z0-9_-]+)(?:@([A-Za-z0-9_.-]+))?:")


def emoji_markup(name: str, url: str) -> str:
    return (
        f'<img src="{html.escape(url, quote=True)}" alt=":{html.escape(name)}:" class="emoji" />'
    )


def resolve_emoji_text(
    text: str | None,
    instance_host: str,
    local_emoji_map: Mapping[str, str] | None = None,
    *,
    cache: EmojiCache | None = None,
) -> str:
    """Turn note text into markup with custom emoji images.

    A note's own emoji map wins (``name@host`` key first, then the bare name),
    then the cache for the token's host (``instance_host`` when the token
    has no host or uses ``@.``). Anything unresolved stays as typed, and text
    outside tokens is returned verbatim.

    Populate the cache before calling this; otherwise known emoji simply come
    back as literal short-codes.
    """
    if not text:
        return ""

    viewing_host = normalize_host(instance_host)

    def _replace(match: re.Match[str]) -> str:
        name, host = match.group(1), match.group(2)
        url: str | None = None
        if local_emoji_map:
            if host:
                url = local_emoji_map.get(f"{name}@{host}")
            if url is None:
                url = local_emoji_map.get(name)
        if url is None and cache is not None:
            lookup_host = viewing_host if host in (None, ".") else normalize_host(host)
            url = cache.get(lookup_host, name)
        if url is None:
            return match.group(0)
        return emoji_markup(name, url)

    return EMOJI_PATTERN.sub(_replace, text)


def prime_emoji_cache(cache: EmojiCache, api: ApiProtocol) -> bool:
    """Make sure the cache holds the catalog for ``api.host``.

    Emoji are cosmetic: a failed catalog fetch is logged and the cache stays
    empty for that host.

    Returns:
        True if the host's catalog is available in the cache afterwards.
    """
    try:
        cache.populate(api)
    except MisskeyContextError:
        logger.opt(exception=True).warning(
            "Emoji catalog for {} unavailable, showing short-codes", api.host
        )
        return False
    return cache.is_populated(api.host)
