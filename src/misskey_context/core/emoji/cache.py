"""Per-host bounded LRU cache of custom emoji URLs."""

import threading
from collections import OrderedDict

from loguru import logger

from misskey_context.api import fetch_emoji_catalog, normalize_host
from misskey_context.config import EMOJI_CACHE_CAPACITY, EMOJI_CACHE_MAX_HOSTS
from misskey_context.protocols import ApiProtocol


class EmojiCache:
    """Short-code to image URL maps, one per instance host.

    Each host holds at most ``capacity`` names and at most ``max_hosts`` hosts
    are kept; both evict the least recently used entry. The lock only guards
    the maps and is never held during a backend call, so concurrent
    ``populate`` calls may both fetch and the last writer wins per name.
    """

    def __init__(
        self,
        capacity: int = EMOJI_CACHE_CAPACITY,
        *,
        max_hosts: int = EMOJI_CACHE_MAX_HOSTS,
    ) -> None:
        if capacity < 1 or max_hosts < 1:
            msg = f"capacity and max_hosts must be positive, got {capacity}, {max_hosts}"
            raise ValueError(msg)
        self.capacity = capacity
        self.max_hosts = max_hosts
        self._hosts: OrderedDict[str, OrderedDict[str, str]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, host: str, name: str) -> str | None:
        """Look up ``name`` for ``host``, marking it recently used."""
        host = normalize_host(host)
        with self._lock:
            entries = self._hosts.get(host)
            if entries is None or name not in entries:
                return None
            entries.move_to_end(name)
            self._hosts.move_to_end(host)
            return entries[name]

    def put(self, host: str, name: str, url: str) -> None:
        host = normalize_host(host)
        with self._lock:
            self._put_locked(host, name, url)

    def _put_locked(self, host: str, name: str, url: str) -> None:
        entries = self._hosts.get(host)
        if entries is None:
            entries = self._hosts[host] = OrderedDict()
            while len(self._hosts) > self.max_hosts:
                evicted, _ = self._hosts.popitem(last=False)
                logger.debug("Emoji cache: evicted host {}", evicted)
        self._hosts.move_to_end(host)
        entries[name] = url
        entries.move_to_end(name)
        while len(entries) > self.capacity:
            entries.popitem(last=False)

    def size(self, host: str) -> int:
        with self._lock:
            return len(self._hosts.get(normalize_host(host), ()))

    def is_populated(self, host: str) -> bool:
        return self.size(host) > 0

    def hosts(self) -> list[str]:
        with self._lock:
            return list(self._hosts)

    def populate(self, api: ApiProtocol) -> bool:
        """Load the emoji catalog of ``api.host`` once.

        Does nothing while the host already has entries; call ``reset`` first
        to force a reload. Names already present are overwritten.

        Returns:
            True if the catalog was fetched, False if the host was already cached.

        Raises:
            BackendError: If the catalog request fails.
            ValidationError: If the catalog has an unexpected shape.
        """
        host = normalize_host(api.host)
        if self.is_populated(host):
            return False

        catalog = fetch_emoji_catalog(api)
        with self._lock:
            for entry in catalog:
                self._put_locked(host, entry.name, entry.url)
        logger.info("Emoji cache: loaded {} emojis for {}", len(catalog), host)
        return True

    def reset(self, host: str | None = None) -> None:
        """Forget one host's entries, or every host's when ``host`` is None."""
        with self._lock:
            if host is None:
                self._hosts.clear()
            else:
                self._hosts.pop(normalize_host(host), None)
