"""Configuration constants for misskey-context."""

import os
from pathlib import Path

# API token location. First file found is used when MISSKEY_TOKEN is unset.
API_TOKEN_FILES: list[Path] = [
    Path("~/.config/misskey-context-token.txt").expanduser(),
    Path("~/.config/secret/misskey-context-token.txt").expanduser(),
    Path(f"/run/user/{os.getuid()}/misskey-token"),
]

HOST_ENV = "MISSKEY_HOST"
TOKEN_ENV = "MISSKEY_TOKEN"
ANTENNA_ENV = "MISSKEY_ANTENNA_ID"

# Seconds before a backend request is abandoned by the transport.
REQUEST_TIMEOUT: float = 30.0

# Older/newer notes fetched on each side of an anchor.
DEFAULT_WINDOW: int = 10
# The backend rejects timeline limits above this.
MAX_WINDOW: int = 100

DEFAULT_FEED_LIMIT: int = 30
DEFAULT_CONVERSATION_LIMIT: int = 30

FEED_CONCURRENCY: int = 5
TIMELINE_CONCURRENCY: int = 2

# Largest catalogs seen are around 1000 entries.
EMOJI_CACHE_CAPACITY: int = 2000
EMOJI_CACHE_MAX_HOSTS: int = 8

TIMELINE_ENDPOINTS: dict[str, str] = {
    "global": "notes/global-timeline",
    "local": "notes/local-timeline",
}


def resolve_host() -> str:
    """Return the backend host from the environment."""
    host = os.environ.get(HOST_ENV, "").strip()
    if not host:
        msg = f"Backend host not configured, set {HOST_ENV}"
        raise RuntimeError(msg)
    return host


def resolve_token() -> str:
    """Return the API token from the environment or the first token file found."""
    token = os.environ.get(TOKEN_ENV, "").strip()
    if token:
        return token
    for token_path in API_TOKEN_FILES:
        try:
            return token_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            pass
    msg = f"Cannot find misskey token, set {TOKEN_ENV} or create one of {API_TOKEN_FILES!r}"
    raise RuntimeError(msg)


def resolve_antenna_id() -> str | None:
    return os.environ.get(ANTENNA_ENV, "").strip() or None
