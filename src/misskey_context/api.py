"""Misskey API client and endpoint helpers."""

import json
import re
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import requests
from loguru import logger

from misskey_context.config import (
    DEFAULT_CONVERSATION_LIMIT,
    REQUEST_TIMEOUT,
    TIMELINE_ENDPOINTS,
    resolve_host,
    resolve_token,
)
from misskey_context.core.importer.note_reader import parse_emoji_catalog, parse_note, parse_notes
from misskey_context.errors import BackendError, NotFoundError, ValidationError
from misskey_context.models.note import EmojiEntry, Note, Scope
from misskey_context.protocols import ApiProtocol

# Backend error codes meaning "this note does not exist for you".
NOT_FOUND_CODES = frozenset({"NO_SUCH_NOTE"})
NOT_FOUND_STATUSES = frozenset({403, 404})


def normalize_host(host: str) -> str:
    """Strip scheme, path and trailing slash: ``https://a.b/x/`` -> ``a.b``."""
    host = re.sub(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", "", host.strip())
    return host.split("/", 1)[0].lower()


def parse_retry_after(value: str | None) -> int | None:
    """Parse a Retry-After header given as delta-seconds or an HTTP-date."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0, int((when - datetime.now(UTC)).total_seconds()))


def _error_from_response(endpoint: str, r: requests.Response) -> BackendError:
    message = r.reason or f"HTTP {r.status_code}"
    code: str | None = None
    try:
        body = r.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        if isinstance(error.get("message"), str) and error["message"]:
            message = error["message"]
        if isinstance(error.get("code"), str):
            code = error["code"]
    return BackendError(
        message,
        status_code=r.status_code,
        retry_after_seconds=parse_retry_after(r.headers.get("Retry-After")),
        code=code,
        endpoint=endpoint,
    )


class MisskeyApi:
    """Misskey API bound to one instance host and one access token.

    Every call is a POST with a JSON body. The token is sent both as a
    bearer header and as the ``i`` body field; the backend accepts either.
    """

    def __init__(
        self,
        host: str | None = None,
        token: str | None = None,
        *,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.host = normalize_host(host or resolve_host())
        self.api_token = token or resolve_token()
        self.timeout = timeout
        self.sess = requests.Session()
        logger.debug("API ready: host {!r}, timeout {}s", self.host, self.timeout)

    @property
    def base_url(self) -> str:
        return f"https://{self.host}/api"

    def call(self, endpoint: str, params: dict[str, Any]) -> Any:
        """Invoke a backend endpoint, return the decoded JSON.

        Raises:
            BackendError: On a transport failure or a non-2xx status.
            ValidationError: If a successful response is not JSON.
        """
        logger.debug("Making request: {!r} {}", endpoint, repr(params)[:64])
        try:
            r = self.sess.post(
                f"{self.base_url}/{endpoint}",
                data=json.dumps({"i": self.api_token, **params}),
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_token}",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise BackendError(str(e) or type(e).__name__, endpoint=endpoint) from e

        if not r.ok:
            raise _error_from_response(endpoint, r)
        if r.status_code == 204 or not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            msg = f"{endpoint}: response is not JSON"
            raise ValidationError(msg) from e


def fetch_note(api: ApiProtocol, note_id: str) -> Note:
    """Fetch one note; a missing or hidden note raises NotFoundError."""
    try:
        raw = api.call("notes/show", {"noteId": note_id})
    except BackendError as e:
        if e.status_code in NOT_FOUND_STATUSES or e.code in NOT_FOUND_CODES:
            raise NotFoundError(note_id, cause=e) from e
        raise
    if raw is None:
        raise NotFoundError(note_id)
    return parse_note(raw)


def fetch_conversation(
    api: ApiProtocol, note_id: str, *, limit: int = DEFAULT_CONVERSATION_LIMIT
) -> list[Note]:
    return parse_notes(api.call("notes/conversation", {"noteId": note_id, "limit": limit}))


def fetch_children(
    api: ApiProtocol, note_id: str, *, limit: int = DEFAULT_CONVERSATION_LIMIT
) -> list[Note]:
    return parse_notes(api.call("notes/children", {"noteId": note_id, "limit": limit}))


def fetch_antenna_notes(api: ApiProtocol, antenna_id: str, *, limit: int) -> list[Note]:
    return parse_notes(api.call("antennas/notes", {"antennaId": antenna_id, "limit": limit}))


def fetch_timeline(
    api: ApiProtocol,
    scope: Scope,
    *,
    limit: int,
    until_id: str | None = None,
    since_id: str | None = None,
) -> list[Note]:
    """Fetch a public timeline slice before ``until_id`` or after ``since_id``."""
    if (until_id is None) == (since_id is None):
        msg = "exactly one of until_id and since_id is required"
        raise ValueError(msg)
    params: dict[str, Any] = {"limit": limit}
    if until_id is not None:
        params["untilId"] = until_id
    else:
        params["sinceId"] = since_id
    return parse_notes(api.call(TIMELINE_ENDPOINTS[Scope(scope)], params))


def fetch_emoji_catalog(api: ApiProtocol) -> list[EmojiEntry]:
    return parse_emoji_catalog(api.call("emojis", {}))
