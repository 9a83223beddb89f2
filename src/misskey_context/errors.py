"""Exceptions raised while talking to the backend or shaping its responses."""


class MisskeyContextError(Exception):
    """Base class for all misskey-context failures."""


class BackendError(MisskeyContextError):
    """A backend call failed at the transport or HTTP level.

    Attributes:
        status_code: HTTP status, or None when no response was received.
        message: Message from the backend's error body, else the status text.
        retry_after_seconds: Value of the Retry-After header, when supplied.
        code: Backend error code (e.g. ``NO_SUCH_NOTE``), when supplied.
        endpoint: The API endpoint that was called.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after_seconds: int | None = None,
        code: str | None = None,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retry_after_seconds = retry_after_seconds
        self.code = code
        self.endpoint = endpoint

    def __str__(self) -> str:
        where = f" ({self.endpoint})" if self.endpoint else ""
        status = f"HTTP {self.status_code}: " if self.status_code is not None else ""
        return f"{status}{self.message}{where}"


class NotFoundError(BackendError):
    """The requested root or anchor note is absent, deleted or not visible."""

    def __init__(self, note_id: str, *, cause: BackendError | None = None) -> None:
        super().__init__(
            f"Note {note_id!r} not found",
            status_code=cause.status_code if cause else 404,
            code=cause.code if cause else None,
            endpoint=cause.endpoint if cause else "notes/show",
        )
        self.note_id = note_id


class ValidationError(MisskeyContextError):
    """A backend response does not have the expected shape."""
