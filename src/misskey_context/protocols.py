"""Protocols for dependency injection in misskey-context."""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ApiProtocol(Protocol):
    """Protocol for backend API clients bound to one host and credential."""

    host: str

    def call(self, endpoint: str, params: dict[str, Any]) -> Any:
        """Invoke an API endpoint and return the decoded JSON response."""
        ...
