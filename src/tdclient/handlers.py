"""Ready-made response and error-response handlers.

A response handler is any ``Callable[[Exchange], T]`` and runs only for 2xx
responses.  An error-response handler is any
``Callable[[Exchange], TDServiceError]`` and runs only for fatal error
responses; if it raises, the executor falls back to a generic error.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any, TypeVar

from tdclient.errors import TDServiceError
from tdclient.transport import Exchange

T = TypeVar("T")


def json_handler(exchange: Exchange) -> Any:
    """Decode the body as JSON."""
    return exchange.json()


def text_handler(exchange: Exchange) -> str:
    return exchange.text


def stream_handler(consume: Callable[[Iterator[bytes]], T]) -> Callable[[Exchange], T]:
    """Handler that passes the raw body chunks to *consume* and returns its result."""

    def handle(exchange: Exchange) -> T:
        return consume(exchange.iter_bytes())

    return handle


def default_error_handler(exchange: Exchange) -> TDServiceError:
    """Build an error from a ``{"error": ..., "message": ...}`` JSON body.

    ``message`` (or ``text``) becomes the message and ``error`` the error
    code.  Raises ValueError when the body is empty or not a JSON object.
    """
    body = exchange.read()
    if not body.strip():
        raise ValueError("empty error response body")
    data = exchange.json()
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    code = str(data.get("error") or "")
    message = str(data.get("message") or data.get("text") or code or "")
    if not message:
        raise ValueError("error response carries no message")
    return TDServiceError(message, error_code=code)
