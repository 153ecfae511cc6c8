"""Exception hierarchy for tdclient.

Every failure a caller sees is one of two kinds:

- :class:`TDClientError`: the call could not be completed because of local
  or transport conditions (bad arguments, unreachable endpoint, cancelled).
- :class:`TDServiceError`: the remote service explicitly rejected the call.

Messages say what happened and, where it helps, what to do next.
"""

from __future__ import annotations


class TDError(Exception):
    """Base class for all tdclient errors."""


class TDClientError(TDError):
    """The call could not be completed on the client side."""

    def __init__(self, message: str, *, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class PreconditionViolation(TDClientError):
    """A required argument was missing. Always a bug in the caller."""

    def __init__(self, names: list[str]):
        joined = ", ".join(names)
        super().__init__(f"Internal error: required argument(s) missing: {joined}.")
        self.names = names


class ConstructionError(TDClientError):
    """The HTTP client or an exchange could not be built."""

    def __init__(self, detail: str, hint: str = ""):
        msg = f"Cannot build HTTP request: {detail}."
        if hint:
            msg += f" {hint}"
        super().__init__(msg)
        self.detail = detail


class TransportError(TDClientError):
    """Network I/O kept failing until the retry bound was reached."""

    def __init__(self, detail: str, *, attempts: int = 0):
        super().__init__(
            f"Unable to execute HTTP request: {detail} "
            f"(gave up after {attempts} attempt(s)). "
            f"Check network connectivity and the configured endpoint.",
            attempts=attempts,
        )
        self.detail = detail


class ContentResetError(TDClientError):
    """A retry needed to rewind a request body that cannot be rewound.

    The failure that triggered the retry is kept as ``__cause__``.
    """

    def __init__(self, *, attempts: int = 0):
        super().__init__(
            "Encountered an exception and couldn't reset the request body to retry. "
            "Pass a seekable stream, bytes, or a file path to make the request retryable.",
            attempts=attempts,
        )


class RequestInterrupted(TDClientError):
    """The call was cancelled while waiting for a response or backing off."""

    def __init__(self, phase: str, *, attempts: int = 0):
        super().__init__(f"Request interrupted during {phase}.", attempts=attempts)
        self.phase = phase


class UnmarshalError(TDClientError):
    """The response handler could not turn a successful response into a result."""

    def __init__(self, detail: str, *, attempts: int = 0):
        super().__init__(f"Unable to unmarshal response ({detail})", attempts=attempts)
        self.detail = detail


class TDServiceError(TDError):
    """The service answered with an error status.

    ``status_code`` is the HTTP status, ``error_code`` the service's error
    code or the reason phrase, ``attempts`` the number of sends made.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 0,
        error_code: str = "",
        attempts: int = 0,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.attempts = attempts

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code:
            parts.append(f"(status {self.status_code}")
            if self.error_code:
                parts[-1] += f", {self.error_code}"
            parts[-1] += ")"
        return " ".join(parts)


class ConfigError(TDError):
    """Client configuration is missing or invalid."""

    def __init__(self, detail: str, hint: str = ""):
        msg = f"Configuration error: {detail}."
        if hint:
            msg += f" {hint}"
        super().__init__(msg)
        self.detail = detail
        self.hint = hint
