"""Request value objects.

An :class:`ApiRequest` describes one logical API call.  It is immutable:
signing and retrying never change the caller's instance, they derive copies
with :meth:`ApiRequest.with_header` / :meth:`ApiRequest.with_params` etc.
The caller's instance therefore doubles as the pristine snapshot every
retry starts from.

Request bodies live in :class:`RequestContent`, which knows whether it can
be rewound for another attempt.
"""

from __future__ import annotations

import io
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import BinaryIO

from tdclient.errors import ContentResetError

METHODS = ("GET", "POST", "PUT", "DELETE", "HEAD")
CHUNK_SIZE = 64 * 1024

# Query parameters whose values never reach a log.
SENSITIVE_PARAMS = frozenset({"password", "apikey", "api_key"})
REDACTED = "***"


def redact_params(params: Mapping[str, str]) -> dict[str, str]:
    """Copy of *params* with credential values replaced by ``***``."""
    return {k: REDACTED if k.lower() in SENSITIVE_PARAMS else v for k, v in params.items()}


class RequestContent:
    """A request body that can be replayed on retry.

    Accepts ``bytes``, a binary stream, or a file path.  Bytes and paths are
    always resettable.  A stream is resettable when it is seekable; the
    position at construction time is the mark :meth:`reset` rewinds to.

    Each call reads from its own :meth:`fork`, so one request with a bytes
    or path body can be executed from several threads at once.  A caller
    stream cannot be forked; requests carrying one must not be shared
    between concurrent calls.
    """

    def __init__(self, source: bytes | BinaryIO | Path | str):
        self._bytes: bytes | None = None
        self._path: Path | None = None
        self._stream: BinaryIO | None = None
        self._owns_stream = False
        self._mark = 0
        self.consumed = False

        if isinstance(source, (bytes, bytearray)):
            self._bytes = bytes(source)
        elif isinstance(source, (str, Path)):
            self._path = Path(source)
        else:
            self._stream = source
            if self._stream_seekable():
                self._mark = source.tell()

    def fork(self) -> RequestContent:
        """Content with its own read position over the same bytes or file.

        A caller-supplied stream is returned as is.
        """
        if self._bytes is not None:
            return RequestContent(self._bytes)
        if self._path is not None:
            return RequestContent(self._path)
        return self

    def _stream_seekable(self) -> bool:
        try:
            return bool(self._stream is not None and self._stream.seekable())
        except (AttributeError, ValueError, OSError):
            return False

    @property
    def resettable(self) -> bool:
        """True if :meth:`reset` can rewind the body for another attempt."""
        if self._bytes is not None or self._path is not None:
            return True
        return self._stream_seekable()

    @property
    def length(self) -> int | None:
        """Body size in bytes, or None when it cannot be known up front."""
        if self._bytes is not None:
            return len(self._bytes)
        if self._path is not None:
            return self._path.stat().st_size
        if self._stream_seekable():
            here = self._stream.tell()
            end = self._stream.seek(0, io.SEEK_END)
            self._stream.seek(here)
            return end - self._mark
        return None

    def _open(self) -> BinaryIO:
        if self._stream is None:
            if self._bytes is not None:
                self._stream = io.BytesIO(self._bytes)
            else:
                self._stream = open(self._path, "rb")  # noqa: SIM115
            self._owns_stream = True
        return self._stream

    def iter_chunks(self, size: int = CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the body in chunks, marking it consumed."""
        stream = self._open()
        self.consumed = True
        while True:
            chunk = stream.read(size)
            if not chunk:
                break
            yield chunk

    def reset(self) -> None:
        """Rewind to the mark so the body can be sent again.

        Raises:
            ContentResetError: The body was consumed and cannot be rewound.
        """
        if not self.consumed:
            return
        if self._stream is None:
            self.consumed = False
            return
        if not self._stream_seekable():
            raise ContentResetError()
        try:
            self._stream.seek(self._mark)
        except (OSError, ValueError) as e:
            raise ContentResetError() from e
        self.consumed = False

    def close(self) -> None:
        """Close a stream this object opened itself (never the caller's)."""
        if self._owns_stream and self._stream is not None:
            self._stream.close()
            self._stream = None
            self._owns_stream = False
            self.consumed = False

    def __repr__(self) -> str:
        if self._path is not None:
            return f"RequestContent(path={str(self._path)!r})"
        if self._bytes is not None:
            return f"RequestContent(bytes={len(self._bytes)})"
        return f"RequestContent(stream={type(self._stream).__name__})"


def _frozen(mapping: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType({str(k): str(v) for k, v in (mapping or {}).items()})


@dataclass(frozen=True)
class ApiRequest:
    """One logical API call.

    ``params`` and ``headers`` are read-only mappings.  Every ``with_*``
    method returns a new request; the ``with_params`` / ``with_headers``
    forms replace the whole mapping rather than merging into it.
    """

    method: str
    path: str
    params: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    content: RequestContent | None = None

    def __post_init__(self):
        method = self.method.upper()
        if method not in METHODS:
            raise ValueError(f"Unsupported HTTP method {self.method!r}; expected one of {METHODS}")
        object.__setattr__(self, "method", method)
        object.__setattr__(self, "params", _frozen(self.params))
        object.__setattr__(self, "headers", _frozen(self.headers))

    # --- constructors ---

    @classmethod
    def get(cls, path: str, params: Mapping[str, str] | None = None) -> ApiRequest:
        return cls("GET", path, params=params or {})

    @classmethod
    def post(cls, path: str, params: Mapping[str, str] | None = None) -> ApiRequest:
        return cls("POST", path, params=params or {})

    @classmethod
    def put(cls, path: str, body: bytes | BinaryIO | Path | str) -> ApiRequest:
        return cls("PUT", path, content=RequestContent(body))

    @classmethod
    def delete(cls, path: str) -> ApiRequest:
        return cls("DELETE", path)

    # --- copies ---

    def with_params(self, params: Mapping[str, str]) -> ApiRequest:
        return replace(self, params=params)

    def with_headers(self, headers: Mapping[str, str]) -> ApiRequest:
        return replace(self, headers=headers)

    def with_param(self, name: str, value: str) -> ApiRequest:
        return replace(self, params={**self.params, name: value})

    def with_header(self, name: str, value: str) -> ApiRequest:
        return replace(self, headers={**self.headers, name: value})

    def working_copy(self) -> ApiRequest:
        """A fresh copy sharing nothing mutable but the body."""
        return replace(self, params=dict(self.params), headers=dict(self.headers))

    def __repr__(self) -> str:
        # Header values may carry credentials.
        return (
            f"ApiRequest({self.method} {self.path}, params={redact_params(self.params)!r}, "
            f"headers={sorted(self.headers)!r}, content={self.content!r})"
        )
