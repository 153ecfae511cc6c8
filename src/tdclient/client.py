"""Thin API facade over :class:`TDHttpClient`.

Issues raw ``/v3`` calls and returns decoded JSON.  It deliberately knows
nothing about what databases, tables or jobs mean; callers interpret the
returned dicts.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import Any, BinaryIO, TypeVar
from urllib.parse import quote, urlencode

from tdclient.cancellation import cancellable
from tdclient.classify import ErrorResponseHandler
from tdclient.config import ClientConfig
from tdclient.handlers import default_error_handler, json_handler, stream_handler, text_handler
from tdclient.http import ResponseHandler, TDHttpClient
from tdclient.request import ApiRequest, RequestContent
from tdclient.signing import ExecutionContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_url(prefix: str, *segments: str) -> str:
    """Append percent-encoded path segments to *prefix*.

    >>> build_url("/v3/table/list", "my db")
    '/v3/table/list/my%20db'
    """
    parts = [prefix.rstrip("/")]
    parts.extend(quote(str(s), safe="") for s in segments)
    return "/".join(parts)


class TDClient:
    """API client.  Shares one :class:`TDHttpClient` with copies made by
    :meth:`with_api_key`, so closing any of them closes all.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        http_client: TDHttpClient | None = None,
        api_key: str | None = None,
    ):
        self.config = config if config is not None else ClientConfig.from_env()
        self._http = http_client or TDHttpClient(self.config)
        self._api_key = api_key if api_key is not None else self.config.api_key

    def __enter__(self) -> TDClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def with_api_key(self, api_key: str) -> TDClient:
        """A client sharing this one's connections but signing with *api_key*."""
        return TDClient(self.config, http_client=self._http, api_key=api_key)

    def _context(self, signed: bool = True) -> ExecutionContext:
        return ExecutionContext.for_api_key(self._api_key if signed else None)

    # --- generic calls ---

    def call(
        self,
        request: ApiRequest,
        handler: ResponseHandler[T],
        *,
        error_handler: ErrorResponseHandler = default_error_handler,
        signed: bool = True,
        cancel: threading.Event | None = None,
    ) -> T:
        """Execute *request* and return *handler*'s result.

        Setting *cancel* from another thread aborts the call with
        :class:`RequestInterrupted`.
        """
        with cancellable(cancel):
            return self._http.execute(request, handler, error_handler, self._context(signed))

    def get(self, path: str, params: Mapping[str, str] | None = None) -> Any:
        return self.call(ApiRequest.get(path, params), json_handler)

    def post(self, path: str, params: Mapping[str, str] | None = None) -> Any:
        return self.call(ApiRequest.post(path, params), json_handler)

    def put_file(self, path: str, body: bytes | BinaryIO | Path | str) -> Any:
        return self.call(ApiRequest.put(path, body), json_handler)

    def delete(self, path: str) -> Any:
        return self.call(ApiRequest.delete(path), json_handler)

    # --- endpoints with special handling ---

    def server_status(self) -> str:
        """Raw server status text.  Needs no API key."""
        return self.call(ApiRequest.get("/v3/system/server_status"), text_handler, signed=False)

    def authenticate(self, email: str, password: str) -> TDClient:
        """Log in and return a client signing with the returned API key.

        The credentials go in a form-encoded body, never the query string.
        """
        body = urlencode({"user": email, "password": password}).encode()
        request = ApiRequest(
            "POST",
            "/v3/user/authenticate",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            content=RequestContent(body),
        )
        result = self.call(request, json_handler)
        return self.with_api_key(result["apikey"])

    def job_result(
        self,
        job_id: str,
        consume: Callable[[Iterator[bytes]], T],
        result_format: str = "json",
    ) -> T:
        """Stream a job's result body into *consume* and return its result."""
        request = ApiRequest.get(build_url("/v3/job/result", job_id), {"format": result_format})
        return self.call(request, stream_handler(consume))

    def upload_bulk_import_part(
        self, session_name: str, part_name: str, body: bytes | BinaryIO | Path | str
    ) -> Any:
        path = build_url("/v3/bulk_import/upload_part", session_name, part_name)
        logger.debug("uploading part %s to bulk import session %s", part_name, session_name)
        return self.put_file(path, body)
