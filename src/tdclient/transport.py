"""httpx-backed transport: builds and sends one :class:`Exchange` per attempt.

The transport owns a single ``httpx.Client`` (connection pool, TLS,
timeouts) and a small worker pool that performs the blocking network I/O.
Callers see a blocking contract: :meth:`HttpTransport.send` dispatches, and
:meth:`Exchange.wait_for_done` blocks until the exchange completes, fails,
or the call's cancellation token is set.
"""

from __future__ import annotations

import enum
import logging
import ssl
from collections.abc import Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any

import httpx

from tdclient.cancellation import check_cancelled
from tdclient.config import ClientConfig
from tdclient.errors import ConstructionError
from tdclient.request import ApiRequest

logger = logging.getLogger(__name__)

WAIT_POLL_SECONDS = 0.1


class ExchangeState(enum.Enum):
    NEW = "new"
    SENT = "sent"
    COMPLETED = "completed"
    FAILED = "failed"


class Exchange:
    """One HTTP attempt: the built request, the in-flight send, the response.

    Never reused; the executor builds a new one for every attempt and
    closes it when the attempt is over.
    """

    def __init__(self, request: ApiRequest, http_request: httpx.Request):
        self.request = request
        self.http_request = http_request
        self.state = ExchangeState.NEW
        self.response: httpx.Response | None = None
        self.error: BaseException | None = None
        self._future: Future | None = None

    def __repr__(self) -> str:
        status = self.response.status_code if self.response is not None else None
        return (
            f"Exchange({self.http_request.method} {self.http_request.url.path}, "
            f"state={self.state.value}, status={status})"
        )

    # --- lifecycle ---

    def attach(self, future: Future) -> None:
        """Bind the future of an in-flight send."""
        self._future = future
        self.state = ExchangeState.SENT

    def wait_for_done(self, poll: float = WAIT_POLL_SECONDS) -> ExchangeState:
        """Block until the send finishes; return COMPLETED or FAILED.

        Raises:
            Cancelled: The current cancellation token was set while waiting.
        """
        if self._future is None:
            raise RuntimeError("Exchange was never sent")
        label = f"wait {self.http_request.method} {self.http_request.url.path}"
        while self.state is ExchangeState.SENT:
            check_cancelled(label)
            try:
                self.response = self._future.result(timeout=poll)
                self.state = ExchangeState.COMPLETED
            except FutureTimeout as e:
                # result() raises the worker's own TimeoutError too.
                if self._future.done():
                    self.error = e
                    self.state = ExchangeState.FAILED
            except Exception as e:
                self.error = e
                self.state = ExchangeState.FAILED
        return self.state

    def close(self) -> None:
        """Release the connection, including one still in flight."""
        if self.response is not None:
            self.response.close()
        elif self._future is not None and not self._future.done():
            self._future.add_done_callback(_close_when_done)

    # --- response access ---

    def _require_response(self) -> httpx.Response:
        if self.response is None:
            raise RuntimeError(f"Exchange has no response (state={self.state.value})")
        return self.response

    @property
    def status(self) -> int:
        return self._require_response().status_code

    @property
    def reason(self) -> str:
        return self._require_response().reason_phrase

    @property
    def headers(self) -> httpx.Headers:
        return self._require_response().headers

    def read(self) -> bytes:
        return self._require_response().read()

    @property
    def text(self) -> str:
        resp = self._require_response()
        resp.read()
        return resp.text

    def json(self) -> Any:
        resp = self._require_response()
        resp.read()
        return resp.json()

    def iter_bytes(self, chunk_size: int | None = None) -> Iterator[bytes]:
        return self._require_response().iter_bytes(chunk_size)


def _close_when_done(future: Future) -> None:
    if not future.cancelled() and future.exception() is None:
        future.result().close()


def _ssl_verify(verify: bool | str) -> bool | ssl.SSLContext:
    if isinstance(verify, str):
        return ssl.create_default_context(cafile=verify)
    return verify


class HttpTransport:
    """Creates and sends exchanges against the configured endpoint.

    Safe to share between threads; each call owns its own exchanges.

    Args:
        config: Endpoint, TLS and timeout settings.
        transport: Optional httpx transport (e.g. ``httpx.MockTransport`` in
            tests) used in place of the network.
    """

    def __init__(self, config: ClientConfig, transport: httpx.BaseTransport | None = None):
        self.config = config
        try:
            self._client = httpx.Client(
                base_url=config.base_url,
                timeout=httpx.Timeout(config.read_timeout, connect=config.connect_timeout),
                verify=_ssl_verify(config.verify),
                proxy=config.proxy,
                headers={"User-Agent": config.user_agent},
                transport=transport,
                follow_redirects=True,
            )
        except (ssl.SSLError, OSError, ValueError, httpx.InvalidURL) as e:
            logger.error("cannot start http client for %s: %s", config.base_url, e)
            raise ConstructionError(
                f"cannot start HTTP client for {config.base_url} ({e})",
                hint="Check the endpoint, proxy and TLS settings.",
            ) from e
        self._pool = ThreadPoolExecutor(
            max_workers=config.io_workers, thread_name_prefix="tdclient-io"
        )

    def create_exchange(self, request: ApiRequest) -> Exchange:
        """Build a fresh exchange for one attempt of *request*.

        Raises:
            ConstructionError: The URL, a header, or a parameter is malformed,
                or a file body cannot be read.
        """
        headers = dict(request.headers)
        body = None
        if request.content is not None:
            try:
                length = request.content.length
            except OSError as e:
                raise ConstructionError(
                    f"cannot read request body {request.content!r} ({e})",
                    hint="Check that the file exists and is readable.",
                ) from e
            if length is not None:
                headers.setdefault("Content-Length", str(length))
            body = request.content.iter_chunks()
        try:
            http_request = self._client.build_request(
                request.method,
                request.path,
                params=dict(request.params) or None,
                headers=headers,
                content=body,
            )
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            raise ConstructionError(f"{request.method} {request.path}: {e}") from e
        return Exchange(request, http_request)

    def send(self, exchange: Exchange) -> None:
        """Dispatch *exchange*; pair with :meth:`Exchange.wait_for_done`."""
        exchange.attach(self._pool.submit(self._client.send, exchange.http_request, stream=True))

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
        self._client.close()
