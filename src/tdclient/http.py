"""Request execution with signing, retry, backoff and error classification.

:meth:`TDHttpClient.execute` runs one logical call as a strictly sequential
series of attempts on the calling thread::

    sign -> build exchange -> (backoff) -> send -> wait -> classify
       SUCCESS            -> response handler -> result
       RETRYABLE_FAILURE  -> reset body, next attempt (until the retry bound)
       FATAL              -> error-response handler -> raise TDServiceError

Every attempt starts from the caller's unsigned request, so nothing a signer
or a previous attempt did can leak into the next one.  I/O failures and
500/503 responses are retried with exponential backoff; cancellation while
waiting or backing off ends the call with :class:`RequestInterrupted`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TypeVar

import httpx

from tdclient.call_log import CallLog
from tdclient.cancellation import Cancelled, wait_cancellable
from tdclient.classify import ErrorResponseHandler, Outcome, build_service_error, classify
from tdclient.config import ClientConfig
from tdclient.errors import (
    ContentResetError,
    PreconditionViolation,
    RequestInterrupted,
    TDError,
    TDServiceError,
    TransportError,
    UnmarshalError,
)
from tdclient.request import ApiRequest
from tdclient.signing import ExecutionContext
from tdclient.transport import Exchange, ExchangeState, HttpTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")
ResponseHandler = Callable[[Exchange], T]


@dataclass
class _CallStats:
    attempts: int = 0
    status: int | None = None


class TDHttpClient:
    """Executes API requests against one configured endpoint.

    Args:
        config: Endpoint, TLS, timeout and retry settings.
        transport: Prebuilt :class:`HttpTransport`; one is created from
            *config* when omitted.
        http_transport: httpx transport handed to the created
            :class:`HttpTransport` (e.g. ``httpx.MockTransport``).
        sleep: Backoff sleep taking seconds.  Defaults to a sleep that the
            current cancellation token can interrupt.
        call_log: Per-call JSONL log; created from ``config.call_log_dir``
            when omitted.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: HttpTransport | None = None,
        http_transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] | None = None,
        call_log: CallLog | None = None,
    ):
        self.config = config
        self.policy = config.retry_policy()
        self._transport = transport or HttpTransport(config, http_transport)
        self._sleep = sleep or wait_cancellable
        if call_log is None and config.call_log_dir is not None:
            call_log = CallLog(config.call_log_dir)
        self._call_log = call_log

    def __enter__(self) -> TDHttpClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._transport.close()

    def execute(
        self,
        request: ApiRequest,
        response_handler: ResponseHandler[T],
        error_handler: ErrorResponseHandler,
        context: ExecutionContext,
    ) -> T:
        """Run *request* to completion and return the handler's result.

        Raises:
            PreconditionViolation: An argument is None (nothing is sent).
            TDServiceError: The service rejected the call, or kept failing
                with 500/503 until the retry bound.
            TDClientError: The call could not be completed locally
                (transport failure after retries, interruption, body reset
                failure, unparsable success response, bad URL).
        """
        missing = [
            name
            for name, value in (
                ("request", request),
                ("response_handler", response_handler),
                ("error_handler", error_handler),
                ("context", context),
            )
            if value is None
        ]
        if missing:
            e = PreconditionViolation(missing)
            logger.error("%s", e)
            raise e

        if request.content is not None:
            request = replace(request, content=request.content.fork())

        stats = _CallStats()
        started = time.monotonic()
        try:
            result = self._attempt_loop(request, response_handler, error_handler, context, stats)
        except TDError as e:
            self._record(request, stats, started, error=e)
            raise
        finally:
            if request.content is not None:
                request.content.close()
        self._record(request, stats, started)
        return result

    # --- attempt loop ---

    def _attempt_loop(
        self,
        request: ApiRequest,
        response_handler: ResponseHandler[T],
        error_handler: ErrorResponseHandler,
        context: ExecutionContext,
        stats: _CallStats,
    ) -> T:
        attempt = 0
        while True:
            working = context.sign(request.working_copy())
            logger.debug("Send the request %r (attempt=%d)", working, attempt)
            exchange = self._transport.create_exchange(working)
            try:
                if attempt > 0:
                    self._pause(attempt)
                stats.attempts = attempt + 1
                self._transport.send(exchange)
                try:
                    exchange.wait_for_done()
                except Cancelled as e:
                    raise RequestInterrupted("wait for response", attempts=stats.attempts) from e

                outcome = classify(exchange, self.policy)
                if exchange.state is ExchangeState.COMPLETED:
                    stats.status = exchange.status

                if outcome is Outcome.SUCCESS:
                    return self._handle_response(exchange, response_handler, stats.attempts)

                if outcome is Outcome.RETRYABLE_FAILURE and self.policy.can_retry(attempt):
                    cause = self._failure_cause(exchange)
                    logger.info(
                        "Retrying %s %s after attempt %d: %s",
                        request.method,
                        request.path,
                        attempt,
                        cause,
                    )
                    self._reset_content(request, cause, stats.attempts)
                    attempt += 1
                    continue

                self._raise_fatal(request, exchange, error_handler, stats.attempts)
            finally:
                exchange.close()

    def _pause(self, attempt: int) -> None:
        delay_ms = self.policy.backoff_ms(attempt)
        logger.debug("will retry in %dms, attempt number: %d", delay_ms, attempt)
        try:
            self._sleep(delay_ms / 1000)
        except Cancelled as e:
            raise RequestInterrupted("backoff", attempts=attempt) from e

    def _handle_response(
        self, exchange: Exchange, response_handler: ResponseHandler[T], attempts: int
    ) -> T:
        try:
            return response_handler(exchange)
        except TDError:
            raise
        except Exception as e:
            logger.error("Unable to unmarshal response from %r: %s", exchange, e)
            raise UnmarshalError(str(e), attempts=attempts) from e

    @staticmethod
    def _failure_cause(exchange: Exchange) -> BaseException:
        if exchange.state is ExchangeState.FAILED and exchange.error is not None:
            return exchange.error
        return TDServiceError(
            f"HTTP {exchange.status}",
            status_code=exchange.status,
            error_code=exchange.reason,
        )

    @staticmethod
    def _reset_content(request: ApiRequest, cause: BaseException, attempts: int) -> None:
        if request.content is None:
            return
        try:
            request.content.reset()
        except ContentResetError as e:
            logger.error("cannot rewind %r for retry after: %s", request.content, cause)
            e.attempts = attempts
            raise e from cause

    def _raise_fatal(
        self,
        request: ApiRequest,
        exchange: Exchange,
        error_handler: ErrorResponseHandler,
        attempts: int,
    ) -> None:
        if exchange.state is ExchangeState.FAILED:
            err = exchange.error
            logger.error(
                "Unable to execute HTTP request %s %s: %s", request.method, request.path, err
            )
            raise TransportError(f"{type(err).__name__}: {err}", attempts=attempts) from err
        error = build_service_error(exchange, error_handler, attempts)
        logger.error("%s %s failed: %s", request.method, request.path, error)
        raise error

    # --- call log ---

    def _record(
        self,
        request: ApiRequest,
        stats: _CallStats,
        started: float,
        error: TDError | None = None,
    ) -> None:
        if self._call_log is None:
            return
        self._call_log.log_call(
            request.method,
            request.path,
            dict(request.params),
            status=stats.status,
            attempts=stats.attempts,
            duration_ms=(time.monotonic() - started) * 1000,
            outcome="ok" if error is None else type(error).__name__,
            error="" if error is None else str(error),
        )
