"""Per-attempt outcome classification and service-error construction."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable

from tdclient.errors import TDServiceError
from tdclient.retry import RetryPolicy
from tdclient.transport import Exchange, ExchangeState

logger = logging.getLogger(__name__)

ErrorResponseHandler = Callable[[Exchange], TDServiceError]

ENTITY_TOO_LARGE = 413
SERVICE_UNAVAILABLE = 503


class Outcome(enum.Enum):
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable"
    FATAL = "fatal"


def is_successful(status: int) -> bool:
    return status // 100 == 2


def classify(exchange: Exchange, policy: RetryPolicy) -> Outcome:
    """Decide what to do with a finished attempt.

    I/O failures and 500/503 responses are retryable; 2xx is success;
    everything else, including non-network exceptions raised by the send,
    is fatal.
    """
    if exchange.state is ExchangeState.FAILED:
        if exchange.error is not None and policy.is_retryable_exception(exchange.error):
            return Outcome.RETRYABLE_FAILURE
        return Outcome.FATAL
    status = exchange.status
    if is_successful(status):
        return Outcome.SUCCESS
    if policy.is_retryable_status(status):
        return Outcome.RETRYABLE_FAILURE
    return Outcome.FATAL


def build_service_error(
    exchange: Exchange,
    error_handler: ErrorResponseHandler,
    attempts: int,
) -> TDServiceError:
    """Turn a completed error response into a :class:`TDServiceError`.

    413 never reaches the handler.  If the handler itself fails, a 503
    "Service Unavailable" becomes a plain "Service unavailable" error and
    anything else an "Unable to unmarshal error response" error.
    """
    status = exchange.status
    reason = exchange.reason

    if status == ENTITY_TOO_LARGE:
        error = TDServiceError("Request entity too large", error_code="Request entity too large")
    else:
        try:
            error = error_handler(exchange)
        except Exception as e:
            logger.debug("error response handler failed for status %d: %s", status, e)
            if status == SERVICE_UNAVAILABLE and reason.lower() == "service unavailable":
                error = TDServiceError("Service unavailable", error_code="Service unavailable")
            else:
                error = TDServiceError(f"Unable to unmarshal error response ({e})")
                error.__cause__ = e
        else:
            if not isinstance(error, TDServiceError):
                error = TDServiceError(
                    f"Unable to unmarshal error response (handler returned {type(error).__name__})"
                )

    error.status_code = status
    if not error.error_code:
        error.error_code = reason
    error.attempts = attempts
    logger.debug("Received error response: %s", error)
    return error
