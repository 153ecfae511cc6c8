"""Cooperative cancellation for in-flight API calls.

A call's cancellation token is a ``threading.Event`` held in a
``ContextVar``.  The executor checks it while waiting for a response and
sleeps on it while backing off, so another thread can abort a call (and its
retry loop) by setting the event::

    token = threading.Event()
    request = ApiRequest.get("/v3/job/list")
    threading.Thread(target=client.call, args=(request, json_handler),
                     kwargs={"cancel": token}).start()
    ...
    token.set()          # the call raises RequestInterrupted

:meth:`TDClient.call` installs the token with :func:`cancellable` for the
duration of one call.  Without a token, calls cannot be cancelled and
backoff is a plain sleep.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

logger = logging.getLogger(__name__)


class Cancelled(Exception):
    """Raised when the current token is set."""


_current_token: ContextVar[threading.Event | None] = ContextVar("_current_token", default=None)


def current_token() -> threading.Event | None:
    return _current_token.get()


@contextmanager
def cancellable(token: threading.Event | None) -> Iterator[threading.Event | None]:
    """Install *token* for the block, restoring the previous one afterwards.

    A None *token* leaves whatever token is already installed in place.
    """
    if token is None:
        yield current_token()
        return
    reset = _current_token.set(token)
    try:
        yield token
    finally:
        _current_token.reset(reset)


def check_cancelled(context: str = "") -> None:
    """Raise :class:`Cancelled` if the current call has been cancelled.

    Args:
        context: Optional label for log messages (e.g. "wait GET /v3/job/list").
    """
    token = _current_token.get()
    if token is not None and token.is_set():
        msg = f"Call cancelled{f' during {context}' if context else ''}"
        logger.warning("CANCEL %s", msg)
        raise Cancelled(msg)


def wait_cancellable(seconds: float, context: str = "") -> None:
    """Sleep for *seconds*, waking early and raising if the token is set."""
    token = _current_token.get()
    if token is None:
        time.sleep(seconds)
        return
    if token.wait(seconds):
        check_cancelled(context)
