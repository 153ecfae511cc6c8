"""Shared test fixtures for tdclient."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import httpx
import pytest

from tdclient.config import ClientConfig
from tdclient.http import TDHttpClient


class Responder:
    """httpx.MockTransport handler replaying queued responses.

    Each item is an ``httpx.Response``, an exception to raise, or a callable
    taking the request and returning a response.  The last
    item repeats once the queue runs dry.  Every request is recorded with its
    body already read.
    """

    def __init__(self, *items):
        self.items = list(items)
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.bodies.append(request.read())
            self.requests.append(request)
            item = self.items.pop(0) if len(self.items) > 1 else self.items[0]
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(request)
        return item

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(
        endpoint="api.example.com",
        api_key="1/abcdef0123456789",
        max_retries=3,
        base_delay_ms=300,
        max_backoff_ms=5000,
    )


@pytest.fixture
def make_http(config):
    """Factory: ``make_http(*items)`` -> (TDHttpClient, Responder, sleep mock)."""
    clients: list[TDHttpClient] = []

    def factory(*items, cfg: ClientConfig | None = None, sleep=None):
        responder = Responder(*items)
        sleep = sleep if sleep is not None else MagicMock()
        client = TDHttpClient(
            cfg or config,
            http_transport=httpx.MockTransport(responder),
            sleep=sleep,
        )
        clients.append(client)
        return client, responder, sleep

    yield factory
    for c in clients:
        c.close()

