"""Credentials, request signers and the per-call execution context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from tdclient.request import ApiRequest

AUTH_HEADER = "Authorization"


@dataclass(frozen=True)
class Credentials:
    """An API key. Never printed in full."""

    api_key: str

    def __repr__(self) -> str:
        tail = self.api_key[-4:] if len(self.api_key) > 8 else ""
        return f"Credentials(api_key='...{tail}')"


class Signer(Protocol):
    """Attaches authentication material to a request.

    Implementations must return a new request and must *set* rather than
    append, so signing an already-signed request changes nothing.
    """

    def sign(self, request: ApiRequest, credentials: Credentials) -> ApiRequest: ...


class ApiKeySigner:
    """Signs requests with the ``Authorization: TD1 <apikey>`` header."""

    scheme = "TD1"

    def sign(self, request: ApiRequest, credentials: Credentials) -> ApiRequest:
        return request.with_header(AUTH_HEADER, f"{self.scheme} {credentials.api_key}")


@dataclass(frozen=True)
class ExecutionContext:
    """Signer and credentials for one call. Read-only to the executor."""

    signer: Signer | None = None
    credentials: Credentials | None = None

    @classmethod
    def for_api_key(cls, api_key: str | None) -> ExecutionContext:
        """Context that signs with *api_key*, or an unsigned one if it is empty."""
        if not api_key:
            return cls()
        return cls(signer=ApiKeySigner(), credentials=Credentials(api_key))

    def sign(self, request: ApiRequest) -> ApiRequest:
        """Sign *request* when both a signer and credentials are present."""
        if self.signer is not None and self.credentials is not None:
            return self.signer.sign(request, self.credentials)
        return request
