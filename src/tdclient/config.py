"""Client configuration.

:class:`ClientConfig` is read-only once built and shared by every call a
client makes.  Values come from keyword arguments, optionally overlaid with
``TD_*`` environment variables by :meth:`ClientConfig.from_env`:

  TD_API_KEY             api_key
  TD_CLIENT_ENDPOINT     endpoint (host name, no scheme)
  TD_CLIENT_PORT         port
  TD_CLIENT_USESSL       use_ssl ("true"/"false")
  TD_CLIENT_VERIFY       verify ("true"/"false" or a CA bundle path)
  TD_CLIENT_PROXY        proxy URL
  TD_CLIENT_CONNECT_TIMEOUT / TD_CLIENT_READ_TIMEOUT   seconds
  TD_CLIENT_MAX_RETRIES, TD_CLIENT_BASE_DELAY_MS, TD_CLIENT_MAX_BACKOFF_MS
  TD_CLIENT_CALL_LOG_DIR directory for per-call JSONL logs
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from urllib.parse import urlsplit

from tdclient.errors import ConfigError
from tdclient.retry import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_MAX_BACKOFF_MS,
    DEFAULT_MAX_RETRIES,
    RetryPolicy,
)

DEFAULT_ENDPOINT = "api.treasuredata.com"
DEFAULT_USER_AGENT = "td-client-python/0.1"

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


@dataclass(frozen=True)
class ClientConfig:
    """Endpoint, TLS, timeout and retry settings."""

    endpoint: str = DEFAULT_ENDPOINT
    port: int | None = None
    use_ssl: bool = True
    verify: bool | str = True  # False, True, or path to a CA bundle
    api_key: str | None = None
    proxy: str | None = None
    connect_timeout: float = 15.0
    read_timeout: float = 60.0
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS
    max_backoff_ms: int = DEFAULT_MAX_BACKOFF_MS
    jitter: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    io_workers: int = 4
    call_log_dir: Path | None = None

    def __repr__(self) -> str:
        shown = []
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "api_key" and value:
                value = "***"
            shown.append(f"{f.name}={value!r}")
        return f"ClientConfig({', '.join(shown)})"

    @property
    def scheme(self) -> str:
        return "https" if self.use_ssl else "http"

    @property
    def base_url(self) -> str:
        """``scheme://endpoint[:port]``, without a trailing slash."""
        url = f"{self.scheme}://{self.endpoint}"
        if self.port is not None:
            url += f":{self.port}"
        return url

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            max_backoff_ms=self.max_backoff_ms,
            jitter=self.jitter,
        )

    def with_api_key(self, api_key: str | None) -> ClientConfig:
        return replace(self, api_key=api_key)

    def validate(self) -> ClientConfig:
        """Check values and return self.

        Raises:
            ConfigError: A value is out of range or malformed.
        """
        if not self.endpoint or "/" in self.endpoint or "://" in self.endpoint:
            raise ConfigError(
                f"endpoint must be a bare host name, got {self.endpoint!r}",
                hint="Use e.g. endpoint='api.treasuredata.com' and set port/use_ssl separately.",
            )
        if self.port is not None and not 0 < self.port < 65536:
            raise ConfigError(f"port must be between 1 and 65535, got {self.port}")
        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            raise ConfigError("timeouts must be positive")
        if self.max_retries < 0:
            raise ConfigError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay_ms < 0 or self.max_backoff_ms < 0:
            raise ConfigError("backoff delays must be >= 0")
        if self.io_workers < 1:
            raise ConfigError(f"io_workers must be >= 1, got {self.io_workers}")
        if self.proxy:
            parts = urlsplit(self.proxy)
            if parts.scheme not in ("http", "https", "socks5") or not parts.hostname:
                raise ConfigError(f"proxy must be an http(s) or socks5 URL, got {self.proxy!r}")
        if isinstance(self.verify, str) and not Path(self.verify).is_file():
            raise ConfigError(
                f"CA bundle not found: {self.verify}",
                hint="Set verify=True to use the system trust store.",
            )
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> ClientConfig:
        """Build a config from ``TD_*`` environment variables.

        Keyword *overrides* win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        def text(key: str) -> str | None:
            value = env.get(key, "").strip()
            return value or None

        def number(key: str, kind):
            raw = text(key)
            if raw is None:
                return None
            try:
                return kind(raw)
            except ValueError as e:
                raise ConfigError(f"{key} must be a number, got {raw!r}") from e

        def flag(key: str) -> bool | None:
            raw = text(key)
            if raw is None:
                return None
            if raw.lower() in _TRUE:
                return True
            if raw.lower() in _FALSE:
                return False
            raise ConfigError(f"{key} must be true or false, got {raw!r}")

        values["api_key"] = text("TD_API_KEY")
        values["endpoint"] = text("TD_CLIENT_ENDPOINT")
        values["port"] = number("TD_CLIENT_PORT", int)
        values["use_ssl"] = flag("TD_CLIENT_USESSL")
        values["proxy"] = text("TD_CLIENT_PROXY")
        values["connect_timeout"] = number("TD_CLIENT_CONNECT_TIMEOUT", float)
        values["read_timeout"] = number("TD_CLIENT_READ_TIMEOUT", float)
        values["max_retries"] = number("TD_CLIENT_MAX_RETRIES", int)
        values["base_delay_ms"] = number("TD_CLIENT_BASE_DELAY_MS", int)
        values["max_backoff_ms"] = number("TD_CLIENT_MAX_BACKOFF_MS", int)

        verify = text("TD_CLIENT_VERIFY")
        if verify is not None:
            if verify.lower() in _TRUE:
                values["verify"] = True
            elif verify.lower() in _FALSE:
                values["verify"] = False
            else:
                values["verify"] = verify

        log_dir = text("TD_CLIENT_CALL_LOG_DIR")
        if log_dir is not None:
            values["call_log_dir"] = Path(log_dir)

        values = {k: v for k, v in values.items() if v is not None}
        values.update(overrides)
        return cls(**values).validate()
