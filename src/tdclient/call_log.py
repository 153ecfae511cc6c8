"""Per-call JSONL logging.

When ``ClientConfig.call_log_dir`` is set, every logical call appends one
record to ``<dir>/{start_datetime}_{pid}.jsonl``:

  {"type": "call", "ts": ..., "method": "GET", "path": "/v3/job/list",
   "params": {...}, "status": 200, "attempts": 1, "ms": 12.3, "outcome": "ok"}

The first line of each file is a ``session_start`` header.  Per-PID files
avoid races between processes; a lock serializes threads within one.
"""

from __future__ import annotations

import json
import os
import threading
from datetime import UTC, datetime
from pathlib import Path

from tdclient.request import redact_params

MAX_PARAM_CHARS = 200
MAX_ERROR_CHARS = 500


def _now() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S")


class CallLog:
    """Appends call records to a per-process JSONL file in *directory*."""

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)
        self._file: Path | None = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path | None:
        """The session file, or None before the first record."""
        return self._file

    def _session_file(self) -> Path:
        if self._file is None or not self._file.parent.exists():
            self.directory.mkdir(parents=True, exist_ok=True)
            now = datetime.now(UTC)
            pid = os.getpid()
            self._file = self.directory / f"{now.strftime('%Y%m%d_%H%M%S')}_{pid}.jsonl"
            meta = {"type": "session_start", "ts": _now(), "pid": pid}
            with open(self._file, "a", encoding="utf-8") as fp:
                fp.write(json.dumps(meta) + "\n")
        return self._file

    def log_call(
        self,
        method: str,
        path: str,
        params: dict,
        *,
        status: int | None,
        attempts: int,
        duration_ms: float,
        outcome: str = "ok",
        error: str = "",
    ) -> None:
        """Append one call record.  Credential params are masked."""
        short_params = {}
        for k, v in redact_params(params).items():
            s = str(v)
            short_params[k] = s[:MAX_PARAM_CHARS] + "…" if len(s) > MAX_PARAM_CHARS else s
        entry = {
            "type": "call",
            "ts": _now(),
            "method": method,
            "path": path,
            "params": short_params,
            "status": status,
            "attempts": attempts,
            "ms": round(duration_ms, 1),
            "outcome": outcome,
        }
        if error:
            entry["error"] = error[:MAX_ERROR_CHARS]
        with self._lock:
            f = self._session_file()
            with open(f, "a", encoding="utf-8") as fp:
                fp.write(json.dumps(entry) + "\n")
