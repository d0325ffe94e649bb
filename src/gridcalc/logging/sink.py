"""NDJSON event log stored at ``<project>/logs/events.ndjson``.

One event per line, keys sorted.  Writers take an exclusive
``fcntl.flock`` on the file and readers a shared one, so the server and
CLI processes can log to the same project at once.  Reads only look at
the last ``tail_bytes`` of the file.
"""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from gridcalc.logging.events import GridEvent

try:
    import fcntl
except ImportError:  # Windows: no advisory locks
    fcntl = None

_DEFAULT_TAIL_BYTES = 2 * 1024 * 1024
_MAX_LIMIT = 2000


@contextmanager
def _locked_fd(path: Path, flags: int, exclusive: bool) -> Iterator[int]:
    fd = os.open(str(path), flags, 0o644)
    try:
        if fcntl is not None:
            fcntl.flock(fd, fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
        yield fd
    finally:
        if fcntl is not None:
            fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)


def _drop_partial_first_line(data: bytes) -> bytes:
    newline = data.find(b"\n")
    return data[newline + 1:] if newline >= 0 else data


class EventSink:
    """Writes and reads the project's event log.

    Parameters
    ----------
    project_dir : Path
        Project root; the log lives in its ``logs/`` directory.
    fsync : bool
        Flush every event to disk before returning.
    tail_bytes : int | None
        Upper bound on how much of the file a read looks at.
    """

    def __init__(
        self, project_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None
    ) -> None:
        self.logs_dir = Path(project_dir) / "logs"
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self._fsync = fsync
        self._tail_bytes = tail_bytes or _DEFAULT_TAIL_BYTES

    @property
    def path(self) -> Path:
        return self.logs_dir / "events.ndjson"

    def write(self, event: GridEvent) -> None:
        payload = json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with _locked_fd(self.path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, True) as fd:
            os.write(fd, (payload + "\n").encode("utf-8"))
            if self._fsync:
                os.fsync(fd)

    def read_global(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        sheet_id: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Most-recent-first events matching every given filter."""
        matched: list[dict[str, Any]] = []
        for event in reversed(self._load_tail()):
            if level and event.get("level") != level:
                continue
            if event_type and event.get("event_type") != event_type:
                continue
            if sheet_id and (event.get("context") or {}).get("sheet_id") != sheet_id:
                continue
            matched.append(event)
            if len(matched) >= min(limit, _MAX_LIMIT):
                break
        return matched

    def _load_tail(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        with _locked_fd(self.path, os.O_RDONLY, False) as fd:
            size = os.fstat(fd).st_size
            start = max(0, size - self._tail_bytes)
            os.lseek(fd, start, os.SEEK_SET)
            data = os.read(fd, size - start)
        if start > 0:
            data = _drop_partial_first_line(data)

        events = []
        for raw in data.decode("utf-8", errors="replace").splitlines():
            if not raw.strip():
                continue
            try:
                events.append(json.loads(raw))
            except json.JSONDecodeError:
                continue  # torn or foreign line
        return events
