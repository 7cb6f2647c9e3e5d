"""Advisory file locks serialising registry and hosts-file mutations.

Locks are ``fcntl.flock`` exclusive locks on files under the runtime
directory. Each lock file is rewritten with JSON metadata on acquisition and
left in place after release for diagnostics.
"""
from __future__ import annotations

import fcntl
import json
import os
import time
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import IO

from .errors import LocalWPError
from .exit_codes import ExitCode

GLOBAL_LOCK_NAME = "localwp.lock"
HOSTS_LOCK_NAME = "hosts.lock"
_POLL_INTERVAL = 0.05


class LockTimeoutError(LocalWPError):
    """Raised when a lock cannot be acquired before the timeout elapses."""

    exit_code = ExitCode.ENVIRONMENT


@dataclass(slots=True)
class LockHandle:
    """A held lock and how long the caller waited for it."""

    path: Path
    wait_ms: int
    _stream: IO[str] | None = None

    def release(self) -> None:
        """Release the lock; the file itself is kept."""
        if self._stream is None:
            return
        try:
            fcntl.flock(self._stream.fileno(), fcntl.LOCK_UN)
        finally:
            self._stream.close()
            self._stream = None


@dataclass(slots=True)
class LockBundle:
    """Several locks acquired together in a fixed order."""

    handles: list[LockHandle] = field(default_factory=list)

    @property
    def wait_ms(self) -> int:
        """Total time spent waiting across all handles."""
        return sum(handle.wait_ms for handle in self.handles)


class LockManager:
    """Hand out registry, per-site and hosts locks."""

    def __init__(self, runtime_dir: Path, default_timeout: float = 30.0) -> None:
        """Store the lock directory and the default acquisition timeout."""
        self.runtime_dir = Path(runtime_dir).expanduser()
        self.default_timeout = default_timeout

    def path_for(self, name: str) -> Path:
        """Return the per-site lock file path for *name*."""
        safe = name.replace("/", "-")
        return self.runtime_dir / "sites" / f"{safe}.lock"

    @contextmanager
    def registry_lock(self, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the global registry lock."""
        handle = self._acquire(self.runtime_dir / GLOBAL_LOCK_NAME, timeout)
        try:
            yield handle
        finally:
            handle.release()

    @contextmanager
    def site_lock(self, name: str, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the lock for a single site."""
        handle = self._acquire(self.path_for(name), timeout)
        try:
            yield handle
        finally:
            handle.release()

    @contextmanager
    def hosts_lock(self, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the lock guarding hosts-file edits."""
        handle = self._acquire(self.runtime_dir / HOSTS_LOCK_NAME, timeout)
        try:
            yield handle
        finally:
            handle.release()

    @contextmanager
    def mutate_sites(
        self,
        names: Iterable[str],
        *,
        timeout: float | None = None,
    ) -> Iterator[LockBundle]:
        """Acquire the registry lock followed by per-site locks (sorted)."""
        bundle = LockBundle()
        with ExitStack() as stack:
            bundle.handles.append(stack.enter_context(self.registry_lock(timeout=timeout)))
            for name in sorted(set(names)):
                bundle.handles.append(stack.enter_context(self.site_lock(name, timeout=timeout)))
            yield bundle

    # ------------------------------------------------------------------
    def _acquire(self, path: Path, timeout: float | None) -> LockHandle:
        limit = self.default_timeout if timeout is None else timeout
        path.parent.mkdir(parents=True, exist_ok=True)
        stream = path.open("a+", encoding="utf-8")
        started = time.monotonic()
        while True:
            try:
                fcntl.flock(stream.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() - started >= limit:
                    stream.close()
                    raise LockTimeoutError(
                        f"Timed out after {limit:.1f}s waiting for lock {path}."
                    ) from None
                time.sleep(_POLL_INTERVAL)
        wait_ms = int((time.monotonic() - started) * 1000)
        stream.seek(0)
        stream.truncate()
        json.dump(
            {
                "pid": os.getpid(),
                "path": str(path),
                "acquired_at": datetime.now(UTC).isoformat(),
            },
            stream,
        )
        stream.flush()
        return LockHandle(path=path, wait_ms=wait_ms, _stream=stream)


__all__ = ["LockBundle", "LockHandle", "LockManager", "LockTimeoutError"]
