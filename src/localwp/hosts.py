"""Loopback mappings in the system hosts file."""
from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from contextlib import AbstractContextManager, nullcontext
from pathlib import Path

from .errors import OperationFailed
from .locking import LockManager
from .templates import write_text_atomic

_log = logging.getLogger("localwp")


class HostsError(OperationFailed):
    """Raised when the hosts file cannot be read or updated."""


def _tokens(line: str) -> list[str]:
    return line.split("#", 1)[0].split()


class HostsFile:
    """Add and remove ``<loopback> <domain> [alias...]`` lines.

    Matching is done on whole tokens, so ``a.local`` never matches
    ``a.local.old``.
    """

    def __init__(
        self,
        path: Path,
        *,
        locks: LockManager | None = None,
        loopback: str = "127.0.0.1",
        elevate: bool = True,
        elevate_command: Sequence[str] = ("sudo",),
    ) -> None:
        """Configure the hosts file location and how to escalate writes."""
        self.path = Path(path)
        self.locks = locks
        self.loopback = loopback
        self.elevate = elevate
        self.elevate_command = tuple(elevate_command)

    def entries(self) -> list[tuple[str, ...]]:
        """Return parsed ``(address, host, ...)`` tuples, comments skipped."""
        return [tuple(tokens) for tokens in map(_tokens, self._read_lines()) if len(tokens) > 1]

    def contains(self, domain: str) -> bool:
        """Return True when a loopback line names *domain*."""
        return any(self._maps(tokens, domain) for tokens in map(_tokens, self._read_lines()))

    def add(self, domain: str, *aliases: str) -> bool:
        """Append a loopback line for *domain* unless one already exists."""
        with self._lock():
            lines = self._read_lines()
            if any(self._maps(_tokens(line), domain) for line in lines):
                return False
            lines.append(" ".join([self.loopback, domain, *aliases]))
            self._write(lines)
        return True

    def remove(self, domain: str) -> int:
        """Drop loopback lines whose first host is *domain*; return the count."""
        with self._lock():
            lines = self._read_lines()
            kept: list[str] = []
            removed = 0
            for line in lines:
                tokens = _tokens(line)
                if len(tokens) > 1 and tokens[0] == self.loopback and tokens[1] == domain:
                    removed += 1
                    continue
                kept.append(line)
            if removed:
                self._write(kept)
        return removed

    # ------------------------------------------------------------------
    def _maps(self, tokens: list[str], domain: str) -> bool:
        return len(tokens) > 1 and tokens[0] == self.loopback and domain in tokens[1:]

    def _lock(self) -> AbstractContextManager[object]:
        if self.locks is None:
            return nullcontext()
        return self.locks.hosts_lock()

    def _read_lines(self) -> list[str]:
        try:
            return self.path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise HostsError(f"Unable to read {self.path}: {exc}") from exc

    def _write(self, lines: list[str]) -> None:
        content = "\n".join(lines) + "\n"
        try:
            self._replace(self.path.resolve(), content)
            return
        except PermissionError as exc:
            if not self.elevate:
                raise HostsError(
                    f"Permission denied writing {self.path}; enable hosts.elevate or run as root."
                ) from exc
        except OSError as exc:
            raise HostsError(f"Unable to write {self.path}: {exc}") from exc
        self._write_elevated(content)

    def _replace(self, target: Path, content: str) -> None:
        try:
            write_text_atomic(target, content, mode=0o644)
        except PermissionError:
            raise
        except OSError as exc:
            # bind-mounted hosts files keep their inode: rewrite instead of replace
            _log.info("replacing %s failed (%s); rewriting in place", target, exc)
            with target.open("w", encoding="utf-8") as handle:
                handle.write(content)

    def _write_elevated(self, content: str) -> None:
        args = [*self.elevate_command, "tee", str(self.path)]
        try:
            result = subprocess.run(  # noqa: S603, S607
                args,
                input=content,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise HostsError(f"{args[0]} not found: {exc}") from exc
        if result.returncode != 0:
            message = (result.stderr or "").strip() or "no output"
            raise HostsError(f"Elevated write of {self.path} failed: {message}")


__all__ = ["HostsError", "HostsFile"]
