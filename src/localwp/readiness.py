"""Bounded polling readiness probe for site databases."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable

from .config import ReadinessConfig
from .errors import NotReady
from .providers.docker import DockerError, DockerProvider

_log = logging.getLogger("localwp")


def wait_for_database(
    docker: DockerProvider,
    container: str,
    root_password: str,
    config: ReadinessConfig | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Poll ``mysqladmin ping`` in *container* until it answers.

    The delay between attempts doubles up to ``config.max_interval``. Raises
    :class:`NotReady` once ``config.timeout`` seconds have elapsed. Returns
    the number of attempts made.
    """
    settings = config or ReadinessConfig()
    deadline = clock() + settings.timeout
    delay = settings.interval
    attempts = 0
    last_error = ""
    while True:
        attempts += 1
        try:
            result = docker.exec(
                container,
                ["mysqladmin", "ping", "-h", "localhost", "-uroot", "--silent"],
                env={"MYSQL_PWD": root_password},
            )
        except DockerError as exc:
            last_error = str(exc)
        else:
            if result.returncode == 0:
                return attempts
            last_error = (result.stderr or result.stdout or "").strip()
        remaining = deadline - clock()
        if remaining <= 0:
            detail = f": {last_error}" if last_error else ""
            raise NotReady(
                f"Database {container} not ready after {settings.timeout:.0f}s{detail}"
            )
        _log.debug("waiting for %s (attempt %d)", container, attempts)
        sleep(min(delay, remaining))
        delay = min(delay * 2, settings.max_interval)


__all__ = ["wait_for_database"]
