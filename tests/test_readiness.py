"""Tests for the database readiness probe."""
from __future__ import annotations

import pytest

from conftest import FakeDocker
from localwp.config import ReadinessConfig
from localwp.errors import NotReady
from localwp.readiness import wait_for_database


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_returns_after_first_successful_ping(docker: FakeDocker) -> None:
    """Polling stops as soon as the ping succeeds, with growing delays."""
    docker.ping_codes = [1, 1, 0]
    clock = FakeClock()

    attempts = wait_for_database(
        docker,  # type: ignore[arg-type]
        "alpha-db",
        "root-secret",
        ReadinessConfig(timeout=30, interval=1, max_interval=5),
        sleep=clock.sleep,
        clock=clock,
    )

    assert attempts == 3
    assert clock.sleeps == [1, 2]
    (first, *_rest) = docker.commands("exec")
    assert first[1] == "alpha-db"
    assert first[2][:2] == ("mysqladmin", "ping")


def test_raises_not_ready_at_deadline(docker: FakeDocker) -> None:
    """A database that never answers raises NotReady once the timeout passes."""
    docker.ping_codes = [1] * 50
    clock = FakeClock()

    with pytest.raises(NotReady, match="alpha-db not ready after 10s"):
        wait_for_database(
            docker,  # type: ignore[arg-type]
            "alpha-db",
            "root-secret",
            ReadinessConfig(timeout=10, interval=1, max_interval=4),
            sleep=clock.sleep,
            clock=clock,
        )

    assert clock.sleeps == [1, 2, 4, 3]
    assert clock.now == 10
