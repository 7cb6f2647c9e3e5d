"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import pytest
import yaml

from localwp.backups import BackupCoordinator
from localwp.config import AppConfig, load_config
from localwp.hosts import HostsFile
from localwp.infrastructure import InfrastructureManager
from localwp.locking import LockManager
from localwp.registry import SiteRegistry
from localwp.sites import SiteManager
from localwp.templates import TemplateEngine
from localwp.tls import CertificateProvisioner


class FakeDocker:
    """In-memory stand-in for :class:`localwp.providers.docker.DockerProvider`.

    Containers named in a project's compose file are marked running on
    ``compose_up`` and stopped on ``compose_down``.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[object, ...]] = []
        self.running: set[str] = set()
        self.networks: set[str] = set()
        self.failures: dict[str, Exception] = {}
        self.ping_codes: list[int] = []
        self.dump_output = "-- MySQL dump\nCREATE TABLE wp_posts (id INT);\n"
        self.restored: list[tuple[str, str]] = []

    # Compose ----------------------------------------------------------
    def compose_up(
        self,
        project_dir: Path,
        services: Sequence[str] = (),
    ) -> subprocess.CompletedProcess[str]:
        self.calls.append(("up", Path(project_dir), tuple(services)))
        self._maybe_fail("up", project_dir)
        self.running.update(self._containers(project_dir, services))
        return subprocess.CompletedProcess(["docker", "compose", "up"], 0, "", "")

    def compose_down(
        self,
        project_dir: Path,
        *,
        volumes: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        self.calls.append(("down", Path(project_dir), volumes))
        self._maybe_fail("down", project_dir)
        self.running.difference_update(self._containers(project_dir, ()))
        return subprocess.CompletedProcess(["docker", "compose", "down"], 0, "", "")

    def is_running(self, container: str) -> bool:
        self.calls.append(("ps", container))
        return container in self.running

    def network_create(self, name: str) -> bool:
        self.calls.append(("network", name))
        if name in self.networks:
            return False
        self.networks.add(name)
        return True

    # Exec -------------------------------------------------------------
    def exec(
        self,
        container: str,
        command: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        check: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        self.calls.append(("exec", container, tuple(command)))
        code = self.ping_codes.pop(0) if self.ping_codes else 0
        return subprocess.CompletedProcess(list(command), code, "", "" if code == 0 else "down")

    def exec_to_file(
        self,
        container: str,
        command: Sequence[str],
        destination: Path,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.calls.append(("dump", container, dict(env or {})))
        destination.write_text(self.dump_output, encoding="utf-8")
        self._maybe_fail(f"dump:{container}", destination)

    def exec_from_file(
        self,
        container: str,
        command: Sequence[str],
        source: Path,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.calls.append(("restore", container, dict(env or {})))
        self._maybe_fail(f"restore:{container}", source)
        self.restored.append((container, source.read_text(encoding="utf-8")))

    # Helpers ----------------------------------------------------------
    def commands(self, kind: str) -> list[tuple[object, ...]]:
        return [call for call in self.calls if call[0] == kind]

    def _maybe_fail(self, key: str, target: Path) -> None:
        for candidate in (key, f"{key}:{Path(target).name}"):
            if candidate in self.failures:
                raise self.failures[candidate]

    @staticmethod
    def _containers(project_dir: Path, services: Sequence[str]) -> set[str]:
        compose = Path(project_dir) / "docker-compose.yml"
        if not compose.exists():
            return set()
        document = yaml.safe_load(compose.read_text(encoding="utf-8")) or {}
        names: set[str] = set()
        for key, entry in (document.get("services") or {}).items():
            if services and key not in services:
                continue
            names.add(str(entry.get("container_name", key)))
        return names


@dataclass
class Stack:
    """Fully wired components sharing one fake docker provider."""

    config: AppConfig
    docker: FakeDocker
    registry: SiteRegistry
    locks: LockManager
    templates: TemplateEngine
    certificates: CertificateProvisioner
    hosts: HostsFile
    backups: BackupCoordinator
    sites: SiteManager
    infrastructure: InfrastructureManager


def write_config(tmp_path: Path, **extra: str) -> Path:
    """Write a YAML config pointing every location under *tmp_path*."""
    lines = [
        f"sites_root: {tmp_path / 'sites'}",
        f"state_dir: {tmp_path / 'state'}",
        f"templates_dir: {tmp_path / 'templates'}",
        "lock_timeout: 1",
        "hosts:",
        f"  path: {tmp_path / 'hosts'}",
        "  elevate: false",
        "readiness:",
        "  timeout: 0.5",
        "  interval: 0.01",
        "  max_interval: 0.02",
    ]
    lines.extend(f"{key}: {value}" for key, value in extra.items())
    path = tmp_path / "config.yml"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def build_stack(config: AppConfig, docker: FakeDocker) -> Stack:
    """Wire the components the same way the CLI does."""
    registry = SiteRegistry(config.sites_root)
    locks = LockManager(config.runtime_dir, config.lock_timeout)
    templates = TemplateEngine.with_overrides(config.templates_dir)
    certificates = CertificateProvisioner(config.certs_dir, config.tls)
    hosts = HostsFile(
        config.hosts.path,
        locks=locks,
        loopback=config.loopback_address,
        elevate=config.hosts.elevate,
    )
    backups = BackupCoordinator(
        registry,
        docker,  # type: ignore[arg-type]
        config.backups,
        config.readiness,
        domain_suffix=config.domain_suffix,
        sleep=lambda _seconds: None,
    )
    sites = SiteManager(
        config,
        registry=registry,
        docker=docker,  # type: ignore[arg-type]
        certificates=certificates,
        hosts=hosts,
        backups=backups,
        templates=templates,
        locks=locks,
    )
    infrastructure = InfrastructureManager(
        config,
        registry=registry,
        docker=docker,  # type: ignore[arg-type]
        certificates=certificates,
        hosts=hosts,
        templates=templates,
        locks=locks,
    )
    return Stack(
        config=config,
        docker=docker,
        registry=registry,
        locks=locks,
        templates=templates,
        certificates=certificates,
        hosts=hosts,
        backups=backups,
        sites=sites,
        infrastructure=infrastructure,
    )


@pytest.fixture()
def config(tmp_path: Path) -> AppConfig:
    """Configuration rooted in a temporary directory."""
    hosts = tmp_path / "hosts"
    hosts.write_text("127.0.0.1 localhost\n", encoding="utf-8")
    return load_config(config_file=write_config(tmp_path), env={})


@pytest.fixture()
def docker() -> FakeDocker:
    """Fresh fake docker provider."""
    return FakeDocker()


@pytest.fixture()
def stack(config: AppConfig, docker: FakeDocker) -> Stack:
    """Components wired to the fake docker provider."""
    return build_stack(config, docker)


__all__ = ["FakeDocker", "Stack", "build_stack", "write_config"]
