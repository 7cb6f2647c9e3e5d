"""Shared infrastructure: reverse proxy, mail catcher and backup scheduler."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .compose import (
    BACKUP_CONTAINER,
    MAIL_CONTAINER,
    PROXY_CONTAINER,
    mail_project,
    proxy_project,
    scheduler_project,
)
from .config import AppConfig
from .errors import NotFound
from .hosts import HostsFile
from .locking import LockManager
from .models import DATABASE_NAME, INFRASTRUCTURE_DIRS
from .providers.docker import DockerProvider
from .registry import COMPOSE_FILE, SiteRegistry
from .templates import TemplateEngine
from .tls import CertificateProvisioner

_log = logging.getLogger("localwp")

PROXY = "proxy"
MAIL = "mail"
BACKUP = "backup"


@dataclass(frozen=True)
class Singleton:
    """One shared service with its own compose directory."""

    name: str
    label: str
    container: str
    directory: Path

    @property
    def compose_file(self) -> Path:
        """Return the compose definition path."""
        return self.directory / COMPOSE_FILE

    @property
    def configured(self) -> bool:
        """Return True once setup has written the compose file."""
        return self.compose_file.is_file()


@dataclass(frozen=True)
class SingletonStatus:
    """Point-in-time state of a singleton."""

    name: str
    label: str
    container: str
    configured: bool
    running: bool


class InfrastructureManager:
    """Set up, start, stop and inspect the shared services."""

    def __init__(
        self,
        config: AppConfig,
        *,
        registry: SiteRegistry,
        docker: DockerProvider,
        certificates: CertificateProvisioner,
        hosts: HostsFile,
        templates: TemplateEngine,
        locks: LockManager,
    ) -> None:
        """Store collaborators."""
        self.config = config
        self.registry = registry
        self.docker = docker
        self.certificates = certificates
        self.hosts = hosts
        self.templates = templates
        self.locks = locks

    def singletons(self) -> dict[str, Singleton]:
        """Return the singletons keyed by short name."""
        return {
            PROXY: Singleton(PROXY, "Proxy", PROXY_CONTAINER, self.registry.proxy_dir),
            MAIL: Singleton(MAIL, "Mail system", MAIL_CONTAINER, self.registry.mail_dir),
            BACKUP: Singleton(
                BACKUP, "Backup system", BACKUP_CONTAINER, self.registry.backup_dir
            ),
        }

    def singleton(self, name: str) -> Singleton:
        """Return singleton *name* or raise :class:`NotFound`."""
        try:
            return self.singletons()[name]
        except KeyError as exc:
            raise NotFound(f"Unknown service: {name}") from exc

    # ------------------------------------------------------------------
    def setup(self, *, progress: Callable[[str], None] | None = None) -> list[str]:
        """Create the layout, network and singleton files, then start proxy and mail.

        Safe to re-run: existing files are rewritten only when their content
        changes and the network and hosts entry are created only once.
        Returns the names of the steps that changed something.
        """
        changed: list[str] = []

        def step(name: str, did_change: bool = True) -> None:
            if did_change:
                changed.append(name)
            if progress is not None:
                progress(name)

        with self.locks.registry_lock():
            self.registry.ensure_root()
            proxy = self.registry.proxy_dir
            for directory in (
                proxy / "certs",
                proxy / "vhost.d",
                proxy / "html",
                proxy / "conf.d",
                self.registry.mail_dir,
                self.registry.backup_dir,
                self.config.backups.root,
            ):
                directory.mkdir(parents=True, exist_ok=True)
            step("layout", False)

            step("network", self.docker.network_create(self.config.network))

            proxy_changed = self._write_compose(proxy, proxy_project(self.config).dump())
            conf_changed = self.templates.render_to_path(
                "proxy/default.conf.j2",
                proxy / "conf.d" / "default.conf",
                {"max_body_size": self.config.uploads.max_size},
            )
            step("proxy", proxy_changed or conf_changed)

            mail_changed = self._write_compose(
                self.registry.mail_dir, mail_project(self.config).dump()
            )
            mail_domain = self.config.mail.domain
            if not self.certificates.material(mail_domain).exists():
                self.certificates.issue(mail_domain)
                mail_changed = True
            step("mail", mail_changed)
            step("hosts", self.hosts.add(mail_domain))

            step("backup", self._write_scheduler())

            self.docker.compose_up(proxy)
            self.docker.compose_up(self.registry.mail_dir)
            step("start", False)
        _log.info("infrastructure setup complete (changed: %s)", ", ".join(changed) or "none")
        return changed

    def start(self, name: str) -> Singleton:
        """Start singleton *name*; setup must have run."""
        singleton = self._require(name)
        self.docker.compose_up(singleton.directory)
        return singleton

    def stop(self, name: str) -> Singleton:
        """Stop singleton *name*; setup must have run."""
        singleton = self._require(name)
        self.docker.compose_down(singleton.directory)
        return singleton

    def status(self) -> list[SingletonStatus]:
        """Return the configured and running state of every singleton."""
        statuses: list[SingletonStatus] = []
        for singleton in self.singletons().values():
            configured = singleton.configured
            running = configured and self.docker.is_running(singleton.container)
            statuses.append(
                SingletonStatus(
                    name=singleton.name,
                    label=singleton.label,
                    container=singleton.container,
                    configured=configured,
                    running=running,
                )
            )
        return statuses

    # ------------------------------------------------------------------
    def _require(self, name: str) -> Singleton:
        singleton = self.singleton(name)
        if not singleton.configured:
            raise NotFound(f"{singleton.label} not set up. Please run setup first.")
        return singleton

    def _write_compose(self, directory: Path, text: str) -> bool:
        path = directory / COMPOSE_FILE
        try:
            if path.read_text(encoding="utf-8") == text:
                return False
        except FileNotFoundError:
            pass
        self.registry.write_text(path, text)
        return True

    def _write_scheduler(self) -> bool:
        directory = self.registry.backup_dir
        changed = self._write_compose(directory, scheduler_project(self.config).dump())
        changed |= self.templates.render_to_path(
            "backup/crontab.j2",
            directory / "crontab",
            {"schedule": self.config.backups.schedule},
        )
        changed |= self.templates.render_to_path(
            "backup/run-backups.sh.j2",
            directory / "run-backups.sh",
            {
                "reserved": sorted(INFRASTRUCTURE_DIRS),
                "database_name": DATABASE_NAME,
                "retention_days": self.config.backups.retention_days,
            },
            mode=0o755,
        )
        return changed


__all__ = ["BACKUP", "InfrastructureManager", "MAIL", "PROXY", "Singleton", "SingletonStatus"]
