"""Database dumps for sites: create, list, restore and prune."""
from __future__ import annotations

import logging
import os
import re
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

from .config import BackupConfig, ReadinessConfig
from .errors import InvalidSelection, LocalWPError, NotFound, OperationFailed, SiteNotFound
from .models import DATABASE_NAME, BackupRecord, Site, normalize_site_name
from .providers.docker import DockerError, DockerProvider
from .readiness import wait_for_database
from .registry import SiteRegistry

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
BACKUP_SUFFIX = "-backup.sql"

_BACKUP_NAME = re.compile(r"(?P<stamp>\d{8}-\d{6})-(?P<site>.+)-backup\.sql")
_log = logging.getLogger("localwp")


class BackupError(OperationFailed):
    """Raised when a dump or restore fails."""


@dataclass(slots=True)
class BackupRunReport:
    """Outcome of a backup-all run."""

    created: list[BackupRecord] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    pruned: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return True when every site was dumped."""
        return not self.failures


def backup_filename(site: str, moment: datetime) -> str:
    """Return the dump file name for *site* taken at *moment*."""
    return f"{moment.astimezone(UTC).strftime(TIMESTAMP_FORMAT)}-{site}{BACKUP_SUFFIX}"


def _timestamp_for(path: Path) -> datetime:
    match = _BACKUP_NAME.fullmatch(path.name)
    if match:
        try:
            return datetime.strptime(match.group("stamp"), TIMESTAMP_FORMAT).replace(tzinfo=UTC)
        except ValueError:
            pass
    return datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)


class BackupCoordinator:
    """Dump site databases to ``<backups_root>/<site>/`` and restore them."""

    def __init__(
        self,
        registry: SiteRegistry,
        docker: DockerProvider,
        config: BackupConfig,
        readiness: ReadinessConfig | None = None,
        *,
        domain_suffix: str = ".local",
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Wire the coordinator to the registry and docker provider."""
        self.registry = registry
        self.docker = docker
        self.config = config
        self.readiness = readiness or ReadinessConfig()
        self.domain_suffix = domain_suffix
        self._now = now
        self._sleep = sleep

    @property
    def root(self) -> Path:
        """Directory holding per-site backup folders."""
        return self.config.root

    def site_backup_dir(self, name: str) -> Path:
        """Return the backup folder for site *name*."""
        return self.root / name

    # ------------------------------------------------------------------
    # Dumps
    # ------------------------------------------------------------------
    def backup_one(self, name: str) -> BackupRecord:
        """Dump the database of site *name* and return the new record."""
        name = normalize_site_name(name)
        if not self.registry.exists(name):
            raise SiteNotFound(f"Site not found: {name}")
        site = Site(name, self.domain_suffix)
        password = self._root_password(name)
        self._ensure_database(site, password)

        moment = self._now()
        target = self.site_backup_dir(name) / backup_filename(name, moment)
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.parent / f".{target.name}.tmp"
        try:
            self.docker.exec_to_file(
                site.db_container,
                [
                    "mysqldump",
                    "-uroot",
                    "--single-transaction",
                    "--routines",
                    "--triggers",
                    DATABASE_NAME,
                ],
                partial,
                env={"MYSQL_PWD": password},
            )
            os.replace(partial, target)
        except (DockerError, OSError) as exc:
            partial.unlink(missing_ok=True)
            raise BackupError(f"Backup of {name} failed: {exc}") from exc
        record = BackupRecord(
            site=name,
            timestamp=_timestamp_for(target),
            size_bytes=target.stat().st_size,
            path=target,
        )
        _log.info("backup created for %s: %s (%d bytes)", name, target, record.size_bytes)
        return record

    def backup_all(self) -> BackupRunReport:
        """Dump every site, continue past failures, then prune old dumps."""
        report = BackupRunReport()
        for name in self.registry.site_names():
            try:
                report.created.append(self.backup_one(name))
            except LocalWPError as exc:
                _log.warning("backup failed for %s: %s", name, exc)
                report.failures[name] = str(exc)
        report.pruned = self.prune()
        return report

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------
    def list_backups(self, name: str) -> list[BackupRecord]:
        """Return the dumps of *name*, newest first."""
        name = normalize_site_name(name)
        directory = self.site_backup_dir(name)
        if not directory.is_dir():
            raise SiteNotFound(f"No backups found for site: {name}")
        records = [
            BackupRecord(
                site=name,
                timestamp=_timestamp_for(path),
                size_bytes=path.stat().st_size,
                path=path,
            )
            for path in directory.glob(f"*{BACKUP_SUFFIX}")
            if path.is_file()
        ]
        records.sort(key=lambda record: (record.timestamp, record.path.name), reverse=True)
        return records

    def select(self, name: str, index: int) -> BackupRecord:
        """Return the *index*-th (1-based) entry of :meth:`list_backups`."""
        records = self.list_backups(name)
        if not 1 <= index <= len(records):
            raise InvalidSelection(
                f"Invalid selection {index}: choose between 1 and {len(records)}."
            )
        return records[index - 1]

    def count(self, name: str) -> int:
        """Return the number of dumps kept for *name*."""
        directory = self.site_backup_dir(name)
        if not directory.is_dir():
            return 0
        return sum(1 for path in directory.glob(f"*{BACKUP_SUFFIX}") if path.is_file())

    def backup_counts(self) -> dict[str, int]:
        """Return dump counts keyed by site for every site in the registry."""
        return {name: self.count(name) for name in self.registry.site_names()}

    # ------------------------------------------------------------------
    # Restore and cleanup
    # ------------------------------------------------------------------
    def restore(self, name: str, record: BackupRecord) -> None:
        """Load *record* into the database of site *name*."""
        name = normalize_site_name(name)
        if not self.registry.exists(name):
            raise NotFound(f"Site not found: {name}")
        if not record.path.is_file():
            raise NotFound(f"Backup file not found: {record.path}")
        site = Site(name, self.domain_suffix)
        password = self._root_password(name)
        self._ensure_database(site, password)
        try:
            self.docker.exec_from_file(
                site.db_container,
                ["mysql", "-uroot", DATABASE_NAME],
                record.path,
                env={"MYSQL_PWD": password},
            )
        except DockerError as exc:
            raise BackupError(f"Restore of {name} from {record.filename} failed: {exc}") from exc
        _log.info("restored %s from %s", name, record.path)

    def prune(self, retention_days: int | None = None) -> list[Path]:
        """Delete dumps older than the retention window; return removed paths."""
        days = self.config.retention_days if retention_days is None else retention_days
        cutoff = self._now() - timedelta(days=days)
        removed: list[Path] = []
        if not self.root.is_dir():
            return removed
        for path in sorted(self.root.glob(f"*/*{BACKUP_SUFFIX}")):
            if not path.is_file() or _timestamp_for(path) >= cutoff:
                continue
            path.unlink(missing_ok=True)
            removed.append(path)
        return removed

    def purge_site(self, name: str) -> bool:
        """Remove every dump of *name*; return True when anything was deleted."""
        directory = self.site_backup_dir(name)
        if not directory.is_dir():
            return False
        shutil.rmtree(directory)
        return True

    # ------------------------------------------------------------------
    def _root_password(self, name: str) -> str:
        password = self.registry.read_env(name).get("DB_ROOT_PASSWORD")
        if not password:
            raise BackupError(f"Site '{name}' has no DB_ROOT_PASSWORD in its .env file.")
        return password

    def _ensure_database(self, site: Site, password: str) -> None:
        if self.docker.is_running(site.db_container):
            return
        _log.info("starting %s for database access", site.db_container)
        self.docker.compose_up(self.registry.site_dir(site.name), [site.db_container])
        wait_for_database(
            self.docker,
            site.db_container,
            password,
            self.readiness,
            sleep=self._sleep,
        )


__all__ = [
    "BACKUP_SUFFIX",
    "BackupCoordinator",
    "BackupError",
    "BackupRunReport",
    "TIMESTAMP_FORMAT",
    "backup_filename",
]
