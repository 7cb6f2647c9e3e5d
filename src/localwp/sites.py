"""Site lifecycle: create, start, stop, delete, list and maintenance."""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from .backups import BackupCoordinator
from .compose import (
    MAIL_CONTAINER,
    MAIL_SMTP_PORT,
    UPLOADS_MOUNT,
    ensure_service_volume,
    site_project,
)
from .config import AppConfig
from .errors import AlreadyExists, LocalWPError, NotFound, OperationFailed
from .hosts import HostsFile
from .locking import LockManager
from .models import (
    DATABASE_NAME,
    DATABASE_USER,
    Site,
    SiteCredentials,
    SiteSummary,
    normalize_site_name,
)
from .providers.docker import DockerProvider
from .registry import SiteRegistry
from .templates import TemplateEngine
from .tls import CertificateProvisioner

_log = logging.getLogger("localwp")

Progress = Callable[[str], None]


def _noop(_step: str) -> None:
    return None


@dataclass(slots=True)
class DeleteAllReport:
    """Outcome of deleting every site."""

    deleted: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


class SiteManager:
    """Coordinate the registry, certificates, hosts file and containers for sites."""

    def __init__(
        self,
        config: AppConfig,
        *,
        registry: SiteRegistry,
        docker: DockerProvider,
        certificates: CertificateProvisioner,
        hosts: HostsFile,
        backups: BackupCoordinator,
        templates: TemplateEngine,
        locks: LockManager,
    ) -> None:
        """Store collaborators; nothing touches disk until an operation runs."""
        self.config = config
        self.registry = registry
        self.docker = docker
        self.certificates = certificates
        self.hosts = hosts
        self.backups = backups
        self.templates = templates
        self.locks = locks

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    def create(self, raw_name: str, *, progress: Progress = _noop) -> Site:
        """Provision a new site and start its containers.

        Every completed step registers a compensating action; when a later
        step fails the actions run in reverse and :class:`OperationFailed`
        is raised, leaving no directory, certificates or hosts entry behind.
        """
        name = normalize_site_name(raw_name)
        with self.locks.mutate_sites([name]):
            if self.registry.exists(name):
                raise AlreadyExists(f"Site already exists: {name}")
            credentials = SiteCredentials.generate()
            site = Site(name, self.config.domain_suffix, credentials)
            undo: list[tuple[str, Callable[[], object]]] = []
            try:
                self._provision(site, credentials, undo, progress)
            except (LocalWPError, OSError) as exc:
                self._unwind(name, undo)
                raise OperationFailed(f"Failed to create site {name}: {exc}") from exc
        _log.info("site created: %s", name)
        return site

    def _provision(
        self,
        site: Site,
        credentials: SiteCredentials,
        undo: list[tuple[str, Callable[[], object]]],
        progress: Progress,
    ) -> None:
        paths = self.registry.paths_for(site.name)

        undo.append(("remove directory", lambda: self.registry.remove_site_dir(site.name)))
        for directory in (paths.mu_plugins, paths.database, paths.logs):
            directory.mkdir(parents=True, exist_ok=True)
        progress("directories")

        for domain in (site.domain, site.admin_domain):
            undo.append(
                (f"remove certificate {domain}", lambda d=domain: self.certificates.remove(d))
            )
            self.certificates.issue(domain)
        progress("certificates")

        self.registry.write_env(site.name, site.env())
        self.registry.write_text(paths.compose_file, site_project(site, self.config).dump())
        self.templates.render_to_path(
            "site/README.md.j2", paths.readme, self._readme_context(site, credentials)
        )
        self.templates.render_to_path(
            "site/mailhog-config.php.j2",
            paths.mu_plugins / "mailhog-config.php",
            {"mail_host": MAIL_CONTAINER, "smtp_port": MAIL_SMTP_PORT},
        )
        progress("files")

        if self.hosts.add(site.domain, site.admin_domain):
            undo.append(("remove hosts entry", lambda: self.hosts.remove(site.domain)))
        progress("hosts")

        undo.append(("stop containers", lambda: self.docker.compose_down(paths.root, volumes=True)))
        self.docker.compose_up(paths.root)
        progress("containers")

    def _unwind(self, name: str, undo: list[tuple[str, Callable[[], object]]]) -> None:
        for label, action in reversed(undo):
            try:
                action()
            except (LocalWPError, OSError) as exc:
                _log.warning("rollback step '%s' for %s failed: %s", label, name, exc)

    def _readme_context(self, site: Site, credentials: SiteCredentials) -> dict[str, object]:
        return {
            "site_name": site.name,
            "domain": site.domain,
            "admin_domain": site.admin_domain,
            "mail_domain": self.config.mail.domain,
            "database_name": DATABASE_NAME,
            "database_user": DATABASE_USER,
            "db_password": credentials.db_password,
            "db_container": site.db_container,
            "db_root_password": credentials.db_root_password,
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, raw_name: str) -> Site:
        """Load site *raw_name* including its stored credentials."""
        name = normalize_site_name(raw_name)
        self.registry.require(name)
        env = self.registry.read_env(name)
        credentials = SiteCredentials(
            db_password=env.get("DB_PASSWORD", ""),
            db_root_password=env.get("DB_ROOT_PASSWORD", ""),
        )
        return Site(name, self.config.domain_suffix, credentials)

    def list(self) -> Iterator[SiteSummary]:
        """Yield a summary per site, querying the running state lazily."""
        for name in self.registry.iter_site_names():
            site = Site(name, self.config.domain_suffix)
            yield SiteSummary(
                name=name,
                domain=site.domain,
                admin_domain=site.admin_domain,
                running=self.docker.is_running(site.wordpress_container),
                backup_count=self.backups.count(name),
            )

    # ------------------------------------------------------------------
    # Runtime state
    # ------------------------------------------------------------------
    def start(self, raw_name: str) -> Site:
        """Bring the containers of a site up."""
        name = normalize_site_name(raw_name)
        with self.locks.site_lock(name):
            paths = self.registry.require(name)
            self.docker.compose_up(paths.root)
        return Site(name, self.config.domain_suffix)

    def stop(self, raw_name: str) -> Site:
        """Take the containers of a site down."""
        name = normalize_site_name(raw_name)
        with self.locks.site_lock(name):
            paths = self.registry.require(name)
            self.docker.compose_down(paths.root)
        return Site(name, self.config.domain_suffix)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------
    def delete(self, raw_name: str, *, keep_backups: bool, progress: Progress = _noop) -> Site:
        """Remove a site with its containers, certificates and hosts entry."""
        name = normalize_site_name(raw_name)
        with self.locks.mutate_sites([name]):
            paths = self.registry.require(name)
            site = Site(name, self.config.domain_suffix)
            self.docker.compose_down(paths.root, volumes=True)
            progress("containers")
            try:
                self.registry.remove_site_dir(name)
            except OSError as exc:
                raise OperationFailed(f"Failed to remove {paths.root}: {exc}") from exc
            progress("directory")
            for domain in (site.domain, site.admin_domain):
                self.certificates.remove(domain)
            progress("certificates")
            self.hosts.remove(site.domain)
            progress("hosts")
            if not keep_backups and self.backups.purge_site(name):
                progress("backups")
        _log.info("site deleted: %s (backups kept: %s)", name, keep_backups)
        return site

    def delete_all(self, *, keep_backups: bool) -> DeleteAllReport:
        """Delete every site, collecting per-site failures."""
        names = self.registry.site_names()
        if not names:
            raise NotFound("No WordPress sites found to delete.")
        report = DeleteAllReport()
        for name in names:
            try:
                self.delete(name, keep_backups=keep_backups)
            except LocalWPError as exc:
                _log.warning("delete failed for %s: %s", name, exc)
                report.failures[name] = str(exc)
            else:
                report.deleted.append(name)
        return report

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    def fix_uploads(self, raw_name: str) -> bool:
        """Raise PHP upload limits for a site; return True when files changed."""
        name = normalize_site_name(raw_name)
        with self.locks.site_lock(name):
            paths = self.registry.require(name)
            site = Site(name, self.config.domain_suffix)
            uploads = self.config.uploads
            changed = self.templates.render_to_path(
                "site/uploads.ini.j2",
                paths.uploads_ini,
                {
                    "max_size": uploads.max_size,
                    "memory_limit": uploads.memory_limit,
                    "max_execution_time": uploads.max_execution_time,
                },
            )
            document = self.registry.read_yaml(paths.compose_file)
            try:
                mounted = ensure_service_volume(document, site.wordpress_container, UPLOADS_MOUNT)
            except (KeyError, ValueError) as exc:
                raise OperationFailed(
                    f"Compose file for {name} has no usable {site.wordpress_container} service."
                ) from exc
            if mounted:
                self.registry.write_yaml(paths.compose_file, document)
            self.docker.compose_up(paths.root)
        return changed or mounted


__all__ = ["DeleteAllReport", "SiteManager"]
