"""Typed Docker Compose definitions for sites and infrastructure singletons.

Compose files are built as dataclasses and serialised with
``yaml.safe_dump`` so credentials and names never pass through text
interpolation.
"""
from __future__ import annotations

from collections.abc import MutableMapping
from dataclasses import dataclass, field

import yaml

from .config import AppConfig
from .models import DATABASE_NAME, DATABASE_USER, Site

PROXY_CONTAINER = "local-wp-proxy"
MAIL_CONTAINER = "local-wp-mailhog"
BACKUP_CONTAINER = "local-wp-backup"

UPLOADS_MOUNT = "./uploads.ini:/usr/local/etc/php/conf.d/uploads.ini"
SCHEDULER_SCRIPT = "/opt/localwp/run-backups.sh"
MAIL_SMTP_PORT = 1025


@dataclass(slots=True)
class ComposeService:
    """One service entry of a compose file."""

    name: str
    image: str
    container_name: str
    restart: str | None = "unless-stopped"
    ports: list[str] = field(default_factory=list)
    volumes: list[str] = field(default_factory=list)
    environment: dict[str, str] = field(default_factory=dict)
    depends_on: list[str] = field(default_factory=list)
    networks: list[str] = field(default_factory=list)
    entrypoint: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        """Return the compose mapping for this service, omitting empty keys."""
        payload: dict[str, object] = {
            "image": self.image,
            "container_name": self.container_name,
        }
        if self.entrypoint:
            payload["entrypoint"] = list(self.entrypoint)
        if self.depends_on:
            payload["depends_on"] = list(self.depends_on)
        if self.ports:
            payload["ports"] = list(self.ports)
        if self.volumes:
            payload["volumes"] = list(self.volumes)
        if self.restart:
            payload["restart"] = self.restart
        if self.environment:
            payload["environment"] = {key: str(value) for key, value in self.environment.items()}
        if self.networks:
            payload["networks"] = list(self.networks)
        return payload


@dataclass(slots=True)
class ComposeProject:
    """A compose file: services attached to one external network."""

    network: str
    services: list[ComposeService] = field(default_factory=list)

    def service(self, name: str) -> ComposeService:
        """Return the service called *name*."""
        for service in self.services:
            if service.name == name:
                return service
        raise KeyError(name)

    def to_dict(self) -> dict[str, object]:
        """Return the full compose document."""
        return {
            "services": {service.name: service.to_dict() for service in self.services},
            "networks": {self.network: {"external": True, "name": self.network}},
        }

    def dump(self) -> str:
        """Serialise the document to YAML text."""
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)


def site_project(site: Site, config: AppConfig) -> ComposeProject:
    """Build the compose project for a WordPress site."""
    if site.credentials is None:
        raise ValueError(f"Site '{site.name}' has no credentials loaded.")
    creds = site.credentials
    network = config.network
    db = ComposeService(
        name=site.db_container,
        image=config.images.mysql,
        container_name=site.db_container,
        volumes=["./database:/var/lib/mysql"],
        environment={
            "MYSQL_ROOT_PASSWORD": creds.db_root_password,
            "MYSQL_DATABASE": DATABASE_NAME,
            "MYSQL_USER": DATABASE_USER,
            "MYSQL_PASSWORD": creds.db_password,
        },
        networks=[network],
    )
    wordpress = ComposeService(
        name=site.wordpress_container,
        image=config.images.wordpress,
        container_name=site.wordpress_container,
        depends_on=[site.db_container],
        volumes=["./wordpress:/var/www/html"],
        environment={
            "WORDPRESS_DB_HOST": site.db_container,
            "WORDPRESS_DB_USER": DATABASE_USER,
            "WORDPRESS_DB_PASSWORD": creds.db_password,
            "WORDPRESS_DB_NAME": DATABASE_NAME,
            "VIRTUAL_HOST": site.domain,
            "VIRTUAL_PORT": "80",
            "VIRTUAL_PROTO": "http",
            "HTTPS_METHOD": "redirect",
        },
        networks=[network],
    )
    admin = ComposeService(
        name=site.admin_container,
        image=config.images.phpmyadmin,
        container_name=site.admin_container,
        depends_on=[site.db_container],
        environment={
            "PMA_HOST": site.db_container,
            "PMA_USER": "root",
            "PMA_PASSWORD": creds.db_root_password,
            "VIRTUAL_HOST": site.admin_domain,
            "VIRTUAL_PORT": "80",
            "VIRTUAL_PROTO": "http",
            "HTTPS_METHOD": "redirect",
        },
        networks=[network],
    )
    return ComposeProject(network=network, services=[db, wordpress, admin])


def proxy_project(config: AppConfig) -> ComposeProject:
    """Build the compose project for the shared reverse proxy."""
    proxy = ComposeService(
        name="nginx-proxy",
        image=config.images.proxy,
        container_name=PROXY_CONTAINER,
        ports=["80:80", "443:443"],
        volumes=[
            "/var/run/docker.sock:/tmp/docker.sock:ro",
            "./certs:/etc/nginx/certs",
            "./vhost.d:/etc/nginx/vhost.d",
            "./html:/usr/share/nginx/html",
            "./conf.d:/etc/nginx/conf.d",
        ],
        networks=[config.network],
    )
    return ComposeProject(network=config.network, services=[proxy])


def mail_project(config: AppConfig) -> ComposeProject:
    """Build the compose project for the MailHog mail catcher."""
    port = config.mail.smtp_port
    mailhog = ComposeService(
        name="mailhog",
        image=config.images.mailhog,
        container_name=MAIL_CONTAINER,
        restart=None,
        ports=[f"{port}:{MAIL_SMTP_PORT}"],
        environment={
            "VIRTUAL_HOST": config.mail.domain,
            "VIRTUAL_PORT": "8025",
            "VIRTUAL_PROTO": "http",
            "HTTPS_METHOD": "redirect",
        },
        networks=[config.network],
    )
    return ComposeProject(network=config.network, services=[mailhog])


def scheduler_project(config: AppConfig) -> ComposeProject:
    """Build the compose project for the scheduled backup container."""
    scheduler = ComposeService(
        name="backup",
        image=config.images.scheduler,
        container_name=BACKUP_CONTAINER,
        entrypoint=["crond", "-f", "-l", "8"],
        volumes=[
            "/var/run/docker.sock:/var/run/docker.sock",
            "./crontab:/etc/crontabs/root:ro",
            f"./run-backups.sh:{SCHEDULER_SCRIPT}:ro",
            f"{config.sites_root}:/sites:ro",
            f"{config.backups.root}:/backups",
        ],
        networks=[config.network],
    )
    return ComposeProject(network=config.network, services=[scheduler])


def ensure_service_volume(
    document: MutableMapping[str, object],
    service: str,
    volume: str,
) -> bool:
    """Add *volume* to *service* in a parsed compose *document* if missing.

    Returns ``True`` when the document was modified.
    """
    services = document.get("services")
    if not isinstance(services, MutableMapping) or service not in services:
        raise KeyError(service)
    entry = services[service]
    if not isinstance(entry, MutableMapping):
        raise KeyError(service)
    volumes = entry.get("volumes")
    if volumes is None:
        volumes = []
        entry["volumes"] = volumes
    if not isinstance(volumes, list):
        raise ValueError(f"Service {service} has a malformed volumes entry.")
    if volume in volumes:
        return False
    volumes.append(volume)
    return True


__all__ = [
    "BACKUP_CONTAINER",
    "ComposeProject",
    "ComposeService",
    "MAIL_CONTAINER",
    "MAIL_SMTP_PORT",
    "PROXY_CONTAINER",
    "SCHEDULER_SCRIPT",
    "UPLOADS_MOUNT",
    "ensure_service_volume",
    "mail_project",
    "proxy_project",
    "scheduler_project",
    "site_project",
]
