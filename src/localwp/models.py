"""Core value types: sites, credentials, listings and backup records."""
from __future__ import annotations

import re
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .errors import InvalidInput

PROXY_DIR = "proxy"
MAIL_DIR = "mailhog"
BACKUP_DIR = "backup"
INFRASTRUCTURE_DIRS = frozenset({PROXY_DIR, MAIL_DIR, BACKUP_DIR})

ADMIN_PREFIX = "pma."
DATABASE_NAME = "wordpress"
DATABASE_USER = "wordpress"
PASSWORD_LENGTH = 16

_NAME_PATTERN = re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*")
_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def normalize_site_name(raw: str) -> str:
    """Lowercase *raw*, turn spaces into hyphens and validate the result."""
    normalised = (raw or "").strip().lower().replace(" ", "-")
    if not normalised:
        raise InvalidInput("Site name cannot be empty.")
    if not _NAME_PATTERN.fullmatch(normalised):
        raise InvalidInput(
            f"Invalid site name '{raw}': use letters, digits and single hyphens only."
        )
    if normalised in INFRASTRUCTURE_DIRS:
        raise InvalidInput(f"Site name '{normalised}' is reserved.")
    return normalised


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    """Return a random alphanumeric password."""
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class SiteCredentials:
    """Database passwords generated once at creation."""

    db_password: str
    db_root_password: str

    @classmethod
    def generate(cls) -> SiteCredentials:
        """Return two independent random credentials."""
        return cls(db_password=generate_password(), db_root_password=generate_password())


@dataclass(frozen=True)
class Site:
    """A provisioned WordPress site and its derived identifiers."""

    name: str
    domain_suffix: str = ".local"
    credentials: SiteCredentials | None = None

    @property
    def domain(self) -> str:
        """Return the site domain (``<name><suffix>``)."""
        return f"{self.name}{self.domain_suffix}"

    @property
    def admin_domain(self) -> str:
        """Return the phpMyAdmin subdomain."""
        return f"{ADMIN_PREFIX}{self.domain}"

    @property
    def db_container(self) -> str:
        """Return the database container name."""
        return f"{self.name}-db"

    @property
    def wordpress_container(self) -> str:
        """Return the WordPress container name."""
        return f"{self.name}-wordpress"

    @property
    def admin_container(self) -> str:
        """Return the phpMyAdmin container name."""
        return f"{self.name}-phpmyadmin"

    def env(self) -> dict[str, str]:
        """Return the key/value pairs persisted in the site's ``.env``."""
        if self.credentials is None:
            raise InvalidInput(f"Site '{self.name}' has no credentials loaded.")
        return {
            "SITE_NAME": self.name,
            "SITE_DOMAIN": self.domain,
            "DB_PASSWORD": self.credentials.db_password,
            "DB_ROOT_PASSWORD": self.credentials.db_root_password,
        }


@dataclass(frozen=True)
class SiteSummary:
    """Point-in-time listing entry for a site."""

    name: str
    domain: str
    admin_domain: str
    running: bool
    backup_count: int

    @property
    def status(self) -> str:
        """Return a printable running state."""
        return "running" if self.running else "stopped"


@dataclass(frozen=True)
class BackupRecord:
    """One database dump for a site."""

    site: str
    timestamp: datetime
    size_bytes: int
    path: Path

    @property
    def filename(self) -> str:
        """Return the dump file name."""
        return self.path.name


__all__ = [
    "ADMIN_PREFIX",
    "BACKUP_DIR",
    "BackupRecord",
    "DATABASE_NAME",
    "DATABASE_USER",
    "INFRASTRUCTURE_DIRS",
    "MAIL_DIR",
    "PROXY_DIR",
    "Site",
    "SiteCredentials",
    "SiteSummary",
    "generate_password",
    "normalize_site_name",
]
