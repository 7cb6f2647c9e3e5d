"""Helpers for the on-disk site registry.

The registry is the directory tree under ``sites_root``: one subdirectory per
site holding its compose definition, ``.env`` and generated assets, next to
the ``proxy/``, ``mailhog/`` and ``backup/`` infrastructure directories. This
module owns path derivation plus atomic reads and writes of the files inside
that tree.
"""
from __future__ import annotations

import os
import re
import shutil
import tempfile
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

try:  # PyYAML is a runtime dependency declared in pyproject.toml
    import yaml
except Exception as exc:  # pragma: no cover - import failure handled in tests
    raise RuntimeError(
        "PyYAML is required to manage localwp sites. Install with `pip install localwp`."
    ) from exc

from .errors import InvalidInput, NotFound, OperationFailed
from .models import BACKUP_DIR, INFRASTRUCTURE_DIRS, MAIL_DIR, PROXY_DIR

COMPOSE_FILE = "docker-compose.yml"
ENV_FILE = ".env"

_ENV_KEY = re.compile(r"[A-Z_][A-Z0-9_]*")


class RegistryError(OperationFailed):
    """Raised when registry files cannot be read or written."""


@dataclass(slots=True)
class SitePaths:
    """Filesystem paths associated with a site."""

    root: Path
    wordpress: Path
    mu_plugins: Path
    database: Path
    logs: Path
    compose_file: Path
    env_file: Path
    readme: Path
    uploads_ini: Path


@dataclass(frozen=True)
class SiteRegistry:
    """High-level interface to the sites directory tree."""

    root: Path

    def __post_init__(self) -> None:
        """Normalise the root path after initialisation."""
        object.__setattr__(self, "root", Path(self.root).expanduser())

    def ensure_root(self) -> None:
        """Create the registry root if it does not yet exist."""
        self.root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------
    def site_dir(self, name: str) -> Path:
        """Return the directory for site *name*."""
        return self.root / name

    def paths_for(self, name: str) -> SitePaths:
        """Return every path belonging to site *name*."""
        root = self.site_dir(name)
        wordpress = root / "wordpress"
        return SitePaths(
            root=root,
            wordpress=wordpress,
            mu_plugins=wordpress / "wp-content" / "mu-plugins",
            database=root / "database",
            logs=root / "logs",
            compose_file=root / COMPOSE_FILE,
            env_file=root / ENV_FILE,
            readme=root / "README.md",
            uploads_ini=root / "uploads.ini",
        )

    @property
    def proxy_dir(self) -> Path:
        """Directory of the reverse proxy singleton."""
        return self.root / PROXY_DIR

    @property
    def mail_dir(self) -> Path:
        """Directory of the mail catcher singleton."""
        return self.root / MAIL_DIR

    @property
    def backup_dir(self) -> Path:
        """Directory of the backup scheduler singleton."""
        return self.root / BACKUP_DIR

    # ------------------------------------------------------------------
    # Site enumeration
    # ------------------------------------------------------------------
    def exists(self, name: str) -> bool:
        """Return True when the site directory exists."""
        return self.site_dir(name).is_dir()

    def require(self, name: str) -> SitePaths:
        """Return paths for *name* or raise :class:`NotFound`."""
        if not name or not self.exists(name):
            raise NotFound(f"Site not found: {name}")
        return self.paths_for(name)

    def iter_site_names(self) -> Iterator[str]:
        """Yield site names (sorted), skipping infrastructure directories."""
        if not self.root.is_dir():
            return
        for entry in sorted(self.root.iterdir()):
            if entry.name in INFRASTRUCTURE_DIRS or entry.name.startswith("."):
                continue
            if entry.is_dir() and (entry / COMPOSE_FILE).is_file():
                yield entry.name

    def site_names(self) -> list[str]:
        """Return all site names."""
        return list(self.iter_site_names())

    def remove_site_dir(self, name: str) -> None:
        """Delete the directory subtree of site *name*."""
        path = self.site_dir(name)
        if path.name in INFRASTRUCTURE_DIRS or path.parent != self.root:
            raise InvalidInput(f"Refusing to remove non-site directory {path}.")
        shutil.rmtree(path, ignore_errors=False)

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------
    def read_yaml(self, path: Path) -> dict[str, object]:
        """Parse a YAML mapping from *path*."""
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise NotFound(f"File not found: {path}") from exc
        except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
            raise RegistryError(f"Failed to parse {path}: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, Mapping):
            raise RegistryError(f"{path} must contain a mapping at the top level.")
        return dict(data)

    def write_yaml(self, path: Path, payload: Mapping[str, object], *, mode: int = 0o644) -> None:
        """Atomically write *payload* as YAML to *path*."""
        text = yaml.safe_dump(dict(payload), sort_keys=False, default_flow_style=False)
        self.write_text(path, text, mode=mode)

    def read_env(self, name: str) -> dict[str, str]:
        """Return the key/value pairs from the site's ``.env``."""
        paths = self.require(name)
        try:
            lines = paths.env_file.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError as exc:
            raise RegistryError(f"Site '{name}' is missing its {ENV_FILE} file.") from exc
        values: dict[str, str] = {}
        for line in lines:
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or "=" not in stripped:
                continue
            key, _, value = stripped.partition("=")
            values[key.strip()] = value.strip()
        return values

    def write_env(self, name: str, values: Mapping[str, str]) -> None:
        """Validate and write *values* to the site's ``.env`` (mode 0600)."""
        lines: list[str] = []
        for key, value in values.items():
            if not _ENV_KEY.fullmatch(key):
                raise InvalidInput(f"Invalid environment key {key!r}.")
            text = str(value)
            if any(char in text for char in ("\n", "\r", "\0")):
                raise InvalidInput(f"Environment value for {key} contains a line break.")
            lines.append(f"{key}={text}")
        self.write_text(self.paths_for(name).env_file, "\n".join(lines) + "\n", mode=0o600)

    def write_text(self, path: Path, content: str, *, mode: int = 0o644) -> None:
        """Atomically replace *path* with *content*."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise RegistryError(f"Failed to write {path}: {exc}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)


__all__ = ["COMPOSE_FILE", "ENV_FILE", "RegistryError", "SitePaths", "SiteRegistry"]
