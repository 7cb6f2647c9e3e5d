"""Configuration loader for localwp.

Configuration values are merged from several sources, later ones winning:

1. Built-in defaults.
2. ``~/.config/localwp/config.yml`` (or an override path).
3. Environment variables prefixed with ``LOCALWP_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export LOCALWP_BACKUPS__RETENTION_DAYS=14
    export LOCALWP_HOSTS__ELEVATE=false

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access and type safety.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load localwp configuration. Install with "
        "`pip install localwp` or ensure PyYAML>=6.0 is available."
    ) from exc

from .errors import InvalidInput

ENV_PREFIX = "LOCALWP_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(InvalidInput):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class DockerConfig:
    """Container runtime invocation settings."""

    docker_bin: str = "docker"
    compose_args: tuple[str, ...] = ("compose",)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"docker_bin": self.docker_bin, "compose_args": list(self.compose_args)}


@dataclass(frozen=True)
class HostsConfig:
    """Hosts file location and privilege escalation settings."""

    path: Path = Path("/etc/hosts")
    elevate: bool = True
    elevate_command: tuple[str, ...] = ("sudo",)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "path": str(self.path),
            "elevate": self.elevate,
            "elevate_command": list(self.elevate_command),
        }


@dataclass(frozen=True)
class TLSConfig:
    """Self-signed certificate parameters."""

    key_size: int = 2048
    validity_days: int = 365
    organization: str = "LocalWP"
    country: str = "US"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "key_size": self.key_size,
            "validity_days": self.validity_days,
            "organization": self.organization,
            "country": self.country,
        }


@dataclass(frozen=True)
class BackupConfig:
    """Backup storage and retention defaults."""

    root: Path
    retention_days: int = 7
    schedule: str = "0 2 * * *"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "root": str(self.root),
            "retention_days": self.retention_days,
            "schedule": self.schedule,
        }


@dataclass(frozen=True)
class ReadinessConfig:
    """Polling parameters for the database readiness probe."""

    timeout: float = 60.0
    interval: float = 1.0
    max_interval: float = 5.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "timeout": self.timeout,
            "interval": self.interval,
            "max_interval": self.max_interval,
        }


@dataclass(frozen=True)
class UploadsConfig:
    """PHP limits applied by the fix-uploads maintenance operation."""

    max_size: str = "64M"
    memory_limit: str = "256M"
    max_execution_time: int = 300

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "max_size": self.max_size,
            "memory_limit": self.memory_limit,
            "max_execution_time": self.max_execution_time,
        }


@dataclass(frozen=True)
class MailConfig:
    """Mail catcher endpoint settings."""

    domain: str = "mail.local"
    smtp_port: int = 1025

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"domain": self.domain, "smtp_port": self.smtp_port}


@dataclass(frozen=True)
class ImagesConfig:
    """Container images used for sites and infrastructure."""

    mysql: str = "mysql:8.0"
    wordpress: str = "wordpress:latest"
    phpmyadmin: str = "phpmyadmin/phpmyadmin"
    proxy: str = "jwilder/nginx-proxy:alpine"
    mailhog: str = "mailhog/mailhog"
    scheduler: str = "docker:cli"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "mysql": self.mysql,
            "wordpress": self.wordpress,
            "phpmyadmin": self.phpmyadmin,
            "proxy": self.proxy,
            "mailhog": self.mailhog,
            "scheduler": self.scheduler,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for localwp."""

    config_file: Path
    sites_root: Path
    state_dir: Path
    logs_dir: Path
    runtime_dir: Path
    templates_dir: Path
    lock_timeout: float
    domain_suffix: str
    loopback_address: str
    network: str
    docker: DockerConfig
    hosts: HostsConfig
    tls: TLSConfig
    backups: BackupConfig
    readiness: ReadinessConfig
    uploads: UploadsConfig
    mail: MailConfig
    images: ImagesConfig

    @property
    def certs_dir(self) -> Path:
        """Return the shared certificate directory served by the proxy."""
        return self.sites_root / "proxy" / "certs"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "sites_root": str(self.sites_root),
            "state_dir": str(self.state_dir),
            "logs_dir": str(self.logs_dir),
            "runtime_dir": str(self.runtime_dir),
            "templates_dir": str(self.templates_dir),
            "lock_timeout": self.lock_timeout,
            "domain_suffix": self.domain_suffix,
            "loopback_address": self.loopback_address,
            "network": self.network,
            "docker": self.docker.to_dict(),
            "hosts": self.hosts.to_dict(),
            "tls": self.tls.to_dict(),
            "backups": self.backups.to_dict(),
            "readiness": self.readiness.to_dict(),
            "uploads": self.uploads.to_dict(),
            "mail": self.mail.to_dict(),
            "images": self.images.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/localwp/config.yml",
    "sites_root": "~/Local-Sites",
    "state_dir": "~/.local/state/localwp",
    "logs_dir": None,  # derived from state_dir when absent
    "runtime_dir": None,  # derived from state_dir when absent
    "templates_dir": "~/.config/localwp/templates",
    "lock_timeout": 30.0,
    "domain_suffix": ".local",
    "loopback_address": "127.0.0.1",
    "network": "local-wp-network",
    "docker": {
        "docker_bin": "docker",
        "compose_args": ["compose"],
    },
    "hosts": {
        "path": "/etc/hosts",
        "elevate": True,
        "elevate_command": ["sudo"],
    },
    "tls": {
        "key_size": 2048,
        "validity_days": 365,
        "organization": "LocalWP",
        "country": "US",
    },
    "backups": {
        "root": None,  # derived from sites_root when absent
        "retention_days": 7,
        "schedule": "0 2 * * *",
    },
    "readiness": {
        "timeout": 60.0,
        "interval": 1.0,
        "max_interval": 5.0,
    },
    "uploads": {
        "max_size": "64M",
        "memory_limit": "256M",
        "max_execution_time": 300,
    },
    "mail": {
        "domain": "mail.local",
        "smtp_port": 1025,
    },
    "images": {
        "mysql": "mysql:8.0",
        "wordpress": "wordpress:latest",
        "phpmyadmin": "phpmyadmin/phpmyadmin",
        "proxy": "jwilder/nginx-proxy:alpine",
        "mailhog": "mailhog/mailhog",
        "scheduler": "docker:cli",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
_SECTION_KEYS: dict[str, set[str]] = {
    section: set(cast(Mapping[str, object], value).keys())
    for section, value in DEFAULTS.items()
    if isinstance(value, Mapping)
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(default_path).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in _SECTION_KEYS.items():
        value = raw.get(section)
        if value is None:
            continue
        mapping = _as_dict(value, section)
        unknown = set(mapping.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    suffix = raw.get("domain_suffix")
    if suffix is not None and not str(suffix).startswith("."):
        raise ConfigError("domain_suffix must start with a dot (e.g. '.local').")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    sites_root = _to_path(raw.get("sites_root"))
    state_dir = _to_path(raw.get("state_dir"))
    logs_value = raw.get("logs_dir")
    logs_dir = _to_path(logs_value) if logs_value else state_dir / "logs"
    runtime_value = raw.get("runtime_dir")
    runtime_dir = _to_path(runtime_value) if runtime_value else state_dir / "run"
    templates_dir = _to_path(raw.get("templates_dir"))
    lock_timeout = _expect_positive_float(raw.get("lock_timeout"), "lock_timeout", default=30.0)

    docker_mapping = _as_dict(raw.get("docker"), "docker")
    docker = DockerConfig(
        docker_bin=str(docker_mapping.get("docker_bin", "docker")),
        compose_args=_as_str_tuple(docker_mapping.get("compose_args"), "docker.compose_args")
        or ("compose",),
    )

    hosts_mapping = _as_dict(raw.get("hosts"), "hosts")
    hosts = HostsConfig(
        path=_to_path(hosts_mapping.get("path", "/etc/hosts")),
        elevate=_expect_bool(hosts_mapping.get("elevate"), "hosts.elevate", default=True),
        elevate_command=_as_str_tuple(
            hosts_mapping.get("elevate_command"), "hosts.elevate_command"
        ),
    )

    tls_mapping = _as_dict(raw.get("tls"), "tls")
    key_size = _expect_int(tls_mapping.get("key_size"), "tls.key_size", default=2048)
    if key_size < 2048:
        raise ConfigError("tls.key_size must be at least 2048 bits.")
    validity_days = _expect_int(tls_mapping.get("validity_days"), "tls.validity_days", default=365)
    if validity_days <= 0:
        raise ConfigError("tls.validity_days must be greater than zero.")
    tls = TLSConfig(
        key_size=key_size,
        validity_days=validity_days,
        organization=str(tls_mapping.get("organization", "LocalWP")),
        country=str(tls_mapping.get("country", "US")),
    )

    backups_mapping = _as_dict(raw.get("backups"), "backups")
    backups_root_value = backups_mapping.get("root")
    backups_root = (
        _to_path(backups_root_value) if backups_root_value else sites_root / "backup" / "backups"
    )
    retention_days = _expect_int(
        backups_mapping.get("retention_days"), "backups.retention_days", default=7
    )
    if retention_days <= 0:
        raise ConfigError("backups.retention_days must be greater than zero.")
    backups = BackupConfig(
        root=backups_root,
        retention_days=retention_days,
        schedule=str(backups_mapping.get("schedule", "0 2 * * *")),
    )

    readiness_mapping = _as_dict(raw.get("readiness"), "readiness")
    readiness = ReadinessConfig(
        timeout=_expect_positive_float(
            readiness_mapping.get("timeout"), "readiness.timeout", default=60.0
        ),
        interval=_expect_positive_float(
            readiness_mapping.get("interval"), "readiness.interval", default=1.0
        ),
        max_interval=_expect_positive_float(
            readiness_mapping.get("max_interval"), "readiness.max_interval", default=5.0
        ),
    )

    uploads_mapping = _as_dict(raw.get("uploads"), "uploads")
    uploads = UploadsConfig(
        max_size=str(uploads_mapping.get("max_size", "64M")),
        memory_limit=str(uploads_mapping.get("memory_limit", "256M")),
        max_execution_time=_expect_int(
            uploads_mapping.get("max_execution_time"),
            "uploads.max_execution_time",
            default=300,
        ),
    )

    mail_mapping = _as_dict(raw.get("mail"), "mail")
    mail = MailConfig(
        domain=str(mail_mapping.get("domain", "mail.local")),
        smtp_port=_expect_int(mail_mapping.get("smtp_port"), "mail.smtp_port", default=1025),
    )

    images_mapping = _as_dict(raw.get("images"), "images")
    defaults = ImagesConfig()
    images = ImagesConfig(
        mysql=str(images_mapping.get("mysql", defaults.mysql)),
        wordpress=str(images_mapping.get("wordpress", defaults.wordpress)),
        phpmyadmin=str(images_mapping.get("phpmyadmin", defaults.phpmyadmin)),
        proxy=str(images_mapping.get("proxy", defaults.proxy)),
        mailhog=str(images_mapping.get("mailhog", defaults.mailhog)),
        scheduler=str(images_mapping.get("scheduler", defaults.scheduler)),
    )

    return AppConfig(
        config_file=config_file,
        sites_root=sites_root,
        state_dir=state_dir,
        logs_dir=logs_dir,
        runtime_dir=runtime_dir,
        templates_dir=templates_dir,
        lock_timeout=lock_timeout,
        domain_suffix=str(raw.get("domain_suffix", ".local")),
        loopback_address=str(raw.get("loopback_address", "127.0.0.1")),
        network=str(raw.get("network", "local-wp-network")),
        docker=docker,
        hosts=hosts,
        tls=tls,
        backups=backups,
        readiness=readiness,
        uploads=uploads,
        mail=mail,
        images=images,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _as_str_tuple(value: object | None, label: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(value.split())
    return tuple(str(item) for item in _as_sequence(value, label))


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false", "yes", "no"}:
        return value.strip().lower() in {"true", "yes"}
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "BackupConfig",
    "ConfigError",
    "DockerConfig",
    "HostsConfig",
    "ImagesConfig",
    "MailConfig",
    "ReadinessConfig",
    "TLSConfig",
    "UploadsConfig",
    "load_config",
]
