"""Tests for the on-disk site registry."""
from __future__ import annotations

from pathlib import Path

import pytest

from localwp.errors import InvalidInput, NotFound
from localwp.registry import RegistryError, SiteRegistry


def _make_site(root: Path, name: str) -> Path:
    site = root / name
    site.mkdir(parents=True)
    (site / "docker-compose.yml").write_text("services: {}\n", encoding="utf-8")
    return site


def test_site_names_skip_infrastructure_and_incomplete_dirs(tmp_path: Path) -> None:
    """Only directories holding a compose file count as sites."""
    registry = SiteRegistry(tmp_path)
    _make_site(tmp_path, "beta")
    _make_site(tmp_path, "alpha")
    _make_site(tmp_path, "proxy")
    (tmp_path / "mailhog").mkdir()
    (tmp_path / "scratch").mkdir()
    (tmp_path / ".hidden").mkdir()

    assert registry.site_names() == ["alpha", "beta"]


def test_site_names_empty_when_root_missing(tmp_path: Path) -> None:
    """A missing root yields no sites instead of failing."""
    registry = SiteRegistry(tmp_path / "absent")

    assert registry.site_names() == []


def test_paths_for_derives_layout(tmp_path: Path) -> None:
    """Every site path hangs off the site directory."""
    paths = SiteRegistry(tmp_path).paths_for("alpha")

    assert paths.root == tmp_path / "alpha"
    assert paths.mu_plugins == tmp_path / "alpha" / "wordpress" / "wp-content" / "mu-plugins"
    assert paths.compose_file.name == "docker-compose.yml"
    assert paths.env_file.name == ".env"


def test_require_raises_for_unknown_site(tmp_path: Path) -> None:
    """Requiring a missing site raises NotFound."""
    registry = SiteRegistry(tmp_path)

    with pytest.raises(NotFound, match="Site not found: ghost"):
        registry.require("ghost")


def test_env_round_trip_uses_private_mode(tmp_path: Path) -> None:
    """The .env file is written 0600 and parsed back."""
    registry = SiteRegistry(tmp_path)
    _make_site(tmp_path, "alpha")

    registry.write_env("alpha", {"SITE_NAME": "alpha", "DB_PASSWORD": "s3cr=t"})

    env_file = tmp_path / "alpha" / ".env"
    assert oct(env_file.stat().st_mode & 0o777) == "0o600"
    assert registry.read_env("alpha") == {"SITE_NAME": "alpha", "DB_PASSWORD": "s3cr=t"}


@pytest.mark.parametrize(
    ("values", "message"),
    [
        ({"bad-key": "x"}, "Invalid environment key"),
        ({"DB_PASSWORD": "a\nINJECTED=1"}, "line break"),
    ],
)
def test_write_env_rejects_unsafe_values(
    tmp_path: Path, values: dict[str, str], message: str
) -> None:
    """Keys must be shell-style identifiers and values single-line."""
    registry = SiteRegistry(tmp_path)

    with pytest.raises(InvalidInput, match=message):
        registry.write_env("alpha", values)


def test_read_env_missing_file(tmp_path: Path) -> None:
    """A site without .env reports a registry error."""
    registry = SiteRegistry(tmp_path)
    _make_site(tmp_path, "alpha")

    with pytest.raises(RegistryError, match="missing its .env"):
        registry.read_env("alpha")


def test_yaml_helpers(tmp_path: Path) -> None:
    """YAML payloads survive a write/read cycle and non-mappings are refused."""
    registry = SiteRegistry(tmp_path)
    target = tmp_path / "nested" / "doc.yml"

    registry.write_yaml(target, {"services": {"web": {"image": "nginx"}}})
    assert registry.read_yaml(target) == {"services": {"web": {"image": "nginx"}}}

    target.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(RegistryError, match="mapping"):
        registry.read_yaml(target)

    with pytest.raises(NotFound):
        registry.read_yaml(tmp_path / "missing.yml")


def test_remove_site_dir_refuses_infrastructure(tmp_path: Path) -> None:
    """Infrastructure directories are never removed as sites."""
    registry = SiteRegistry(tmp_path)
    _make_site(tmp_path, "proxy")
    _make_site(tmp_path, "alpha")

    with pytest.raises(InvalidInput):
        registry.remove_site_dir("proxy")

    registry.remove_site_dir("alpha")
    assert not (tmp_path / "alpha").exists()
    assert (tmp_path / "proxy").exists()
