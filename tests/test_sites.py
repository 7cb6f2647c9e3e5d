"""Tests for the site lifecycle manager."""
from __future__ import annotations

import pytest
import yaml

from conftest import FakeDocker, Stack
from localwp.compose import UPLOADS_MOUNT
from localwp.errors import (
    AlreadyExists,
    InvalidInput,
    NotFound,
    OperationFailed,
    SiteNotFound,
)
from localwp.providers.docker import DockerError


def _hosts_text(stack: Stack) -> str:
    return stack.config.hosts.path.read_text(encoding="utf-8")


def test_create_provisions_everything(stack: Stack, docker: FakeDocker) -> None:
    """Creating a site writes its files, certificates and hosts entry, then starts it."""
    steps: list[str] = []

    site = stack.sites.create("My Blog", progress=steps.append)

    assert site.name == "my-blog"
    assert steps == ["directories", "certificates", "files", "hosts", "containers"]
    paths = stack.registry.paths_for("my-blog")
    assert paths.compose_file.is_file()
    assert paths.readme.is_file()
    assert (paths.mu_plugins / "mailhog-config.php").is_file()
    assert paths.database.is_dir()
    env = stack.registry.read_env("my-blog")
    assert env["SITE_DOMAIN"] == "my-blog.local"
    assert site.credentials is not None
    assert env["DB_ROOT_PASSWORD"] == site.credentials.db_root_password
    assert site.credentials.db_password != site.credentials.db_root_password
    assert stack.certificates.material("my-blog.local").exists()
    assert stack.certificates.material("pma.my-blog.local").exists()
    assert "127.0.0.1 my-blog.local pma.my-blog.local" in _hosts_text(stack)
    assert docker.commands("up") == [("up", paths.root, ())]

    readme = paths.readme.read_text(encoding="utf-8")
    assert site.credentials.db_password in readme
    mu_plugin = (paths.mu_plugins / "mailhog-config.php").read_text(encoding="utf-8")
    assert "local-wp-mailhog" in mu_plugin
    assert "Port = 1025;" in mu_plugin


def test_list_reports_running_state_and_backups(stack: Stack, docker: FakeDocker) -> None:
    """Listings reflect the container state and stored dump count."""
    stack.sites.create("alpha")
    stack.sites.create("beta")
    stack.sites.stop("beta")
    backups = stack.config.backups.root / "alpha"
    backups.mkdir(parents=True)
    (backups / "20240101-000000-alpha-backup.sql").write_text("--\n", encoding="utf-8")

    summaries = list(stack.sites.list())

    assert [(s.name, s.status, s.backup_count) for s in summaries] == [
        ("alpha", "running", 1),
        ("beta", "stopped", 0),
    ]
    assert summaries[0].admin_domain == "pma.alpha.local"


def test_create_existing_site_keeps_credentials(stack: Stack) -> None:
    """A second create for the same name fails without touching the site."""
    stack.sites.create("alpha")
    env_before = stack.registry.read_env("alpha")

    with pytest.raises(AlreadyExists, match="Site already exists: alpha"):
        stack.sites.create("Alpha")

    assert stack.registry.read_env("alpha") == env_before
    assert _hosts_text(stack).count("alpha.local pma.alpha.local") == 1


@pytest.mark.parametrize("name", ["", "   ", "proxy", "bad_name", "-lead", "two--dashes"])
def test_create_rejects_invalid_names(stack: Stack, name: str) -> None:
    """Empty, reserved and malformed names are refused before any work."""
    with pytest.raises(InvalidInput):
        stack.sites.create(name)

    assert stack.registry.site_names() == []


def test_create_rolls_back_when_containers_fail(stack: Stack, docker: FakeDocker) -> None:
    """A failed start undoes every earlier step."""
    docker.failures["up"] = DockerError("port 80 already allocated")

    with pytest.raises(OperationFailed, match="port 80 already allocated"):
        stack.sites.create("alpha")

    assert not stack.registry.site_dir("alpha").exists()
    assert not stack.certificates.material("alpha.local").key.exists()
    assert not stack.certificates.material("pma.alpha.local").certificate.exists()
    assert "alpha.local" not in _hosts_text(stack)
    assert docker.commands("down") == [("down", stack.registry.site_dir("alpha"), True)]

    # The name is free again once the failure is resolved.
    docker.failures.clear()
    assert stack.sites.create("alpha").name == "alpha"


def test_create_keeps_foreign_hosts_entry_on_rollback(stack: Stack, docker: FakeDocker) -> None:
    """A pre-existing hosts line is not removed by a rollback."""
    stack.config.hosts.path.write_text("127.0.0.1 alpha.local\n", encoding="utf-8")
    docker.failures["up"] = DockerError("boom")

    with pytest.raises(OperationFailed):
        stack.sites.create("alpha")

    assert _hosts_text(stack) == "127.0.0.1 alpha.local\n"


def test_start_and_stop(stack: Stack, docker: FakeDocker) -> None:
    """Start and stop drive compose in the site directory."""
    stack.sites.create("alpha")

    stack.sites.stop("alpha")
    assert "alpha-wordpress" not in docker.running
    stack.sites.start("alpha")
    assert "alpha-wordpress" in docker.running

    with pytest.raises(NotFound, match="Site not found: ghost"):
        stack.sites.start("ghost")
    with pytest.raises(NotFound):
        stack.sites.stop("ghost")


def test_get_loads_credentials(stack: Stack) -> None:
    """Stored credentials are read back from .env."""
    created = stack.sites.create("alpha")

    loaded = stack.sites.get("alpha")

    assert loaded.credentials == created.credentials


@pytest.mark.parametrize("keep_backups", [True, False])
def test_delete_cascades(stack: Stack, docker: FakeDocker, keep_backups: bool) -> None:
    """Deleting removes containers, files, certificates and the hosts entry."""
    stack.sites.create("alpha")
    stack.sites.create("beta")
    backups = stack.config.backups.root / "alpha"
    backups.mkdir(parents=True)
    (backups / "20240101-000000-alpha-backup.sql").write_text("--\n", encoding="utf-8")

    stack.sites.delete("alpha", keep_backups=keep_backups)

    assert stack.registry.site_names() == ["beta"]
    assert ("down", stack.registry.site_dir("alpha"), True) in docker.commands("down")
    assert not stack.certificates.material("alpha.local").bundle.exists()
    assert not stack.certificates.material("pma.alpha.local").bundle.exists()
    assert stack.certificates.material("beta.local").exists()
    hosts = _hosts_text(stack)
    assert "alpha.local" not in hosts
    assert "127.0.0.1 beta.local pma.beta.local" in hosts
    assert backups.exists() is keep_backups
    if keep_backups:
        (record,) = stack.backups.list_backups("alpha")
        assert record.filename == "20240101-000000-alpha-backup.sql"
    else:
        with pytest.raises(SiteNotFound, match="No backups found"):
            stack.backups.list_backups("alpha")


def test_delete_unknown_site(stack: Stack) -> None:
    """Deleting a missing site raises NotFound."""
    with pytest.raises(NotFound):
        stack.sites.delete("ghost", keep_backups=True)


def test_delete_all(stack: Stack, docker: FakeDocker) -> None:
    """Every site is attempted and failures are collected."""
    with pytest.raises(NotFound, match="No WordPress sites"):
        stack.sites.delete_all(keep_backups=True)

    for name in ("alpha", "beta", "gamma"):
        stack.sites.create(name)
    docker.failures["down:beta"] = DockerError("container busy")

    report = stack.sites.delete_all(keep_backups=False)

    assert report.deleted == ["alpha", "gamma"]
    assert list(report.failures) == ["beta"]
    assert stack.registry.site_names() == ["beta"]


def test_fix_uploads_is_idempotent(stack: Stack, docker: FakeDocker) -> None:
    """The uploads override is written and mounted once; re-runs change nothing."""
    stack.sites.create("alpha")
    paths = stack.registry.paths_for("alpha")

    assert stack.sites.fix_uploads("alpha") is True
    compose_after_first = paths.compose_file.read_text(encoding="utf-8")
    assert stack.sites.fix_uploads("alpha") is False

    assert paths.compose_file.read_text(encoding="utf-8") == compose_after_first
    document = yaml.safe_load(compose_after_first)
    volumes = document["services"]["alpha-wordpress"]["volumes"]
    assert volumes.count(UPLOADS_MOUNT) == 1
    assert "upload_max_filesize = 64M" in paths.uploads_ini.read_text(encoding="utf-8")
    assert len(docker.commands("up")) == 3


def test_fix_uploads_unknown_site(stack: Stack) -> None:
    """Maintenance on a missing site raises NotFound."""
    with pytest.raises(NotFound):
        stack.sites.fix_uploads("ghost")
