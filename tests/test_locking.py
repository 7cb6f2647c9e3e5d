"""Tests for the locking primitives."""
from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from localwp.exit_codes import ExitCode
from localwp.locking import LockManager, LockTimeoutError


def test_site_lock_creates_metadata(tmp_path: Path) -> None:
    """Acquiring a lock writes metadata and releases cleanly."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)

    lock_path = tmp_path / "run" / "sites" / "alpha.lock"
    with manager.site_lock("alpha") as handle:
        assert handle.wait_ms >= 0
        assert lock_path.exists()
        data = json.loads(lock_path.read_text(encoding="utf-8"))
        assert data["pid"] == os.getpid()
        assert data["path"] == str(lock_path)
        assert "acquired_at" in data

    # Lockfile persists for diagnostics but no longer holds the lock.
    with manager.site_lock("alpha", timeout=0.2):
        pass


def test_site_lock_timeout(tmp_path: Path) -> None:
    """Second acquisition times out while the first lock is held."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)

    with manager.site_lock("alpha"):
        with pytest.raises(LockTimeoutError) as excinfo:
            with manager.site_lock("alpha", timeout=0.1):
                pass
    assert excinfo.value.exit_code == ExitCode.ENVIRONMENT


def test_mutate_sites_acquires_global_then_sites(tmp_path: Path) -> None:
    """Lock bundles acquire the registry lock first followed by per-site locks."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)

    with manager.mutate_sites(["beta", "alpha", "alpha"]) as bundle:
        assert bundle.wait_ms >= 0
        assert [handle.path.name for handle in bundle.handles] == [
            "localwp.lock",
            "alpha.lock",
            "beta.lock",
        ]


def test_registry_lock_blocks_concurrent_mutation(tmp_path: Path) -> None:
    """A held registry lock makes another mutation time out."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)

    with manager.registry_lock():
        with pytest.raises(LockTimeoutError):
            with manager.mutate_sites(["alpha"], timeout=0.1):
                pass


def test_site_names_do_not_collide_with_global_locks(tmp_path: Path) -> None:
    """Per-site locks live in their own directory."""
    manager = LockManager(tmp_path / "run", default_timeout=1.0)

    with manager.hosts_lock():
        with manager.site_lock("hosts", timeout=0.1) as handle:
            assert handle.path == tmp_path / "run" / "sites" / "hosts.lock"
