"""Tests for the structured logging subsystem."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from localwp.logging import StructuredLogger


def _records(logger: StructuredLogger) -> list[dict[str, object]]:
    return [json.loads(line) for line in logger.path.read_text(encoding="utf-8").splitlines()]


def test_operation_writes_jsonl_record(tmp_path: Path) -> None:
    """Each operation appends a single JSON line with steps and result."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation(
        "site create",
        args={"name": "alpha"},
        target={"kind": "site", "path": tmp_path / "alpha"},
    ) as op:
        op.set_lock_wait_ms(12)
        op.add_step("certificates", status="success")
        op.success("Site created.", changed=1, context={"path": tmp_path})

    (record,) = _records(logger)
    assert record["command"] == "site create"
    assert record["args"] == {"name": "alpha"}
    assert record["target"] == {"kind": "site", "path": str(tmp_path / "alpha")}
    assert record["lock_wait_ms"] == 12
    assert record["steps"] == [{"name": "certificates", "status": "success"}]
    result = record["result"]
    assert isinstance(result, dict)
    assert result["status"] == "success"
    assert result["changed"] == 1
    assert result["context"] == {"path": str(tmp_path)}


def test_unhandled_exception_is_recorded_and_reraised(tmp_path: Path) -> None:
    """Exceptions escaping the block produce an error record."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(ValueError):
        with logger.operation("site start"):
            raise ValueError("boom")

    (record,) = _records(logger)
    result = record["result"]
    assert isinstance(result, dict)
    assert result["status"] == "error"
    assert "boom" in str(result["message"])


def test_error_keeps_explicit_result(tmp_path: Path) -> None:
    """A recorded error result is not replaced when the block then exits."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(SystemExit):
        with logger.operation("site delete") as op:
            op.error("Site not found: beta", rc=2)
            raise SystemExit(2)

    (record,) = _records(logger)
    result = record["result"]
    assert isinstance(result, dict)
    assert result["message"] == "Site not found: beta"
    assert result["errors"] == ["Site not found: beta"]
    assert result["rc"] == 2


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("demo", args={"foo": "bar"}) as op:
        op.success("done", changed=0)


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger._operations_log_path  # type: ignore[attr-defined]

    original_open = Path.open

    def fail_once(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_once)

    with logger.operation("demo") as op:
        op.success("done", changed=0)

    assert logger._enabled is False  # type: ignore[attr-defined]

    # Subsequent operations should not raise even though logger is disabled.
    with logger.operation("demo-2") as op:
        op.success("done", changed=0)
