"""Error taxonomy shared by the site, backup and host components.

Every error carries the CLI exit code it maps to so commands can translate
failures without a lookup table.
"""
from __future__ import annotations

from .exit_codes import ExitCode


class LocalWPError(RuntimeError):
    """Base class for all localwp failures."""

    exit_code: ExitCode = ExitCode.PROVIDER


class InvalidInput(LocalWPError):
    """Raised for empty, malformed or reserved user input."""

    exit_code = ExitCode.VALIDATION


class AlreadyExists(LocalWPError):
    """Raised when creating a site whose directory already exists."""

    exit_code = ExitCode.VALIDATION


class NotFound(LocalWPError):
    """Raised when operating on a site (or singleton) that does not exist."""

    exit_code = ExitCode.VALIDATION


class SiteNotFound(NotFound):
    """Raised by backup operations when a site or its backups are missing."""


class InvalidSelection(LocalWPError):
    """Raised when a backup index falls outside the listed range."""

    exit_code = ExitCode.VALIDATION


class OperationFailed(LocalWPError):
    """Raised when an external process or filesystem step fails."""

    exit_code = ExitCode.PROVIDER


class NotReady(LocalWPError):
    """Raised when a dependent service does not become ready in time."""

    exit_code = ExitCode.PROVIDER


__all__ = [
    "AlreadyExists",
    "InvalidInput",
    "InvalidSelection",
    "LocalWPError",
    "NotFound",
    "NotReady",
    "OperationFailed",
    "SiteNotFound",
]
