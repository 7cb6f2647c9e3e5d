"""Provider interfaces for localwp."""
from __future__ import annotations

from .docker import DockerError, DockerProvider

__all__ = [
    "DockerError",
    "DockerProvider",
]
