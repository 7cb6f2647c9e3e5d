"""Jinja2 template rendering for generated text assets.

Templates are looked up in an optional override directory first and then in
the built-in ``localwp/templates`` package directory. Rendering uses
``StrictUndefined`` so a missing variable fails loudly instead of producing
a half-rendered file.
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateError,
)

from .errors import OperationFailed


class TemplateRenderError(OperationFailed):
    """Raised when a template cannot be loaded or rendered."""


@dataclass(frozen=True)
class TemplateEngine:
    """Render built-in or overridden templates to strings and files."""

    environment: Environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Build an engine that prefers templates under *override_dir*."""
        loaders = []
        if override_dir is not None:
            loaders.append(FileSystemLoader(str(Path(override_dir).expanduser())))
        loaders.append(PackageLoader("localwp", "templates"))
        environment = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        return cls(environment=environment)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context*."""
        try:
            template = self.environment.get_template(template_name)
            return template.render(**context)
        except TemplateError as exc:
            raise TemplateRenderError(
                f"Failed to render template {template_name}: {exc}"
            ) from exc

    def render_to_path(
        self,
        template_name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int = 0o644,
    ) -> bool:
        """Render into *destination*; return ``False`` when content is unchanged."""
        content = self.render_to_string(template_name, context)
        return write_text_atomic(destination, content, mode=mode)


def write_text_atomic(destination: Path, content: str, *, mode: int = 0o644) -> bool:
    """Atomically replace *destination* with *content* when it differs."""
    if destination.exists():
        try:
            if destination.read_text(encoding="utf-8") == content:
                os.chmod(destination, mode)
                return False
        except OSError:
            pass
    destination.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(destination.parent), prefix=f".{destination.name}.")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, destination)
    finally:
        tmp_path.unlink(missing_ok=True)
    return True


__all__ = ["TemplateEngine", "TemplateRenderError", "write_text_atomic"]
