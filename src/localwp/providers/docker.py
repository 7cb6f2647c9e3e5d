"""Docker provider: the single place that spawns ``docker`` processes."""
from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from ..errors import OperationFailed


class DockerError(OperationFailed):
    """Raised when a docker invocation fails."""


@dataclass(slots=True)
class DockerProvider:
    """Drive ``docker`` and ``docker compose`` for sites and singletons."""

    docker_bin: str = "docker"
    compose_args: tuple[str, ...] = ("compose",)

    def compose_up(
        self,
        project_dir: Path,
        services: Sequence[str] = (),
    ) -> subprocess.CompletedProcess[str]:
        """Run ``compose up -d`` in *project_dir* (optionally for *services* only)."""
        return self._compose(project_dir, ["up", "-d", *services])

    def compose_down(
        self,
        project_dir: Path,
        *,
        volumes: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        """Run ``compose down`` in *project_dir*."""
        args = ["down"]
        if volumes:
            args.append("-v")
        return self._compose(project_dir, args)

    def is_running(self, container: str) -> bool:
        """Return True when a container named exactly *container* is running."""
        result = self._run_command(
            [
                self.docker_bin,
                "ps",
                "--filter",
                f"name=^/{container}$",
                "--format",
                "{{.Names}}",
            ],
            check=True,
            error_prefix="docker ps",
        )
        return container in (result.stdout or "").split()

    def network_create(self, name: str) -> bool:
        """Create the bridge network *name*; return False if it already exists."""
        inspect = self._run_command(
            [self.docker_bin, "network", "inspect", name],
            check=False,
            error_prefix="docker network inspect",
        )
        if inspect.returncode == 0:
            return False
        result = self._run_command(
            [self.docker_bin, "network", "create", name],
            check=False,
            error_prefix="docker network create",
        )
        if result.returncode != 0:
            message = (result.stderr or "").strip()
            if "already exists" in message:
                return False
            raise DockerError(f"docker network create failed (exit {result.returncode}): {message}")
        return True

    def exec(
        self,
        container: str,
        command: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        check: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        """Run *command* inside *container* and capture its output."""
        args, process_env = self._exec_args(container, command, env, interactive=False)
        return self._run_command(
            args,
            check=check,
            error_prefix=f"docker exec {container}",
            env=process_env,
        )

    def exec_to_file(
        self,
        container: str,
        command: Sequence[str],
        destination: Path,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Stream the stdout of *command* inside *container* into *destination*."""
        args, process_env = self._exec_args(container, command, env, interactive=False)
        with destination.open("w", encoding="utf-8") as handle:
            self._run_streaming(args, process_env, stdout=handle, container=container)

    def exec_from_file(
        self,
        container: str,
        command: Sequence[str],
        source: Path,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Feed *source* to the stdin of *command* inside *container*."""
        args, process_env = self._exec_args(container, command, env, interactive=True)
        with source.open("r", encoding="utf-8") as handle:
            self._run_streaming(args, process_env, stdin=handle, container=container)

    # ------------------------------------------------------------------
    def _compose(self, project_dir: Path, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        command = [self.docker_bin, *self.compose_args, *args]
        joined = " ".join(args)
        return self._run_command(
            command,
            check=True,
            error_prefix=f"docker compose {joined} ({project_dir})",
            cwd=project_dir,
        )

    def _exec_args(
        self,
        container: str,
        command: Sequence[str],
        env: Mapping[str, str] | None,
        *,
        interactive: bool,
    ) -> tuple[list[str], dict[str, str] | None]:
        # Secrets are forwarded by name so their values never appear on argv.
        args: list[str] = [self.docker_bin, "exec"]
        if interactive:
            args.append("-i")
        process_env: dict[str, str] | None = None
        if env:
            process_env = {**os.environ, **env}
            for key in env:
                args.extend(["-e", key])
        args.append(container)
        args.extend(command)
        return args, process_env

    def _run_streaming(
        self,
        args: Sequence[str],
        env: Mapping[str, str] | None,
        *,
        container: str,
        stdin: IO[str] | None = None,
        stdout: IO[str] | None = None,
    ) -> None:
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                stdin=stdin,
                stdout=stdout if stdout is not None else subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                check=False,
                env=dict(env) if env is not None else None,
            )
        except FileNotFoundError as exc:
            raise DockerError(f"{args[0]} not found: {exc}") from exc
        if result.returncode != 0:
            message = (result.stderr or "").strip() or "no output"
            raise DockerError(
                f"docker exec {container} failed (exit {result.returncode}): {message}"
            )

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                capture_output=True,
                text=True,
                check=False,
                cwd=str(cwd) if cwd is not None else None,
                env=dict(env) if env is not None else None,
            )
        except FileNotFoundError as exc:
            raise DockerError(f"{args[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise DockerError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["DockerError", "DockerProvider"]
