"""Typer-powered command line for ``localwp``.

Running ``localwp`` without a subcommand opens the interactive numbered
menu. Every menu entry is also available as a non-interactive subcommand
(``localwp site create NAME``, ``localwp backup all`` and so on). Both paths
share the same action helpers; subcommands exit with the error's code while
the menu reports the failure and returns to the menu.
"""
from __future__ import annotations

import json
import textwrap
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .backups import BackupCoordinator
from .config import AppConfig, load_config
from .errors import LocalWPError, NotFound
from .exit_codes import ExitCode
from .hosts import HostsFile
from .infrastructure import BACKUP, MAIL, InfrastructureManager
from .locking import LockManager
from .logging import OperationScope, StructuredLogger
from .models import BackupRecord, normalize_site_name
from .providers import DockerProvider
from .registry import SiteRegistry
from .sites import SiteManager
from .templates import TemplateEngine
from .tls import CertificateProvisioner

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to localwp's YAML config file.",
)

KEEP_BACKUPS_OPTION = typer.Option(
    None,
    "--keep-backups/--delete-backups",
    help="Keep or delete the site's backups (prompted when omitted).",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit JSON instead of a table.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Local WordPress development environments on Docker.

        Run without arguments for the interactive menu, or use the
        subcommands below for scripted use.
        """
    ).strip(),
)

sites_app = typer.Typer(help="Create, start, stop and delete WordPress sites.")
backups_app = typer.Typer(help="Back up, list and restore site databases.")
mail_app = typer.Typer(help="Start or stop the MailHog mail catcher.")
scheduler_app = typer.Typer(help="Start or stop the scheduled backup system.")
config_app = typer.Typer(help="Inspect the effective configuration.")

app.add_typer(sites_app, name="site")
app.add_typer(backups_app, name="backup")
app.add_typer(mail_app, name="mail")
app.add_typer(scheduler_app, name="scheduler")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    registry: SiteRegistry
    locks: LockManager
    logger: StructuredLogger
    templates: TemplateEngine
    docker: DockerProvider
    certificates: CertificateProvisioner
    hosts: HostsFile
    backups: BackupCoordinator
    sites: SiteManager
    infrastructure: InfrastructureManager


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    lock_timeout_override: float | None = None,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    overrides: dict[str, object] = {}
    if lock_timeout_override is not None:
        overrides["lock_timeout"] = lock_timeout_override

    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except LocalWPError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=int(exc.exit_code)) from exc

    registry = SiteRegistry(config.sites_root)
    locks = LockManager(config.runtime_dir, config.lock_timeout)
    logger = StructuredLogger(config.logs_dir)
    templates = TemplateEngine.with_overrides(config.templates_dir)
    docker = DockerProvider(
        docker_bin=config.docker.docker_bin,
        compose_args=config.docker.compose_args,
    )
    certificates = CertificateProvisioner(config.certs_dir, config.tls)
    hosts = HostsFile(
        config.hosts.path,
        locks=locks,
        loopback=config.loopback_address,
        elevate=config.hosts.elevate,
        elevate_command=config.hosts.elevate_command,
    )
    backups = BackupCoordinator(
        registry,
        docker,
        config.backups,
        config.readiness,
        domain_suffix=config.domain_suffix,
    )
    sites = SiteManager(
        config,
        registry=registry,
        docker=docker,
        certificates=certificates,
        hosts=hosts,
        backups=backups,
        templates=templates,
        locks=locks,
    )
    infrastructure = InfrastructureManager(
        config,
        registry=registry,
        docker=docker,
        certificates=certificates,
        hosts=hosts,
        templates=templates,
        locks=locks,
    )
    runtime = RuntimeContext(
        config=config,
        registry=registry,
        locks=locks,
        logger=logger,
        templates=templates,
        docker=docker,
        certificates=certificates,
        hosts=hosts,
        backups=backups,
        sites=sites,
        infrastructure=infrastructure,
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the localwp version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    lock_timeout: float | None = typer.Option(
        None,
        "--lock-timeout",
        help="Override lock acquisition timeout in seconds.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"localwp {__version__}")
        raise typer.Exit(code=0)

    runtime = _ensure_runtime(ctx, config_file, lock_timeout)

    if ctx.invoked_subcommand is None:
        _run_menu(runtime)
        raise typer.Exit(code=0)


# ----------------------------------------------------------------------
# Shared helpers
# ----------------------------------------------------------------------
def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = 2,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _fail(op: OperationScope, exc: LocalWPError) -> NoReturn:
    _command_error(op, str(exc), rc=int(exc.exit_code))


def _recorder(op: OperationScope) -> Callable[[str], None]:
    def record(step: str) -> None:
        op.add_step(step, status="success")

    return record


def _cancelled(op: OperationScope, message: str = "Operation cancelled.") -> None:
    console.print(f"[yellow]{message}[/yellow]")
    op.success(message, changed=0)


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def _site_target(name: str) -> dict[str, object]:
    return {"kind": "site", "name": name}


def _render_backups(records: Sequence[BackupRecord]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("File", style="bold")
    table.add_column("Created (UTC)")
    table.add_column("Size", justify="right")
    if not records:
        table.add_row("", "(none)", "", "")
    for index, record in enumerate(records, start=1):
        table.add_row(
            str(index),
            record.filename,
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            _format_size(record.size_bytes),
        )
    console.print(table)


# ----------------------------------------------------------------------
# Actions shared by the menu and subcommands
# ----------------------------------------------------------------------
def _setup(runtime: RuntimeContext) -> None:
    with runtime.logger.operation("setup", target={"kind": "infrastructure"}) as op:
        try:
            changed = runtime.infrastructure.setup(progress=_recorder(op))
        except LocalWPError as exc:
            _fail(op, exc)
        mail = runtime.config.mail
        console.print("[green]Proxy system and MailHog set up successfully.[/green]")
        console.print(f"Mail catcher UI available at: https://{mail.domain}")
        console.print(f"SMTP server available at: localhost:{mail.smtp_port}")
        op.success("Infrastructure set up.", changed=len(changed), context={"changed": changed})


def _site_create(runtime: RuntimeContext, name: str) -> None:
    with runtime.logger.operation(
        "site create",
        args={"name": name},
        target=_site_target(name),
    ) as op:
        try:
            site = runtime.sites.create(name, progress=_recorder(op))
        except LocalWPError as exc:
            _fail(op, exc)
        paths = runtime.registry.paths_for(site.name)
        console.print(f"[green]Site '{site.name}' created.[/green]")
        console.print(f"  URL: https://{site.domain}")
        console.print(f"  Database admin: https://{site.admin_domain}")
        console.print(f"  Details and credentials: {paths.readme}")
        op.success(
            "Site created.",
            changed=1,
            context={"name": site.name, "domain": site.domain, "path": paths.root},
        )


def _site_list(runtime: RuntimeContext, *, json_output: bool = False) -> None:
    with runtime.logger.operation(
        "site list",
        args={"json": json_output},
        target={"kind": "site", "scope": "registry"},
    ) as op:
        try:
            summaries = list(runtime.sites.list())
            services = runtime.infrastructure.status()
        except LocalWPError as exc:
            _fail(op, exc)

        if json_output:
            console.print_json(
                data={
                    "sites": [
                        {
                            "name": summary.name,
                            "domain": summary.domain,
                            "admin_domain": summary.admin_domain,
                            "status": summary.status,
                            "backups": summary.backup_count,
                        }
                        for summary in summaries
                    ],
                    "services": [
                        {
                            "name": service.name,
                            "configured": service.configured,
                            "running": service.running,
                        }
                        for service in services
                    ],
                }
            )
            op.success("Reported site list as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Name", style="bold")
        table.add_column("URL")
        table.add_column("Database admin")
        table.add_column("Status")
        table.add_column("Backups", justify="right")
        if not summaries:
            table.add_row("(none)", "", "", "", "")
        for summary in summaries:
            style = "green" if summary.running else "red"
            table.add_row(
                summary.name,
                f"https://{summary.domain}",
                f"https://{summary.admin_domain}",
                f"[{style}]{summary.status}[/{style}]",
                str(summary.backup_count),
            )
        console.print(table)
        for service in services:
            if not service.configured:
                state = "[yellow]not set up[/yellow]"
            elif service.running:
                state = "[green]running[/green]"
            else:
                state = "[red]stopped[/red]"
            console.print(f"{service.label}: {state}")
        op.success("Reported site list.", changed=0, context={"count": len(summaries)})


def _site_start(runtime: RuntimeContext, name: str) -> None:
    with runtime.logger.operation(
        "site start", args={"name": name}, target=_site_target(name)
    ) as op:
        try:
            site = runtime.sites.start(name)
        except LocalWPError as exc:
            _fail(op, exc)
        op.add_step("compose.up", status="success")
        console.print(f"[green]Site started: https://{site.domain}[/green]")
        op.success("Site started.", changed=1)


def _site_stop(runtime: RuntimeContext, name: str) -> None:
    with runtime.logger.operation(
        "site stop", args={"name": name}, target=_site_target(name)
    ) as op:
        try:
            site = runtime.sites.stop(name)
        except LocalWPError as exc:
            _fail(op, exc)
        op.add_step("compose.down", status="success")
        console.print(f"[green]Site stopped: {site.name}[/green]")
        op.success("Site stopped.", changed=1)


def _site_delete(runtime: RuntimeContext, name: str, keep_backups: bool | None) -> None:
    with runtime.logger.operation(
        "site delete",
        args={"name": name, "keep_backups": keep_backups},
        target=_site_target(name),
    ) as op:
        try:
            name = normalize_site_name(name)
            runtime.registry.require(name)
        except LocalWPError as exc:
            _fail(op, exc)
        confirmed = typer.confirm(
            f"Are you sure you want to delete {name}? This will remove all data!",
            default=False,
        )
        if not confirmed:
            _cancelled(op)
            return
        if keep_backups is None:
            keep_backups = typer.confirm("Keep this site's backups?", default=True)
        try:
            runtime.sites.delete(name, keep_backups=keep_backups, progress=_recorder(op))
        except LocalWPError as exc:
            _fail(op, exc)
        console.print(f"[green]Site deleted: {name}[/green]")
        op.success("Site deleted.", changed=1, context={"keep_backups": keep_backups})


def _site_delete_all(runtime: RuntimeContext, keep_backups: bool | None) -> None:
    with runtime.logger.operation(
        "site delete-all",
        args={"keep_backups": keep_backups},
        target={"kind": "site", "scope": "all"},
    ) as op:
        names = runtime.registry.site_names()
        if not names:
            _fail(op, NotFound("No WordPress sites found to delete."))
        console.print("The following WordPress sites will be deleted:")
        for name in names:
            console.print(f"  - {name}")
        answer = typer.prompt(
            "Are you sure you want to delete ALL sites? This will remove all data! (yes/no)"
        )
        if answer.strip().lower() != "yes":
            _cancelled(op)
            return
        count = typer.prompt(
            f"Please confirm once more - delete ALL {len(names)} sites? "
            "Type the site count to confirm"
        )
        if count.strip() != str(len(names)):
            _cancelled(op, "Incorrect confirmation. Operation cancelled.")
            return
        if keep_backups is None:
            keep_backups = typer.confirm("Keep backups of the deleted sites?", default=True)
        try:
            report = runtime.sites.delete_all(keep_backups=keep_backups)
        except LocalWPError as exc:
            _fail(op, exc)
        for name in report.deleted:
            op.add_step(f"delete.{name}", status="success")
            console.print(f"[green]Site deleted: {name}[/green]")
        for name, error in report.failures.items():
            op.add_step(f"delete.{name}", status="error", detail=error)
            console.print(f"[red]Failed to delete {name}: {error}[/red]")
        if report.failures:
            op.warning(
                "Some sites could not be deleted.",
                errors=[f"{name}: {error}" for name, error in report.failures.items()],
                changed=len(report.deleted),
            )
            raise typer.Exit(code=int(ExitCode.PROVIDER))
        console.print(f"[green]All {len(report.deleted)} sites deleted.[/green]")
        op.success("All sites deleted.", changed=len(report.deleted))


def _service(runtime: RuntimeContext, service: str, *, start: bool) -> None:
    verb = "start" if start else "stop"
    with runtime.logger.operation(
        f"{service} {verb}",
        target={"kind": "service", "name": service},
    ) as op:
        try:
            if start:
                singleton = runtime.infrastructure.start(service)
            else:
                singleton = runtime.infrastructure.stop(service)
        except LocalWPError as exc:
            _fail(op, exc)
        state = "started" if start else "stopped"
        console.print(f"[green]{singleton.label} {state}.[/green]")
        if start and service == MAIL:
            console.print(f"Mail catcher UI available at: https://{runtime.config.mail.domain}")
        op.success(f"{singleton.label} {state}.", changed=1)


def _site_fix_uploads(runtime: RuntimeContext, name: str) -> None:
    with runtime.logger.operation(
        "site fix-uploads", args={"name": name}, target=_site_target(name)
    ) as op:
        try:
            changed = runtime.sites.fix_uploads(name)
        except LocalWPError as exc:
            _fail(op, exc)
        limit = runtime.config.uploads.max_size
        if changed:
            console.print(f"[green]Upload limit raised to {limit} for {name}.[/green]")
        else:
            console.print(f"Upload limit already set to {limit} for {name}.")
        op.success("Upload limits applied.", changed=int(changed))


def _backup_site(runtime: RuntimeContext, name: str) -> None:
    with runtime.logger.operation(
        "backup create", args={"name": name}, target=_site_target(name)
    ) as op:
        try:
            record = runtime.backups.backup_one(name)
        except LocalWPError as exc:
            _fail(op, exc)
        console.print(
            f"[green]Backup created: {record.path} ({_format_size(record.size_bytes)})[/green]"
        )
        op.success("Backup created.", changed=1, backups=[str(record.path)])


def _backup_all(runtime: RuntimeContext) -> None:
    with runtime.logger.operation(
        "backup all", target={"kind": "backup", "scope": "all"}
    ) as op:
        report = runtime.backups.backup_all()
        for record in report.created:
            op.add_step(f"backup.{record.site}", status="success", detail=str(record.path))
            console.print(f"[green]{record.site}: {record.filename}[/green]")
        for name, error in report.failures.items():
            op.add_step(f"backup.{name}", status="error", detail=error)
            console.print(f"[red]{name}: {error}[/red]")
        if report.pruned:
            console.print(f"Pruned {len(report.pruned)} backups older than the retention window.")
        backups = [str(record.path) for record in report.created]
        if report.failures:
            op.warning(
                "Some sites could not be backed up.",
                errors=[f"{name}: {error}" for name, error in report.failures.items()],
                changed=len(report.created),
                backups=backups,
            )
            raise typer.Exit(code=int(ExitCode.PROVIDER))
        if not report.created:
            console.print("No WordPress sites found to back up.")
        op.success(
            "Backups created.",
            changed=len(report.created),
            backups=backups,
            context={"pruned": [str(path) for path in report.pruned]},
        )


def _backup_list(runtime: RuntimeContext, name: str) -> None:
    with runtime.logger.operation(
        "backup list", args={"name": name}, target=_site_target(name)
    ) as op:
        try:
            records = runtime.backups.list_backups(name)
        except LocalWPError as exc:
            _fail(op, exc)
        _render_backups(records)
        op.success("Reported backups.", changed=0, context={"count": len(records)})


def _backup_restore(
    runtime: RuntimeContext,
    name: str,
    index: int | None,
    *,
    assume_yes: bool = False,
) -> None:
    with runtime.logger.operation(
        "backup restore",
        args={"name": name, "index": index},
        target=_site_target(name),
    ) as op:
        try:
            if index is None:
                _render_backups(runtime.backups.list_backups(name))
                index = typer.prompt("Select a backup number", type=int)
            record = runtime.backups.select(name, index)
        except LocalWPError as exc:
            _fail(op, exc)
        if not assume_yes and not typer.confirm(
            f"Restore {record.filename}? This overwrites the current database of {name}.",
            default=False,
        ):
            _cancelled(op)
            return
        try:
            runtime.backups.restore(name, record)
        except LocalWPError as exc:
            _fail(op, exc)
        console.print(f"[green]Restored {name} from {record.filename}.[/green]")
        op.success("Backup restored.", changed=1, backups=[str(record.path)])


# ----------------------------------------------------------------------
# Interactive menu
# ----------------------------------------------------------------------
def _prompt_name(runtime: RuntimeContext, prompt: str = "Enter site name") -> str:
    names = runtime.registry.site_names()
    if names:
        console.print(f"Available sites: {', '.join(names)}")
    raw = typer.prompt(prompt)
    return normalize_site_name(raw)


def _menu_named(action: Callable[[RuntimeContext, str], None]) -> Callable[[RuntimeContext], None]:
    def handler(runtime: RuntimeContext) -> None:
        action(runtime, _prompt_name(runtime))

    return handler


MENU: list[tuple[str, Callable[[RuntimeContext], None] | None]] = [
    ("First-time setup (run once)", _setup),
    ("Create new WordPress site", _menu_named(_site_create)),
    ("List all sites", _site_list),
    ("Start a site", _menu_named(_site_start)),
    ("Stop a site", _menu_named(_site_stop)),
    ("Delete a site", _menu_named(lambda rt, name: _site_delete(rt, name, None))),
    ("Delete ALL sites", lambda rt: _site_delete_all(rt, None)),
    ("Start mail system", lambda rt: _service(rt, MAIL, start=True)),
    ("Stop mail system", lambda rt: _service(rt, MAIL, start=False)),
    ("Start backup system", lambda rt: _service(rt, BACKUP, start=True)),
    ("Stop backup system", lambda rt: _service(rt, BACKUP, start=False)),
    ("Fix upload limit for a site", _menu_named(_site_fix_uploads)),
    ("Back up a site", _menu_named(_backup_site)),
    ("Back up all sites", _backup_all),
    ("Restore a site from backup", _menu_named(lambda rt, name: _backup_restore(rt, name, None))),
    ("List backups for a site", _menu_named(_backup_list)),
    ("Exit", None),
]


def _render_menu() -> None:
    console.rule("WordPress Local Development Tool")
    for number, (label, _handler) in enumerate(MENU, start=1):
        console.print(f"{number:>2}. {label}")
    console.rule()


def _run_menu(runtime: RuntimeContext) -> None:
    """Loop over the numbered menu until the user picks Exit."""
    while True:
        _render_menu()
        choice = typer.prompt("Enter your choice", default="", show_default=False).strip()
        number = int(choice) if choice.isdigit() else 0
        if not 1 <= number <= len(MENU):
            console.print("[red]Invalid choice. Please try again.[/red]")
            continue
        _label, handler = MENU[number - 1]
        if handler is None:
            return
        try:
            handler(runtime)
        except typer.Exit:
            pass
        except LocalWPError as exc:
            console.print(f"[red]{exc}[/red]")
        typer.prompt("Press Enter to return to menu", default="", show_default=False)


# ----------------------------------------------------------------------
# Subcommands
# ----------------------------------------------------------------------
@app.command()
def setup(ctx: typer.Context) -> None:
    """Create the proxy, mail catcher and backup scheduler (run once)."""
    _setup(_get_runtime(ctx))


@sites_app.command("create")
def site_create(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Site name (letters, digits and hyphens)."),
) -> None:
    """Provision a new WordPress site and start it."""
    _site_create(_get_runtime(ctx), name)


@sites_app.command("list")
def site_list(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """List sites with their running state and backup counts."""
    _site_list(_get_runtime(ctx), json_output=json_output)


@sites_app.command("start")
def site_start(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site to start."),
) -> None:
    """Start a site's containers."""
    _site_start(_get_runtime(ctx), name)


@sites_app.command("stop")
def site_stop(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site to stop."),
) -> None:
    """Stop a site's containers."""
    _site_stop(_get_runtime(ctx), name)


@sites_app.command("delete")
def site_delete(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site to delete."),
    keep_backups: bool | None = KEEP_BACKUPS_OPTION,
) -> None:
    """Delete a site, its certificates and hosts entry (asks for confirmation)."""
    _site_delete(_get_runtime(ctx), name, keep_backups)


@sites_app.command("delete-all")
def site_delete_all(
    ctx: typer.Context,
    keep_backups: bool | None = KEEP_BACKUPS_OPTION,
) -> None:
    """Delete every site (asks for two confirmations)."""
    _site_delete_all(_get_runtime(ctx), keep_backups)


@sites_app.command("fix-uploads")
def site_fix_uploads(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site to update."),
) -> None:
    """Raise the PHP upload limits for a site."""
    _site_fix_uploads(_get_runtime(ctx), name)


@mail_app.command("start")
def mail_start(ctx: typer.Context) -> None:
    """Start the mail catcher."""
    _service(_get_runtime(ctx), MAIL, start=True)


@mail_app.command("stop")
def mail_stop(ctx: typer.Context) -> None:
    """Stop the mail catcher."""
    _service(_get_runtime(ctx), MAIL, start=False)


@scheduler_app.command("start")
def scheduler_start(ctx: typer.Context) -> None:
    """Start the scheduled backup container."""
    _service(_get_runtime(ctx), BACKUP, start=True)


@scheduler_app.command("stop")
def scheduler_stop(ctx: typer.Context) -> None:
    """Stop the scheduled backup container."""
    _service(_get_runtime(ctx), BACKUP, start=False)


@backups_app.command("create")
def backup_create(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the site to back up."),
) -> None:
    """Dump one site's database."""
    _backup_site(_get_runtime(ctx), name)


@backups_app.command("all")
def backup_all(ctx: typer.Context) -> None:
    """Dump every site's database and prune old backups."""
    _backup_all(_get_runtime(ctx))


@backups_app.command("list")
def backup_list(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Site whose backups to list."),
) -> None:
    """List a site's backups, newest first."""
    _backup_list(_get_runtime(ctx), name)


@backups_app.command("restore")
def backup_restore(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Site to restore."),
    index: int | None = typer.Option(
        None,
        "--index",
        "-n",
        help="Backup number from `localwp backup list` (prompted when omitted).",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        help="Skip the overwrite confirmation.",
    ),
) -> None:
    """Restore a site's database from one of its backups."""
    _backup_restore(_get_runtime(ctx), name, index, assume_yes=yes)


@config_app.command("show")
def config_show(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["RuntimeContext", "app", "main"]
