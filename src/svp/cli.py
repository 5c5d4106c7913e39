"""
Click-based CLI for svp.

IMPORTANT: This module only ORCHESTRATES. Vhost edits live in the
editors, server changes in the actions and services.
- Loads settings and server profiles
- Picks the local or SSH connector
- Prompts for missing input
- Turns SVPError into a message and exit code 1
"""

import contextlib
import sys
from collections.abc import Iterator
from dataclasses import asdict
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from svp import __version__
from svp.actions.auth import AuthAction
from svp.actions.site import SiteAction
from svp.actions.ssl import SSLAction
from svp.actions.vhost import VhostTransaction
from svp.config import ConfigManager, ProvisionerSettings
from svp.connector import Connector, LocalConnector, SSHConfig, SSHConnector
from svp.editor.auth import AuthDirectiveEditor
from svp.editor.ssl import HSTS_HEADER
from svp.errors import SVPError
from svp.output import StatusPrinter
from svp.parser.block_scanner import ConfigBlockScanner

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="svp")
@click.option("--config", "-c", type=click.Path(), help="Path to config directory")
@click.option("--server", "-s", help="Server profile name or host (default: this machine)")
@click.option("--debug", is_flag=True, help="Print every command before running it")
@click.pass_context
def main(ctx: click.Context, config: str | None, server: str | None, debug: bool) -> None:
    """svp: Simple VPS Provisioner.

    Create nginx vhosts and manage their basic auth and SSL.
    """
    ctx.ensure_object(dict)
    config_dir = Path(config) if config else None
    ctx.obj["config_mgr"] = ConfigManager(config_dir)
    ctx.obj["server"] = server
    ctx.obj["debug"] = debug
    ctx.obj["printer"] = StatusPrinter(console)


def _resolve_config(ctx: click.Context, server: str) -> SSHConfig:
    """Resolve server string to SSHConfig (profile name or IP)."""
    config_mgr = ctx.obj["config_mgr"]
    cfg = config_mgr.get_profile(server)
    if cfg:
        return cfg

    # Otherwise treat as hostname/IP with default root user
    return SSHConfig(host=server, user="root")


def _connector(ctx: click.Context) -> Connector:
    printer: StatusPrinter = ctx.obj["printer"]
    on_command = printer.command if ctx.obj["debug"] else None

    server = ctx.obj["server"]
    if server:
        return SSHConnector(_resolve_config(ctx, server), on_command=on_command)
    return LocalConnector(on_command=on_command)


@contextlib.contextmanager
def _session(ctx: click.Context) -> Iterator[tuple[Connector, ProvisionerSettings, StatusPrinter]]:
    """Open a connector and report any svp error as exit code 1."""
    printer: StatusPrinter = ctx.obj["printer"]
    try:
        settings = ctx.obj["config_mgr"].load_settings()
        with _connector(ctx) as connector:
            yield connector, settings, printer
    except SVPError as e:
        printer.error(e.message, e.output)
        sys.exit(1)
    except ConnectionError as e:
        printer.error(str(e))
        sys.exit(1)


@main.command()
@click.argument("domain")
@click.argument("action", type=click.Choice(["enable", "disable", "check"]))
@click.option("--username", "-u", help="Basic auth username")
@click.option("--password", "-p", help="Basic auth password")
@click.pass_context
def auth(ctx: click.Context, domain: str, action: str, username: str | None, password: str | None) -> None:
    """Manage HTTP basic authentication for DOMAIN."""
    if action == "enable":
        if not username:
            username = click.prompt("Username")
        if not password:
            password = click.prompt("Password", hide_input=True, confirmation_prompt=True)

    with _session(ctx) as (connector, settings, printer):
        AuthAction(connector, settings, printer).run(domain, action, username or "", password or "")


@main.command()
@click.argument("domain")
@click.argument("action", type=click.Choice(["enable", "disable", "renew", "check"]))
@click.option("--le-email", default="", help="Email for Let's Encrypt notifications")
@click.pass_context
def ssl(ctx: click.Context, domain: str, action: str, le_email: str) -> None:
    """Manage the Let's Encrypt certificate of DOMAIN."""

    def prompt(question: str) -> str:
        return click.prompt(question, default="", show_default=False)

    with _session(ctx) as (connector, settings, printer):
        SSLAction(connector, settings, printer, prompt=prompt).run(domain, action, le_email)


@main.command()
@click.argument("domain")
@click.option("--version", "php_version", required=True, help="PHP version to switch to, e.g. 8.3")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def php(ctx: click.Context, domain: str, php_version: str, yes: bool) -> None:
    """Switch DOMAIN to another PHP-FPM version."""

    def confirm(question: str) -> bool:
        return click.confirm(question, default=False)

    with _session(ctx) as (connector, settings, printer):
        SiteAction(connector, settings, printer, confirm=None if yes else confirm).update_php(domain, php_version)


@main.group()
def vhost() -> None:
    """Create and inspect nginx vhosts."""
    pass


@vhost.command("create")
@click.argument("domain")
@click.option("--php-version", help="PHP-FPM version (default from settings)")
@click.option("--webroot", help="Document root (default: <webroot_base>/<domain>/web)")
@click.option("--alias", "aliases", multiple=True, help="Additional server_name (repeatable)")
@click.option("--force", is_flag=True, help="Recreate an existing vhost (backed up, auth and SSL restored)")
@click.pass_context
def vhost_create(
    ctx: click.Context,
    domain: str,
    php_version: str | None,
    webroot: str | None,
    aliases: tuple[str, ...],
    force: bool,
) -> None:
    """Install nginx and PHP-FPM, then write, enable and load DOMAIN's vhost."""
    with _session(ctx) as (connector, settings, printer):
        SiteAction(connector, settings, printer).create(
            domain, php_version, webroot, list(aliases) or None, force=force
        )


@vhost.command("show")
@click.argument("domain")
@click.pass_context
def vhost_show(ctx: click.Context, domain: str) -> None:
    """Show the server blocks and auth/HSTS state of DOMAIN's vhost."""
    with _session(ctx) as (connector, settings, printer):
        transaction = VhostTransaction(connector, settings, printer=printer)
        lines = transaction.read(domain).split("\n")
        scan = ConfigBlockScanner().analyze(lines)

        table = Table(title=transaction.path(domain))
        table.add_column("#", justify="right")
        table.add_column("Lines")
        table.add_column("Listen")
        table.add_column("Server names")
        table.add_column("SSL")
        for block in scan.blocks:
            end = block.end + 1 if block.end is not None else "?"
            table.add_row(
                str(block.index),
                f"{block.start + 1}-{end} ({block.line_count or 'open'})",
                ", ".join(str(p) for p in block.ports) or "-",
                " ".join(block.server_names) or "-",
                "yes" if block.is_ssl else "no",
            )
        console.print(table)

        if not scan.balanced:
            printer.warn("Unbalanced braces detected")
        if AuthDirectiveEditor().is_enabled(lines):
            printer.ok("Basic authentication: enabled")
        else:
            printer.info("Basic authentication: disabled")
        if any(HSTS_HEADER in line for line in lines):
            printer.ok("HSTS: present")
        else:
            printer.info("HSTS: absent")


@main.group()
def config() -> None:
    """Manage server connection profiles and provisioner settings."""
    pass


@config.command("add")
@click.argument("name")
@click.option("--host", "-h", required=True, help="Server hostname or IP")
@click.option("--user", "-u", default="root", help="SSH username")
@click.option("--port", "-p", default=22, help="SSH port")
@click.option("--password", "-pass", help="SSH password")
@click.option("--key", "-k", type=click.Path(), help="Path to SSH private key")
@click.option("--sudo/--no-sudo", default=True, help="Use sudo for commands")
@click.pass_context
def config_add(
    ctx: click.Context, name: str, host: str, user: str, port: int, password: str | None, key: str | None, sudo: bool
) -> None:
    """Add a new server profile."""
    config_mgr = ctx.obj["config_mgr"]
    cfg = SSHConfig(host=host, user=user, port=port, password=password, key_path=key, use_sudo=sudo)
    config_mgr.add_profile(name, cfg)
    console.print(f"[bold green]✓ Added server profile:[/] {name}")


@config.command("list")
@click.pass_context
def config_list(ctx: click.Context) -> None:
    """List all server profiles."""
    config_mgr = ctx.obj["config_mgr"]
    profiles = config_mgr.list_profiles()
    if not profiles:
        console.print("[dim]No profiles configured yet.[/]")
        return

    for name, data in profiles.items():
        console.print(f"[bold green]{name}[/]: {data['user']}@{data['host']}:{data['port']}")


@config.command("remove")
@click.argument("name")
@click.pass_context
def config_remove(ctx: click.Context, name: str) -> None:
    """Remove a server profile."""
    config_mgr = ctx.obj["config_mgr"]
    if config_mgr.remove_profile(name):
        console.print(f"[bold green]✓ Removed profile:[/] {name}")
    else:
        console.print(f"[bold red]Error:[/] Profile {name} not found.")
        sys.exit(1)


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Change one provisioner setting, e.g. `svp config set php_version 8.3`."""
    config_mgr = ctx.obj["config_mgr"]
    try:
        config_mgr.set_setting(key, value)
    except SVPError as e:
        console.print(f"[bold red]Error:[/] {e.message}")
        sys.exit(1)
    console.print(f"[bold green]✓ Set {key}:[/] {value}")


@config.command("settings")
@click.pass_context
def config_settings(ctx: click.Context) -> None:
    """Show the provisioner settings in effect."""
    settings = ctx.obj["config_mgr"].load_settings()
    for key, value in asdict(settings).items():
        console.print(f"[bold green]{key}[/]: {value}")


if __name__ == "__main__":
    main()
