"""Console operator CLI.

Usage:
    console-operator run                  # Start the resync loop
    console-operator sync                 # Run a single pass and print the outcome
    console-operator status               # Show the persisted console status
    console-operator init                 # Write a default console desired state
    console-operator install-oauthclient  # Seed the console OAuth client
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Any

import click
import yaml
from azure.core.exceptions import AzureError

from .config import Config, ConfigurationError
from .main import run_operator, setup_logging
from .models import Console, ConsoleSpec, OAuthClient
from .reconciler import ConsoleReconciler, PassState
from .spec_loader import SpecLoadError, load_console, save_console
from .store import FileResourceStore, build_clients
from .subresources import OAUTH_CLIENT_NAME, stub_oauth_client
from .trigger import ResyncTrigger

VERSION = "0.1.0"


def load_config(**overrides: Any) -> Config:
    """Load configuration from the environment, then apply CLI overrides.

    Raises:
        click.ClickException: If the resulting configuration is invalid.
    """
    try:
        config = Config.from_env()
        changes = {key: value for key, value in overrides.items() if value is not None}
        return dataclasses.replace(config, **changes) if changes else config
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def _path_or_none(value: str | None) -> Path | None:
    return Path(value) if value else None


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version=VERSION, prog_name="console-operator")
@click.option("--console-file", "-f", envvar="CONSOLE_FILE", help="Console desired-state YAML")
@click.option("--store-dir", envvar="STORE_DIR", help="File-backed resource store root")
@click.pass_context
def cli(ctx: click.Context, console_file: str | None, store_dir: str | None) -> None:
    """Console operator.

    Drives the console route, service, config map, secret, OAuth client and
    deployment toward the Console desired state, one pass at a time.
    """
    ctx.ensure_object(dict)
    ctx.obj["console_file"] = _path_or_none(console_file)
    ctx.obj["store_dir"] = _path_or_none(store_dir)


# =============================================================================
# Reconcile Commands
# =============================================================================


@cli.command()
@click.option("--namespace", "-n", "target_namespace", help="Target namespace")
@click.option("--image", "console_image", help="Console image")
@click.option("--router-domain", help="Admit routes locally under this domain")
@click.option(
    "--create-default-console/--no-create-default-console",
    default=None,
    help="Create a default console when the desired state file is missing",
)
@click.pass_context
def run(
    ctx: click.Context,
    target_namespace: str | None,
    console_image: str | None,
    router_domain: str | None,
    create_default_console: bool | None,
) -> None:
    """Start the resync loop."""
    config = load_config(
        console_file=ctx.obj["console_file"],
        store_dir=ctx.obj["store_dir"],
        target_namespace=target_namespace,
        console_image=console_image,
        router_domain=router_domain,
        create_default_console=create_default_console,
    )
    setup_logging(config.log_level, config.enable_json_logging)
    sys.exit(asyncio.run(run_operator(config, logging.getLogger("console_operator"))))


@cli.command()
@click.option("--namespace", "-n", "target_namespace", help="Target namespace")
@click.option("--image", "console_image", help="Console image")
@click.option("--router-domain", help="Admit routes locally under this domain")
@click.option("--verbose", "-v", is_flag=True, help="Log every step")
@click.pass_context
def sync(
    ctx: click.Context,
    target_namespace: str | None,
    console_image: str | None,
    router_domain: str | None,
    verbose: bool,
) -> None:
    """Run exactly one pass and print the outcome.

    Exits non-zero when the pass FAILED. A pass that stopped early to let
    the backend catch up is not a failure.
    """
    config = load_config(
        console_file=ctx.obj["console_file"],
        store_dir=ctx.obj["store_dir"],
        target_namespace=target_namespace,
        console_image=console_image,
        router_domain=router_domain,
    )
    setup_logging("DEBUG" if verbose else "WARNING", json_output=False)

    clients = build_clients(config.store_dir, config.router_domain)
    trigger = ResyncTrigger.from_config(config, ConsoleReconciler.from_config(config, clients))
    result = trigger.trigger_once()
    if result is None:
        raise click.ClickException(f"Could not load console from {config.console_file}")

    color = {
        PassState.CONVERGED: "green",
        PassState.PROGRESSED: "cyan",
        PassState.NOT_READY: "yellow",
        PassState.FAILED: "red",
    }[result.state]
    click.secho(f"State:        {result.state.value}", fg=color)
    click.echo(f"Changed:      {result.changed}")
    if result.stopped_at:
        click.echo(f"Stopped at:   {result.stopped_at}")
    if result.error is not None:
        click.echo(f"Reason:       {result.error}")
    click.echo(f"Default host: {result.console.status.default_host_name or '-'}")
    click.echo(f"OAuth secret: {result.console.status.oauth_secret.value}")

    if result.state == PassState.FAILED:
        sys.exit(1)


# =============================================================================
# Desired State Commands
# =============================================================================


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the persisted console status."""
    config = load_config(console_file=ctx.obj["console_file"])
    try:
        console = load_console(config.console_file)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e

    click.echo(yaml.safe_dump({"status": console.to_document()["status"]}, sort_keys=False))


@cli.command()
@click.option("--console-version", default="4.0", show_default=True)
@click.option("--count", default=1, show_default=True, type=click.IntRange(1, 10))
@click.option("--custom-host", default=None, help="Request this route host")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def init(
    ctx: click.Context,
    console_version: str,
    count: int,
    custom_host: str | None,
    force: bool,
) -> None:
    """Write a default console desired state."""
    config = load_config(console_file=ctx.obj["console_file"])
    path = config.console_file
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists, use --force to overwrite")

    try:
        spec = ConsoleSpec(version=console_version, count=count, custom_host=custom_host)
        save_console(path, Console(spec=spec))
    except ValueError as e:
        raise click.ClickException(f"Invalid console spec: {e}") from e
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e

    click.secho(f"✓ Wrote {path}", fg="green")


@cli.command("install-oauthclient")
@click.pass_context
def install_oauthclient(ctx: click.Context) -> None:
    """Seed the console OAuth client in the resource store.

    The operator never creates this object; a pass stops with a missing
    prerequisite until it exists.
    """
    config = load_config(store_dir=ctx.obj["store_dir"])
    store = FileResourceStore(OAuthClient, config.store_dir)
    if OAUTH_CLIENT_NAME in store.names():
        click.echo(f"OAuthClient {OAUTH_CLIENT_NAME} already installed")
        return

    try:
        store.put(stub_oauth_client())
    except AzureError as e:
        raise click.ClickException(f"Failed to install OAuth client: {e}") from e
    click.secho(f"✓ Installed OAuthClient {OAUTH_CLIENT_NAME}", fg="green")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
