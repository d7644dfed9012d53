"""
Command-line interface for kvconfig.

Inspects and edits configuration stored in a remote key-value backend using
the same namespace resolution and key mapping as application processes.
"""

import asyncio
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import typer

from .application.extensions import available_providers, get_provider
from .application.source import ConfigurationSource
from .core.domain.exceptions import KVConfigError
from .core.domain.namespace import DeploymentMetadata, resolve_namespace
from .infrastructure.config.accessor import ConfigurationUtil
from .infrastructure.config.models import LoggingConfig
from .infrastructure.logging.setup import setup_logging

cli = typer.Typer(
    name="kvconfig",
    help="Read, write and watch configuration stored in Consul, etcd or ZooKeeper"
)

logger = logging.getLogger(__name__)


@dataclass
class CliOptions:
    """Options shared by every command."""
    backend: str = "consul"
    config_file: Optional[str] = None
    env: Optional[str] = None
    name: Optional[str] = None
    version: Optional[str] = None
    log_level: str = "WARNING"

    @property
    def metadata(self) -> DeploymentMetadata:
        return DeploymentMetadata(env=self.env, name=self.name, version=self.version)


@cli.callback()
def main(
    ctx: typer.Context,
    backend: str = typer.Option(
        "consul", "--backend", "-b", help=f"Backend ({', '.join(available_providers())})"
    ),
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", help="Local configuration file (YAML or JSON)"
    ),
    env: Optional[str] = typer.Option(None, "--env", help="Deployment environment"),
    name: Optional[str] = typer.Option(None, "--name", help="Service name"),
    version: Optional[str] = typer.Option(None, "--version", help="Service version"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level")
) -> None:
    """Remote key-value configuration tool."""
    ctx.obj = CliOptions(
        backend=backend,
        config_file=config_file,
        env=env,
        name=name,
        version=version,
        log_level=log_level.upper()
    )


def _load_local(options: CliOptions) -> ConfigurationUtil:
    try:
        config = ConfigurationUtil.from_file(options.config_file)
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)

    logging_config = LoggingConfig.from_accessor(config)
    logging_config.level = options.log_level
    setup_logging(logging_config)
    return config


def _create_source(options: CliOptions) -> Tuple[ConfigurationUtil, ConfigurationSource]:
    config = _load_local(options)
    try:
        provider = get_provider(options.backend)
    except ValueError as e:
        typer.echo(str(e), err=True)
        sys.exit(1)

    provider.init(options.metadata, config)
    provider.load()
    source = provider.get_configuration_source()
    try:
        source.init(config.dispatcher)
    except KVConfigError as e:
        typer.echo(f"Cannot initialise {options.backend} source: {e}", err=True)
        sys.exit(1)
    config.add_source(source)
    return config, source


@contextmanager
def _connected_source(options: CliOptions) -> Iterator[ConfigurationSource]:
    _, source = _create_source(options)
    try:
        if not source.available:
            typer.echo(f"Cannot connect to {options.backend}", err=True)
            sys.exit(1)
        yield source
    finally:
        asyncio.run(source.stop())


@cli.command()
def get(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Configuration key, e.g. db.pool[2].size")
) -> None:
    """Print the value of a key."""
    with _connected_source(ctx.obj) as source:
        value = source.get(key)
    if value is None:
        typer.echo(f"Key not found: {key}", err=True)
        sys.exit(1)
    typer.echo(value)


@cli.command("set")
def set_value(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Configuration key"),
    value: str = typer.Argument(..., help="New value")
) -> None:
    """Store a value under a key."""
    with _connected_source(ctx.obj) as source:
        source.set(key, value)
        stored = source.get(key)
    if stored != value:
        typer.echo(f"Failed to set {key}", err=True)
        sys.exit(1)
    typer.echo(f"{key} = {value}")


@cli.command()
def keys(
    ctx: typer.Context,
    key: str = typer.Argument("", help="Parent key, namespace root when omitted")
) -> None:
    """List the immediate child keys of a key."""
    with _connected_source(ctx.obj) as source:
        names = source.get_map_keys(key)
    for child in names or []:
        typer.echo(child)


@cli.command("list-size")
def list_size(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Key of the list")
) -> None:
    """Print the number of contiguous list elements under a key."""
    with _connected_source(ctx.obj) as source:
        size = source.get_list_size(key)
    if size is None:
        typer.echo(f"Key {key} is not a list", err=True)
        sys.exit(1)
    typer.echo(str(size))


@cli.command()
def namespace(ctx: typer.Context) -> None:
    """Print the namespace keys resolve to."""
    options: CliOptions = ctx.obj
    config = _load_local(options)
    typer.echo(resolve_namespace(options.metadata, config, options.backend.lower()))


@cli.command()
def watch(
    ctx: typer.Context,
    watched_keys: List[str] = typer.Argument(..., metavar="KEY...", help="Keys to watch")
) -> None:
    """Print changes of keys until interrupted."""
    try:
        asyncio.run(run_watch(ctx.obj, watched_keys))
    except KeyboardInterrupt:
        logger.info("Watch interrupted by user")


async def run_watch(options: CliOptions, watched_keys: List[str]) -> None:
    """Subscribe to every key and print changes until all watches end."""
    config, source = _create_source(options)

    def print_change(key: str, value: str) -> None:
        typer.echo(f"{key} = {value}")

    try:
        if source.engine is None:
            typer.echo(f"Cannot connect to {options.backend}", err=True)
            sys.exit(1)
        for key in watched_keys:
            await config.subscribe(key, print_change)
        await asyncio.gather(*(source.engine.wait(key) for key in watched_keys))
    finally:
        await source.stop()


if __name__ == "__main__":
    cli()
