"""
Command line entry point: `aur-mirror-meta [--config PATH] login|sync|serve`.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Tuple

import click

from aur_mirror_meta import __version__
from aur_mirror_meta.core.config import Config
from aur_mirror_meta.core.dependencies import get_github_token, get_index_store, set_config
from aur_mirror_meta.core.errors import AurMirrorError
from aur_mirror_meta.main import app, configure_logging
from aur_mirror_meta.services.aur_fetcher import AurFetcher
from aur_mirror_meta.services.syncer import Syncer

logger = logging.getLogger(__name__)

DEFAULT_BIND = "[::]:3000"


def parse_bind(address: str) -> Tuple[str, int]:
    """Split `host:port` (IPv6 hosts in brackets) into host and port."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise click.BadParameter(f"Expected HOST:PORT, got {address!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)


@click.group()
@click.version_option(__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config file",
)
@click.option(
    "--log-level",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], log_level: str) -> None:
    """AUR Mirror Meta Tool"""
    configure_logging(log_level)
    config = Config(config_path)
    set_config(config)
    ctx.obj = config
    logger.info(f"Config file: {config.config_path}")


@cli.command()
@click.option("--token", required=True, help="GitHub personal access token")
@click.pass_obj
def login(config: Config, token: str) -> None:
    """Save a GitHub token to the config file."""
    def set_token(model):
        model.github_token = token

    config.modify_file(set_token)
    logger.info("GitHub token saved to config file.")
    click.echo(f"GitHub token saved to {config.config_path}")


@cli.command()
def sync() -> None:
    """Sync metadata from the AUR GitHub mirror."""
    try:
        store = get_index_store()
        fetcher = AurFetcher(get_github_token())
        processed = asyncio.run(Syncer(store, fetcher).sync())
    except AurMirrorError as e:
        logger.error(f"Sync failed: {e}")
        raise click.ClickException(str(e))
    click.echo(f"Processed {processed} packages")


async def _serve(binds: Tuple[str, ...]) -> None:
    import uvicorn

    servers = []
    for address in binds:
        host, port = parse_bind(address)
        logger.info(f"Listening on http://{address}")
        servers.append(uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_config=None)))
    await asyncio.gather(*(server.serve() for server in servers))


@cli.command()
@click.option(
    "--bind",
    multiple=True,
    default=[DEFAULT_BIND],
    show_default=True,
    help="Address to bind to (repeatable)",
)
def serve(bind: Tuple[str, ...]) -> None:
    """Start the HTTP RPC server."""
    for address in bind:
        parse_bind(address)
    try:
        get_index_store()
    except AurMirrorError as e:
        raise click.ClickException(str(e))
    asyncio.run(_serve(bind))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
