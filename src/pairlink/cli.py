"""CLI entry point for pairlink."""

import time
from pathlib import Path

import click

from pairlink import __version__
from pairlink.config import load_config
from pairlink.errors import ConfigError
from pairlink.logging import setup_logging


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """pairlink - Issue and redeem short-lived pairing codes."""
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config)
    except ConfigError as e:
        raise click.ClickException(str(e))
    ctx.obj["logger"] = setup_logging(ctx.obj["config"])


@main.command()
@click.option("--host", default=None, help="Host to bind to.")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the pairing API with its session reaper."""
    import asyncio

    from pairlink.service import PairingService

    config = ctx.obj["config"]
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port

    async def _serve():
        try:
            service = PairingService(config=config)
        except ConfigError as e:
            click.echo(f"Configuration error: {e}", err=True)
            raise SystemExit(1)

        await service.start()
        click.echo(f"Pairing API running on {config.host}:{config.port}")
        click.echo("Press Ctrl+C to stop")
        await service.run_forever()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        click.echo("\nShutting down...")


@main.command()
@click.pass_context
def sweep(ctx: click.Context) -> None:
    """Remove stale artifact directories left by earlier runs."""
    import asyncio

    from pairlink.handshake import ArtifactStore

    config = ctx.obj["config"]
    artifacts = ArtifactStore(config.artifacts_path)

    removed = asyncio.run(
        artifacts.purge_stale(time.time(), config.reaper.staleness_cutoff)
    )
    click.echo(f"Removed {removed} stale artifact director{'y' if removed == 1 else 'ies'}")


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"pairlink version {__version__}")
