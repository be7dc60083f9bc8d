"""CLI entry point for wpair."""

from pathlib import Path

import click

from wpair import __version__
from wpair.config import load_config
from wpair.logging import setup_logging


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
    """wpair - Pair Ethereum wallets with Telegram users."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config)
    ctx.obj["logger"] = setup_logging(ctx.obj["config"])


@main.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run the bot and verify server until interrupted."""
    import asyncio

    from wpair.daemon import Daemon, StartupError

    config = ctx.obj["config"]

    async def _run():
        daemon = Daemon(config=config)

        try:
            await daemon.start()
        except StartupError as e:
            click.echo(f"Startup error: {e}", err=True)
            raise SystemExit(1)

        click.echo(f"Verify server listening on {config.http.host}:{config.http.port}")
        click.echo("Press Ctrl+C to stop")
        await daemon.run_forever()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        click.echo("\nShutting down...")


@main.command()
@click.argument("uri")
def qr(uri: str) -> None:
    """Print a pairing URI as a terminal QR code."""
    from wpair.qr import QrRenderer

    click.echo(QrRenderer(uri).to_terminal())


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"wpair version {__version__}")
