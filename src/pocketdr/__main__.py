"""CLI entry point for PocketDr."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from pocketdr import __version__
from pocketdr.config import Config, ConfigError, load_config
from pocketdr.exceptions import PocketDrError
from pocketdr.prompts.composer import UserProfile


def _configure_logging(level: str) -> None:
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("pocketdr").setLevel(level.upper())


def _load_profile(path: Path | None) -> UserProfile | None:
    if path is None:
        return None
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Invalid profile JSON: {e}") from e
    if not isinstance(data, dict):
        raise click.BadParameter("Profile JSON must be an object")
    return UserProfile.from_mapping(data)


@click.group()
@click.version_option(version=__version__, prog_name="pocketdr")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to pocketdr.toml configuration file.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """PocketDr health assistant chat service."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"Config error: {e}", err=True)
        sys.exit(1)
    _configure_logging(config.logging.level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command()
@click.option("--host", default=None, help="Override server host.")
@click.option("--port", type=int, default=None, help="Override server port.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the PocketDr API server."""
    config: Config = ctx.obj["config"]
    actual_host = host if host is not None else config.server.host
    actual_port = port if port is not None else config.server.port

    click.echo(f"Starting PocketDr server on {actual_host}:{actual_port}")

    import uvicorn

    from pocketdr.api.server import create_app

    try:
        app = create_app(config)
        uvicorn.run(app, host=actual_host, port=actual_port, log_level="info")
    except Exception as e:
        click.echo(f"Server failed to start: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("message")
@click.option(
    "--profile", "profile_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="JSON file with the user's profile fields.",
)
@click.option("--guest", is_flag=True, help="Treat the user as a guest.")
@click.pass_context
def ask(ctx: click.Context, message: str, profile_path: Path | None, guest: bool) -> None:
    """Send one message through the model fallback chain and print the reply."""
    from pocketdr.api.engine import create_engine

    config: Config = ctx.obj["config"]
    profile = _load_profile(profile_path)

    async def _run():
        engine = await create_engine(config)
        try:
            return await engine.reply(message, (), profile, guest=guest)
        finally:
            await engine.shutdown()

    try:
        reply = asyncio.run(_run())
    except PocketDrError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if reply.ok:
        click.echo(reply.text)
        click.echo(f"\n[{reply.model}]", err=True)
        return
    if reply.text:
        click.echo(reply.text)
    click.echo(f"Error ({reply.status_code}): {reply.error}", err=True)
    sys.exit(1)


@cli.command()
@click.pass_context
def models(ctx: click.Context) -> None:
    """List configured models in priority order."""
    config: Config = ctx.obj["config"]
    for index, model in enumerate(config.chat.models, start=1):
        note = "" if model.supports_system_instruction else "  (no system instruction)"
        click.echo(f"{index}. {model.name}{note}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
