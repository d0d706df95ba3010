import logging
import sys
from pathlib import Path

import click

from fuzzy.config import (
    DEFAULT_CONFIG_PATH,
    AppConfig,
    ConfigError,
    default_config,
    load_config,
    save_config,
)
from fuzzy.utils.logs import LOG_FORMAT, configure_logging, redact

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


@click.group()
@click.option(
    "--config",
    "config_path",
    envvar="FUZZY_CONFIG",
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Path to the configuration file.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """fuzzy - streaming channel admin panel"""
    ctx.ensure_object(dict)
    ctx.obj.setdefault("config_path", config_path)


def _load(ctx: click.Context) -> AppConfig:
    # Tests may inject a ready-made config via ctx.obj
    if "config" in ctx.obj:
        return ctx.obj["config"]
    try:
        return load_config(ctx.obj["config_path"])
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address (use 0.0.0.0 for LAN).")
@click.option("--port", default=None, type=int, help="Port number [default: server.port].")
@click.option("--production", is_flag=True, default=False, help="Print gunicorn command instead.")
@click.pass_context
def web(ctx: click.Context, host: str, port: int | None, production: bool) -> None:
    """Start the admin panel."""
    config = _load(ctx)
    port = port or config.server.port

    if production:
        venv = Path(sys.executable).parent
        config_path = Path(ctx.obj["config_path"]).resolve()
        cmd = (
            f"FUZZY_CONFIG={config_path} "
            f'{venv / "gunicorn"} -w 1 --threads 8 -b {host}:{port} "fuzzy.web.app:create_app()"'
        )
        click.echo("Run this command for production:\n")
        click.echo(f"  {cmd}")
        return

    from fuzzy.web.app import create_app

    configure_logging(config.logging)
    app = create_app(config=config)
    click.echo(f"Starting {config.server.app_name} on http://{host}:{port}")
    app.run(host=host, port=port, debug=config.server.dev_mode)


@cli.command(name="init-config")
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing file.")
@click.pass_context
def init_config(ctx: click.Context, force: bool) -> None:
    """Write a configuration file holding the default values."""
    path = Path(ctx.obj["config_path"])
    if path.exists() and not force:
        click.echo(f"{path} already exists (use --force to overwrite)", err=True)
        sys.exit(1)
    try:
        save_config(default_config(), path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Wrote default configuration to {path}")


@cli.command(name="show-config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Print the effective configuration with secrets redacted."""
    config = _load(ctx)
    for section, values in config.model_dump().items():
        click.echo(f"[{section}]")
        for key, value in values.items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            click.echo(redact(f"{key} = {value}"))
        click.echo("")
