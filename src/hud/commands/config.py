"""Config command for hud."""

import click
import orjson

from hud.core.config import load_config, set_config_value


@click.group(invoke_without_command=True)
@click.pass_context
def config(ctx: click.Context) -> None:
    """Show or change hud settings.

    Without a subcommand, prints the effective configuration (defaults,
    then config.json, then HUD_* environment variables).

    Examples:

        hud config

        hud config set shell_fresh_within 120
    """
    if ctx.invoked_subcommand is not None:
        return
    click.echo(orjson.dumps(load_config().to_dict(), option=orjson.OPT_INDENT_2).decode())


@config.command("set")
@click.argument("key")
@click.argument("value")
def set_value(key: str, value: str) -> None:
    """Persist KEY=VALUE to config.json."""
    try:
        set_config_value(key, value)
    except ValueError as e:
        click.echo(str(e), err=True)
        raise SystemExit(1)
    click.echo(f"{key} = {value}")
