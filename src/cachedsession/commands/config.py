"""Config commands -- view and modify the user configuration.

Provides the ``cachedsession config`` sub-command group for reading,
updating, and resetting the user's configuration file
(:class:`~cachedsession.models.SessionConfig`).  Settings are persisted in
the cachedsession config directory and supply the defaults for every other
command: database path, TTL, cacheable methods and status codes.
"""

from __future__ import annotations

import typer

from cachedsession.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration.

    Example::

        cachedsession config show
        cachedsession --json config show
    """
    from cachedsession.config import get_config_dir, resolve_config

    config = resolve_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key, e.g. 'expire_after'."),
    value: str = typer.Argument(
        help="Value to set. Lists take comma-separated items, e.g. 'GET,HEAD'."
    ),
) -> None:
    """Set a configuration value.

    The value is coerced to match the existing field's type (bool, int,
    float, list, or str) and the result is validated against
    :class:`~cachedsession.models.SessionConfig` before saving.

    Raises:
        typer.Exit: With code 2 if the key is unknown, the value cannot be
            coerced, or validation fails.

    Example::

        cachedsession config set expire_after 600
        cachedsession config set allowable_methods GET,HEAD,POST
        cachedsession config set stale_if_error true
    """
    from cachedsession.config import load_config, save_config
    from cachedsession.models import SessionConfig

    config = load_config()
    data = config.model_dump(mode="json")

    if key not in data:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = data[key]
    coerced: object
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, int):
        try:
            coerced = int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    elif isinstance(current, float):
        try:
            coerced = float(value)
        except ValueError:
            error(f"Expected number for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    elif isinstance(current, list):
        coerced = [item.strip() for item in value.split(",") if item.strip()]
    else:
        coerced = value

    data[key] = coerced

    try:
        new_config = SessionConfig.model_validate(data)
    except Exception as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    """Reset the configuration to defaults."""
    from cachedsession.config import save_config
    from cachedsession.models import SessionConfig

    if not yes:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_config(SessionConfig())
    success("Configuration reset to defaults.")
