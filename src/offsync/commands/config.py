"""Config commands -- view and modify the engine configuration.

Provides the ``offsync config`` sub-command group for reading, updating and
resetting the persisted :class:`~offsync.models.EngineConfig`.
"""

from __future__ import annotations

import json

import typer

from offsync.output import error, format_response, info, success

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    effective: bool = typer.Option(
        False, "--effective", help="Include environment and CLI overrides."
    ),
) -> None:
    """Show the stored (or effective) configuration.

    Example::

        offsync config show
        offsync --json config show --effective
    """
    from offsync.commands import current_config
    from offsync.config import config_path, load_config

    info(f"Config file: {config_path()}")
    config = current_config(ctx) if effective else load_config()
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key (dot notation, e.g., 'sync.halt_policy')."),
    value: str = typer.Argument(help="Value to set. Lists are given as JSON."),
) -> None:
    """Set a configuration value.

    The value is coerced to the type of the current field (bool, int,
    float, list or str) and the result is validated before saving.

    Example::

        offsync config set version v2
        offsync config set request.max_retries 2
        offsync config set manifest '["/", "/index.html"]'
    """
    from offsync.config import load_config, save_config
    from offsync.models import EngineConfig

    data = load_config().model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    current = target[final_key]
    try:
        if isinstance(current, bool):
            coerced = value.lower() in ("true", "1", "yes")
        elif isinstance(current, int):
            coerced = int(value)
        elif isinstance(current, float):
            coerced = float(value)
        elif isinstance(current, list):
            coerced = json.loads(value)
        else:
            coerced = value
    except ValueError:
        error(f"Cannot convert '{value}' for {key}")
        raise typer.Exit(code=2) from None

    target[final_key] = coerced

    try:
        new_config = EngineConfig.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset the configuration to defaults."""
    from offsync.config import save_config
    from offsync.models import EngineConfig

    if not force and not typer.confirm("Reset configuration to defaults?"):
        raise typer.Abort()
    save_config(EngineConfig())
    success("Configuration reset to defaults")
