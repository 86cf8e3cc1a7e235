"""Typer application and CLI entry point for offsync.

Registers the built-in command groups (``lifecycle``, ``queue``, ``cache``,
``config``) and the top-level ``fetch`` and ``sync`` commands. :func:`main`
is the console-script entry point declared in ``pyproject.toml``: it maps
:class:`~offsync.exceptions.OffsyncError` to its exit code and writes a
crash log for anything unexpected.
"""

from __future__ import annotations

import json
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from offsync import __version__
from offsync.commands.cache import cache_app
from offsync.commands.config import config_app
from offsync.commands.lifecycle import lifecycle_app
from offsync.commands.queue import queue_app, queue_sync
from offsync.exit_codes import EXIT_APPLICATION_ERROR, EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="offsync",
    help="Offline request cache and background sync engine.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)

app.add_typer(lifecycle_app, name="lifecycle", help="Install and activate cache versions.")
app.add_typer(queue_app, name="queue", help="Inspect and replay offline mutations.")
app.add_typer(cache_app, name="cache", help="Inspect and clear cached responses.")
app.add_typer(config_app, name="config", help="View and modify configuration.")
app.command("sync")(queue_sync)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"offsync {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    version_tag: Optional[str] = typer.Option(
        None, "--version-tag", help="Override the cache version tag."
    ),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the API origin."),
    cache_dir: Optional[str] = typer.Option(None, "--cache-dir", help="Override the cache directory."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~offsync.output.OutputManager`, routes the
    ``offsync`` logger to stderr and stores configuration overrides in
    ``ctx.obj`` for :func:`~offsync.commands.current_config`.
    """
    from offsync.output import OutputFormat, OutputManager, configure_logging, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    configure_logging(output)

    overrides: dict[str, Any] = {"version": version_tag, "base_url": base_url}
    if cache_dir:
        overrides["cache"] = {"directory": cache_dir}

    ctx.ensure_object(dict)
    ctx.obj["overrides"] = overrides
    ctx.obj["verbose"] = verbose


@app.command("fetch")
def fetch(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method."),
    url: str = typer.Argument(help="Absolute URL or path relative to the base URL."),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="JSON request body."),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Extra header as 'Name: value'. Repeatable."
    ),
    auth: bool = typer.Option(True, "--auth/--no-auth", help="Send the stored bearer token."),
) -> None:
    """Send one request through the cache strategies.

    Writes made while offline are queued and replayed by ``offsync sync``.

    Example::

        offsync fetch GET /api/transactions
        offsync fetch POST /api/transactions -d '{"amount": 12.5, "type": "expense"}'
    """
    from offsync.client import ApiClient
    from offsync.commands import current_config, open_worker, run
    from offsync.exceptions import InvalidUsageError
    from offsync.models import StoredResponse
    from offsync.output import debug, format_response, warning
    from offsync.session import SessionStore

    headers: dict[str, str] = {}
    body: Optional[bytes] = None
    if data is not None:
        try:
            json.loads(data)
        except json.JSONDecodeError as exc:
            raise InvalidUsageError(f"--data is not valid JSON: {exc}") from exc
        body = data.encode()
    for item in header or []:
        name, sep, value = item.partition(":")
        if not sep:
            raise InvalidUsageError(f"Invalid header '{item}', expected 'Name: value'")
        headers[name.strip()] = value.strip()

    config = current_config(ctx)
    session = SessionStore() if auth else None

    async def _fetch() -> StoredResponse:
        async with open_worker(config) as worker:
            client = ApiClient(worker, session)
            return await client.fetch(method, url, body=body, headers=headers)

    response = run(_fetch())
    debug(f"HTTP {response.status_code} (from_cache={response.from_cache})")
    if response.offline:
        warning("Offline: served a degraded response")
    try:
        format_response(response.json())
    except ValueError:
        format_response(response.text)
    if response.status_code >= 400 and not response.offline:
        raise typer.Exit(code=EXIT_APPLICATION_ERROR)


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to the data directory and return its path."""
    from offsync.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``offsync`` console script.

    Unhandled :class:`~offsync.exceptions.OffsyncError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from offsync.exceptions import OffsyncError
        from offsync.output import error

        if isinstance(exc, OffsyncError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
