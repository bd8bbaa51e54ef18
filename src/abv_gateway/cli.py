"""ABV Gateway CLI.

Talks to a running backend over HTTP.

Usage:
    abv-gateway commands                        # List mapped commands
    abv-gateway call get_proxy_status           # Execute a command
    abv-gateway call delete_account -a accountId=42

    abv-gateway console status                  # Is the debug console on?
    abv-gateway console enable                  # Turn it on
    abv-gateway console disable                 # Turn it off
    abv-gateway console clear                   # Purge the log history
    abv-gateway console tail --level ERROR      # Stream records live
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import click

from .client import GatewayClient, create_client
from .config import GatewayConfig
from .console.buffer import DEFAULT_LEVELS, LogFilter
from .errors import GatewayError
from .protocol.records import LogLevel, LogRecord
from .protocol.registry import CommandRegistry, ConsoleCommand

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

LEVEL_COLORS = {
    LogLevel.ERROR: "red",
    LogLevel.WARN: "yellow",
    LogLevel.INFO: "blue",
    LogLevel.DEBUG: "magenta",
    LogLevel.TRACE: "white",
}

format_option = click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)


def parse_arg(pair: str) -> tuple[str, Any]:
    """Parse a `key=value` argument; values that parse as JSON are used as such."""
    key, sep, raw = pair.partition("=")
    if not sep or not key:
        raise click.BadParameter(f"Expected key=value, got: {pair}")
    try:
        return key, json.loads(raw)
    except ValueError:
        return key, raw


def format_record(record: LogRecord) -> str:
    """Render one log record as a console line."""
    when = datetime.fromtimestamp(record.timestamp / 1000).strftime("%H:%M:%S.%f")[:-3]
    level = click.style(f"{record.level.value:<5}", fg=LEVEL_COLORS[record.level])
    fields = " ".join(f"{k}={v}" for k, v in sorted(record.fields.items()))
    line = f"{when} {level} {record.target}: {record.message}"
    return f"{line} {fields}" if fields else line


def _run(ctx: click.Context, action: Callable[[GatewayClient], Awaitable[Any]]) -> Any:
    """Run an async action against a fresh client, exiting 1 on gateway errors."""
    config: GatewayConfig = ctx.obj["config"]

    async def run() -> Any:
        async with create_client(config) as client:
            return await action(client)

    try:
        return asyncio.run(run())
    except GatewayError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("--base-url", default=None, help="Backend URL (default: $ABV_BASE_URL)")
@click.option("--api-key", default=None, help="Admin API key (default: $ABV_ADMIN_API_KEY)")
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Diagnostic log level (stderr)",
)
@click.pass_context
def main(
    ctx: click.Context,
    base_url: str | None,
    api_key: str | None,
    timeout: float | None,
    log_level: str,
) -> None:
    """ABV Gateway - dispatch admin commands and stream backend logs."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    config = GatewayConfig.from_env()
    config.mode = "remote"
    if base_url:
        config.base_url = base_url.rstrip("/")
    if api_key:
        config.api_key = api_key
    if timeout is not None:
        config.timeout = timeout

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@main.command("commands")
@format_option
def list_commands(output_format: str) -> None:
    """List commands available over HTTP."""
    registry = CommandRegistry.default()

    if output_format == FORMAT_JSON:
        rows = [
            {"name": d.name, "method": d.verb.value, "path": d.path_template}
            for d in registry.values()
        ]
        click.echo(json.dumps(rows, indent=2))
        return

    click.echo(f"{'Command':<40} {'Method':<8} {'Path'}")
    click.echo("-" * 90)
    for descriptor in registry.values():
        click.echo(
            f"{descriptor.name:<40} {descriptor.verb.value:<8} {descriptor.path_template}"
        )


@main.command("call")
@click.argument("command")
@click.option("--arg", "-a", "arg_pairs", multiple=True, help="Argument as key=value")
@click.option("--args-json", default=None, help="Arguments as a JSON object")
@click.pass_context
def call(ctx: click.Context, command: str, arg_pairs: tuple[str, ...], args_json: str | None) -> None:
    """Execute COMMAND and print its result as JSON.

    Examples:

        abv-gateway call list_accounts

        abv-gateway call fetch_account_quota -a accountId=42
    """
    args: dict[str, Any] = {}
    if args_json:
        try:
            loaded = json.loads(args_json)
        except ValueError as e:
            raise click.BadParameter(f"Invalid JSON: {e}", param_hint="--args-json") from e
        if not isinstance(loaded, dict):
            raise click.BadParameter("Expected a JSON object", param_hint="--args-json")
        args.update(loaded)
    args.update(parse_arg(pair) for pair in arg_pairs)

    result = _run(ctx, lambda client: client.execute(command, args or None))
    click.echo(json.dumps(result, indent=2, ensure_ascii=False))


# =============================================================================
# Console Commands
# =============================================================================


@main.group()
def console() -> None:
    """Control the backend debug console."""


@console.command("status")
@click.pass_context
def console_status(ctx: click.Context) -> None:
    """Show whether the debug console is enabled."""

    async def action(client: GatewayClient) -> bool:
        return bool(await client.execute(ConsoleCommand.IS_ENABLED.value))

    enabled = _run(ctx, action)
    status = click.style("enabled", fg="green") if enabled else click.style("disabled", fg="red")
    click.echo(f"Debug console: {status}")


@console.command("enable")
@click.pass_context
def console_enable(ctx: click.Context) -> None:
    """Enable the debug console."""

    async def action(client: GatewayClient) -> int | None:
        if not await client.console.enable():
            return None
        return len(client.logs)

    count = _run(ctx, action)
    if count is None:
        click.echo("Failed to enable debug console", err=True)
        sys.exit(1)
    click.echo(f"Debug console enabled ({count} buffered records)")


@console.command("disable")
@click.pass_context
def console_disable(ctx: click.Context) -> None:
    """Disable the debug console."""
    if not _run(ctx, lambda client: client.console.disable()):
        click.echo("Failed to disable debug console", err=True)
        sys.exit(1)
    click.echo("Debug console disabled")


@console.command("clear")
@click.pass_context
def console_clear(ctx: click.Context) -> None:
    """Clear the backend log history."""
    _run(ctx, lambda client: client.logs.clear())
    click.echo("Debug console logs cleared")


@console.command("tail")
@click.option(
    "--level",
    "-l",
    "levels",
    multiple=True,
    type=click.Choice([level.value for level in LogLevel], case_sensitive=False),
    help="Levels to show (default: ERROR, WARN, INFO)",
)
@click.option("--search", "-s", default="", help="Only show records mentioning this text")
@click.option("--follow/--no-follow", default=True, help="Keep streaming new records")
@click.option("--interval", type=float, default=0.5, help="Refresh interval in seconds")
@click.pass_context
def console_tail(
    ctx: click.Context,
    levels: tuple[str, ...],
    search: str,
    follow: bool,
    interval: float,
) -> None:
    """Enable the console and print records as they arrive.

    Examples:

        abv-gateway console tail --level ERROR --level WARN

        abv-gateway console tail --search proxy --no-follow
    """
    selected = {LogLevel(level.upper()) for level in levels} or set(DEFAULT_LEVELS)
    view = LogFilter(levels=selected, search=search)

    async def action(client: GatewayClient) -> None:
        if not await client.console.enable():
            raise GatewayError("Failed to enable debug console")

        last_id = -1
        while True:
            await client.console.flush()
            snapshot = client.logs.snapshot()
            for record in view.apply(snapshot):
                if record.id > last_id:
                    click.echo(format_record(record))
            if snapshot:
                last_id = max(last_id, snapshot[-1].id)
            if not follow or not client.console.is_listening:
                return
            await asyncio.sleep(interval)

    try:
        _run(ctx, action)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
