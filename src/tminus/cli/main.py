"""CLI entry point for tminus.

Uses Click to expose the ``tminus`` command group with subcommands that
delegate to the Session manager.
"""

from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from typing import Callable, Optional, Tuple, TypeVar

import click

import tminus
from tminus.core.duration import TimeUnit
from tminus.core.engine import DEFAULT_TICK_INTERVAL_MS
from tminus.core.errors import TimerError
from tminus.core.session import Session
from tminus.core.timer import TimerView

T = TypeVar("T")

_INCREMENT_RE = re.compile(r"^\+?(\d+)([hms])$", re.IGNORECASE)


class IncrementType(click.ParamType):
    """Parses ``10m``, ``+5s`` or ``1h`` into ``(amount, TimeUnit)``."""

    name = "increment"

    def convert(self, value, param, ctx) -> Tuple[int, TimeUnit]:
        if isinstance(value, tuple):
            return value
        match = _INCREMENT_RE.match(value.strip())
        if match is None:
            self.fail(f"{value!r} is not an increment like 10m, 5s or 1h", param, ctx)
        amount = int(match.group(1))
        if amount == 0:
            # Rejected here so a bad token never leaves earlier ones applied.
            self.fail(f"{value!r} must be a positive amount", param, ctx)
        return amount, TimeUnit.from_suffix(match.group(2))


INCREMENT = IncrementType()


def _run(action: Callable[[], T]) -> T:
    """Execute *action*, converting ``TimerError`` to a CLI error.

    On ``TimerError`` the message is printed to stderr and the process
    exits with code 1.
    """
    try:
        return action()
    except TimerError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def _session(ctx: click.Context, **kwargs) -> Session:
    return Session(config_dir=ctx.obj["config_dir"], **kwargs)


@click.group()
@click.version_option(version=tminus.__version__, prog_name="tminus")
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="TMINUS_CONFIG_DIR",
    default=None,
    help="Directory holding the saved timer state.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def cli(ctx: click.Context, config_dir: Optional[Path], verbose: bool) -> None:
    """tminus: a countdown timer for the terminal."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.obj = {"config_dir": config_dir}


@cli.command()
@click.argument("increments", nargs=-1, required=True, type=INCREMENT)
@click.pass_context
def add(ctx: click.Context, increments: Tuple[Tuple[int, TimeUnit], ...]) -> None:
    """Add INCREMENTS (e.g. 1h 10m 5s) to the configured duration."""
    session = _session(ctx)
    message = ""
    for amount, unit in increments:
        message = _run(lambda: session.add(amount, unit))
    click.echo(message)


@cli.command()
@click.pass_context
def reset(ctx: click.Context) -> None:
    """Reset the configured duration to zero."""
    session = _session(ctx)
    message = _run(session.reset)
    click.echo(message)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the configured duration."""
    session = _session(ctx)
    message, exit_code = session.status()
    click.echo(message)
    sys.exit(exit_code)


@cli.command()
@click.option(
    "--tick-ms",
    type=click.IntRange(min=1),
    default=DEFAULT_TICK_INTERVAL_MS,
    show_default=True,
    help="Countdown tick interval in milliseconds.",
)
@click.pass_context
def start(ctx: click.Context, tick_ms: int) -> None:
    """Count down the configured duration.  Press Ctrl-C to stop."""
    session = _session(ctx, tick_interval_ms=tick_ms)
    shown = {"display": None}

    def render(view: TimerView) -> None:
        # Ticks arrive far more often than the display changes.
        if view.display != shown["display"]:
            shown["display"] = view.display
            click.echo(f"\r{view.display}", nl=False)

    message = _run(lambda: session.run(render))
    click.echo()
    click.echo(message)
