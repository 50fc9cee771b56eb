"""CLI commands for restop."""

import sys
from pathlib import Path

import click
import structlog

from restop.config import Config
from restop.errors import InvalidConfiguration, SourceUnavailable
from restop.filtering import ProcessFilter
from restop.keys import InputHandler
from restop.logging import configure
from restop.loop import Collector, LoopConfig, MonitorLoop, run_batch
from restop.models import Mode
from restop.render import Viewport
from restop.sorting import sort_help

log = structlog.get_logger()

BATCH_WIDTH = 512  # Line width when stdout is not a terminal


@click.group()
@click.version_option(package_name="restop")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default ~/.config/restop/config.toml)",
)
@click.pass_context
def main(ctx: click.Context, config_path: Path | None) -> None:
    """Live process and slab cache monitor."""
    if ctx.invoked_subcommand == "config":
        return  # Must work even when the file does not load
    try:
        config = Config.load(config_path)
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    ctx.obj = config


def build_loop_config(
    config: Config,
    mode: Mode,
    delay: float | None,
    sort: str | None,
    process_filter: ProcessFilter | None = None,
    full_command: bool = True,
) -> LoopConfig:
    """Merge command-line options over the config file, validating before the loop starts."""
    settings = config.for_mode(mode)
    try:
        return LoopConfig.create(
            mode,
            sort=sort if sort is not None else settings.sort,
            interval=delay if delay is not None else settings.interval,
            row_limit=settings.row_limit,
            process_filter=process_filter,
            full_command=full_command,
        )
    except InvalidConfiguration as e:
        raise click.UsageError(str(e)) from e


def build_process_filter(
    pids: tuple[str, ...], effective_user: str | None, any_user: str | None
) -> ProcessFilter | None:
    """The filter the -p, -u and -U options ask for; at most one of them may be given."""
    options = [("-p", pids), ("-u", effective_user), ("-U", any_user)]
    given = [name for name, value in options if value]
    if len(given) > 1:
        raise click.UsageError(f"{' and '.join(given)} cannot be combined")
    try:
        if pids:
            tokens = [t for value in pids for t in value.split(",") if t.strip()]
            return ProcessFilter.for_pids(_parse_pid(t) for t in tokens)
        if effective_user:
            return ProcessFilter.for_user(effective_user)
        if any_user:
            return ProcessFilter.for_user(any_user, any_uid=True)
    except InvalidConfiguration as e:
        raise click.UsageError(str(e)) from e
    return None


def _parse_pid(token: str) -> int:
    token = token.strip()
    if not token.isdigit():
        raise InvalidConfiguration(f"invalid pid {token!r}")
    return int(token)


def start_logging(config: Config, source: str) -> None:
    try:
        configure(config, source=source)
    except ValueError as e:
        raise click.UsageError(f"invalid [logging] settings: {e}") from e


def run(
    collector: Collector,
    loop_config: LoopConfig,
    *,
    batch: bool,
    iterations: int = 0,
    width: int | None = None,
) -> int:
    """Run the live app, or `iterations` batch frames; returns the exit status."""
    handler = InputHandler(collector.mode)
    with MonitorLoop(collector, loop_config, handler) as loop:
        if batch:
            viewport = Viewport(rows=sys.maxsize, columns=width or BATCH_WIDTH)
            try:
                if collector.mode is Mode.PROCESS:
                    loop.prime()
                run_batch(
                    loop,
                    viewport,
                    write=lambda text: click.echo(text, nl=False),
                    iterations=iterations,
                )
            except SourceUnavailable as e:
                raise click.ClickException(str(e)) from e
            return 0

        from restop.app import RestopApp

        app = RestopApp(loop, handler)
        app.run()
        log.info("app_exited", return_code=app.return_code)
        return app.return_code or 0


@main.command(epilog="\b\nThe following are valid sort criteria:\n" + sort_help(Mode.PROCESS))
@click.option("-d", "--delay", type=float, default=None, help="Seconds between updates")
@click.option("-s", "--sort", "sort_key", default=None, help="Sort criteria (see below)")
@click.option("-b", "--batch", is_flag=True, help="Write frames to stdout instead of the screen")
@click.option(
    "-n",
    "--iterations",
    type=click.IntRange(min=0),
    default=0,
    help="Exit after this many batch frames (0 runs until interrupted)",
)
@click.option("-w", "--width", type=click.IntRange(min=1), default=None, help="Batch line width")
@click.option(
    "-p",
    "--pid",
    "pids",
    multiple=True,
    metavar="PIDLIST",
    help="Only show these processes (comma separated, repeatable)",
)
@click.option("-u", "--filter-only-euser", "effective_user", help="Only show this effective user")
@click.option(
    "-U", "--filter-any-user", "any_user", help="Only show this real, effective or saved user"
)
@click.option("-c", "--command-toggle", is_flag=True, help="Flip between command lines and names")
@click.pass_obj
def top(
    config: Config,
    delay: float | None,
    sort_key: str | None,
    batch: bool,
    iterations: int,
    width: int | None,
    pids: tuple[str, ...],
    effective_user: str | None,
    any_user: str | None,
    command_toggle: bool,
) -> None:
    """Display processes in real time."""
    from restop.collector import ProcessCollector

    loop_config = build_loop_config(
        config,
        Mode.PROCESS,
        delay,
        sort_key,
        process_filter=build_process_filter(pids, effective_user, any_user),
        full_command=config.top.full_command != command_toggle,
    )
    start_logging(config, "top")
    sys.exit(run(ProcessCollector(), loop_config, batch=batch, iterations=iterations, width=width))


@main.command(epilog="\b\nThe following are valid sort criteria:\n" + sort_help(Mode.CACHE))
@click.option("-d", "--delay", type=float, default=None, help="Seconds between updates")
@click.option("-s", "--sort", "sort_key", default=None, help="Sort criteria (see below)")
@click.option("-o", "--once", is_flag=True, help="Only display once, then exit")
@click.option(
    "--slabinfo",
    "slabinfo_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Slab table to read (default /proc/slabinfo)",
)
@click.pass_obj
def slabtop(
    config: Config,
    delay: float | None,
    sort_key: str | None,
    once: bool,
    slabinfo_path: Path | None,
) -> None:
    """Display kernel slab cache information in real time."""
    from restop.collector import SlabCollector

    loop_config = build_loop_config(config, Mode.CACHE, delay, sort_key)
    start_logging(config, "slabtop")
    collector = SlabCollector(slabinfo_path or Path(config.slabtop.slabinfo_path))
    sys.exit(run(collector, loop_config, batch=once, iterations=1 if once else 0))


@main.group("config")
def config_group() -> None:
    """Manage configuration."""
    pass


def _config_path() -> Path:
    path = click.get_current_context().find_root().params["config_path"]
    return path or Config().config_path


@config_group.command("show")
def config_show() -> None:
    """Display current configuration."""
    path = _config_path()
    try:
        config = Config.load(path)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    click.echo(f"# Config file: {path}")
    click.echo(f"# Exists: {path.exists()}")
    click.echo()
    click.echo(config.to_toml(), nl=False)


@config_group.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    path = _config_path()
    Config().save(path)
    click.echo(f"Config reset to defaults at {path}")


if __name__ == "__main__":
    main()
