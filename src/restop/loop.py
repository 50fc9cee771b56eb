"""Monitor loop: drives collect, delta, sort and render on a fixed cadence."""

import math
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol

import structlog

from restop.delta import compute, cpu_split
from restop.errors import InvalidConfiguration, SourceUnavailable
from restop.filtering import ProcessFilter, select
from restop.keys import QUIT, Action, Command, InputHandler
from restop.models import DisplayRecord, Mode, ProcessSummary, SlabSummary, Snapshot
from restop.render import Viewport, render
from restop.sorting import SortKey, order

log = structlog.get_logger()

MIN_INTERVAL = 0.1  # Seconds
INTERVAL_STEP = 0.5
MIN_COLLECT_TIMEOUT = 1.0

# Commands that change what the current records look like
VIEW_ACTIONS = {
    Action.SET_SORT,
    Action.REVERSE,
    Action.SORT_LEFT,
    Action.SORT_RIGHT,
    Action.TOGGLE_COMMAND,
    Action.FILTER_USER,
}


class Collector(Protocol):
    mode: Mode

    def collect(self) -> Snapshot: ...


class LoopState(Enum):
    RUNNING = "running"
    PAUSED = "paused"
    TERMINATING = "terminating"


@dataclass(slots=True, frozen=True)
class LoopConfig:
    """Settings the loop runs with. Replaced, never mutated, when a command applies."""

    sort: SortKey
    interval: float
    paused: bool = False
    row_limit: int = 0  # 0 shows as many rows as fit
    process_filter: ProcessFilter | None = None
    full_command: bool = True  # Command line rather than process name

    @classmethod
    def create(
        cls,
        mode: Mode,
        sort: str | None = None,
        interval: float = 1.5,
        row_limit: int = 0,
        process_filter: ProcessFilter | None = None,
        full_command: bool = True,
    ) -> "LoopConfig":
        """Validated settings; raises InvalidConfiguration."""
        key = SortKey.default(mode) if sort is None else SortKey.parse(mode, sort)
        if not _is_number(interval) or not math.isfinite(interval):
            raise InvalidConfiguration(f"delay {interval!r} is not a number of seconds")
        if interval < MIN_INTERVAL:
            raise InvalidConfiguration(
                f"delay {interval} is below the minimum of {MIN_INTERVAL} seconds"
            )
        if not isinstance(row_limit, int) or isinstance(row_limit, bool) or row_limit < 0:
            raise InvalidConfiguration(f"row limit {row_limit!r} is not a count of rows")
        if process_filter is not None and mode is not Mode.PROCESS:
            raise InvalidConfiguration(f"{mode.value} has no process filter")
        return cls(
            sort=key,
            interval=float(interval),
            row_limit=row_limit,
            process_filter=process_filter,
            full_command=full_command,
        )


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(slots=True, frozen=True)
class Tick:
    """What one loop step produced."""

    frame: str | None  # New frame to show, None to keep the current one
    command: Command | None  # Command applied during the step


class MonitorLoop:
    """
    Sample, derive, sort and render on a fixed cadence.

    The loop is the only writer of its configuration; commands arriving from
    the input handler are applied between cycles, one per step. The next
    cycle is due `interval` seconds after the previous render finished.

    The collector runs on a single worker thread so a hung read can be
    abandoned after a bounded wait instead of freezing the terminal.
    """

    def __init__(
        self,
        collector: Collector,
        config: LoopConfig,
        input_handler: InputHandler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if config.sort.mode is not collector.mode:
            raise InvalidConfiguration(
                f"sort key {config.sort.token!r} belongs to {config.sort.mode.value}"
            )
        self._collector = collector
        self._config = config
        self._input = input_handler
        self._clock = clock
        self._state = LoopState.PAUSED if config.paused else LoopState.RUNNING
        self._previous: Snapshot | None = None
        self._summary: ProcessSummary | SlabSummary | None = None
        self._records: list[DisplayRecord] = []
        self._cpu: dict[str, float] | None = None
        self._rendered_at: float | None = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="collector")
        self._pending: Future[Snapshot] | None = None

    def __enter__(self) -> "MonitorLoop":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def mode(self) -> Mode:
        return self._collector.mode

    @property
    def config(self) -> LoopConfig:
        return self._config

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def previous(self) -> Snapshot | None:
        """The snapshot the next cycle derives its rates from."""
        return self._previous

    @property
    def collect_timeout(self) -> float:
        return max(self._config.interval, MIN_COLLECT_TIMEOUT)

    def due(self) -> bool:
        """True when a running loop should start its next cycle."""
        if self._state is not LoopState.RUNNING:
            return False
        if self._rendered_at is None:
            return True
        return self._clock() - self._rendered_at >= self._config.interval

    def step(self, viewport: Viewport) -> Tick:
        """
        One tick: run a cycle if one is due, then apply at most one command.

        Raises SourceUnavailable when the collector cannot produce data; the
        loop is then terminating.
        """
        if self._state is LoopState.TERMINATING:
            return Tick(frame=None, command=None)
        if self._input is not None and self._input.stop_requested:
            # Quit goes ahead of a due cycle
            self.apply(QUIT)
            return Tick(frame=None, command=QUIT)

        frame = self.cycle(viewport) if self.due() else None

        command = self._input.poll() if self._input is not None else None
        if command is not None and self.apply(command):
            if command.action in VIEW_ACTIONS:
                frame = self.redraw(viewport) or frame
        else:
            command = None
        return Tick(frame=frame, command=command)

    def cycle(self, viewport: Viewport) -> str | None:
        """Collect, derive, sort and render one frame."""
        snapshot = self._collect()
        if snapshot is None:
            # Retry one interval from now, keeping the previous frame
            self._rendered_at = self._clock()
            return None

        self._records = compute(snapshot, self._previous)
        self._cpu = cpu_split(snapshot, self._previous)
        self._summary = snapshot.summary
        self._previous = snapshot
        return self.redraw(viewport)

    def redraw(self, viewport: Viewport) -> str | None:
        """Re-sort and re-render the records of the last cycle."""
        if self._summary is None:
            return None
        config = self._config
        frame = render(
            self._summary,
            order(select(self._records, config.process_filter), config.sort),
            viewport,
            cpu=self._cpu,
            limit=config.row_limit,
            full_command=config.full_command,
        )
        self._rendered_at = self._clock()
        return frame

    def prime(self) -> None:
        """Take a baseline snapshot so the first rendered cycle already has rates."""
        snapshot = self._collect()
        if snapshot is not None:
            self._previous = snapshot

    def apply(self, command: Command) -> bool:
        """Apply one command; returns False when it was ignored."""
        config = self._config
        action = command.action

        try:
            if action is Action.QUIT:
                self._state = LoopState.TERMINATING
            elif action is Action.TOGGLE_PAUSE:
                paused = not config.paused
                self._config = replace(config, paused=paused)
                self._state = LoopState.PAUSED if paused else LoopState.RUNNING
            elif action is Action.SLOWER:
                self._config = replace(config, interval=config.interval + INTERVAL_STEP)
            elif action is Action.FASTER:
                interval = max(MIN_INTERVAL, config.interval - INTERVAL_STEP)
                self._config = replace(config, interval=interval)
            elif action is Action.REVERSE:
                self._config = replace(config, sort=config.sort.reversed())
            elif action is Action.SET_SORT:
                self._config = replace(config, sort=SortKey.parse(self.mode, command.token))
            elif action is Action.SORT_LEFT:
                self._config = replace(config, sort=config.sort.shifted(-1))
            elif action is Action.SORT_RIGHT:
                self._config = replace(config, sort=config.sort.shifted(1))
            elif action is Action.TOGGLE_COMMAND:
                self._require_processes(action)
                self._config = replace(config, full_command=not config.full_command)
            elif action is Action.FILTER_USER:
                self._require_processes(action)
                # An empty user clears the filter
                user_filter = ProcessFilter.for_user(command.token) if command.token else None
                self._config = replace(config, process_filter=user_filter)
        except InvalidConfiguration as e:
            log.debug("command_ignored", command=action.value, reason=str(e))
            return False

        log.debug("command_applied", command=action.value, token=command.token)
        return True

    def _require_processes(self, action: Action) -> None:
        if self.mode is not Mode.PROCESS:
            raise InvalidConfiguration(f"{action.value} only applies to processes")

    def close(self) -> None:
        """Stop the collector worker without waiting for a hung read."""
        self._state = LoopState.TERMINATING
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _collect(self) -> Snapshot | None:
        if self._pending is None:
            self._pending = self._executor.submit(self._collector.collect)
        elif not self._pending.done():
            # Still stuck in the read that timed out; never stack a second one
            log.debug("collector_busy", mode=self.mode.value)
            return None
        future = self._pending
        try:
            return future.result(timeout=self.collect_timeout)
        except FutureTimeout:
            log.warning("collector_timeout", mode=self.mode.value, timeout=self.collect_timeout)
            return None
        except SourceUnavailable as e:
            self._state = LoopState.TERMINATING
            log.error("source_unavailable", mode=self.mode.value, error=str(e))
            raise
        finally:
            if future.done():
                self._pending = None


def run_batch(
    loop: MonitorLoop,
    viewport: Viewport,
    write: Callable[[str], None],
    iterations: int = 0,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Render `iterations` frames to `write` (0 runs until interrupted).

    Returns the number of frames written.
    """
    written = 0
    cycles = 0
    try:
        while iterations <= 0 or cycles < iterations:
            frame = loop.cycle(viewport)
            cycles += 1
            if frame is not None:
                write(frame + "\n")
                written += 1
            if iterations > 0 and cycles >= iterations:
                break
            sleep(loop.config.interval)
    except KeyboardInterrupt:
        log.info("batch_interrupted", frames=written)
    return written
