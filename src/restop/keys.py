"""Input handler: translate keystrokes into loop commands."""

import threading
from dataclasses import dataclass
from enum import Enum
from queue import Empty, Full, Queue

import structlog

from restop.models import Mode
from restop.sorting import SORT_FIELDS

log = structlog.get_logger()


class Action(Enum):
    """Configuration changes a keystroke can request."""

    SET_SORT = "sort"
    REVERSE = "reverse"
    SLOWER = "slower"
    FASTER = "faster"
    TOGGLE_PAUSE = "pause"
    SORT_LEFT = "sort_left"
    SORT_RIGHT = "sort_right"
    TOGGLE_COMMAND = "command"
    FILTER_USER = "user"
    QUIT = "quit"


@dataclass(slots=True, frozen=True)
class Command:
    action: Action
    token: str = ""  # Sort key for SET_SORT, user for FILTER_USER


QUIT = Command(Action.QUIT)

# Keys that ask for a value before they become a command
PROMPT_KEYS = {Mode.PROCESS: {"u": Action.FILTER_USER}, Mode.CACHE: {}}

COMMON_KEYS = {
    "R": Command(Action.REVERSE),
    "<": Command(Action.SORT_LEFT),
    ">": Command(Action.SORT_RIGHT),
    "+": Command(Action.SLOWER),
    "-": Command(Action.FASTER),
    " ": Command(Action.TOGGLE_PAUSE),
    "q": QUIT,
    "Q": QUIT,
    "ctrl+c": QUIT,
}


def keymap(mode: Mode) -> dict[str, Command]:
    """Every key recognised in `mode`."""
    keys = {token: Command(Action.SET_SORT, token) for token in SORT_FIELDS[mode]}
    keys.update(COMMON_KEYS)
    if mode is Mode.PROCESS:
        keys["c"] = Command(Action.TOGGLE_COMMAND)
    return keys


class InputHandler:
    """
    Bounded channel between the keyboard and the monitor loop.

    `feed()` is called for every keystroke; the loop calls `poll()` once per
    tick and gets at most one command back. Quit requests bypass the channel
    so a full queue can never hold them back.
    """

    def __init__(self, mode: Mode, capacity: int = 16) -> None:
        self._keymap = keymap(mode)
        self._queue: Queue[Command] = Queue(maxsize=capacity)
        self._stop_event = threading.Event()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def feed(self, key: str) -> bool:
        """Queue the command bound to `key`; unknown keys are ignored."""
        command = self._keymap.get(key)
        if command is None:
            return False
        return self.submit(command)

    def submit(self, command: Command) -> bool:
        """Queue a command built outside the keymap, such as a prompted user filter."""
        if command.action is Action.QUIT:
            self._stop_event.set()
            return True
        try:
            self._queue.put_nowait(command)
        except Full:
            log.debug("command_dropped", command=command.action.value)
            return False
        return True

    def interrupt(self) -> None:
        """Request termination, as if quit had been pressed."""
        self._stop_event.set()

    def poll(self) -> Command | None:
        """Next pending command, or None without waiting."""
        if self._stop_event.is_set():
            return QUIT
        try:
            return self._queue.get_nowait()
        except Empty:
            return None
