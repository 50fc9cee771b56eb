"""restop - Live Textual application."""

import structlog
from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.screen import ModalScreen
from textual.widgets import Input, Label, Static

from restop.errors import InvalidConfiguration, SourceUnavailable
from restop.filtering import resolve_uid
from restop.keys import PROMPT_KEYS, Action, Command, InputHandler
from restop.loop import LoopState, MonitorLoop
from restop.models import Mode
from restop.render import Viewport

log = structlog.get_logger()

SUB_TITLES = {
    Mode.PROCESS: "Process Monitor",
    Mode.CACHE: "Slab Cache Monitor",
}


class FrameView(Static):
    """Full-screen widget showing the latest rendered frame."""

    DEFAULT_CSS = """
    FrameView {
        height: 1fr;
        width: 1fr;
    }
    """

    @property
    def viewport(self) -> Viewport:
        """The area a frame may use."""
        return Viewport(rows=self.size.height, columns=self.size.width)

    def show(self, frame: str) -> None:
        self.update(Text(frame, no_wrap=True, overflow="crop"))



class UserPrompt(ModalScreen[str | None]):
    """Asks which user to show; dismissed with the answer, or None on escape."""

    DEFAULT_CSS = """
    UserPrompt {
        align: center top;
    }
    UserPrompt > Input {
        width: 60;
    }
    """

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def compose(self) -> ComposeResult:
        yield Label("Which user (blank for all)")
        yield Input(id="user")

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value.strip())

    def action_cancel(self) -> None:
        self.dismiss(None)


class RestopApp(App):
    """Main restop application."""

    TITLE = "restop"

    CSS = """
    Screen {
        layout: vertical;
    }
    """

    BINDINGS = [
        Binding("ctrl+c", "interrupt", "Quit", show=False, priority=True),
        Binding("ctrl+q", "interrupt", "Quit", show=False, priority=True),
    ]

    # Seconds between loop steps; refresh cadence is the loop's own interval
    HEARTBEAT = 0.1

    def __init__(self, loop: MonitorLoop, input_handler: InputHandler) -> None:
        """
        Initialize the RestopApp.

        Args:
            loop: Monitor loop to drive; it is closed when the app exits.
            input_handler: Channel keystrokes are fed into.
        """
        super().__init__()
        self._loop = loop
        self._input = input_handler
        self.sub_title = SUB_TITLES[loop.mode]

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        self._frame_view = FrameView(id="frame")
        yield self._frame_view

    def on_mount(self) -> None:
        """Start stepping the monitor loop."""
        log.info("app_started", mode=self._loop.mode.value)
        self.set_interval(self.HEARTBEAT, self._step)

    def on_key(self, event: events.Key) -> None:
        """Hand every keystroke to the input handler."""
        if isinstance(self.screen, UserPrompt):
            return  # The prompt owns the keyboard
        key = event.character if event.is_printable and event.character else event.key
        if PROMPT_KEYS[self._loop.mode].get(key) is Action.FILTER_USER:
            self.push_screen(UserPrompt(), self._filter_user)
            return
        self._input.feed(key)

    def action_interrupt(self) -> None:
        self._input.interrupt()

    def _filter_user(self, user: str | None) -> None:
        if user is None:
            return  # Cancelled
        if user:
            try:
                resolve_uid(user)
            except InvalidConfiguration:
                self.notify("Invalid user", severity="error")
                return
        self._input.submit(Command(Action.FILTER_USER, token=user))

    def _step(self) -> None:
        """Run one loop step and show whatever it produced."""
        view = self._frame_view
        viewport = view.viewport
        if viewport.rows <= 0 or viewport.columns <= 0:
            return  # Not laid out yet

        try:
            tick = self._loop.step(viewport)
        except SourceUnavailable as e:
            self._loop.close()
            self.exit(return_code=1, message=f"restop: {e}")
            return

        if tick.frame is not None:
            view.show(tick.frame)
        if tick.command is not None:
            self._announce(tick.command)
        if self._loop.state is LoopState.TERMINATING:
            self._loop.close()
            self.exit()

    def _announce(self, command: Command) -> None:
        config = self._loop.config
        if command.action in (Action.SET_SORT, Action.REVERSE, Action.SORT_LEFT, Action.SORT_RIGHT):
            direction = "descending" if config.sort.descending else "ascending"
            label = config.sort.field.help.removeprefix("sort by ")
            self.notify(f"Sort: {label}, {direction}")
        elif command.action is Action.TOGGLE_PAUSE:
            self.notify("Paused" if config.paused else "Resumed")
        elif command.action in (Action.SLOWER, Action.FASTER):
            self.notify(f"Delay: {config.interval:.1f}s")
        elif command.action is Action.TOGGLE_COMMAND:
            self.notify("Command lines" if config.full_command else "Program names")
        elif command.action is Action.FILTER_USER:
            self.notify(f"User: {command.token}" if command.token else "All users")
