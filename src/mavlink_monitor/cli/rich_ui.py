"""User interface for the command-line monitor based on Rich."""

import logging

from contextlib import AbstractContextManager
from typing import Any, List, Optional, TYPE_CHECKING

from mavlink_monitor.monitor import (
    LogEvent,
    MessageEvent,
    MonitorEvent,
    NotificationEvent,
    NotificationExpiredEvent,
    PortLifecycleEvent,
)

if TYPE_CHECKING:
    from rich.console import Console, RenderableType
    from rich.live import Live


__all__ = ("RichConsoleUI",)


class RichConsoleUI(AbstractContextManager):
    """Console-based user interface that prints the messages received by a
    Monitor_ and shows its notifications at the bottom of the screen.
    """

    verbose: bool
    """Whether debug log messages (e.g., dropped frames) are printed."""

    _console: "Console"
    """The console that the UI prints to."""

    _live: "Live"
    """Live display at the bottom of the console that shows the active
    notifications.
    """

    _notifications: List[NotificationEvent]
    """The notifications currently shown, oldest first."""

    def __init__(self, *, verbose: bool = False, console: Optional["Console"] = None):
        """Constructor.

        Parameters:
            verbose: whether to print debug log messages
            console: the Rich console to print to; a new one is created when
                omitted
        """
        from rich.console import Console
        from rich.live import Live

        self.verbose = verbose
        self._console = console or Console(highlight=False)
        self._notifications = []
        self._live = Live(
            self._render_notifications(),
            console=self._console,
            auto_refresh=False,
            transient=True,
        )

    def __enter__(self):
        self._notifications.clear()
        self._live.__enter__()
        return self

    def __exit__(self, *args: Any):
        self._live.__exit__(*args)
        self._notifications.clear()
        return super().__exit__(*args)

    @property
    def console(self) -> "Console":
        """The console that the UI prints to."""
        return self._console

    def clear(self) -> None:
        """Clears the console."""
        self._console.clear()

    def handle_event(self, sender: str, event: MonitorEvent) -> None:
        """Handles an event from the monitor."""
        from rich.markup import escape

        if isinstance(event, MessageEvent):
            if sender:
                line = f"{self._format_sender(sender)} {escape(event.description)}"
            else:
                line = escape(event.description)
            self._console.print(line, end="")
        elif isinstance(event, PortLifecycleEvent):
            if event.type == "opened":
                self.log("Port opened", sender=sender)
            elif event.type == "closed":
                self.log("Port closed", sender=sender)
            elif event.type == "removed":
                self.log("Port removed", sender=sender, level=logging.WARNING)
            elif event.type == "error":
                reason = f": {event.reason}" if event.reason else ""
                self.log(f"Port error{reason}", sender=sender, level=logging.ERROR)
        elif isinstance(event, NotificationEvent):
            self._notifications.append(event)
            self._refresh()
        elif isinstance(event, NotificationExpiredEvent):
            try:
                self._notifications.remove(event.notification)
            except ValueError:
                pass
            else:
                self._refresh()
        elif isinstance(event, LogEvent):
            if event.level >= logging.INFO or self.verbose:
                self.log(event.message, sender=sender, level=event.level)

    def log(
        self, message: str, *, sender: Optional[str] = None, level: int = logging.INFO
    ):
        from rich.markup import escape

        if level >= logging.ERROR:
            sign = "[red bold]X[/red bold]"
        elif level >= logging.WARNING:
            sign = "[yellow bold]![/yellow bold]"
        elif level >= logging.INFO:
            sign = "[green bold]>[/green bold]"
        else:
            sign = "[dim].[/dim]"
        if sender:
            sender = self._format_sender(sender)
            self._console.print(f"{sign} {sender} {escape(message)}")
        else:
            self._console.print(f"{sign} {escape(message)}")

    def _format_sender(self, sender: str) -> str:
        return f"[bold white]{sender:<15}[/bold white]"

    def _refresh(self) -> None:
        self._live.update(self._render_notifications(), refresh=True)

    def _render_notifications(self) -> "RenderableType":
        from rich.console import Group
        from rich.markup import escape
        from rich.text import Text

        if not self._notifications:
            return Text("")

        return Group(
            *(
                Text.from_markup(
                    f"[cyan bold]*[/cyan bold] [bold]{escape(n.title)}[/bold] "
                    f"{escape(n.text)}"
                )
                for n in self._notifications
            )
        )
