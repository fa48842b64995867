"""User-facing notification channels.

``Notifier`` is the gateway every call site uses to tell the user something
(the analogue of an editor's error/warning/info popups). The three methods
are defined on the class; ``MessageInterceptor`` wraps them by setting
instance attributes that shadow them and deletes those to restore the
class methods.
"""

from enum import Enum

from rich.console import Console
from rich.prompt import Prompt


class MessageType(str, Enum):
    """Severity of a user notification."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


_STYLES = {
    MessageType.ERROR: "red",
    MessageType.WARNING: "yellow",
    MessageType.INFO: "green",
}


class Notifier:
    """Console-backed error/warning/info channels."""

    def __init__(
        self,
        console: Console | None = None,
        interactive: bool = False,
        prefix: str = "sqls-next",
    ):
        self.console = console or Console(stderr=True)
        self.interactive = interactive
        self.prefix = prefix

    def _show(self, severity: MessageType, message: str, items: tuple[str, ...]) -> str | None:
        style = _STYLES[severity]
        text = f"{self.prefix}: {message}" if self.prefix else message
        # Server text may contain square brackets, so no markup
        self.console.print(text, style=style, markup=False, highlight=False)

        if items and self.interactive:
            return Prompt.ask("Choose", choices=list(items), console=self.console)
        return None

    def show_error_message(self, message: str, *items: str) -> str | None:
        return self._show(MessageType.ERROR, message, items)

    def show_warning_message(self, message: str, *items: str) -> str | None:
        return self._show(MessageType.WARNING, message, items)

    def show_information_message(self, message: str, *items: str) -> str | None:
        return self._show(MessageType.INFO, message, items)
