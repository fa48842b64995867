"""Filter and rewrite user notifications without touching call sites.

sqls reports some conditions on every request (e.g. "no database
connection" while typing in a file with no connection configured). The
interceptor wraps the three channels of a ``Notifier`` so such messages can
be suppressed or reworded centrally.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from typing import Any

from sqls_next.notifications import MessageType

logger = logging.getLogger(__name__)

MessageFilter = Callable[[str, MessageType], bool]
MessageTransformer = Callable[[str, MessageType], str]

_CHANNELS: tuple[tuple[str, MessageType], ...] = (
    ("show_error_message", MessageType.ERROR),
    ("show_warning_message", MessageType.WARNING),
    ("show_information_message", MessageType.INFO),
)


class MessageInterceptor:
    """Wraps a notifier's error/warning/info methods with filter and transformer.

    The original methods are captured at construction; ``deactivate`` puts
    exactly those back, so activate/deactivate cycles never nest wrappers.
    """

    def __init__(
        self,
        notifier: Any,
        filter: MessageFilter | None = None,
        transformer: MessageTransformer | None = None,
        log_messages: bool = True,
    ):
        self._notifier = notifier
        self._filter = filter
        self._transformer = transformer
        self._log_messages = log_messages
        self._active = False

        instance_attrs = getattr(notifier, "__dict__", {})
        self._originals: dict[str, Callable[..., Any]] = {}
        self._instance_level: dict[str, bool] = {}
        for name, _ in _CHANNELS:
            self._originals[name] = getattr(notifier, name)
            self._instance_level[name] = name in instance_attrs

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def originals(self) -> dict[str, Callable[..., Any]]:
        """The channel callables captured at construction."""
        return dict(self._originals)

    def activate(self) -> None:
        """Start intercepting. No-op if already active."""
        if self._active:
            return

        logger.info("Activating message interceptor")
        for name, severity in _CHANNELS:
            setattr(self._notifier, name, self._wrap(name, severity))
        self._active = True

    def deactivate(self) -> None:
        """Restore the original channels. No-op if not active."""
        if not self._active:
            return

        logger.info("Deactivating message interceptor")
        for name, _ in _CHANNELS:
            if self._instance_level[name]:
                setattr(self._notifier, name, self._originals[name])
            else:
                # Drop the override so lookup falls back to the class method
                delattr(self._notifier, name)
        self._active = False

    def set_filter(self, filter: MessageFilter | None) -> None:
        self._filter = filter

    def set_transformer(self, transformer: MessageTransformer | None) -> None:
        self._transformer = transformer

    def _wrap(self, name: str, severity: MessageType) -> Callable[..., Any]:
        original = self._originals[name]

        def intercepted(*args: Any, **kwargs: Any) -> Any:
            return self._handle_message(severity, args, kwargs, original)

        intercepted.__name__ = name
        return intercepted

    def _handle_message(
        self,
        severity: MessageType,
        args: tuple,
        kwargs: dict,
        original: Callable[..., Any],
    ) -> Any:
        if not args:
            return original(*args, **kwargs)

        message = args[0]
        if self._log_messages:
            logger.info("[%s] %s", severity.value.upper(), message)

        if self._filter is not None and not self._filter(message, severity):
            logger.info("Message filtered: %s", message)
            return None

        transformed = message
        if self._transformer is not None:
            transformed = self._transformer(message, severity)
            if transformed != message:
                logger.info('Message transformed: "%s" -> "%s"', message, transformed)

        return original(transformed, *args[1:], **kwargs)


def create_message_filter(patterns: Iterable[str | re.Pattern]) -> MessageFilter:
    """Build a filter that suppresses messages matching any pattern.

    Strings match as substrings, compiled patterns with ``search``.
    """
    patterns = list(patterns)

    def message_filter(message: str, _type: MessageType) -> bool:
        for pattern in patterns:
            if isinstance(pattern, re.Pattern):
                if pattern.search(message):
                    return False
            elif pattern in message:
                return False
        return True

    return message_filter


def create_message_transformer(
    replacements: Iterable[tuple[str | re.Pattern, str]],
) -> MessageTransformer:
    """Build a transformer applying ``(from, to)`` replacements in order.

    A string ``from`` replaces its first occurrence; a compiled pattern
    replaces every match.
    """
    replacements = list(replacements)

    def message_transformer(message: str, _type: MessageType) -> str:
        result = message
        for source, target in replacements:
            if isinstance(source, re.Pattern):
                result = source.sub(target, result)
            else:
                result = result.replace(source, target, 1)
        return result

    return message_transformer
