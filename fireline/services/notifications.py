"""
notifications.py — The toast channel, as seen from the core.

The UI's toast widget is an external collaborator. Anything that wants to
tell the user something calls a Notifier; the default implementation just
writes to the `fireline.notifications` logger so headless runs and tests
still see every message.
"""

import logging
from typing import Protocol

logger = logging.getLogger("fireline.notifications")


class Notifier(Protocol):
    def info(self, message: str) -> None: ...

    def success(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LogNotifier:
    """Notifier that forwards every message to logging."""

    def info(self, message: str) -> None:
        logger.info(message)

    def success(self, message: str) -> None:
        logger.info(message)

    def warning(self, message: str) -> None:
        logger.warning(message)

    def error(self, message: str) -> None:
        logger.error(message)
