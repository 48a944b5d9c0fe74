"""
User-facing notifications.

Toast display belongs to the host application; the engine only reports
through a ``Notifier``.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class Notifier(Protocol):
    """Receives user-facing messages from the engine."""

    def success(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LoggingNotifier:
    """Default notifier: writes every message to the log."""

    def success(self, message: str) -> None:
        logger.info(message)

    def info(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.error(message)
