"""
progress.py
~~~~~~~~~~~

Progress reporting sinks for long-running network operations.

The network only holds a reference to a reporter and calls it after each
unit of work; it never writes to the console itself.
"""

import logging
import sys
from typing import Callable, Optional, TextIO

logger = logging.getLogger(__name__)


def percentage(count: int, total: int) -> float:
    """Return ``count / total`` as a percentage in [0, 100]."""
    if total <= 0:
        return 0.0
    return count / total * 100.0


class ProgressReporter:
    """Reporter interface. The base implementation ignores every call."""

    def report(self, title: str, count: int, total: int) -> None:
        """Called after ``count`` of ``total`` units of work are done."""

    def end(self, title: str) -> None:
        """Called once when the operation named ``title`` has finished."""


class NullReporter(ProgressReporter):
    """Reporter that discards all progress."""


class ConsoleReporter(ProgressReporter):
    """
    Reporter that redraws a single status line on a text stream.

    Each report starts with a carriage return so the line is overwritten;
    ``end`` finishes it with a newline.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream if stream is not None else sys.stdout

    def report(self, title: str, count: int, total: int) -> None:
        self.stream.write(
            f"\r{title}: {count} / {total} "
            f"({percentage(count, total):.2f}%)"
        )
        self.stream.flush()

    def end(self, title: str) -> None:
        self.stream.write("\n")
        self.stream.flush()


class LoggingReporter(ProgressReporter):
    """
    Reporter that logs progress every ``every`` units and at completion.
    """

    def __init__(self, every: int = 1000, level: int = logging.INFO):
        if every < 1:
            raise ValueError(f"every must be at least 1, got {every}")
        self.every = every
        self.level = level
        self._last = (0, 0)

    def report(self, title: str, count: int, total: int) -> None:
        self._last = (count, total)
        if count % self.every == 0:
            logger.log(
                self.level,
                f"{title}: {count} / {total} ({percentage(count, total):.2f}%)"
            )

    def end(self, title: str) -> None:
        count, total = self._last
        logger.log(self.level, f"{title}: finished {count} / {total}")


class CallbackReporter(ProgressReporter):
    """
    Reporter that forwards each report to a callable.

    Args:
        on_report: Called as ``on_report(title, count, total)``
        on_end: Optional, called as ``on_end(title)``
    """

    def __init__(
        self,
        on_report: Callable[[str, int, int], None],
        on_end: Optional[Callable[[str], None]] = None
    ):
        self.on_report = on_report
        self.on_end = on_end

    def report(self, title: str, count: int, total: int) -> None:
        self.on_report(title, count, total)

    def end(self, title: str) -> None:
        if self.on_end is not None:
            self.on_end(title)
