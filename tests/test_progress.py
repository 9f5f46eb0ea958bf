"""
test_progress.py
~~~~~~~~~~~~~~~~

Tests for the progress reporters.
"""

import io
import logging

import pytest

from feedforward.progress import (
    CallbackReporter,
    ConsoleReporter,
    LoggingReporter,
    NullReporter,
    percentage,
)


@pytest.mark.unit
def test_percentage():
    """Test the percentage helper, including an empty total."""
    assert percentage(1, 4) == 25.0
    assert percentage(0, 0) == 0.0


@pytest.mark.unit
def test_null_reporter_accepts_calls():
    """Test that the null reporter does nothing."""
    reporter = NullReporter()
    reporter.report('Training Network', 1, 2)
    reporter.end('Training Network')


@pytest.mark.unit
class TestConsoleReporter:
    """Test the single-line console reporter."""

    def test_line_is_redrawn_and_finished(self):
        """Test the carriage-return format and final newline."""
        stream = io.StringIO()
        reporter = ConsoleReporter(stream)

        reporter.report('Training Network', 1, 3)
        reporter.report('Training Network', 3, 3)
        reporter.end('Training Network')

        assert stream.getvalue() == (
            "\rTraining Network: 1 / 3 (33.33%)"
            "\rTraining Network: 3 / 3 (100.00%)"
            "\n"
        )

    def test_defaults_to_stdout(self, capsys):
        """Test that reports go to stdout by default."""
        reporter = ConsoleReporter()
        reporter.report('Counting Correct Predictions', 1, 2)
        reporter.end('Counting Correct Predictions')
        assert "1 / 2 (50.00%)" in capsys.readouterr().out


@pytest.mark.unit
class TestLoggingReporter:
    """Test the logging reporter."""

    def test_logs_every_n(self, caplog):
        """Test that only every n-th report and the end are logged."""
        reporter = LoggingReporter(every=2)
        with caplog.at_level(logging.INFO, logger='feedforward.progress'):
            for count in range(1, 6):
                reporter.report('Training Network', count, 5)
            reporter.end('Training Network')

        messages = [r.getMessage() for r in caplog.records]
        assert messages == [
            "Training Network: 2 / 5 (40.00%)",
            "Training Network: 4 / 5 (80.00%)",
            "Training Network: finished 5 / 5",
        ]

    def test_invalid_interval(self):
        """Test that the interval must be positive."""
        with pytest.raises(ValueError):
            LoggingReporter(every=0)


@pytest.mark.unit
class TestCallbackReporter:
    """Test the callback reporter."""

    def test_forwards_calls(self):
        """Test that reports and ends reach the callables."""
        reports, ends = [], []
        reporter = CallbackReporter(
            lambda *args: reports.append(args), ends.append
        )

        reporter.report('Training Network', 1, 1)
        reporter.end('Training Network')

        assert reports == [('Training Network', 1, 1)]
        assert ends == ['Training Network']

    def test_end_callback_is_optional(self):
        """Test that end works without an end callback."""
        CallbackReporter(lambda *args: None).end('Training Network')
