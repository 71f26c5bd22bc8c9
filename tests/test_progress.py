"""Tests for progress sinks."""

import logging

from adb_host_mcp.progress import CallbackProgress, LoggingProgress, NoOpProgress


def test_callback_progress():
    """Callback receives (current, total) for each event."""
    events = []
    sink = CallbackProgress(lambda current, total: events.append((current, total)))
    sink.start(10)
    sink.update(4)
    sink.update(10)
    sink.finish()
    assert events == [(0, 10), (4, 10), (10, 10), (10, 10)]
    assert sink.finished


def test_noop_progress_accepts_everything():
    """The no-op sink takes every event silently."""
    sink = NoOpProgress()
    sink.start(1)
    sink.update(1)
    sink.finish()


def test_logging_progress(caplog):
    """Start and finish are logged with the label."""
    sink = LoggingProgress("/sdcard/a.txt")
    with caplog.at_level(logging.INFO, logger="adb_host_mcp.progress"):
        sink.start(3)
        sink.update(3)
        sink.finish()
    assert "/sdcard/a.txt: starting, 3 bytes" in caplog.text
    assert "/sdcard/a.txt: finished, 3 bytes" in caplog.text
