# tests/unit/test_telemetry.py

"""Tests for the structlog setup and custom processors."""

import logging
from unittest.mock import Mock

import pytest
import structlog

from gest.telemetry import setup_logging
from gest.telemetry.logger.processors import add_emoji_processor, level_to_int, remove_extra_keys_processor
from gest.tui.logging_handler import TextualLogHandler, record_package
from gest.tui.messages import LogMessageUpdate


@pytest.fixture(autouse=True)
def _restore_logging():
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)


class TestProcessors:
    def test_emoji_from_level(self) -> None:
        event_dict = add_emoji_processor(None, "warning", {"event": "careful", "level": "warning"})
        assert event_dict["event"] == "⚠️ careful"

    def test_explicit_emoji_wins(self) -> None:
        event_dict = add_emoji_processor(None, "info", {"event": "Run finished", "emoji": "✅"})
        assert event_dict["event"] == "✅ Run finished"
        assert "emoji" not in event_dict

    def test_private_keys_are_dropped(self) -> None:
        event_dict = remove_extra_keys_processor(None, "info", {"event": "x", "_secret": 1, "_record": "keep"})
        assert event_dict == {"event": "x", "_record": "keep"}

    @pytest.mark.parametrize("value, expected", [("debug", 10), ("WARNING", 30), (40, 40), ("nonsense", 20)])
    def test_level_to_int(self, value, expected: int) -> None:
        assert level_to_int(value) == expected


def test_headless_logging_goes_to_stdout(capsys: pytest.CaptureFixture) -> None:
    setup_logging(level=logging.INFO, headless_mode=True)
    structlog.get_logger("runtime.test").info("Run started", run_id=7)

    out = capsys.readouterr().out
    assert "Run started" in out
    assert "run_id" in out


def test_json_log_file(tmp_path, capsys: pytest.CaptureFixture) -> None:
    log_file = tmp_path / "gest.log"
    setup_logging(level=logging.DEBUG, log_file=str(log_file), file_only=True)
    structlog.get_logger("runtime.test").warning("Package failed", package="example.com/m/alpha")
    logging.shutdown()

    assert capsys.readouterr().out == ""
    content = log_file.read_text()
    assert '"package": "example.com/m/alpha"' in content
    assert "Package failed" in content


def test_watchdog_debug_is_quieted() -> None:
    setup_logging(level=logging.DEBUG, headless_mode=True)
    assert logging.getLogger("watchdog").getEffectiveLevel() == logging.WARNING


class TestTextualLogHandler:
    def test_package_comes_from_event_dict(self) -> None:
        record = logging.LogRecord("x", logging.INFO, __file__, 1, {"event": "e", "package": "p"}, None, None)
        assert record_package(record) == "p"

    def test_plain_record_without_package(self) -> None:
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "plain", None, None)
        assert record_package(record) is None

    def test_emit_posts_message(self) -> None:
        app = Mock()
        handler = TextualLogHandler(app)
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", None, None)

        handler.emit(record)

        message = app.post_message.call_args.args[0]
        assert isinstance(message, LogMessageUpdate)
        assert message.level == "ERROR"
        assert message.message == "boom"
        assert message.package is None

# 🔼⚙️
