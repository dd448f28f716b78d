import json
import logging
import sys

from unittest.mock import MagicMock

from utils.loggers.json_logger import JsonLogger, determine_log_path, get_logger, log_json


def make_record(message="hello", **extra):
    record = logging.LogRecord(
        name="markov_test", level=logging.INFO, pathname=__file__, lineno=10,
        msg=message, args=(), exc_info=None, func="test_func")
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonLogger:

    def test_formats_record_as_json(self):
        data = json.loads(JsonLogger().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "markov_test"
        assert data["message"] == "hello"
        assert data["function"] == "test_func"
        assert "metrics" not in data

    def test_includes_metrics(self):
        line = JsonLogger().format(make_record(metrics={"entries": 3, "start": ("I", "like")}))

        assert json.loads(line)["metrics"] == {"entries": 3, "start": ["I", "like"]}

    def test_keeps_unicode(self):
        line = JsonLogger().format(make_record("café ☕"))

        assert "café ☕" in line

    def test_includes_exception(self):
        try:
            raise ValueError("bad value")
        except ValueError:
            record = make_record("failed")
            record.exc_info = sys.exc_info()

        data = json.loads(JsonLogger().format(record))

        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "bad value"
        assert "Traceback" in data["exception"]["traceback"]

    def test_non_serializable_metrics_fall_back_to_str(self):
        line = JsonLogger().format(make_record(metrics={"error": KeyError("x")}))

        assert json.loads(line)["metrics"]["error"] == "'x'"


def test_determine_log_path_creates_directory(tmp_path):
    target = tmp_path / "nested" / "logs" / "chain.log"

    assert determine_log_path(str(target)) == str(target)
    assert target.parent.is_dir()


def test_get_logger_writes_json_file(tmp_path):
    log_file = tmp_path / "chain.log"
    logger = get_logger("markov_json_file_test", log_file=str(log_file),
                        console_level=logging.CRITICAL)

    log_json(logger, "Batch committed", {"triples_inserted": 4})
    for handler in logger.handlers:
        handler.flush()

    entry = json.loads(log_file.read_text(encoding="utf-8").strip().splitlines()[-1])
    assert entry["message"] == "Batch committed"
    assert entry["metrics"] == {"triples_inserted": 4}

    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_get_logger_console_only_by_default():
    logger = get_logger("markov_console_test")

    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, JsonLogger)


def test_get_logger_plain_console():
    logger = get_logger("markov_plain_test", console_json=False, console_level=logging.WARNING)

    handler = logger.handlers[0]
    assert handler.level == logging.WARNING
    assert not isinstance(handler.formatter, JsonLogger)


def test_get_logger_clears_existing_handlers():
    get_logger("markov_repeat_test")
    logger = get_logger("markov_repeat_test")

    assert len(logger.handlers) == 1


def test_log_json_with_and_without_data():
    logger = MagicMock()

    log_json(logger, "plain message")
    log_json(logger, "with data", {"nodes": 2})

    logger.info.assert_any_call("plain message")
    logger.info.assert_any_call("with data", extra={"metrics": {"nodes": 2}})
