import io
import logging

from subalign.log_setup import parse_log_level, setup_logging


def test_parse_log_level():
    assert parse_log_level("debug") == logging.DEBUG
    assert parse_log_level("WARNING") == logging.WARNING
    assert parse_log_level("chatty") == logging.INFO
    assert parse_log_level(None) == logging.INFO


def test_repeated_setup_replaces_handlers(tmp_path):
    root = logging.getLogger()
    try:
        setup_logging(log_dir=str(tmp_path / "first"), log_file="a.log", stream=io.StringIO())
        stream = io.StringIO()
        setup_logging(log_level=logging.DEBUG, log_dir=str(tmp_path / "second"), log_file="b.log", stream=stream)

        logging.getLogger("subalign.test").debug("hello")

        assert len(root.handlers) == 2
        assert "hello" in stream.getvalue()
        assert "hello" in (tmp_path / "second" / "b.log").read_text(encoding="utf-8")
        assert logging.getLogger("numba").level == logging.WARNING
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
