"""
Tests for the logging helpers and project metadata.
"""

import io
import logging

import pytest

from notecanvas import __about__
from notecanvas.logger import (
    ROOT_LOGGER_NAME, CanvasFormatter, add_log_callback, component_of, get_logger,
    remove_log_callback, set_log_level, setup_logging,
)


@pytest.fixture
def root_logger():
    """Restore the NoteCanvas root logger after the test."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    level, handlers = root.level, list(root.handlers)
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(name="NoteCanvas.Serializer", level=logging.INFO, msg="Saved canvas"):
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


class TestFormatter:

    def test_component_is_leaf_name(self):
        assert component_of(_record()) == "Serializer"

    def test_console_format(self):
        assert CanvasFormatter().format(_record()) == "[Serializer] INFO  Saved canvas"

    def test_file_format_has_timestamp(self):
        out = CanvasFormatter(use_timestamp=True).format(_record(level=logging.ERROR))
        assert out.endswith("[Serializer] ERROR Saved canvas")
        assert out[:4].isdigit()


class TestSetup:

    def test_get_logger_is_child_of_root(self):
        assert get_logger("GraphStore").name == "NoteCanvas.GraphStore"

    def test_setup_logging_writes_to_stream(self, root_logger):
        stream = io.StringIO()
        if any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
               for h in root_logger.handlers):
            pytest.skip("console handler already installed")

        setup_logging(logging.INFO, stream=stream)
        setup_logging(logging.INFO, stream=stream)
        get_logger("Sample").info("hello")

        assert stream.getvalue() == "[Sample] INFO  hello\n"

    def test_set_log_level(self, root_logger):
        set_log_level(logging.ERROR)
        assert root_logger.level == logging.ERROR


class TestCallbacks:

    def test_callback_receives_level_component_message(self, root_logger):
        received = []

        def callback(level, component, message):
            received.append((level, component, message))

        add_log_callback(callback, logging.WARNING)
        try:
            log = get_logger("Sample")
            log.info("quiet")
            log.warning("loud")
        finally:
            remove_log_callback(callback)
        log.warning("after removal")

        assert received == [("WARNING", "Sample", "loud")]

    def test_callback_level_lowers_root(self, root_logger):
        received = []

        def callback(*args):
            received.append(args)

        root_logger.setLevel(logging.WARNING)
        add_log_callback(callback, logging.DEBUG)
        try:
            get_logger("Sample").debug("detail")
        finally:
            remove_log_callback(callback)

        assert root_logger.level == logging.DEBUG
        assert received == [("DEBUG", "Sample", "detail")]

    def test_callbacks_survive_handler_reset(self, root_logger):
        received = []

        def callback(*args):
            received.append(args)

        add_log_callback(callback, logging.WARNING)
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
        add_log_callback(callback, logging.WARNING)
        try:
            get_logger("Sample").warning("still here")
        finally:
            remove_log_callback(callback)

        assert received == [("WARNING", "Sample", "still here")]

    def test_raising_callback_does_not_block_others(self, root_logger, monkeypatch):
        monkeypatch.setattr(logging, "raiseExceptions", False)
        received = []

        def bad(*args):
            raise RuntimeError("callback bug")

        def good(*args):
            received.append(args)

        add_log_callback(bad, logging.ERROR)
        add_log_callback(good, logging.ERROR)
        try:
            get_logger("Sample").error("boom")
        finally:
            remove_log_callback(bad)
            remove_log_callback(good)

        assert received == [("ERROR", "Sample", "boom")]


class TestMetadata:

    def test_summary(self):
        summary = __about__.metadata_summary()
        assert summary["title"] == "NoteCanvas"
        assert summary["version"] == __about__.__version__
        assert summary["license"] == "Apache-2.0"
