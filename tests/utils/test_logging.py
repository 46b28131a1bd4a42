import logging
import logging.handlers
import os
from pathlib import (
    Path,
)
import queue

import pytest
import trio

from gsend.utils import logging as gsend_logging
from gsend.utils.logging import (
    _parse_debug_modules,
    log_queue,
    setup_logging,
)


def _reset_logging():
    """Reset all logging state."""
    gsend_logging.cleanup_logging()

    for name in list(logging.Logger.manager.loggerDict.keys()):
        if name.startswith("gsend"):
            del logging.Logger.manager.loggerDict[name]

    logger = logging.getLogger("gsend")
    logger.handlers.clear()
    logger.propagate = False
    logger.setLevel(logging.WARNING)

    while not log_queue.empty():
        try:
            log_queue.get_nowait()
        except queue.Empty:
            break


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove relevant environment variables before each test."""
    monkeypatch.delenv("GSEND_DEBUG", raising=False)
    monkeypatch.delenv("GSEND_DEBUG_FILE", raising=False)
    _reset_logging()
    yield
    _reset_logging()


def test_logging_disabled():
    """Logging stays quiet when GSEND_DEBUG is not set."""
    setup_logging()
    logger = logging.getLogger("gsend")
    assert logger.level == logging.WARNING
    assert not logger.handlers
    assert gsend_logging._current_listener is None


def test_logging_with_debug_env(monkeypatch, tmp_path):
    monkeypatch.setenv("GSEND_DEBUG", "DEBUG")
    monkeypatch.setenv("GSEND_DEBUG_FILE", str(tmp_path / "gsend.log"))
    setup_logging()
    logger = logging.getLogger("gsend")

    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], logging.handlers.QueueHandler)


def test_module_specific_logging(monkeypatch, tmp_path):
    monkeypatch.setenv("GSEND_DEBUG", "session.negotiator:DEBUG,gsend.relay:ERROR")
    monkeypatch.setenv("GSEND_DEBUG_FILE", str(tmp_path / "gsend.log"))
    setup_logging()

    # Unlisted modules fall back to INFO
    assert logging.getLogger("gsend").level == logging.INFO
    assert logging.getLogger("gsend.session.negotiator").level == logging.DEBUG
    assert logging.getLogger("gsend.relay").level == logging.ERROR
    assert (
        logging.getLogger("gsend.relay.service").getEffectiveLevel() == logging.ERROR
    )
    assert logging.getLogger("gsend.transfer").getEffectiveLevel() == logging.INFO


@pytest.mark.parametrize(
    "debug, expected",
    [
        ("", {}),
        ("   ", {}),
        ("debug", {"": logging.DEBUG}),
        ("gsend:WARNING", {"": logging.WARNING}),
        ("gsend.transfer:INFO", {"transfer": logging.INFO}),
        ("transfer/sender:DEBUG", {"transfer.sender": logging.DEBUG}),
        ("relay:LOUD,session:DEBUG", {"session": logging.DEBUG}),
        ("nonsense", {}),
    ],
)
def test_parse_debug_modules(debug, expected):
    assert _parse_debug_modules(debug) == expected


@pytest.mark.trio
async def test_custom_log_file(monkeypatch, tmp_path):
    log_file = tmp_path / "logs" / "test.log"
    monkeypatch.setenv("GSEND_DEBUG", "INFO")
    monkeypatch.setenv("GSEND_DEBUG_FILE", str(log_file))

    setup_logging()
    gsend_logging._listener_ready.wait(timeout=1)

    logging.getLogger("gsend.node").info("Test message")
    # Give the listener thread time to write
    await trio.sleep(0.1)
    gsend_logging.cleanup_logging()

    assert log_file.exists()
    assert "Test message" in log_file.read_text()


def test_default_log_file(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("GSEND_DEBUG", "INFO")
    monkeypatch.setattr(gsend_logging.tempfile, "gettempdir", lambda: str(tmp_path))

    setup_logging()

    logged_to = capsys.readouterr().err.strip().removeprefix("Logging to: ")
    assert Path(logged_to).parent == tmp_path
    assert Path(logged_to).name.startswith("gsend_")


def test_setup_twice_replaces_listener(monkeypatch, tmp_path):
    monkeypatch.setenv("GSEND_DEBUG", "INFO")
    monkeypatch.setenv("GSEND_DEBUG_FILE", str(tmp_path / "gsend.log"))

    setup_logging()
    first = gsend_logging._current_listener
    setup_logging()

    assert gsend_logging._current_listener is not first
    assert len(logging.getLogger("gsend").handlers) == 1
    assert os.path.exists(tmp_path / "gsend.log")
