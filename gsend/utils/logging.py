import atexit
from datetime import (
    datetime,
)
import logging
import logging.handlers
import os
from pathlib import (
    Path,
)
import queue
import sys
import tempfile
import threading
from typing import (
    Any,
)

ROOT_LOGGER_NAME = "gsend"

# Create a log queue
log_queue: "queue.Queue[Any]" = queue.Queue()

# Store the current listener to stop it on exit
_current_listener: logging.handlers.QueueListener | None = None

# Handlers owned by the current listener
_current_handlers: list[logging.Handler] = []

# Event to track when the listener is ready
_listener_ready = threading.Event()

# Default format for log messages
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _parse_debug_modules(debug_str: str) -> dict[str, int]:
    """
    Parse the GSEND_DEBUG environment variable into module-specific log levels.

    Format examples:
    - "DEBUG"  # All modules at DEBUG level
    - "gsend.session.negotiator:DEBUG"  # Only the negotiator at DEBUG
    - "session.negotiator:DEBUG"  # Same as above, gsend prefix is optional
    - "gsend.relay:DEBUG,gsend.transfer:INFO"  # Multiple modules
    """
    module_levels: dict[str, int] = {}

    if not debug_str or debug_str.isspace():
        return module_levels

    # A plain level without any colons applies to everything
    if ":" not in debug_str and debug_str.upper() in logging._nameToLevel:
        return {"": getattr(logging, debug_str.upper())}

    for part in debug_str.split(","):
        if ":" not in part:
            continue

        module, level = part.split(":", 1)
        level = level.strip().upper()

        if level not in logging._nameToLevel:
            continue

        module = module.strip()
        if module == ROOT_LOGGER_NAME:
            module = ""
        elif module.startswith(f"{ROOT_LOGGER_NAME}."):
            module = module[len(ROOT_LOGGER_NAME) + 1 :]
        module = module.replace("/", ".").strip(".")

        module_levels[module] = getattr(logging, level)

    return module_levels


def _disable_logging() -> None:
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.handlers.clear()
    root_logger.setLevel(logging.WARNING)
    root_logger.propagate = False


def setup_logging() -> None:
    """
    Set up logging configuration based on environment variables.

    Environment Variables:
        GSEND_DEBUG
            Controls logging levels. Examples:
            - "DEBUG" (all modules at DEBUG level)
            - "gsend.session:DEBUG" (only the session package at DEBUG)
            - "session:DEBUG" (same as above, gsend prefix optional)
            - "gsend.relay:DEBUG,gsend.transfer:INFO" (multiple modules)

        GSEND_DEBUG_FILE
            If set, logs are also written to this file. If not set, a
            timestamped file in the system temp directory is used.

    Loggers follow the module hierarchy (``gsend.session.negotiator``), so a
    level set on a package applies to every module below it.
    """
    global _current_listener

    _listener_ready.clear()

    if _current_listener is not None:
        _current_listener.stop()
        _current_listener = None
    for handler in _current_handlers:
        handler.close()
    _current_handlers.clear()

    debug_str = os.environ.get("GSEND_DEBUG", "")
    module_levels = _parse_debug_modules(debug_str)

    if not module_levels:
        _disable_logging()
        _listener_ready.set()
        return

    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    _current_handlers.append(console_handler)

    log_file = os.environ.get("GSEND_DEBUG_FILE")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    else:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        unique_id = os.urandom(4).hex()
        log_file = str(
            Path(tempfile.gettempdir()) / f"gsend_{timestamp}_{unique_id}.log"
        )
        print(f"Logging to: {log_file}", file=sys.stderr)

    file_handler = logging.FileHandler(log_file, mode="w")
    file_handler.setFormatter(formatter)
    _current_handlers.append(file_handler)

    queue_handler = logging.handlers.QueueHandler(log_queue)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.handlers.clear()
    root_logger.addHandler(queue_handler)
    root_logger.propagate = False
    root_logger.setLevel(module_levels.get("", logging.INFO))

    for module, level in module_levels.items():
        if module:
            logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{module}")
            logger.handlers.clear()
            logger.addHandler(queue_handler)
            logger.setLevel(level)
            logger.propagate = False

    # Start the listener AFTER configuring all loggers
    _current_listener = logging.handlers.QueueListener(
        log_queue, *_current_handlers, respect_handler_level=True
    )
    _current_listener.start()

    _listener_ready.set()


@atexit.register
def cleanup_logging() -> None:
    """Clean up logging resources on exit."""
    global _current_listener
    if _current_listener is not None:
        _current_listener.stop()
        _current_listener = None
    for handler in _current_handlers:
        handler.close()
    _current_handlers.clear()
