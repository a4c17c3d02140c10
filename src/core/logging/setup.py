"""Logging setup and configuration."""

import logging
import sys
import threading
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

# Default settings
DEFAULT_ROTATION_WHEN = "midnight"
DEFAULT_ROTATION_INTERVAL = 1
DEFAULT_BACKUP_COUNT = 7
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Noisy loggers to suppress
NOISY_LOGGERS = [
    "azure.core.pipeline.policies.http_logging_policy",
    "azure.identity",
    "azure.kusto",
    "azure.kusto.data",
    "azure.kusto.data.security",
    "azure.storage",
    "urllib3",
]


def setup_logging(
    name: str = "kusto_ingest",
    logger_path: str | Path | None = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    rotation_when: str = DEFAULT_ROTATION_WHEN,
    rotation_interval: int = DEFAULT_ROTATION_INTERVAL,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
    worker_id: str | None = None,
    replace_handlers: bool = True,
) -> logging.Logger:
    """
    Configure console logging and, when logger_path is set, a time-rotated file.

    The console always gets the human-readable ConsoleFormatter; the file gets
    JSON lines unless json_format is False. With replace_handlers=False the
    root logger keeps the handlers and level a host already installed; an
    unconfigured root is set up as usual.

    Args:
        name: Logger name to return
        logger_path: Log file path; None logs to stdout only
        json_format: Use JSON format for file logs (default: True)
        console_level: Console handler level (default: INFO)
        file_level: File handler level (default: DEBUG)
        rotation_when: When to rotate - 'midnight', 'H', 'M' (default: midnight)
        rotation_interval: Interval for rotation (default: 1)
        backup_count: Number of rotated files to keep (default: 7)
        suppress_noisy: Quiet down Azure SDK and HTTP client loggers
        worker_id: Worker identifier for context
        replace_handlers: Clear existing root handlers first (default: True)

    Returns:
        Configured logger instance
    """
    if worker_id:
        set_log_context(worker_id=worker_id)

    root_logger = logging.getLogger()
    if replace_handlers:
        root_logger.handlers.clear()
    # Unconfigured root: take it over
    add_console = not root_logger.handlers
    if add_console:
        root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ConsoleFormatter())
    console_handler.setLevel(console_level)

    if logger_path is not None:
        log_file = Path(logger_path)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        if json_format:
            file_formatter = JSONFormatter()
        else:
            file_formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
            )

        file_handler = TimedRotatingFileHandler(
            log_file,
            when=rotation_when,
            interval=rotation_interval,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)
    if add_console:
        root_logger.addHandler(console_handler)

    if suppress_noisy:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(
        "Logging initialized: file=%s, json=%s",
        logger_path or "stdout",
        json_format,
    )
    return logger


_setup_lock = threading.Lock()
_configured_path: str | None = None


def setup_logging_once(logger_path: str | Path, worker_id: str | None = None) -> bool:
    """
    Add file logging for library use, at most once per process.

    Handlers the host already installed are kept. Later calls only update the
    worker context; a different path is ignored with a warning.

    Returns:
        True if this call configured logging
    """
    global _configured_path
    path = str(logger_path)
    with _setup_lock:
        if _configured_path is None:
            setup_logging(logger_path=path, worker_id=worker_id, replace_handlers=False)
            _configured_path = path
            return True
        configured = _configured_path

    if worker_id:
        set_log_context(worker_id=worker_id)
    if configured != path:
        logging.getLogger(__name__).warning(
            "Logging already configured, ignoring logger_path",
            extra={"configured_path": configured, "requested_path": path},
        )
    return False
