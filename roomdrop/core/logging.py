"""
Centralized logging setup for RoomDrop.
"""
import logging
import datetime
import json
import os
import sys
import tempfile
from typing import Any, Optional


def _resolve_log_dir() -> str:
    """Determine a writable log directory."""
    candidates = []

    env_dir = os.environ.get("ROOMDROP_LOG_DIR")
    if env_dir:
        candidates.append(env_dir)

    candidates.append(os.path.join(tempfile.gettempdir(), "roomdrop-logs"))

    for directory in candidates:
        try:
            os.makedirs(directory, exist_ok=True)
            if os.access(directory, os.W_OK):
                return directory
        except OSError:
            continue

    return os.getcwd()


def setup_logging(level: str = "INFO", log_file: Optional[str] = "roomdrop.log") -> logging.Logger:
    """Setup logging configuration with console and (optionally) file output."""
    handlers = [logging.StreamHandler()]
    log_path = None

    if log_file:
        log_path = os.path.join(_resolve_log_dir(), log_file)
        try:
            handlers.append(logging.FileHandler(log_path, mode='a', encoding='utf-8'))
        except OSError as e:
            print(f"WARNING: Cannot write to log file {log_path}: {e}", file=sys.stderr)
            log_path = None

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S',
        handlers=handlers
    )

    logger = logging.getLogger("roomdrop")
    logger.info(f"Logging initialized - output will be written to: {log_path or 'console only'}")

    return logger


def debug_log(message: str, data: Optional[Any] = None, level: str = "INFO",
              logger: Optional[logging.Logger] = None) -> None:
    """Log ``message`` with a millisecond timestamp; dict ``data`` is appended as indented JSON."""
    timestamp = datetime.datetime.now().strftime("%H:%M:%S.%f")[:-3]
    log_level = getattr(logging, level.upper())
    logger = logger or logging.getLogger("roomdrop")

    if not data:
        logger.log(log_level, f"[{timestamp}] {message}")
    elif isinstance(data, dict):
        logger.log(log_level, f"[{timestamp}] {message}\nData: {json.dumps(data, indent=2, default=str)}")
    else:
        logger.log(log_level, f"[{timestamp}] {message} - {data}")


class LoggerMixin:
    """Gives a class ``log_*`` helpers bound to a logger named after its module and class."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    def log_debug(self, message: str, data: Optional[Any] = None):
        debug_log(message, data, "DEBUG", self.logger)

    def log_info(self, message: str, data: Optional[Any] = None):
        debug_log(message, data, "INFO", self.logger)

    def log_warning(self, message: str, data: Optional[Any] = None):
        debug_log(message, data, "WARNING", self.logger)

    def log_error(self, message: str, data: Optional[Any] = None):
        debug_log(message, data, "ERROR", self.logger)
