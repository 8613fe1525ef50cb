"""
Logging for the ensemble engine.

All loggers live under the ``ensemble`` root. Importing the library attaches
no handlers; applications opt in with ``LoggerFactory.configure``.
"""
import logging
import logging.handlers
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional
import traceback

PLAIN_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DETAILED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with any ``LogContext`` fields merged in."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'function': record.funcName,
            'line': record.lineno,
        }
        payload.update(getattr(record, 'extra_fields', {}))

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            payload['exception'] = {
                'type': exc_type.__name__,
                'message': str(exc_value),
                'traceback': traceback.format_exception(exc_type, exc_value, exc_tb)
            }

        return json.dumps(payload, default=str)


def _formatter(structured: bool, pattern: str) -> logging.Formatter:
    return StructuredFormatter() if structured else logging.Formatter(pattern)


class LoggerFactory:
    """Names and configures the library's loggers."""

    ROOT_NAME = "ensemble"

    _loggers: Dict[str, logging.Logger] = {}
    _handlers: List[logging.Handler] = []

    @classmethod
    def configure(
        cls,
        log_level: str = "INFO",
        log_dir: Optional[str] = None,
        structured: bool = False,
        console: bool = True,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5
    ) -> logging.Logger:
        """
        Attach handlers to the ``ensemble`` root logger.

        Args:
            log_level: Level name for the root logger
            log_dir: Directory for a rotating ``ensemble.log``; no file when None
            structured: Emit JSON records instead of plain text
            console: Log to stdout
            max_bytes: Rotation size of the log file
            backup_count: Rotated files to keep

        Calling it again replaces the previous handlers.
        """
        cls.reset()
        root = logging.getLogger(cls.ROOT_NAME)
        root.setLevel(getattr(logging, log_level.upper()))

        if console:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(_formatter(structured, PLAIN_FORMAT))
            cls._attach(root, handler)

        if log_dir is not None:
            path = Path(log_dir)
            path.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                path / "ensemble.log",
                maxBytes=max_bytes,
                backupCount=backup_count
            )
            handler.setFormatter(_formatter(structured, DETAILED_FORMAT))
            cls._attach(root, handler)

        return root

    @classmethod
    def reset(cls):
        """Detach and close every handler added by ``configure``."""
        root = logging.getLogger(cls.ROOT_NAME)
        for handler in cls._handlers:
            root.removeHandler(handler)
            handler.close()
        cls._handlers = []

    @classmethod
    def _attach(cls, root: logging.Logger, handler: logging.Handler):
        root.addHandler(handler)
        cls._handlers.append(handler)

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger nested under the library root."""
        qualified = name if name.startswith(cls.ROOT_NAME) else f"{cls.ROOT_NAME}.{name}"
        if qualified not in cls._loggers:
            cls._loggers[qualified] = logging.getLogger(qualified)
        return cls._loggers[qualified]


class LogContext:
    """
    Adds fields to every record created inside the block.

    Nested contexts see the union of their fields.

    Example:
        with LogContext(logger, model_index=3):
            logger.warning("slow prediction")
    """

    def __init__(self, logger: logging.Logger, **extra_fields):
        self.logger = logger
        self.extra_fields = extra_fields
        self._previous = None

    def __enter__(self):
        previous = logging.getLogRecordFactory()
        fields = self.extra_fields

        def record_factory(*args, **kwargs):
            record = previous(*args, **kwargs)
            record.extra_fields = {**getattr(record, 'extra_fields', {}), **fields}
            return record

        self._previous = previous
        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logging.setLogRecordFactory(self._previous)


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name."""
    return LoggerFactory.get_logger(name)
