"""
Centralized logging configuration for the application.

Provides standardized logging setup with console and rotating file handlers,
ensuring consistent log formatting across the engine and the agents.

Module Input:
    - Logger name strings from calling modules
    - Log level, directory and file name from settings

Module Output:
    - Formatted log entries to console (stdout)
    - Formatted log entries to rotating file (logs/app.log)
    - Configured logger instances for modules
"""
import logging
import os
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

from .settings import settings


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
LAMBDA_LOG_FORMAT = "%(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Union[int, str]) -> int:
    """Accept either a logging constant or a level name such as "debug"."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


class LoggerConfig:
    """Class to manage logger configuration and creation."""

    # Loggers already wired with handlers
    _configured_loggers = set()

    def __init__(
        self,
        log_level: Union[int, str] = logging.INFO,
        log_dir: Union[str, Path] = "logs",
        log_file: str = "app.log",
        max_bytes: int = 10_485_760,  # 10MB
        backup_count: int = 5
    ):
        """
        Initialize logger configuration.

        Args:
            log_level: Minimum logging level, constant or name (default: INFO)
            log_dir: Directory where log files are saved
            log_file: Name of the log file
            max_bytes: Maximum size of log file before rotation (10MB default)
            backup_count: Number of backup log files to keep
        """
        self.log_level = _resolve_level(log_level)
        self.log_dir = Path(log_dir)
        self.log_file = log_file
        self.max_bytes = max_bytes
        self.backup_count = backup_count

        # Lambda sets these automatically; CloudWatch already timestamps stdout
        self.is_lambda = (
            'AWS_EXECUTION_ENV' in os.environ or
            'AWS_LAMBDA_FUNCTION_NAME' in os.environ
        )

    def _create_formatter(self) -> logging.Formatter:
        """
        Create log formatter based on environment.

        Returns:
            logging.Formatter: Configured formatter object
        """
        if self.is_lambda:
            return logging.Formatter(LAMBDA_LOG_FORMAT)
        return logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    def _create_console_handler(self) -> logging.StreamHandler:
        """Create console handler that outputs to stdout."""
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(self._create_formatter())
        return console_handler

    def _create_file_handler(self) -> Optional[RotatingFileHandler]:
        """
        Create rotating file handler for local environments.

        Returns:
            RotatingFileHandler or None: File handler (None if in Lambda)
        """
        if self.is_lambda:
            return None

        self.log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            self.log_dir / self.log_file,
            maxBytes=self.max_bytes,
            backupCount=self.backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(self.log_level)
        file_handler.setFormatter(self._create_formatter())
        return file_handler

    def get_logger(self, name: str) -> logging.Logger:
        """
        Get or create a logger with standardized configuration.

        Creates a logger instance with both console and rotating file handlers,
        using consistent formatting across the application. Prevents duplicate
        handler configuration on repeated calls.

        Args:
            name: Logger name, typically __name__ from calling module

        Returns:
            logging.Logger: Configured logger instance ready for use

        Log Format:
            "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
            Example: "2024-01-15 10:30:45 | INFO | BPA.engine.batch_runner:run:88 | Batch completed"
        """
        if name in LoggerConfig._configured_loggers:
            return logging.getLogger(name)

        logger = logging.getLogger(name)
        logger.setLevel(self.log_level)

        # Already wired elsewhere; adding handlers again would duplicate lines
        if logger.handlers:
            LoggerConfig._configured_loggers.add(name)
            return logger

        logger.addHandler(self._create_console_handler())

        file_handler = self._create_file_handler()
        if file_handler is not None:
            logger.addHandler(file_handler)

        # Handlers live on each module logger
        logger.propagate = False

        LoggerConfig._configured_loggers.add(name)
        return logger

    def setup_root_logger(self) -> None:
        """
        Configure the root logger for libraries that use it.

        Sets up basic configuration for the root logger, which is inherited
        by third-party libraries (boto3, strands, urllib3) that don't
        explicitly configure their loggers.
        """
        logging.basicConfig(
            level=self.log_level,
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt=DATE_FORMAT
        )


# Default logger configuration instance, driven by settings
_default_config = LoggerConfig(
    log_level=settings.log_level,
    log_dir=settings.log_dir,
    log_file=settings.log_file,
)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with default configuration.

    Most modules will use this function to get a logger.

    Args:
        name: Logger name, typically __name__ from calling module

    Returns:
        logging.Logger: Configured logger instance ready for use

    Example:
        from BPA.core.logging_config import get_logger

        logger = get_logger(__name__)
        logger.info("Snapshot refreshed")
    """
    return _default_config.get_logger(name)


def setup_root_logger() -> None:
    """Configure the root logger with the default configuration."""
    _default_config.setup_root_logger()
