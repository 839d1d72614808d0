"""Centralized logging configuration for the detection and anchoring system."""

import logging
import logging.handlers
import os
import sys
from datetime import datetime
from typing import Optional, Dict, Any
from pathlib import Path

PACKAGE_LOGGER_NAME = "yolo_anchoring"


class StructuredFormatter(logging.Formatter):
    """Custom formatter that adds structured information to log records."""

    def __init__(self, include_context: bool = True):
        self.include_context = include_context
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with structured information."""
        base_format = "%(asctime)s | %(levelname)-8s | %(name)-35s | %(message)s"

        if self.include_context and hasattr(record, 'context'):
            context_str = " | ".join([f"{k}={v}" for k, v in record.context.items()])
            base_format += f" | Context: {context_str}"

        # Point at the source for failures
        if record.levelno >= logging.ERROR and record.exc_info:
            base_format += " | %(pathname)s:%(lineno)d"

        formatter = logging.Formatter(base_format)
        return formatter.format(record)


class ContextFilter(logging.Filter):
    """Filter that adds process and component context to log records."""

    def __init__(self, component_name: Optional[str] = None):
        super().__init__()
        self.component_name = component_name
        self.process_id = os.getpid()

    def filter(self, record: logging.LogRecord) -> bool:
        record.process_id = self.process_id

        if self.component_name:
            record.component = self.component_name

        record.timestamp_ms = datetime.now().timestamp() * 1000

        return True


class LoggingManager:
    """Centralized logging management.

    Console output is always configured; rotating log files are only written
    when a log directory is given.
    """

    def __init__(self, log_dir: Optional[str] = None, log_level: int = logging.INFO):
        self.log_dir = Path(log_dir) if log_dir else None
        self.log_level = log_level
        self.max_log_size = 10 * 1024 * 1024  # 10MB
        self.backup_count = 5

        self.main_log_file = None
        self.error_log_file = None
        self.performance_log_file = None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.main_log_file = self.log_dir / "yolo_anchoring.log"
            self.error_log_file = self.log_dir / "errors.log"
            self.performance_log_file = self.log_dir / "performance.log"

        self.component_loggers: Dict[str, logging.Logger] = {}

        self._setup_package_logger()

    def _setup_package_logger(self) -> None:
        """Attach handlers to the package logger."""
        package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
        package_logger.setLevel(self.log_level)
        package_logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(StructuredFormatter(include_context=False))
        package_logger.addHandler(console_handler)

        if self.main_log_file is not None:
            main_file_handler = logging.handlers.RotatingFileHandler(
                self.main_log_file,
                maxBytes=self.max_log_size,
                backupCount=self.backup_count
            )
            main_file_handler.setLevel(logging.DEBUG)
            main_file_handler.setFormatter(StructuredFormatter(include_context=True))
            package_logger.addHandler(main_file_handler)

            error_file_handler = logging.handlers.RotatingFileHandler(
                self.error_log_file,
                maxBytes=self.max_log_size,
                backupCount=self.backup_count
            )
            error_file_handler.setLevel(logging.ERROR)
            error_file_handler.setFormatter(StructuredFormatter(include_context=True))
            package_logger.addHandler(error_file_handler)

        package_logger.debug("Logging system initialized")

    def get_component_logger(self, component_name: str,
                             log_level: Optional[int] = None) -> logging.Logger:
        """Get or create a logger for a specific component."""
        if component_name in self.component_loggers:
            return self.component_loggers[component_name]

        logger = logging.getLogger(f"{PACKAGE_LOGGER_NAME}.{component_name}")

        if log_level:
            logger.setLevel(log_level)

        logger.addFilter(ContextFilter(component_name))

        self.component_loggers[component_name] = logger
        return logger

    def get_performance_logger(self) -> logging.Logger:
        """Get logger specifically for per-cycle timings."""
        logger_name = f"{PACKAGE_LOGGER_NAME}.performance"

        if logger_name not in self.component_loggers:
            logger = logging.getLogger(logger_name)

            if self.performance_log_file is not None:
                perf_handler = logging.handlers.RotatingFileHandler(
                    self.performance_log_file,
                    maxBytes=self.max_log_size,
                    backupCount=self.backup_count
                )
                perf_handler.setLevel(logging.INFO)
                perf_handler.setFormatter(logging.Formatter("%(asctime)s | %(message)s"))
                logger.addHandler(perf_handler)

            self.component_loggers[logger_name] = logger

        return self.component_loggers[logger_name]

    def log_with_context(self, logger: logging.Logger, level: int,
                         message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """Log message with additional context information."""
        if context:
            logger.log(level, message, extra={'context': context})
        else:
            logger.log(level, message)

    def set_log_level(self, level: int) -> None:
        """Set the package log level."""
        self.log_level = level
        package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
        package_logger.setLevel(level)
        for handler in package_logger.handlers:
            if isinstance(handler, logging.StreamHandler) and handler.stream is sys.stdout:
                handler.setLevel(level)

    def get_log_stats(self) -> Dict[str, Any]:
        """Get logging statistics."""
        stats = {
            "log_directory": str(self.log_dir) if self.log_dir else None,
            "log_files": {},
            "active_loggers": list(self.component_loggers.keys()),
            "log_level": logging.getLevelName(self.log_level)
        }

        for log_file in [self.main_log_file, self.error_log_file, self.performance_log_file]:
            if log_file is not None and log_file.exists():
                stats["log_files"][log_file.name] = {
                    "size_mb": log_file.stat().st_size / (1024 * 1024),
                    "modified": datetime.fromtimestamp(log_file.stat().st_mtime).isoformat()
                }

        return stats


# Global logging manager instance, created on first use
logging_manager: Optional[LoggingManager] = None


def _get_manager() -> LoggingManager:
    global logging_manager
    if logging_manager is None:
        logging_manager = LoggingManager()
    return logging_manager


def get_logger(component_name: str) -> logging.Logger:
    """Convenience function to get a component logger."""
    return _get_manager().get_component_logger(component_name)


def log_performance(message: str, metrics: Optional[Dict[str, Any]] = None) -> None:
    """Convenience function to log performance metrics."""
    perf_logger = _get_manager().get_performance_logger()

    if metrics:
        metric_str = " | ".join([f"{k}={v}" for k, v in metrics.items()])
        message = f"{message} | {metric_str}"

    perf_logger.info(message)


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = None) -> LoggingManager:
    """Setup centralized logging system."""
    global logging_manager

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # Component loggers are module globals elsewhere, so carry them over
    previous = logging_manager
    logging_manager = LoggingManager(log_dir, numeric_level)
    if previous is not None:
        perf_name = f"{PACKAGE_LOGGER_NAME}.performance"
        logging_manager.component_loggers.update(
            {name: logger for name, logger in previous.component_loggers.items() if name != perf_name}
        )

    return logging_manager
