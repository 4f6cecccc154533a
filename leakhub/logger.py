"""
Structured logging system for LeakHub.

One process-wide StructuredLogger writes to the console and a dated log
file, appends keyword context as JSON, and keeps counters for the
consensus engine. Evaluations run on worker threads, so counter updates
are guarded by a lock.
"""

import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

COUNTERS = (
    "evaluations_run",
    "decisions_reached",
    "verifications_applied",
    "decisions_discarded",
    "leaks_imported",
)


class StructuredLogger:
    """
    Logger with JSON context and consensus metrics.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files (default: logs/)
        enable_file: Write logs to file
        enable_console: Output logs to console
    """

    def __init__(
        self,
        name: str = "leakhub",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        self.logger = logging.getLogger(name)
        self._lock = threading.Lock()
        self.metrics = {}
        self.reset_metrics()
        self.configure(level=level, log_dir=log_dir, enable_file=enable_file, enable_console=enable_console)

    def configure(
        self,
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """Replace the handlers; callers holding this instance keep working."""
        numeric_level = getattr(logging, level.upper())
        self.logger.setLevel(numeric_level)
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        if enable_console:
            console = logging.StreamHandler(sys.stdout)
            console.setLevel(numeric_level)
            console.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
            self.logger.addHandler(console)

        if enable_file:
            log_dir = Path(log_dir) if log_dir is not None else Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = log_dir / f"leakhub_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)  # file gets everything the logger lets through
            file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, **context):
        self._log(logging.ERROR, message, context)

    def critical(self, message: str, **context):
        self._log(logging.CRITICAL, message, context)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        # stacklevel points %(lineno)d at the caller of info()/error()/...
        self.logger.log(level, message, stacklevel=3)

    # Metrics

    def reset_metrics(self):
        with self._lock:
            self.metrics = {name: 0 for name in COUNTERS}
            self.metrics["errors_by_type"] = {}

    def _increment(self, name: str, amount: int = 1):
        with self._lock:
            self.metrics[name] += amount

    def record_evaluation(self):
        self._increment("evaluations_run")

    def record_decision(self):
        """A resolver run found a consensus group."""
        self._increment("decisions_reached")

    def record_verification(self):
        self._increment("verifications_applied")

    def record_discard(self):
        """A decision lost to the apply guards (request already resolved)."""
        self._increment("decisions_discarded")

    def record_import(self, count: int = 1):
        self._increment("leaks_imported", count)

    def record_error(self, error_type: str):
        with self._lock:
            errors = self.metrics["errors_by_type"]
            errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Snapshot of the counters, plus decision_rate once anything was evaluated."""
        with self._lock:
            snapshot = dict(self.metrics)
            snapshot["errors_by_type"] = dict(self.metrics["errors_by_type"])
        if snapshot["evaluations_run"]:
            snapshot["decision_rate"] = round(snapshot["decisions_reached"] / snapshot["evaluations_run"], 3)
        return snapshot

    def log_metrics_summary(self):
        metrics = self.get_metrics()
        rate = metrics.get("decision_rate", 0) * 100

        self.info("=== Consensus Engine Metrics ===")
        self.info(f"Evaluations: {metrics['evaluations_run']} ({rate:.1f}% reached consensus)")
        self.info(
            f"Verifications: {metrics['verifications_applied']} applied, "
            f"{metrics['decisions_discarded']} discarded"
        )
        if metrics["leaks_imported"]:
            self.info(f"Imported leaks: {metrics['leaks_imported']}")
        for error_type, count in sorted(metrics["errors_by_type"].items()):
            self.info(f"Error {error_type}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(name: str = "leakhub", level: str = "INFO", **kwargs) -> StructuredLogger:
    """Return the process-wide logger, creating it on first use."""
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def configure_logger(level: str = "INFO", **kwargs) -> StructuredLogger:
    """Apply settings to the global logger, creating it if needed."""
    logger = get_logger(level=level, **kwargs)
    logger.configure(level=level, **kwargs)
    return logger


def reset_logger():
    """Forget the global logger (tests)."""
    global _global_logger
    _global_logger = None
