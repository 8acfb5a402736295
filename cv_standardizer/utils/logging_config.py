"""
Logging setup for the API, the worker and the candidate pipeline.

Records carry a ``request_id`` (set by the API middleware and routers via
``extra``); records emitted outside a request show ``-``.
"""
import logging
import logging.config
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER = "cv_standardizer"
MAX_LOG_BYTES = 10 * 1024 * 1024

FORMATS = {
    "simple": "%(levelname)s - %(name)s - %(message)s",
    "detailed": "%(asctime)s | %(levelname)-8s | %(name)-36s | req=%(request_id)s | %(message)s",
    "json": (
        '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
        '"request_id": "%(request_id)s", "message": "%(message)s"}'
    ),
}

# third-party loggers that are chatty at INFO
QUIET_LOGGERS = {
    "pdfminer": "ERROR",
    "unstructured": "WARNING",
    "urllib3": "WARNING",
    "pymongo": "WARNING",
    "httpx": "WARNING",
}

ENVIRONMENT_PRESETS: Dict[str, Dict[str, Any]] = {
    "production": {"enable_file": True, "format_style": "detailed"},
    "development": {"level": "DEBUG", "enable_file": True, "format_style": "detailed"},
    "testing": {"level": "WARNING", "enable_file": False, "format_style": "simple"},
}


class RequestContextFilter(logging.Filter):
    """Gives every record a ``request_id`` so formats can always reference it."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def _rotating_handler(filename: Path, level: str) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "detailed",
        "filters": ["request_context"],
        "filename": str(filename),
        "maxBytes": MAX_LOG_BYTES,
        "backupCount": 5,
        "encoding": "utf8",
    }


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True,
    enable_file: bool = True,
    format_style: str = "detailed"
) -> None:
    """
    Configure the root, uvicorn and third-party loggers.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path of the main log file (defaults to ``$LOG_DIR/cv_standardizer_<date>.log``)
        enable_console: Log to stdout
        enable_file: Log to rotating files; errors also go to a separate file
        format_style: 'simple', 'detailed' or 'json'
    """
    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    stamp = datetime.now().strftime('%Y%m%d')
    log_file = Path(log_file) if log_file else log_dir / f"cv_standardizer_{stamp}.log"

    handlers: Dict[str, Any] = {}
    if enable_console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "simple" if format_style == "simple" else "main",
            "filters": ["request_context"],
            "stream": "ext://sys.stdout",
        }
    if enable_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = _rotating_handler(log_file, level)
        handlers["error_file"] = _rotating_handler(log_file.parent / f"cv_standardizer_errors_{stamp}.log", "ERROR")

    app_handlers = [h for h in ("console", "file") if h in handlers]
    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_context": {"()": RequestContextFilter}},
        "formatters": {
            "main": {"format": FORMATS.get(format_style, FORMATS["detailed"]), "datefmt": "%Y-%m-%d %H:%M:%S"},
            "detailed": {"format": FORMATS["detailed"], "datefmt": "%Y-%m-%d %H:%M:%S"},
            "simple": {"format": FORMATS["simple"]},
        },
        "handlers": handlers,
        "loggers": {
            "": {"level": level, "handlers": list(handlers), "propagate": False},
            "uvicorn": {"level": "INFO", "handlers": app_handlers, "propagate": False},
            **{name: {"level": lvl, "propagate": True} for name, lvl in QUIET_LOGGERS.items()},
        },
    }
    logging.config.dictConfig(config)

    logger = get_logger("logging")
    logger.info(f"Logging configured - Level: {level}, Console: {enable_console}, File: {enable_file}")
    if enable_file:
        logger.info(f"Log file: {log_file}")


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``cv_standardizer`` namespace (module ``__name__`` values pass through)."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def configure_for_environment():
    """Configure logging from ``ENVIRONMENT`` and ``LOG_LEVEL``"""
    environment = os.getenv("ENVIRONMENT", "development").lower()
    options = {"level": os.getenv("LOG_LEVEL", "INFO").upper()}
    options.update(ENVIRONMENT_PRESETS.get(environment, {}))
    setup_logging(**options)


class PerformanceMonitor:
    """Times a pipeline step or request phase and logs how long it took"""

    def __init__(self, operation_name: str, logger: logging.Logger = None, threshold_ms: float = 1000):
        self.operation_name = operation_name
        self.logger = logger or get_logger("performance")
        self.threshold_ms = threshold_ms
        self.start_time = None
        self.elapsed_ms = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.debug(f"Starting {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000

        if exc_type is not None:
            self.logger.error(f"{self.operation_name} failed after {self.elapsed_ms:.2f}ms: {exc_val}")
        elif self.elapsed_ms > self.threshold_ms:
            self.logger.warning(
                f"{self.operation_name} took {self.elapsed_ms:.2f}ms (threshold {self.threshold_ms:.0f}ms)"
            )
        else:
            self.logger.info(f"{self.operation_name} completed in {self.elapsed_ms:.2f}ms")
        return False
