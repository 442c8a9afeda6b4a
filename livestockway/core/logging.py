"""Centralized logging setup for the API process and the worker."""

import logging
import os
import sys
from contextvars import ContextVar
from logging.handlers import WatchedFileHandler
from typing import Optional

# Set per request by RequestLoggingMiddleware
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

BASE_FORMAT = "[%(asctime)s.%(msecs)03d] [%(levelname)-5s] [%(name)-20s]"
QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "stripe")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


def _build_formatter(environment: str) -> logging.Formatter:
    if environment == "production":
        fmt = f"{BASE_FORMAT} %(message)s"
    else:
        fmt = f"{BASE_FORMAT} [%(request_id)s] %(message)s"
    return logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")


def _find_handler(root: logging.Logger, handler_type: type, filename: Optional[str] = None):
    for handler in root.handlers:
        if not isinstance(handler, handler_type):
            continue
        if filename is None or getattr(handler, "baseFilename", None) == filename:
            return handler
    return None


def _install(root: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)


def configure_logging(*, environment: str, log_level: str) -> int:
    """
    Configure the root logger once per process. Safe to call repeatedly.

    Logs go to stdout; ``APP_LOG_PATH`` adds a WatchedFileHandler so logrotate
    can move the file underneath us.
    """
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    formatter = _build_formatter(environment)

    if _find_handler(root, logging.StreamHandler) is None:
        _install(root, logging.StreamHandler(sys.stdout), level, formatter)

    app_log_path = os.getenv("APP_LOG_PATH", "").strip()
    if app_log_path and _find_handler(root, WatchedFileHandler, app_log_path) is None:
        try:
            os.makedirs(os.path.dirname(app_log_path) or ".", exist_ok=True)
            _install(root, WatchedFileHandler(app_log_path), level, formatter)
        except OSError as exc:
            root.warning("Could not open APP_LOG_PATH %s: %s", app_log_path, exc)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # uvicorn installs its own handlers; route everything through ours
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True
        uv_logger.setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return level
