"""Logging configuration setup."""

import copy
import logging
import logging.config
import os
import re
import sys
from datetime import datetime
from typing import Iterable, Optional, Set, Tuple

from mcp_warden.constants import LOG_DIR

_REDACTED = "***REDACTED***"
_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SecretRedactionFilter(logging.Filter):
    """Replaces registered secret values (e.g. header tokens) in log records."""

    def __init__(self) -> None:
        super().__init__()
        self._secrets: Set[str] = set()
        self._pattern: Optional["re.Pattern[str]"] = None

    def register(self, value: str) -> None:
        if value and len(value) >= 4:  # skip trivially short values
            self._secrets.add(value)
            escaped = sorted((re.escape(s) for s in self._secrets), key=len, reverse=True)
            self._pattern = re.compile("|".join(escaped))

    def register_all(self, values: Iterable[str]) -> None:
        for value in values:
            self.register(value)

    def _scrub(self, value: object) -> object:
        if isinstance(value, str) and self._pattern is not None:
            return self._pattern.sub(_REDACTED, value)
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        if self._pattern is None:
            return True
        record.msg = self._scrub(record.msg)
        if isinstance(record.args, dict):
            record.args = {k: self._scrub(v) for k, v in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(self._scrub(a) for a in record.args)
        return True


secret_redaction_filter = SecretRedactionFilter()


def get_redaction_filter() -> SecretRedactionFilter:
    """Factory used by ``dictConfig`` so every handler shares the singleton."""
    return secret_redaction_filter


_APP_LOGGERS = (
    "mcp_warden",
    "mcp_warden.server",
    "mcp_warden.bridge",
    "mcp_warden.policy",
    "mcp_warden.config",
    "mcp",
    "uvicorn",
    "uvicorn.error",
    "starlette",
)

BASE_LOG_CFG = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "redact": {"()": "mcp_warden.display.logging_config.get_redaction_filter"},
    },
    "formatters": {
        "simple_file": {
            "format": "%(asctime)s - %(name)25s:%(lineno)-4d - %(levelname)-7s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "file_handler": {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "simple_file",
            "filters": ["redact"],
            "filename": "temp_log_name.log",
            "encoding": "utf-8",
        },
    },
    "loggers": {
        "uvicorn.access": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "WARNING",
        },
    },
    "root": {
        "handlers": ["file_handler"],
        "level": "WARNING",
    },
}


def setup_logging(log_lvl_str: str, *, quiet: bool = False) -> Tuple[str, str]:
    """Send all gateway, SDK and server logs to a timestamped file under ``logs/``.

    Status messages go to stderr so stdout stays free for the stdio transport.

    Returns:
        A tuple of (log_file_path, validated_log_level).
    """
    log_lvl_valid = log_lvl_str.upper()
    if log_lvl_valid not in _VALID_LEVELS:
        if not quiet:
            print(f"Warning: invalid log level '{log_lvl_str}'. Using 'INFO'.", file=sys.stderr)
        log_lvl_valid = "INFO"

    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    os.makedirs(LOG_DIR, exist_ok=True)
    log_fpath = os.path.join(LOG_DIR, f"warden_{ts}_{log_lvl_valid}.log")

    log_cfg: dict = copy.deepcopy(BASE_LOG_CFG)
    log_cfg["handlers"]["file_handler"]["filename"] = log_fpath
    for name in _APP_LOGGERS:
        log_cfg["loggers"][name] = {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": log_lvl_valid,
        }
    log_cfg["loggers"]["uvicorn.access"]["level"] = "INFO" if log_lvl_valid == "DEBUG" else "WARNING"
    log_cfg["root"]["level"] = log_lvl_valid if log_lvl_valid == "DEBUG" else "WARNING"

    try:
        logging.config.dictConfig(log_cfg)
        if not quiet:
            print(
                f"Logging initialized. File log level: {log_lvl_valid}, log file: {log_fpath}",
                file=sys.stderr,
            )
    except (ValueError, TypeError, AttributeError, ImportError, OSError) as e_log_cfg:
        print(f"Error applying logging configuration: {e_log_cfg}", file=sys.stderr)

    return log_fpath, log_lvl_valid
