"""Logging configuration setup."""

import copy
import logging
import logging.config
import re
from pathlib import Path
from typing import Optional, Set

from skill_get.constants import LOG_FILE_NAME

# ── Secret redaction filter ──────────────────────────────────────────────

_REDACTED = "***REDACTED***"
_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SecretRedactionFilter(logging.Filter):
    """Mask registered secrets (the registry bearer token) in log records.

    The record is rendered once, masked, and stored back as a plain
    message so handlers never see the raw arguments.
    """

    def __init__(self) -> None:
        super().__init__()
        self._tokens: Set[str] = set()
        self._matcher: Optional[re.Pattern] = None

    def register(self, value: Optional[str]) -> None:
        """Add *value* to the masked set; values under 4 chars are ignored."""
        if not value or len(value) < 4 or value in self._tokens:
            return
        self._tokens.add(value)
        # longest first so a token containing another is masked whole
        alternatives = [re.escape(t) for t in sorted(self._tokens, key=len, reverse=True)]
        self._matcher = re.compile("|".join(alternatives))

    def redact(self, text: str) -> str:
        return text if self._matcher is None else self._matcher.sub(_REDACTED, text)

    def filter(self, record: logging.LogRecord) -> bool:
        if self._matcher is None:
            return True
        try:
            rendered = record.getMessage()
        except (TypeError, ValueError):
            return True
        masked = self.redact(rendered)
        if masked != rendered:
            record.msg, record.args = masked, None
        return True


# Module-level singleton so the CLI can register the token at any point.
secret_redaction_filter = SecretRedactionFilter()

BASE_LOG_CFG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple_file": {
            "format": ("%(asctime)s - %(name)25s:%(lineno)-4d - " "%(levelname)-7s - %(message)s"),
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
        "rich": {"format": "%(name)s: %(message)s", "datefmt": "[%X]"},
    },
    "handlers": {
        "file_handler": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "formatter": "simple_file",
            "filename": "temp_log_name.log",
            "maxBytes": 1_000_000,
            "backupCount": 3,
            "encoding": "utf-8",
        },
    },
    "loggers": {
        "skill_get": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "WARNING",
        },
        "httpx": {
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


def normalise_level(log_lvl_str: str) -> str:
    """Upper-case *log_lvl_str*, falling back to ``WARNING`` when unknown."""
    level = (log_lvl_str or "").upper()
    return level if level in _VALID_LEVELS else "WARNING"


def setup_logging(
    log_lvl_str: str,
    log_dir: Path,
    *,
    verbose: bool = False,
) -> Optional[Path]:
    """
    Set up the logging system.

    Application logs go to a rotating file under *log_dir*.  With
    *verbose*, records are also rendered on stderr through
    :class:`rich.logging.RichHandler` at ``DEBUG``.

    Args:
        log_lvl_str: The desired file log level (e.g. 'debug', 'info').
        log_dir: Directory for the log file; created if missing.
        verbose: Mirror log records to the terminal.

    Returns:
        The log file path, or ``None`` when the log directory is not
        writable (logging then only goes to the console, if verbose).
    """
    level = "DEBUG" if verbose else normalise_level(log_lvl_str)
    log_cfg: dict = copy.deepcopy(BASE_LOG_CFG)

    log_fpath: Optional[Path] = Path(log_dir) / LOG_FILE_NAME
    try:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        log_cfg["handlers"]["file_handler"]["filename"] = str(log_fpath)
    except OSError:
        log_fpath = None
        log_cfg["handlers"]["file_handler"] = {"class": "logging.NullHandler"}

    handler_names = ["file_handler"]
    if verbose:
        log_cfg["handlers"]["console_handler"] = {
            "class": "rich.logging.RichHandler",
            "level": "DEBUG",
            "formatter": "rich",
            "show_path": False,
            "rich_tracebacks": True,
        }
        handler_names.append("console_handler")

    for name in ("skill_get", "httpx"):
        log_cfg["loggers"][name]["handlers"] = list(handler_names)
    log_cfg["loggers"]["skill_get"]["level"] = level
    log_cfg["loggers"]["httpx"]["level"] = "DEBUG" if level == "DEBUG" else "WARNING"
    log_cfg["root"]["handlers"] = list(handler_names)

    logging.config.dictConfig(log_cfg)
    # Attach the redaction filter to every configured handler
    for logger_name in ("", "skill_get", "httpx"):
        for handler in logging.getLogger(logger_name).handlers:
            if secret_redaction_filter not in handler.filters:
                handler.addFilter(secret_redaction_filter)

    return log_fpath
