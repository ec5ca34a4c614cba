import logging
import os
import re
from typing import List, Optional, Union

PACKAGE_LOGGER = "ingredient_lens"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# HTTP stacks under the clients; their INFO lines repeat what ours already say.
_CHATTY = ("httpx", "httpcore", "openai", "urllib3")

_SECRETS = re.compile(r"(Bearer\s+|--password'?[=,]?\s*'?|\"password\":\s*\")[^\s'\",]+", re.IGNORECASE)


class RedactSecrets(logging.Filter):
    """Masks bearer tokens and passwords before a record reaches any handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _SECRETS.sub(lambda m: f"{m.group(1)}***", message)
        if masked != message:
            record.msg, record.args = masked, None
        return True


def parse_level(value: Union[str, int, None]) -> int:
    """'debug', 'WARN', 10 -> logging level; anything unknown means INFO."""
    if isinstance(value, int):
        return value
    name = (value or "").strip().upper()
    if name == "WARN":
        return logging.WARNING
    level = logging.getLevelName(name) if name else None
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: Union[str, int, None] = None, log_file: Optional[str] = None) -> logging.Logger:
    """Attach console (stderr) and optional file handlers to the package logger.

    Runs once per process; module loggers from get_logger() propagate here.
    LOG_LEVEL and LOG_FILE fill in whatever is not passed explicitly.
    """
    root = logging.getLogger(PACKAGE_LOGGER)
    if root.handlers:
        return root

    resolved = parse_level(level if level is not None else os.environ.get("LOG_LEVEL"))
    root.setLevel(resolved)
    root.propagate = False
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    path = log_file or os.environ.get("LOG_FILE")
    file_error: Optional[OSError] = None
    if path:
        try:
            handlers.append(logging.FileHandler(path, encoding="utf-8"))
        except OSError as exc:
            file_error = exc
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(RedactSecrets())
        root.addHandler(handler)

    if resolved > logging.DEBUG:
        for name in _CHATTY:
            logging.getLogger(name).setLevel(logging.WARNING)

    if file_error is not None:
        root.warning(f"LOG_FILE {path} could not be opened ({file_error}); logging to console only")
    return root


def get_logger(name: str) -> logging.Logger:
    """Module logger named ingredient_lens.<name>, with the package handlers in place."""
    configure_logging()
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
