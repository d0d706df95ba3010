"""Logging setup and secret redaction."""

import logging
import re
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_ORIGINAL_FACTORY = logging.getLogRecordFactory()

# One `key = value` line whose key names a secret
_SECRET_LINE = re.compile(
    r"^(\s*[\w.]*(?:secret|password|api_key|token)\w*\s*=\s*)(\S.*)$",
    re.IGNORECASE | re.MULTILINE,
)


def redact(text: str) -> str:
    """Mask the values of secret-looking config keys, keeping the key names."""
    return _SECRET_LINE.sub(r"\1[REDACTED]", text)


def _sanitize_value(value):
    if isinstance(value, str):
        return value.replace("\r\n", "\\r\\n").replace("\r", "\\r").replace("\n", "\\n")
    return value


def _safe_record_factory(*args, **kwargs):
    """LogRecord factory escaping newlines in args (form input reaches log calls)."""
    record = _ORIGINAL_FACTORY(*args, **kwargs)
    if record.args:
        if isinstance(record.args, dict):
            record.args = {k: _sanitize_value(v) for k, v in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(_sanitize_value(a) for a in record.args)
    return record


def install_safe_logging() -> None:
    logging.setLogRecordFactory(_safe_record_factory)


def configure_logging(logging_config) -> None:
    """Configure the root logger from the [logging] config section."""
    level_name = str(logging_config.level).upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.INFO

    handlers: list[logging.Handler] = []
    if logging_config.console:
        handlers.append(logging.StreamHandler())
    if logging_config.file:
        log_path = Path(logging_config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    install_safe_logging()

    if not isinstance(getattr(logging, level_name, None), int):
        logging.getLogger(__name__).warning(
            "Invalid log level '%s', using INFO", logging_config.level
        )
