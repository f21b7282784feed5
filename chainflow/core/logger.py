"""
Logging setup for the bot and API processes.

Handlers are derived from the ``logging`` config section. Every handler
carries a filter that masks anything shaped like a wallet private key, so a
secret that slips into a log message or traceback never reaches the output.
"""

import logging
import re
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "chainflow"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_PRIVATE_KEY_RE = re.compile(r"(?<![0-9a-fA-F])(0x)?[0-9a-fA-F]{64}(?![0-9a-fA-F])")
REDACTED = "<redacted>"


class SecretRedactingFilter(logging.Filter):
    """Replace 64-hex-digit strings (private keys) in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _PRIVATE_KEY_RE.sub(REDACTED, message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = _PRIVATE_KEY_RE.sub(REDACTED, record.exc_text)
        return True


def parse_level(value) -> int:
    """
    Turn ``"debug"``, ``"INFO"`` or a numeric level into a logging level.

    Raises:
        ValueError: Unknown level name
    """
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value}")
    return level


def _log_file(log_dir: str, log_filename: Optional[str]) -> Path:
    path = Path(log_dir)
    if not path.is_absolute():
        # Relative to the project root
        path = Path(__file__).parent.parent.parent / path
    path.mkdir(parents=True, exist_ok=True)
    return path / f"{log_filename or PACKAGE_LOGGER}.log"


def setup_logger(log_config: Optional[dict] = None, name: str = PACKAGE_LOGGER) -> logging.Logger:
    """
    Configure the package logger from a ``logging`` config section.

    Module loggers created with ``logging.getLogger(__name__)`` propagate to
    the package logger, so configuring it once per process is enough.
    Calling it again replaces the previous handlers.

    Args:
        log_config: ``logging`` section with ``level``, optional ``log_dir``
            and ``log_filename``, and the rotation settings ``rotate_when``
            (default midnight) and ``backup_count`` (default 30)
        name: Logger to configure

    Returns:
        Configured logger
    """
    log_config = log_config or {}
    level = parse_level(log_config.get('level', 'INFO'))

    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    redactor = SecretRedactingFilter()

    handlers = [logging.StreamHandler(sys.stdout)]

    log_file = None
    if log_config.get('log_dir'):
        log_file = _log_file(log_config['log_dir'], log_config.get('log_filename'))
        file_handler = TimedRotatingFileHandler(
            filename=str(log_file),
            when=log_config.get('rotate_when', 'midnight'),
            backupCount=int(log_config.get('backup_count', 30)),
            encoding='utf-8'
        )
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        logger.addHandler(handler)

    if log_file is not None:
        logger.info(f"Logging to file: {log_file.absolute()}")
    return logger


def setup_logger_from_config(config: dict) -> logging.Logger:
    """Configure the package logger from a full configuration dictionary."""
    return setup_logger(config.get('logging'))
