"""Logging setup: readable console output, optional JSON lines."""

import logging
import sys
from pathlib import Path
from typing import Optional

from pythonjsonlogger import jsonlogger

from universal_parser.config import settings

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


class ExtractionJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds the source location of each record."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['source'] = f"{record.filename}:{record.lineno}"


def _json_formatter() -> ExtractionJsonFormatter:
    return ExtractionJsonFormatter(
        JSON_FORMAT,
        rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
    )


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> logging.Logger:
    """Configure the root logger.

    Console output is JSON when ``settings.log_json`` is set. A JSON file
    ``parser.log`` is written only when a log directory is configured.

    Args:
        level: Overrides ``settings.log_level``
        log_dir: Overrides ``settings.log_dir``
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (level or settings.log_level).upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    if settings.log_json:
        console_handler.setFormatter(_json_formatter())
    else:
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root_logger.addHandler(console_handler)

    log_dir = log_dir if log_dir is not None else settings.log_dir
    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path / "parser.log")
        file_handler.setFormatter(_json_formatter())
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


class LoggerAdapter(logging.LoggerAdapter):
    """Adds bound context (domain, strategy) to every record; call-site extra wins."""

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs


def get_logger(name: str, **context) -> LoggerAdapter:
    """
    Get a logger with bound context fields.

    Args:
        name: Logger name (usually __name__)
        **context: Context fields, e.g. domain='zara.com', strategy='rendered'
    """
    return LoggerAdapter(logging.getLogger(name), context)
