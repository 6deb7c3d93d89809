"""Structured logging: console for humans, JSON files for log shipping."""

import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from pythonjsonlogger import jsonlogger

from catalog_harvester.config import Settings, settings as default_settings

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"

# Libraries whose INFO chatter drowns out job logs
NOISY_LOGGERS = ("apscheduler", "uvicorn.access")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON records carrying timestamp, level, source location and job context."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['source'] = f"{record.filename}:{record.lineno}"
        if record.funcName:
            log_record['function'] = record.funcName


def _rotating_json_handler(path: Path, level: int, cfg: Settings) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=cfg.log_file_max_bytes,
        backupCount=cfg.log_file_backups,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(CustomJsonFormatter(JSON_FORMAT))
    return handler


def setup_logging(cfg: Optional[Settings] = None) -> logging.Logger:
    """
    Install the root handlers: stdout, ``app.log`` (all levels, JSON) and
    ``error.log`` (errors only, JSON), both under ``log_dir``.
    """
    cfg = cfg or default_settings
    logs_dir = Path(cfg.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, cfg.log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root_logger.addHandler(console_handler)

    root_logger.addHandler(_rotating_json_handler(logs_dir / "app.log", logging.DEBUG, cfg))
    root_logger.addHandler(_rotating_json_handler(logs_dir / "error.log", logging.ERROR, cfg))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


class JobLoggerAdapter(logging.LoggerAdapter):
    """Merges job context (``job_id`` and friends) into every record's extras."""

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs


def get_logger(name: str, **context) -> JobLoggerAdapter:
    """Logger for ``name`` that tags its records with ``context`` (e.g. ``job_id``)."""
    return JobLoggerAdapter(logging.getLogger(name), context)
