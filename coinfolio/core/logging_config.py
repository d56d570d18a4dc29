"""Centralized logging configuration for the application."""
import logging
import os
from logging.handlers import RotatingFileHandler
from datetime import datetime
import pytz

from coinfolio.core.config import get_settings


class LocalTimeFormatter(logging.Formatter):
    """Formatter that renders record times in the configured timezone."""

    def __init__(self, fmt=None, datefmt=None, tz=None):
        super().__init__(fmt, datefmt)
        self.tz = tz or pytz.utc

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, tz=self.tz)
        if datefmt:
            return dt.strftime(datefmt)
        else:
            return dt.strftime('%Y-%m-%d %H:%M:%S %Z')


def _file_handler(path: str, level: int, max_bytes: int, backup_count: int, formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_dir: str = None):
    """Configure application-wide logging with file and console handlers."""
    settings = get_settings()

    # Ensure logs directory exists
    logs_dir = log_dir or settings.log_dir
    os.makedirs(logs_dir, exist_ok=True)

    formatter = LocalTimeFormatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        tz=pytz.timezone(settings.timezone)
    )

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    # Remove existing handlers
    root_logger.handlers.clear()

    # Console handler (INFO level)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Main application log file (INFO level, rotating)
    root_logger.addHandler(_file_handler(
        os.path.join(logs_dir, "app.log"), logging.INFO, 10 * 1024 * 1024, 10, formatter
    ))

    # Error log file (ERROR level only, rotating)
    root_logger.addHandler(_file_handler(
        os.path.join(logs_dir, "error.log"), logging.ERROR, 10 * 1024 * 1024, 5, formatter
    ))

    # Ledger log file (every applied or rejected trade)
    ledger_logger = logging.getLogger('ledger')
    ledger_logger.handlers.clear()
    ledger_logger.addHandler(_file_handler(
        os.path.join(logs_dir, "ledger.log"), logging.INFO, 10 * 1024 * 1024, 20, formatter
    ))

    # API log file (market data and exchange-rate calls)
    api_logger = logging.getLogger('api')
    api_logger.handlers.clear()
    api_logger.setLevel(logging.DEBUG)
    api_logger.addHandler(_file_handler(
        os.path.join(logs_dir, "api.log"), logging.DEBUG, 5 * 1024 * 1024, 10, formatter
    ))

    logging.info(f"Logging system initialized - logs saved to '{logs_dir}/' directory")
