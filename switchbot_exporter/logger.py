# ABOUTME: File-only logging setup for SwitchBot TH exporter application
# ABOUTME: Configures TimedRotatingFileHandler with daily rotation and configurable level
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from switchbot_exporter.config import AppConfig

LOGGER_NAME = 'switchbot_exporter'
LOG_FORMAT = '%(asctime)s %(levelname)s %(message)s'


def get_logger(app_config: AppConfig) -> logging.Logger:
    """
    Create and configure the exporter logger.

    Per-advertisement decoding is logged at DEBUG only, so the default INFO
    level records startup, scan start, shutdown, and fatal scanner errors.

    Args:
        app_config: Application configuration with log file path and level

    Returns:
        Configured logger instance with a daily rotating file handler
    """
    logger = logging.getLogger(LOGGER_NAME)

    # get_logger may be called more than once per process
    if logger.handlers:
        return logger

    logger.setLevel(app_config.log_level)

    log_path = Path(app_config.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = TimedRotatingFileHandler(
        log_path,
        when='midnight',
        backupCount=app_config.log_backup_days,
        encoding='utf-8'
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(handler)

    return logger
