"""Centralized logging configuration."""

import logging
import os
import sys

from loguru import logger as loguru_logger


log_format = ' | '.join(
    (
        '<lk>{time:YYYY-MM-DD HH:mm:ss.SSS}</>',
        '<lvl>{level:<8}</>',
        '<c>{name}::{function}:{line}</>',
        '{message}',
    )
)

# Configure logger
loguru_logger.remove()  # Drop the default handler so every line uses log_format
loguru_logger.add(sys.stdout, format=log_format, level=os.environ.get('LOG_LEVEL', 'INFO'))

LOG_DIR = os.environ.get('LOG_DIR', '')
if LOG_DIR:
    loguru_logger.add(
        f'{LOG_DIR}/{{time:YYYY-MM-DD}}.log',
        format=log_format,
        rotation='1 day',
        retention='30 days',
        compression='zip',
        enqueue=True,
    )


class InterceptHandler(logging.Handler):
    """Handler to intercept standard logging and redirect to loguru."""

    def emit(self, record):
        # Get corresponding Loguru level if it exists
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )
