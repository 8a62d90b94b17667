# coding: utf-8
"""
Logging configuration with loguru for KAVARA backend
"""
import logging
import sys
from pathlib import Path

from loguru import logger
import sentry_sdk

from config.config import LOG_LEVEL, ENVIRONMENT, SENTRY_DSN


LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logging(log_to_files: bool = True) -> None:
    """
    Setup loguru sinks: colored console, daily files, Sentry for errors

    Args:
        log_to_files: Write rotated log files to ./logs (disabled in tests)
    """
    logger.remove()

    logger.add(
        sys.stdout,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        ),
        level=LOG_LEVEL,
        colorize=True,
    )

    if log_to_files:
        logs_dir = Path(__file__).parent.parent / "logs"
        logs_dir.mkdir(exist_ok=True)

        # Все логи, ротация в полночь
        logger.add(
            logs_dir / "kavara_{time:YYYY-MM-DD}.log",
            format=LOG_FORMAT,
            level="DEBUG",
            rotation="00:00",
            retention="7 days",
            compression="zip",
            encoding="utf-8",
        )

        # Только ошибки, храним дольше
        logger.add(
            logs_dir / "error_{time:YYYY-MM-DD}.log",
            format=LOG_FORMAT,
            level="ERROR",
            rotation="00:00",
            retention="30 days",
            compression="zip",
            encoding="utf-8",
        )

    if SENTRY_DSN:
        logger.add(sentry_sink, level="ERROR", format="{message}")

    # Suppress noisy third-party loggers
    logging.getLogger("aiogram").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.ERROR)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger.info(f"KAVARA initialized | Environment: {ENVIRONMENT} | Log level: {LOG_LEVEL}")


def sentry_sink(message):
    """Forward ERROR and CRITICAL records to Sentry"""
    record = message.record
    extras = {
        "function": record["function"],
        "file": record["file"].path,
        "line": record["line"],
    }

    if record["exception"]:
        sentry_sdk.capture_exception(record["exception"].value)
        return

    level = "fatal" if record["level"].name == "CRITICAL" else "error"
    sentry_sdk.capture_message(record["message"], level=level, extras=extras)
