# threatguard/utils/logging_setup.py
import logging
import sys
from typing import Literal

from loguru import logger


class InterceptHandler(logging.Handler):
    """
    Перенаправляет записи стандартного logging в loguru.
    Нужен для aiohttp, apscheduler, redis и нашего HTTP-клиента.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = sys._getframe(6), 6
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(
    level: str = "INFO",
    format: Literal["text", "json"] = "text",
    debug_loggers: list[str] | None = None,
) -> None:
    """
    Настраивает логирование конвейера.

    Args:
        level: Уровень логирования ("DEBUG", "INFO", "WARNING", "ERROR")
        format: "text" для разработки, "json" для сбора логов в проде
        debug_loggers: Логгеры stdlib, которым оставляем уровень DEBUG
    """
    logger.remove()

    if format == "json":
        # serialize=True отдает всю запись, включая extra из logger.bind()
        logger.add(sys.stdout, level=level.upper(), serialize=True, backtrace=False)
    else:
        log_format = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        )
        logger.add(
            sys.stdout,
            format=log_format,
            level=level.upper(),
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for logger_name in ("aiohttp", "asyncio", "apscheduler", "redis", "aiosmtplib"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)
    for logger_name in debug_loggers or []:
        logging.getLogger(logger_name).setLevel(logging.DEBUG)

    logger.info(f"✅ Logging configured: level={level.upper()}, format={format}")
