"""Logging configuration for the allocation service."""

import sys
from typing import Optional

from loguru import logger as loguru_logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[service]}</cyan> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[service]} | {name}:{function}:{line} - {message}"


def setup_service_logger(
    service_name: str,
    log_level: str = "INFO",
    log_file: Optional[str] = None,
) -> loguru_logger:
    """Configure the process-wide loguru sinks and return a bound logger.

    Args:
        service_name: Name bound into every record (e.g. 'allocation-service')
        log_level: Logging level (default: INFO)
        log_file: Optional path to a rotating log file

    Returns:
        logger: loguru logger bound to ``service_name``
    """
    # Remove any existing handlers
    loguru_logger.remove()
    loguru_logger.configure(extra={"service": service_name})

    loguru_logger.add(
        sys.stderr,
        level=log_level,
        format=CONSOLE_FORMAT,
        colorize=True,
        enqueue=True,
        backtrace=True,
        diagnose=True,
    )

    if log_file:
        loguru_logger.add(
            log_file,
            level=log_level,
            format=FILE_FORMAT,
            rotation="10 MB",
            retention="1 week",
            compression="gz",
        )

    return loguru_logger.bind(service=service_name)


def get_sync_logger(service_name: str) -> loguru_logger:
    """Get a logger for snapshot transport code (HTTP sync, Kafka).

    Does not touch the configured sinks, only the bound service name.
    """
    return loguru_logger.bind(service=f"{service_name}.sync")


# Modules log through this until the server reconfigures it from ServiceConfig.
logger = loguru_logger.bind(service="allocation-service")
loguru_logger.configure(extra={"service": "allocation-service"})

__all__ = ["logger", "setup_service_logger", "get_sync_logger"]
