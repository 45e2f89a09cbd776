# backend/geogrid/services/logger/logger_service.py
"""
Centralized logger service built on loguru.

Every module obtains a pre-configured ServiceLogger via get_service_logger.
The ServiceLogger binds the logger name and source into loguru's ``extra``
so sinks can filter and format on them, and prefixes messages with an emoji
resolved through a three-tier priority system.
"""

import sys
from typing import Any, Dict, Optional

from loguru import logger

from ...enums import LogEmoji, LoggerName, LogLevel, LogSource

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[logger_name]}</cyan> | "
    "{message}"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{extra[source]}:{extra[logger_name]} | {message}"
)

_DEFAULT_EXTRA = {"logger_name": LoggerName.SYSTEM.value, "source": LogSource.SYSTEM.value}


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    log_file_path: Optional[str] = None,
    rotation: str = "10 MB",
    retention: str = "14 days",
) -> None:
    """
    Install the console sink and, optionally, a rotating file sink.

    Safe to call more than once: previously installed sinks are removed first.

    Args:
        level: Minimum level for all sinks
        log_file_path: Path of the rotating log file, or None for console only
        rotation: loguru rotation policy for the file sink
        retention: loguru retention policy for the file sink
    """
    logger.remove()
    logger.configure(extra=_DEFAULT_EXTRA)
    logger.add(sys.stderr, level=level.value, format=CONSOLE_FORMAT, enqueue=False)

    if log_file_path:
        logger.add(
            log_file_path,
            level=level.value,
            format=FILE_FORMAT,
            rotation=rotation,
            retention=retention,
            compression="gz",
            enqueue=True,
        )


def _format_message(
    message: str, emoji: LogEmoji, extra_context: Optional[Dict[str, Any]]
) -> str:
    text = f"{emoji.value} {message}"
    if extra_context:
        context = ", ".join(f"{key}={value}" for key, value in extra_context.items())
        text = f"{text} [{context}]"
    return text


def get_service_logger(
    logger_name: LoggerName,
    source: LogSource = LogSource.SYSTEM,
    default_emoji: Optional[LogEmoji] = None,
):
    """
    Factory function to create a pre-configured logger for a specific service.

    Emoji priority system (highest to lowest):
    1. Direct: Emoji passed directly to log method call
    2. Instance-set: Default emoji set when creating the service logger
    3. Fallback: Default emoji based on log level (ERROR, WARNING, INFO, DEBUG)

    Args:
        logger_name: The logger name enum to use for all calls
        source: The log source enum to use for all calls (defaults to SYSTEM)
        default_emoji: Instance-level default emoji that overrides level-based fallbacks

    Returns:
        ServiceLogger instance with error, warning, info, debug methods

    Example:
        logger = get_service_logger(LoggerName.CLAIMER_SERVICE, LogSource.SCHEDULER)
        logger.info("Claimed 3 schedules", emoji=LogEmoji.LOCK)
    """
    bound = logger.bind(logger_name=logger_name.value, source=source.value)

    def _resolve_emoji(
        method_emoji: Optional[LogEmoji], fallback_emoji: LogEmoji
    ) -> LogEmoji:
        if method_emoji is not None:
            return method_emoji
        if default_emoji is not None:
            return default_emoji
        return fallback_emoji

    class ServiceLogger:
        name = logger_name

        @staticmethod
        def error(
            message: str,
            exception: Optional[BaseException] = None,
            error_context: Optional[Dict[str, Any]] = None,
            emoji: Optional[LogEmoji] = None,
            **kwargs,
        ):
            """Log an error, attaching the exception traceback when given."""
            text = _format_message(
                message, _resolve_emoji(emoji, LogEmoji.ERROR), error_context
            )
            if exception is not None:
                bound.opt(exception=exception).error(text)
            else:
                bound.error(text)

        @staticmethod
        def warning(
            message: str,
            extra_context: Optional[Dict[str, Any]] = None,
            emoji: Optional[LogEmoji] = None,
            **kwargs,
        ):
            bound.warning(
                _format_message(
                    message, _resolve_emoji(emoji, LogEmoji.WARNING), extra_context
                )
            )

        @staticmethod
        def info(
            message: str,
            extra_context: Optional[Dict[str, Any]] = None,
            emoji: Optional[LogEmoji] = None,
            **kwargs,
        ):
            bound.info(
                _format_message(
                    message, _resolve_emoji(emoji, LogEmoji.INFO), extra_context
                )
            )

        @staticmethod
        def debug(
            message: str,
            extra_context: Optional[Dict[str, Any]] = None,
            emoji: Optional[LogEmoji] = None,
            **kwargs,
        ):
            bound.debug(
                _format_message(
                    message, _resolve_emoji(emoji, LogEmoji.DEBUG), extra_context
                )
            )

    return ServiceLogger()
