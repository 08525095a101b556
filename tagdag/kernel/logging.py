"""Centralized logging configuration for tagDAG using Loguru.

Resolution is non-fatal: dangling references, duplicate names and cycles
are reported through these loggers instead of raised.

Examples
--------
Basic usage:

>>> from tagdag.kernel.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Build started", roots=3)

Configure logging globally::

    from tagdag.kernel.logging import configure_logging
    configure_logging(level="DEBUG", format="json")
"""

import contextvars
import logging
import os
import sys
from contextlib import suppress
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    import types
    from contextvars import Token

    from loguru import Logger, Record

from loguru import logger
from rich.logging import RichHandler

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["console", "json", "structured", "rich", "dual"]

_CURRENT_CONFIG: dict | None = None
_HANDLER_IDS: list[int] = []

# Correlation ID of the build currently running in this context
correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar("correlation_id", default="-")


def _patch_correlation_id(record: "Record") -> None:
    record["extra"].setdefault("correlation_id", get_correlation_id())


def _rich_sink(include_timestamp: bool) -> RichHandler:
    return RichHandler(
        rich_tracebacks=True,
        markup=True,
        show_time=include_timestamp,
        show_level=True,
        show_path=True,
    )


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "structured",
    output_file: str | Path | None = None,
    use_color: bool = True,
    include_timestamp: bool = True,
    force_reconfigure: bool = False,
    use_rich: bool = False,
    dual_sink: bool = False,
    enable_stdlib_bridge: bool = False,
    backtrace: bool = True,
    diagnose: bool = True,
) -> None:
    """Configure global logging for tagDAG.

    Idempotent: calling it again with the same settings neither duplicates
    handlers nor changes anything. Only handlers added here are removed on
    reconfiguration, so sinks installed by pytest or the host app survive.

    Parameters
    ----------
    level : LogLevel, default="INFO"
        Minimum log level to output
    format : LogFormat, default="structured"
        Output format:
        - "console": plain single-line output
        - "json": serialized records on stderr
        - "structured": colored Loguru format with module/function/line
        - "rich": Rich console handler
        - "dual": Rich to stderr and JSON to stdout
    output_file : str | Path | None, default=None
        Optional file to write JSON records to (rotated at 10 MB)
    use_color : bool, default=True
        Use ANSI colors in structured format (disabled for non-TTY)
    include_timestamp : bool, default=True
        Include timestamp in log output
    force_reconfigure : bool, default=False
        Reconfigure even if the settings did not change
    use_rich : bool, default=False
        Use Rich console output regardless of ``format``
    dual_sink : bool, default=False
        Same as ``format="dual"``
    enable_stdlib_bridge : bool, default=False
        Route stdlib ``logging`` records through Loguru
    backtrace : bool, default=True
        Extended tracebacks
    diagnose : bool, default=True
        Show variable values in tracebacks (disable in production)
    """
    global _CURRENT_CONFIG, _HANDLER_IDS

    current_config = {
        "level": level,
        "format": format,
        "output_file": str(output_file) if output_file else None,
        "use_color": use_color,
        "include_timestamp": include_timestamp,
        "use_rich": use_rich,
        "dual_sink": dual_sink,
        "enable_stdlib_bridge": enable_stdlib_bridge,
        "backtrace": backtrace,
        "diagnose": diagnose,
    }

    if not force_reconfigure and current_config == _CURRENT_CONFIG:
        return

    for handler_id in _HANDLER_IDS:
        with suppress(ValueError):
            logger.remove(handler_id)
    _HANDLER_IDS.clear()
    logger.configure(patcher=_patch_correlation_id)

    if dual_sink or format == "dual":
        handler_id = logger.add(
            sink=_rich_sink(include_timestamp),
            level=level,
            format="{message}",
            backtrace=backtrace,
            diagnose=diagnose,
        )
        _HANDLER_IDS.append(handler_id)

        handler_id = logger.add(
            sink=sys.stdout,
            level=level,
            serialize=True,
            backtrace=backtrace,
            diagnose=diagnose,
        )
        _HANDLER_IDS.append(handler_id)

    elif use_rich or format == "rich":
        handler_id = logger.add(
            sink=_rich_sink(include_timestamp),
            level=level,
            format="{message}",
            backtrace=backtrace,
            diagnose=diagnose,
        )
        _HANDLER_IDS.append(handler_id)

    elif format == "json":
        handler_id = logger.add(
            sink=sys.stderr,
            level=level,
            serialize=True,
            backtrace=backtrace,
            diagnose=diagnose,
        )
        _HANDLER_IDS.append(handler_id)

    elif format == "structured":
        timestamp_fmt = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> " if include_timestamp else ""
        color_level = (
            "<level>{level: <8}</level>" if use_color and sys.stderr.isatty() else "{level: <8}"
        )
        structured_format = (
            f"{timestamp_fmt}[{color_level}]"
            "<cyan>{name}:{function}:{line}</cyan> | {extra[correlation_id]} | "
            "<level>{message}</level>"
        )

        handler_id = logger.add(
            sink=sys.stderr,
            level=level,
            format=structured_format,
            colorize=use_color and sys.stderr.isatty(),
            backtrace=backtrace,
            diagnose=diagnose,
        )
        _HANDLER_IDS.append(handler_id)

    else:  # console
        timestamp_fmt = "{time:YYYY-MM-DD HH:mm:ss} " if include_timestamp else ""
        console_format = f"{timestamp_fmt}{{level: <8}} | {{name}} | {{message}}"

        handler_id = logger.add(
            sink=sys.stderr,
            level=level,
            format=console_format,
            colorize=False,
            backtrace=backtrace,
            diagnose=diagnose,
        )
        _HANDLER_IDS.append(handler_id)

    if output_file:
        output_path = Path(output_file)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        handler_id = logger.add(
            sink=output_path,
            level=level,
            serialize=True,
            rotation="10 MB",
            retention="1 week",
            compression="zip",
            backtrace=backtrace,
            diagnose=diagnose,
        )
        _HANDLER_IDS.append(handler_id)

    if enable_stdlib_bridge:
        enable_stdlib_logging_bridge()

    _CURRENT_CONFIG = current_config


@lru_cache(maxsize=256)
def get_logger(name: str) -> "Logger":
    """Get a logger bound with the given module name (cached).

    Parameters
    ----------
    name : str
        Logger name, typically ``__name__`` of the calling module

    Returns
    -------
    loguru.Logger
        Logger instance bound with ``module=name``

    Notes
    -----
    If :func:`configure_logging` hasn't been called yet, a default
    configuration is installed from ``TAGDAG_LOG_LEVEL`` and
    ``TAGDAG_LOG_FORMAT``.
    """
    _ensure_configured()
    return logger.bind(module=name)


def enable_stdlib_logging_bridge() -> None:
    """Redirect stdlib ``logging`` records to Loguru."""

    class InterceptHandler(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            level: str | int
            try:
                level = logger.level(record.levelname).name
            except ValueError:
                level = record.levelno

            frame: types.FrameType | None = sys._getframe(6)
            depth = 6
            while frame and frame.f_code.co_filename == logging.__file__:
                frame = frame.f_back
                depth += 1

            logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


def set_correlation_id(cid: str) -> "Token[str]":
    """Set correlation ID for the current context.

    Returns
    -------
    Token[str]
        Pass to :func:`reset_correlation_id` to restore the previous ID

    Examples
    --------
    >>> from tagdag.kernel.logging import get_correlation_id, reset_correlation_id
    >>> token = set_correlation_id("build-1a2b")
    >>> get_correlation_id()
    'build-1a2b'
    >>> reset_correlation_id(token)
    """
    return correlation_id.set(cid)


def get_correlation_id() -> str:
    """Get the current correlation ID, or ``"-"`` if not set."""
    return correlation_id.get()


def reset_correlation_id(token: "Token[str]") -> None:
    """Restore the correlation ID that was current before ``token`` was issued."""
    correlation_id.reset(token)


def _ensure_configured() -> None:
    global _CURRENT_CONFIG

    if _CURRENT_CONFIG is None:
        level = os.getenv("TAGDAG_LOG_LEVEL", "INFO").upper()
        format_type = os.getenv("TAGDAG_LOG_FORMAT", "structured").lower()
        configure_logging(level=level, format=format_type)  # type: ignore
