from __future__ import annotations

import warnings
from copy import copy, deepcopy
from typing import Any, Callable
from urllib.parse import unquote

from uvicorn.config import LOGGING_CONFIG
from uvicorn.logging import AccessFormatter as UvicornAccessFormatter

__all__ = [
    "LOG_LEVELS",
    "ReadableAccessFormatter",
    "build_uvicorn_log_config",
    "collect_parser_warnings",
]

LOG_LEVELS = ("critical", "error", "warning", "info", "debug")
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error")
_ACCESS_LOGGER = "uvicorn.access"


def _readable_access_args(args: object) -> tuple[object, ...] | None:
    # uvicorn passes (client, method, path, http_version, status).
    if not isinstance(args, tuple) or len(args) != 5:
        return None
    client_addr, method, full_path, http_version, status_code = args
    if not isinstance(full_path, str) or "%" not in full_path:
        return None
    decoded = unquote(full_path, encoding="utf-8", errors="replace")
    return client_addr, method, decoded, http_version, status_code


class ReadableAccessFormatter(UvicornAccessFormatter):
    """Access log formatter that shows percent-encoded request paths as text."""

    def formatMessage(self, record):  # type: ignore[override]
        readable = _readable_access_args(record.args)
        if readable is None:
            return super().formatMessage(record)
        decoded_record = copy(record)
        decoded_record.args = readable
        return super().formatMessage(decoded_record)


def build_uvicorn_log_config(level: str = "info", *, access_log: bool = True) -> dict[str, Any]:
    """
    Return uvicorn's logging config tuned for ``kumihan web``.

    Server loggers run at ``level``. Access lines go through
    :class:`ReadableAccessFormatter`, or are limited to warnings when
    ``access_log`` is off.
    """
    if level.lower() not in LOG_LEVELS:
        raise ValueError(f"Unknown log level: {level}")
    level_name = level.upper()
    config = deepcopy(LOGGING_CONFIG)
    config.setdefault("formatters", {}).setdefault("access", {})["()"] = (
        f"{__name__}.ReadableAccessFormatter"
    )
    loggers = config.setdefault("loggers", {})
    for name in _SERVER_LOGGERS:
        loggers.setdefault(name, {})["level"] = level_name
    loggers.setdefault(_ACCESS_LOGGER, {})["level"] = level_name if access_log else "WARNING"
    return config


def collect_parser_warnings(func: Callable[[], Any]) -> tuple[Any, list[str]]:
    """Run ``func`` and return its result along with any markup warnings it raised."""
    from .parser import StrayCloseTagWarning, UnterminatedScopeWarning

    markup_warnings = (UnterminatedScopeWarning, StrayCloseTagWarning)
    with warnings.catch_warnings(record=True) as caught:
        for category in markup_warnings:
            warnings.simplefilter("always", category)
        result = func()
    messages: list[str] = []
    for item in caught:
        if issubclass(item.category, markup_warnings):
            messages.append(str(item.message))
        else:
            warnings.warn_explicit(item.message, item.category, item.filename, item.lineno)
    return result, messages
