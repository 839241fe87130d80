from __future__ import annotations

import logging
import warnings

import pytest

from kumihan.logging_utils import ReadableAccessFormatter, build_uvicorn_log_config, collect_parser_warnings
from kumihan.parser import parse


def _access_record(path: str) -> logging.LogRecord:
    return logging.LogRecord(
        "uvicorn.access",
        logging.INFO,
        __file__,
        1,
        '%s - "%s %s HTTP/%s" %d',
        ("127.0.0.1:5000", "GET", path, "1.1", 200),
        None,
    )


def test_log_config_uses_readable_access_formatter() -> None:
    config = build_uvicorn_log_config()
    assert config["formatters"]["access"]["()"] == "kumihan.logging_utils.ReadableAccessFormatter"
    assert config["loggers"]["uvicorn.access"]["level"] == "INFO"


def test_log_config_levels_and_quiet_access() -> None:
    config = build_uvicorn_log_config("debug", access_log=False)
    assert config["loggers"]["uvicorn"]["level"] == "DEBUG"
    assert config["loggers"]["uvicorn.error"]["level"] == "DEBUG"
    assert config["loggers"]["uvicorn.access"]["level"] == "WARNING"
    with pytest.raises(ValueError):
        build_uvicorn_log_config("verbose")


def test_access_formatter_decodes_paths() -> None:
    formatter = ReadableAccessFormatter(fmt="%(request_line)s", use_colors=False)
    assert formatter.format(_access_record("/api/%E7%BE%85%E7%94%9F%E9%96%80")) == "GET /api/羅生門 HTTP/1.1"
    assert formatter.format(_access_record("/api/health")) == "GET /api/health HTTP/1.1"


def test_collect_parser_warnings_returns_messages() -> None:
    document, messages = collect_parser_warnings(lambda: parse("前［＃小さな文字］後"))
    assert document.nodes
    assert len(messages) == 1


def test_collect_parser_warnings_passes_other_warnings_through() -> None:
    def _noisy() -> int:
        warnings.warn("unrelated", DeprecationWarning)
        return 1

    with pytest.warns(DeprecationWarning):
        result, messages = collect_parser_warnings(_noisy)
    assert (result, messages) == (1, [])
