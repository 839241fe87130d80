from __future__ import annotations

from importlib import metadata
from pathlib import Path

import tomllib

from .boundaries import detect_boundaries, find_optimal_break_point, score_complexity
from .capacity import (
    CharacterCapacity,
    FontMetrics,
    InvalidCapacityError,
    Length,
    Orientation,
    Padding,
    Viewport,
    compute_capacity,
)
from .layout import Line, Page
from .line_breaker import break_long_line
from .nodes import ParsedDocument, extract_text
from .pagination import PageOptions, divide_into_pages, get_nodes_from_page, pages_to_text
from .parser import StrayCloseTagWarning, UnterminatedScopeWarning, format_markup, parse


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("kumihan")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"

__all__ = [
    "CharacterCapacity",
    "FontMetrics",
    "InvalidCapacityError",
    "Length",
    "Line",
    "Orientation",
    "Padding",
    "Page",
    "PageOptions",
    "ParsedDocument",
    "StrayCloseTagWarning",
    "UnterminatedScopeWarning",
    "Viewport",
    "break_long_line",
    "compute_capacity",
    "detect_boundaries",
    "divide_into_pages",
    "extract_text",
    "find_optimal_break_point",
    "format_markup",
    "get_nodes_from_page",
    "pages_to_text",
    "parse",
    "score_complexity",
]
